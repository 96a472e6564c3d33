from __future__ import annotations

import threading
from dataclasses import replace

from contract_verifier.config import VerifierConfig
from contract_verifier.contracts import (
    BrokerClient,
    BrokerSource,
    ContractSource,
    PactBrokerClient,
    PactFileSource,
    load_interactions,
    publish_results,
)
from contract_verifier.exceptions import ContractVerifierError, MalformedContract
from contract_verifier.hosts import HostSupervisor
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.models import RunSummary
from contract_verifier.reporter import ResultReporter
from contract_verifier.verifier import VerifierEngine

logger = get_logger(__name__)


def create_broker_client(config: VerifierConfig) -> PactBrokerClient:
    broker = config.broker
    return PactBrokerClient(
        broker.base_url,
        token=broker.token,
        username=broker.username,
        password=broker.password,
        timeout=config.request_timeout,
    )


def build_source(config: VerifierConfig, broker_client: BrokerClient | None = None) -> ContractSource:
    """Build the contract source from the config"""
    if not config.use_broker:
        return PactFileSource(config.pact_dir, provider=config.provider_name, consumer=config.consumer)

    selectors = [s.to_selector() for s in config.broker.consumer_version_selectors]
    if config.consumer:
        selectors = [s if s.consumer else replace(s, consumer=config.consumer) for s in selectors]
    return BrokerSource(
        broker_client or create_broker_client(config),
        config.provider_name,
        selectors=tuple(selectors),
        provider_branch=config.publish.provider_branch,
        include_pending=config.broker.enable_pending,
        include_wip_pacts_since=config.broker.include_wip_pacts_since,
    )


def run_verification(
    config: VerifierConfig,
    supervisor: HostSupervisor | None = None,
    reporter: ResultReporter | None = None,
    broker_client: BrokerClient | None = None,
    cancel_event: threading.Event | None = None,
) -> RunSummary:
    """Verify the provider against its contracts

    Contracts are loaded before the listeners are started, so a fatal source error never reaches the provider.
    The listeners are stopped on every exit path. When a contract turns out to be malformed in the middle of the run,
    the results of the interactions attempted so far are reported before MalformedContract propagates. A failure to
    publish the results is reported separately and doesn't change the returned summary

    :param config: Verifier config
    :param supervisor: Host supervisor that starts/stops the listeners
    :param reporter: Result reporter
    :param broker_client: Broker client to use instead of the one created from the config
    :param cancel_event: Set this event to abort the remaining interactions
    """
    supervisor = supervisor or HostSupervisor()
    reporter = reporter or ResultReporter()
    if config.use_broker and broker_client is None:
        broker_client = create_broker_client(config)

    interactions = load_interactions(build_source(config, broker_client=broker_client))
    engine = VerifierEngine(
        config.provider_name,
        custom_headers=config.custom_headers,
        request_timeout=config.request_timeout,
        run_timeout=config.run_timeout,
        state_teardown=config.provider_states.teardown,
    )
    with supervisor.hosted(config) as handle:
        try:
            summary = engine.verify(interactions, handle.provider_url, handle.state_url, cancel_event=cancel_event)
        except MalformedContract as e:
            if e.partial_summary is not None:
                reporter.report(e.partial_summary)
            raise
    reporter.report(summary)

    if config.publish.enabled:
        if broker_client is None:
            logger.warning("Verification results can be published only for pacts fetched from a broker. Skipped")
        else:
            try:
                publish_results(
                    broker_client,
                    summary,
                    config.publish.provider_version,
                    provider_branch=config.publish.provider_branch,
                    build_url=config.publish.build_url,
                )
            except ContractVerifierError as e:
                reporter.report_publish_failure(e)
    return summary
