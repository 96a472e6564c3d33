from __future__ import annotations

import json
import threading
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from requests import RequestException, Timeout

from contract_verifier.exceptions import MalformedContract, MismatchFound, ProviderUnreachable, StateSetupFailed
from contract_verifier.libraries.common.logging import get_logger, interaction_context
from contract_verifier.libraries.rest_client import RestClient, RestResponse
from contract_verifier.matching import ActualResponse, MatchingRules, PactMatchingRules
from contract_verifier.models import FailureReason, Interaction, RunSummary, VerificationResult
from contract_verifier.state_client import ProviderStateClient

logger = get_logger(__name__)


class RunAborted(Exception):
    """The run deadline passed while a request was in flight"""


class VerifierEngine:
    """Replays recorded interactions against a live provider and aggregates the results

    Interactions are verified one by one in the given order. A failure of one interaction (state setup, connection,
    mismatch) is recorded in its result and never stops the run. A malformed contract (MalformedContract) is fatal
    and propagates to the caller with the results of the interactions attempted so far (partial_summary)
    """

    def __init__(
        self,
        provider_name: str,
        matching_rules: MatchingRules | None = None,
        custom_headers: dict[str, str] | None = None,
        request_timeout: float = 30,
        run_timeout: float | None = None,
        state_teardown: bool = False,
    ):
        """
        :param provider_name: Name of the provider being verified
        :param matching_rules: Matching rules used to compare responses. Defaults to pact matching rules
        :param custom_headers: Headers added to (or replacing those of) every replayed request
        :param request_timeout: Timeout of each replayed request in seconds
        :param run_timeout: Max duration of the whole run in seconds. Interactions not verified in time are aborted
        :param state_teardown: Tear down provider states after each interaction
        """
        self.provider_name = provider_name
        self.matching_rules = matching_rules or PactMatchingRules()
        self.custom_headers = custom_headers or {}
        self.request_timeout = request_timeout
        self.run_timeout = run_timeout
        self.state_teardown = state_teardown

    def verify(
        self,
        interactions: Sequence[Interaction],
        provider_endpoint: str,
        state_endpoint: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunSummary:
        """Verify the interactions against the provider

        :param interactions: Interactions to verify
        :param provider_endpoint: Base URL of the provider
        :param state_endpoint: URL of the provider-states endpoint. Provider states are not set up when omitted
        :param cancel_event: When set, interactions that haven't started yet are recorded as aborted
        """
        started_at = datetime.now(tz=timezone.utc)
        deadline = time.monotonic() + self.run_timeout if self.run_timeout else None
        provider_client = RestClient(provider_endpoint, timeout=self.request_timeout)
        state_client = ProviderStateClient(state_endpoint, timeout=self.request_timeout) if state_endpoint else None

        logger.info(f"Verifying {len(interactions)} interaction(s) against {self.provider_name} ({provider_endpoint})")
        results: list[VerificationResult] = []
        try:
            for interaction in interactions:
                with interaction_context(str(interaction)):
                    if cancel_event is not None and cancel_event.is_set():
                        result = VerificationResult.failure(interaction, FailureReason.ABORTED, "The run was cancelled")
                    elif deadline is not None and time.monotonic() >= deadline:
                        result = VerificationResult.failure(interaction, FailureReason.ABORTED, "The run timed out")
                    else:
                        try:
                            result = self._verify_interaction(interaction, provider_client, state_client, deadline)
                        except MalformedContract as e:
                            logger.error(f"ABORTED ({e})")
                            results.append(VerificationResult.failure(interaction, FailureReason.ABORTED, str(e)))
                            e.partial_summary = self._summarize(results, started_at)
                            raise
                    logger.info("PASSED" if result.passed else f"FAILED ({result.reason})")
                results.append(result)
        finally:
            provider_client.close()
            if state_client:
                state_client.close()

        return self._summarize(results, started_at)

    def _summarize(self, results: list[VerificationResult], started_at: datetime) -> RunSummary:
        return RunSummary(
            provider=self.provider_name,
            results=tuple(results),
            started_at=started_at,
            finished_at=datetime.now(tz=timezone.utc),
        )

    def _verify_interaction(
        self,
        interaction: Interaction,
        provider_client: RestClient,
        state_client: ProviderStateClient | None,
        deadline: float | None,
    ) -> VerificationResult:
        start = time.monotonic()

        def failure(reason: FailureReason, detail: str, **kwargs: Any) -> VerificationResult:
            return VerificationResult.failure(
                interaction, reason, detail=detail, duration=time.monotonic() - start, **kwargs
            )

        consumer = interaction.pact.consumer
        try:
            if interaction.provider_states:
                if state_client:
                    for state in interaction.provider_states:
                        state_client.establish(state, consumer=consumer)
                else:
                    logger.warning(f"No provider state URL is configured. States are ignored for: {interaction}")

            try:
                actual = self._send(provider_client, interaction, deadline)
            except RunAborted as e:
                return failure(FailureReason.ABORTED, str(e))
            except ProviderUnreachable as e:
                return failure(FailureReason.PROVIDER_UNREACHABLE, str(e))

            self.matching_rules.verify(interaction.response, actual)
        except StateSetupFailed as e:
            return failure(FailureReason.STATE_SETUP_FAILED, str(e))
        except MismatchFound as e:
            return failure(FailureReason.MISMATCH_FOUND, "Response does not match", mismatches=tuple(e.mismatches))
        finally:
            if self.state_teardown and state_client:
                for state in reversed(interaction.provider_states):
                    state_client.teardown(state, consumer=consumer)

        return VerificationResult.success(interaction, duration=time.monotonic() - start)

    def _send(self, provider_client: RestClient, interaction: Interaction, deadline: float | None) -> ActualResponse:
        """Replay the recorded request against the provider"""
        request = interaction.request
        timeout = self.request_timeout
        if deadline is not None:
            timeout = max(min(timeout, deadline - time.monotonic()), 0.001)

        options: dict[str, Any] = {"headers": {**request.headers, **self.custom_headers}}
        if request.body is not None:
            if isinstance(request.body, (dict, list)) or is_json_content_type(request.content_type):
                options["data"] = json.dumps(request.body).encode("utf-8")
            else:
                options["data"] = str(request.body).encode("utf-8")

        try:
            r = provider_client.request(request.method, request.path, query=request.query, timeout=timeout, **options)
        except Timeout as e:
            if deadline is not None and time.monotonic() >= deadline:
                raise RunAborted(f"The run timed out while waiting for the provider: {e}") from e
            raise ProviderUnreachable(f"Request to the provider timed out: {e}") from e
        except RequestException as e:
            raise ProviderUnreachable(f"Failed to connect to the provider: {type(e).__name__}: {e}") from e

        return ActualResponse(status=r.status_code, headers=r.headers, body=decode_body(r, interaction.response.body))


def is_json_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";")[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def decode_body(r: RestResponse, expected_body: Any = None) -> Any:
    """Decode the response body. A JSON body is decoded into Python objects, anything else is returned as text"""
    text = r.text
    if is_json_content_type(r.headers.get("Content-Type")) or isinstance(expected_body, (dict, list)):
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text
