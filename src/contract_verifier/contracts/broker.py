"""Pact broker client

Only the calls needed to fetch pacts for verification and to publish verification results are supported
"""

from __future__ import annotations

import urllib.parse
from dataclasses import asdict, dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol

from requests import RequestException

from contract_verifier.exceptions import MalformedContract, SourceUnavailable
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.libraries.rest_client import RestClient, RestResponse

if TYPE_CHECKING:
    from contract_verifier.models import PactRef, RunSummary


logger = get_logger(__name__)


@dataclass(frozen=True)
class ConsumerVersionSelector:
    """Selects which consumer versions' pacts to verify

    See https://docs.pact.io/pact_broker/advanced_topics/consumer_version_selectors
    """

    main_branch: bool | None = None
    matching_branch: bool | None = None
    deployed_or_released: bool | None = None
    deployed: bool | None = None
    released: bool | None = None
    branch: str | None = None
    tag: str | None = None
    latest: bool | None = None
    consumer: str | None = None
    environment: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {_to_camel(k): v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class FetchedPact:
    document: dict[str, Any]
    url: str
    pending: bool = False
    publish_url: str | None = None


class BrokerClient(Protocol):
    """Contract source capability used by BrokerSource and the result publisher"""

    def fetch_pacts_for_verification(
        self,
        provider: str,
        selectors: list[ConsumerVersionSelector],
        provider_branch: str | None = None,
        include_pending: bool = False,
        include_wip_pacts_since: date | None = None,
    ) -> list[FetchedPact]: ...

    def publish_verification_result(
        self, url: str, success: bool, provider_version: str, build_url: str | None = None
    ) -> None: ...

    def register_provider_branch_version(self, provider: str, branch: str, version: str) -> None: ...


class PactBrokerClient:
    """HTTP client for a pact broker (or PactFlow)"""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.rest_client = RestClient(self.base_url, timeout=timeout, quiet=True)
        self.rest_client.session.headers.update({"Accept": "application/hal+json, application/json"})
        if token:
            self.rest_client.set_bearer_token(token)
        elif username and password:
            self.rest_client.set_basic_auth(username, password)

    def fetch_pacts_for_verification(
        self,
        provider: str,
        selectors: list[ConsumerVersionSelector],
        provider_branch: str | None = None,
        include_pending: bool = False,
        include_wip_pacts_since: date | None = None,
    ) -> list[FetchedPact]:
        """Fetch the pacts the provider should verify

        :param provider: Provider name
        :param selectors: Consumer version selectors
        :param provider_branch: The provider branch being verified. Required by the broker for pending/WIP pacts
        :param include_pending: Include pending pacts
        :param include_wip_pacts_since: Include work-in-progress pacts created since the date
        """
        payload: dict[str, Any] = {
            "consumerVersionSelectors": [s.to_json() for s in selectors],
            "includePendingStatus": include_pending,
        }
        if provider_branch:
            payload["providerVersionBranch"] = provider_branch
        if include_wip_pacts_since:
            payload["includeWipPactsSince"] = include_wip_pacts_since.isoformat()

        path = f"/pacts/provider/{urllib.parse.quote(provider, safe='')}/for-verification"
        r = self._request("POST", path, json=payload)
        try:
            pacts = r.response["_embedded"]["pacts"]
        except (KeyError, TypeError):
            raise MalformedContract(f"Unexpected pacts-for-verification response from {self.base_url}: {r.response}")

        fetched = []
        for pact in pacts:
            try:
                url = pact["_links"]["self"]["href"]
            except (KeyError, TypeError):
                raise MalformedContract(f"Pact entry without a self link in pacts-for-verification response: {pact}")
            pending = bool(pact.get("verificationProperties", {}).get("pending", False))
            document = self._request("GET", url).response
            if not isinstance(document, dict):
                raise MalformedContract(f"Pact at {url} is not a JSON object")
            publish_url = document.get("_links", {}).get("pb:publish-verification-results", {}).get("href")
            fetched.append(FetchedPact(document=document, url=url, pending=pending, publish_url=publish_url))
        logger.info(f"Fetched {len(fetched)} pact(s) for provider '{provider}' from {self.base_url}")
        return fetched

    def publish_verification_result(
        self, url: str, success: bool, provider_version: str, build_url: str | None = None
    ) -> None:
        """Publish a verification result of a single pact"""
        payload: dict[str, Any] = {"success": success, "providerApplicationVersion": provider_version}
        if build_url:
            payload["buildUrl"] = build_url
        self._request("POST", url, json=payload)

    def register_provider_branch_version(self, provider: str, branch: str, version: str) -> None:
        """Add the provider version to the branch so that the broker can track what was verified on it"""
        path = "/pacticipants/{}/branches/{}/versions/{}".format(
            *(urllib.parse.quote(x, safe="") for x in (provider, branch, version))
        )
        self._request("PUT", path, json={})

    def _request(self, method: str, path: str, **kwargs: Any) -> RestResponse:
        try:
            r = self.rest_client.request(method, path, **kwargs)
        except RequestException as e:
            raise SourceUnavailable(f"Pact broker {self.base_url} is unreachable: {type(e).__name__}: {e}") from e
        if not r.ok:
            raise SourceUnavailable(f"Pact broker returned {r.status_code} for {method} {path}: {r.response}")
        return r


def publish_results(
    broker_client: BrokerClient,
    summary: RunSummary,
    provider_version: str,
    provider_branch: str | None = None,
    build_url: str | None = None,
) -> int:
    """Publish the verification result of each pact in the summary

    A pact is successful when all of its interactions passed. Returns the number of published results

    :param broker_client: Broker client
    :param summary: Summary of the verification run
    :param provider_version: The provider version that was verified
    :param provider_branch: The provider branch that was verified
    :param build_url: URL of the CI build that ran the verification
    """
    pacts: list[PactRef] = []
    for result in summary.results:
        if result.interaction.pact not in pacts:
            pacts.append(result.interaction.pact)

    if provider_branch:
        broker_client.register_provider_branch_version(summary.provider, provider_branch, provider_version)

    num_published = 0
    for pact in pacts:
        if not pact.publish_url:
            logger.debug(f"Pact {pact.source} has no publish URL. Skipped publishing")
            continue
        success = all(r.passed for r in summary.results_for(pact))
        logger.info(f"Publishing verification result (success={success}) for {pact.consumer} -> {pact.provider}")
        broker_client.publish_verification_result(pact.publish_url, success, provider_version, build_url=build_url)
        num_published += 1
    return num_published


def _to_camel(snake_str: str) -> str:
    first, *rest = snake_str.split("_")
    return first + "".join(x.title() for x in rest)
