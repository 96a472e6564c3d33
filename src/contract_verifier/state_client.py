from __future__ import annotations

from typing import Any

from requests import RequestException

from contract_verifier.exceptions import StateSetupFailed
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.libraries.rest_client import RestClient
from contract_verifier.models import ProviderState

logger = get_logger(__name__)


class ProviderStateClient:
    """Client for the provider-states service

    The request body is the one pact verifiers send to a provider state URL:
        {"action": "setup"|"teardown", "state": <name>, "params": {...}, "consumer": <consumer name>}
    """

    def __init__(self, state_url: str, timeout: float = 30, rest_client: RestClient | None = None):
        """
        :param state_url: The full URL of the provider-states endpoint (eg. http://localhost:9001/provider-states)
        :param timeout: Request timeout in seconds
        :param rest_client: A rest client to use instead of the default one
        """
        self.state_url = state_url
        self.rest_client = rest_client or RestClient(state_url, timeout=timeout)

    def establish(self, state: ProviderState, consumer: str | None = None) -> None:
        """Ask the provider-states service to set up the state

        :param state: Provider state
        :param consumer: Name of the consumer whose interaction requires the state
        :raises StateSetupFailed: The service responded with a non-2xx status, or did not respond
        """
        logger.info(f"Setting up provider state: {state}")
        self._send("setup", state, consumer)

    def teardown(self, state: ProviderState, consumer: str | None = None) -> None:
        """Ask the provider-states service to tear down the state. Failures are logged and ignored"""
        try:
            self._send("teardown", state, consumer)
        except StateSetupFailed as e:
            logger.warning(f"Provider state teardown failed: {e.reason}")

    def close(self) -> None:
        self.rest_client.close()

    def _send(self, action: str, state: ProviderState, consumer: str | None) -> None:
        payload: dict[str, Any] = {"action": action, "state": state.name, "params": state.params}
        if consumer:
            payload["consumer"] = consumer
        try:
            r = self.rest_client.request("POST", self.state_url, json=payload)
        except RequestException as e:
            raise StateSetupFailed(state.name, f"{type(e).__name__}: {e}") from e
        if not r.ok:
            raise StateSetupFailed(state.name, f"{r.status_code} response: {r.response}", status_code=r.status_code)
