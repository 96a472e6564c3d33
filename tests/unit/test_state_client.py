import pytest
import requests
from pytest_mock import MockerFixture

from contract_verifier.exceptions import StateSetupFailed
from contract_verifier.libraries.rest_client import RestClient
from contract_verifier.models import ProviderState
from contract_verifier.state_client import ProviderStateClient

pytestmark = [pytest.mark.unittest]

STATE_URL = "http://127.0.0.1:9001/provider-states"


@pytest.fixture
def rest_client(mocker: MockerFixture) -> RestClient:
    client = mocker.MagicMock(spec=RestClient)
    client.request.return_value = mocker.MagicMock(ok=True, status_code=200, response={})
    return client


@pytest.fixture
def state_client(rest_client: RestClient) -> ProviderStateClient:
    return ProviderStateClient(STATE_URL, rest_client=rest_client)


def test_establish(state_client: ProviderStateClient, rest_client: RestClient) -> None:
    """Verify the request body sent to the provider-states service"""
    state_client.establish(ProviderState("user exists", {"id": 1}), consumer="demo-consumer")
    rest_client.request.assert_called_once_with(
        "POST",
        STATE_URL,
        json={"action": "setup", "state": "user exists", "params": {"id": 1}, "consumer": "demo-consumer"},
    )


def test_establish_with_error_response(
    mocker: MockerFixture, state_client: ProviderStateClient, rest_client: RestClient
) -> None:
    rest_client.request.return_value = mocker.MagicMock(ok=False, status_code=500, response={"error": "unknown"})
    with pytest.raises(StateSetupFailed) as e:
        state_client.establish(ProviderState("unknown state"))
    assert e.value.state_name == "unknown state"
    assert e.value.status_code == 500


def test_establish_with_connection_error(state_client: ProviderStateClient, rest_client: RestClient) -> None:
    rest_client.request.side_effect = requests.ConnectionError("connection refused")
    with pytest.raises(StateSetupFailed, match="ConnectionError") as e:
        state_client.establish(ProviderState("user exists"))
    assert e.value.status_code is None


def test_teardown_ignores_failures(
    mocker: MockerFixture, state_client: ProviderStateClient, rest_client: RestClient
) -> None:
    rest_client.request.return_value = mocker.MagicMock(ok=False, status_code=500, response={})
    state_client.teardown(ProviderState("user exists"))
    assert rest_client.request.call_args.kwargs["json"]["action"] == "teardown"
