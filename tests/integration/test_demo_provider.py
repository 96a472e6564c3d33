from collections.abc import Generator

import pytest

from contract_verifier.hosts import Listener
from contract_verifier.libraries.rest_client import RestClient
from contract_verifier.models import ProviderState
from contract_verifier.state_client import ProviderStateClient
from demo_provider import create_app
from demo_provider.provider_states import create_provider_states_app

pytestmark = [pytest.mark.integrationtest]


@pytest.fixture(scope="module")
def provider_client() -> Generator[RestClient]:
    listener = Listener("provider", create_app(), readiness_path="/health")
    listener.start()
    client = RestClient(listener.base_url)
    yield client
    client.close()
    listener.stop()


@pytest.fixture(scope="module")
def state_client() -> Generator[ProviderStateClient]:
    listener = Listener("provider-states", create_provider_states_app(), readiness_path=None)
    listener.start()
    client = ProviderStateClient(f"{listener.base_url}/provider-states")
    yield client
    client.close()
    listener.stop()


def test_user_states(provider_client: RestClient, state_client: ProviderStateClient) -> None:
    """Verify that provider states set up through the provider-states service are visible to the provider"""
    state_client.establish(ProviderState("user exists", {"id": 5, "role": "admin"}))
    r = provider_client.get("/v1/users/5")
    assert r.status_code == 200
    assert r.response == {
        "first_name": "first_name_5",
        "last_name": "last_name_5",
        "email": "user5@demo.provider.net",
        "role": "admin",
        "id": 5,
    }
    assert r.headers["X-Request-ID"] == r.request_id

    state_client.establish(ProviderState("user does not exist", {"id": 5}))
    r = provider_client.get("/v1/users/5")
    assert r.status_code == 404
    assert r.response["error"]["message"] == "User ID 5 does not exist"


def test_list_users(provider_client: RestClient, state_client: ProviderStateClient) -> None:
    state_client.establish(ProviderState("users exist", {"count": 3}))
    r = provider_client.get("/v1/users", role="support")
    assert r.status_code == 200
    assert [u["id"] for u in r.response] == [2]

    state_client.establish(ProviderState("no users exist"))
    assert provider_client.get("/v1/users").response == []


def test_create_user_with_invalid_payload(provider_client: RestClient) -> None:
    r = provider_client.post("/v1/users", first_name="foo", last_name="bar", email="not an email", role="admin")
    assert r.status_code == 400
    assert r.response["error"]["code"] == 400
