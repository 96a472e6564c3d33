import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from pytest_mock import MockerFixture

from contract_verifier.config import VerifierConfig
from contract_verifier.contracts import FetchedPact, PactBrokerClient
from contract_verifier.exceptions import ListenerStartFailed, SourceUnavailable
from contract_verifier.hosts import HostSupervisor, Listener
from contract_verifier.libraries.common.utils import find_open_port, is_port_in_use
from contract_verifier.models import FailureReason
from contract_verifier.reporter import ResultReporter
from contract_verifier.runner import run_verification
from contract_verifier.scripts import verify_provider
from demo_provider import create_app

pytestmark = [pytest.mark.integrationtest]


GET_USER_1 = {
    "description": "a request for user 1",
    "providerStates": [{"name": "user exists", "params": {"id": 1}}],
    "request": {"method": "GET", "path": "/v1/users/1"},
    "response": {"status": 200, "body": {"id": 1}},
}


def test_verify_demo_provider(
    pacts_dir: Path, make_config: Callable[..., VerifierConfig], reporter: ResultReporter
) -> None:
    """Verify the demo provider against the checked-in demo-consumer pact"""
    summary = run_verification(make_config(pact_dir=str(pacts_dir)), reporter=reporter)
    assert summary.total == 4
    summary.raise_for_failures(reporter.render(summary))
    assert summary.passed == 4


def test_unknown_provider_state(
    write_pact: Callable[..., Path], make_config: Callable[..., VerifierConfig], reporter: ResultReporter
) -> None:
    """Verify that a state the provider-states service rejects fails only the interaction that requires it"""
    unknown_state = {**GET_USER_1, "description": "unknown state", "providerStates": [{"name": "unknown state"}]}
    pact_dir = write_pact(unknown_state, GET_USER_1)

    summary = run_verification(make_config(pact_dir=str(pact_dir)), reporter=reporter)
    failed, passed = summary.results
    assert failed.reason == FailureReason.STATE_SETUP_FAILED
    assert "unknown state" in failed.detail
    assert passed.passed
    assert (summary.passed, summary.failed) == (1, 1)


def test_status_mismatch(
    write_pact: Callable[..., Path], make_config: Callable[..., VerifierConfig], reporter: ResultReporter
) -> None:
    """Verify that a 404 from the provider fails an interaction that expects 200"""
    missing_user = {
        **GET_USER_1,
        "providerStates": [{"name": "user does not exist", "params": {"id": 1}}],
    }
    pact_dir = write_pact(missing_user)

    [result] = run_verification(make_config(pact_dir=str(pact_dir)), reporter=reporter).results
    assert result.reason == FailureReason.MISMATCH_FOUND
    assert result.mismatches[0].field == "status"
    assert (result.mismatches[0].expected, result.mismatches[0].actual) == (200, 404)


def test_unreachable_broker_aborts_before_traffic(
    mocker: MockerFixture, make_config: Callable[..., VerifierConfig], reporter: ResultReporter
) -> None:
    """Verify that the listeners are never started when the broker is unreachable"""
    spy_start = mocker.spy(HostSupervisor, "start")
    config = make_config(broker={"base_url": f"http://127.0.0.1:{find_open_port()}"})
    with pytest.raises(SourceUnavailable):
        run_verification(config, reporter=reporter)
    spy_start.assert_not_called()


def test_listener_start_failure_stops_started_listener(
    pacts_dir: Path, make_config: Callable[..., VerifierConfig], reporter: ResultReporter
) -> None:
    """Verify that the provider listener is stopped when the provider-states listener can't start"""
    busy_listener = Listener("busy", create_app(), port=0, readiness_path=None)
    busy_listener.start()
    try:
        provider_port = find_open_port(exclude=[busy_listener.port])
        config = make_config(
            pact_dir=str(pacts_dir),
            provider={"port": provider_port},
            provider_states={"port": busy_listener.port},
        )
        with pytest.raises(ListenerStartFailed, match="already in use"):
            run_verification(config, reporter=reporter)
        assert not is_port_in_use(provider_port)
    finally:
        busy_listener.stop()


def test_listener_lifecycle(make_config: Callable[..., VerifierConfig], pacts_dir: Path) -> None:
    supervisor = HostSupervisor()
    with supervisor.hosted(make_config(pact_dir=str(pacts_dir))) as handle:
        assert handle.provider.is_running
        assert handle.provider_states.is_running
        ports = (handle.provider.port, handle.provider_states.port)
        assert all(is_port_in_use(p) for p in ports)
    assert handle.stopped
    assert not any(is_port_in_use(p) for p in ports)


@pytest.fixture
def clear_pact_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    for env_var in [k for k in os.environ if k.startswith("PACT_")]:
        monkeypatch.delenv(env_var)


@pytest.mark.usefixtures("clear_pact_env_vars")
def test_malformed_contract_reports_attempted_interactions(
    write_pact: Callable[..., Path], capsys: pytest.CaptureFixture[str]
) -> None:
    """Verify that interactions verified before a malformed contract was found appear in the output"""
    bad_matcher = {
        **GET_USER_1,
        "description": "bad matcher",
        "response": {
            "status": 200,
            "body": {"id": 1},
            "matchingRules": {"body": {"$.id": {"matchers": [{"match": "bogus"}]}}},
        },
    }
    pact_dir = write_pact(GET_USER_1, bad_matcher)

    argv = ["-p", str(pact_dir), "--provider-port", "0", "--provider-states-port", "0", "--no-color"]
    assert verify_provider.main(argv) == 2
    out = capsys.readouterr().out
    assert "[PASSED] demo-consumer: a request for user 1 (given user exists)" in out
    assert "[FAILED] demo-consumer: bad matcher (given user exists) - Aborted" in out
    assert "VERIFICATION ABORTED: MalformedContract: Unsupported matcher 'bogus'" in out
    assert out.index("[PASSED]") < out.index("VERIFICATION ABORTED")


@pytest.mark.usefixtures("clear_pact_env_vars")
def test_publish_failure_does_not_change_exit_code(
    mocker: MockerFixture, pact_document: dict[str, Any], capsys: pytest.CaptureFixture[str]
) -> None:
    """Verify that the exit code follows the verification result when the broker rejects the published results"""
    pact_document["interactions"] = [GET_USER_1]
    mocker.patch.object(
        PactBrokerClient,
        "fetch_pacts_for_verification",
        return_value=[
            FetchedPact(document=pact_document, url="http://broker/pacts/1", publish_url="http://broker/results/1")
        ],
    )
    mocker.patch.object(PactBrokerClient, "register_provider_branch_version")
    mock_publish = mocker.patch.object(
        PactBrokerClient, "publish_verification_result", side_effect=SourceUnavailable("broker down")
    )

    argv = [
        "-b",
        "http://broker",
        "--publish",
        "--provider-version",
        "1.0.0",
        "--provider-port",
        "0",
        "--provider-states-port",
        "0",
        "--no-color",
    ]
    assert verify_provider.main(argv) == 0
    mock_publish.assert_called_once()
    out = capsys.readouterr().out
    assert "1 interactions, 1 passed, 0 failed" in out
    assert "PUBLISHING FAILED: SourceUnavailable: broker down" in out
    assert "VERIFICATION ABORTED" not in out
