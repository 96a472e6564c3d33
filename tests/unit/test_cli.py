from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from pytest_mock import MockerFixture

from contract_verifier.exceptions import ListenerStartFailed
from contract_verifier.models import FailureReason, Interaction, RunSummary, VerificationResult
from contract_verifier.scripts import verify_provider

pytestmark = [pytest.mark.unittest]


@pytest.fixture
def mock_run_verification(mocker: MockerFixture) -> Any:
    return mocker.patch.object(verify_provider, "run_verification")


@pytest.fixture(autouse=True)
def _clear_pact_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    for env_var in ("PACT_BROKER_BASE_URL", "PACT_PUBLISH_VERIFICATION_RESULTS", "PACT_PROVIDER_VERSION"):
        monkeypatch.delenv(env_var, raising=False)


def test_exit_code_success(
    mock_run_verification: Any,
    pacts_dir: Path,
    make_interaction: Callable[..., Interaction],
    make_summary: Callable[..., RunSummary],
) -> None:
    mock_run_verification.return_value = make_summary(VerificationResult.success(make_interaction()))
    assert verify_provider.main(["-p", str(pacts_dir), "-H", "Authorization: Bearer token", "--timeout", "60"]) == 0

    config = mock_run_verification.call_args.args[0]
    assert config.pact_dir == pacts_dir
    assert config.custom_headers == {"Authorization": "Bearer token"}
    assert config.run_timeout == 60


def test_exit_code_verification_failed(
    mock_run_verification: Any,
    pacts_dir: Path,
    make_interaction: Callable[..., Interaction],
    make_summary: Callable[..., RunSummary],
) -> None:
    mock_run_verification.return_value = make_summary(
        VerificationResult.failure(make_interaction(), FailureReason.MISMATCH_FOUND)
    )
    assert verify_provider.main(["-p", str(pacts_dir)]) == 1


def test_exit_code_aborted(
    mock_run_verification: Any, pacts_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    mock_run_verification.side_effect = ListenerStartFailed("Port 9000 on 127.0.0.1 is already in use")
    assert verify_provider.main(["-p", str(pacts_dir), "--no-color"]) == 2
    assert "VERIFICATION ABORTED: ListenerStartFailed: Port 9000" in capsys.readouterr().out


@pytest.mark.parametrize(
    "argv",
    [
        ["--publish"],
        ["-H", "Authorization"],
    ],
)
def test_exit_code_invalid_arguments(mock_run_verification: Any, pacts_dir: Path, argv: list[str]) -> None:
    """Verify that invalid options abort the run before verification starts"""
    assert verify_provider.main(["-p", str(pacts_dir), *argv]) == 2
    mock_run_verification.assert_not_called()


def test_invalid_header_is_config_error(
    mock_run_verification: Any, pacts_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert verify_provider.main(["-p", str(pacts_dir), "--no-color", "-H", "Authorization"]) == 2
    assert 'VERIFICATION ABORTED: ConfigError: Invalid header "Authorization"' in capsys.readouterr().out
    mock_run_verification.assert_not_called()
