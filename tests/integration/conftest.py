import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from contract_verifier.config import VerifierConfig, load_config
from contract_verifier.reporter import ResultReporter


@pytest.fixture
def make_config() -> Callable[..., VerifierConfig]:
    """Factory of verifier configs that run both listeners on dynamically selected ports"""

    def make(**overrides: Any) -> VerifierConfig:
        overrides = {"provider": {"port": 0}, "provider_states": {"port": 0}, **overrides}
        return load_config(overrides=overrides, environ={})

    return make


@pytest.fixture
def write_pact(tmp_path: Path, pact_document: dict[str, Any]) -> Callable[..., Path]:
    """Write a pact that contains the given interactions to a temporary pact directory"""

    def write(*interactions: dict[str, Any]) -> Path:
        pact_document["interactions"] = list(interactions)
        (tmp_path / "pact.json").write_text(json.dumps(pact_document))
        return tmp_path

    return write


@pytest.fixture
def reporter() -> ResultReporter:
    return ResultReporter(use_color=False)
