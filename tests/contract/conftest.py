from collections.abc import Generator
from pathlib import Path

import pytest

from contract_verifier.config import load_config
from contract_verifier.hosts import HostHandle, HostSupervisor


@pytest.fixture(scope="module")
def hosted_provider(pacts_dir: Path) -> Generator[HostHandle]:
    """The demo provider and its provider-states service on dynamically selected ports"""
    config = load_config(
        overrides={"pact_dir": str(pacts_dir), "provider": {"port": 0}, "provider_states": {"port": 0}}, environ={}
    )
    with HostSupervisor().hosted(config) as handle:
        yield handle
