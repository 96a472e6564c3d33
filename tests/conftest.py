import json
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
from pytest import Item

from contract_verifier.models import (
    ExpectedResponse,
    HttpRequest,
    Interaction,
    PactRef,
    ProviderState,
    RunSummary,
    VerificationResult,
)


def pytest_make_parametrize_id(val: Any, argname: str) -> str:
    return f"{argname}={val!r}"


def pytest_runtest_setup(item: Item) -> None:
    if item.config.option.capture == "no":
        # Improve the readability of console logs
        sys.stdout.write("\n")


@pytest.fixture(scope="session")
def pacts_dir() -> Path:
    """Directory of the checked-in demo-consumer pacts"""
    return Path(__file__).parent / "contract" / "pacts"


@pytest.fixture(scope="session")
def pact_file(pacts_dir: Path) -> Path:
    return pacts_dir / "demo-consumer-demo-provider.json"


@pytest.fixture
def pact_document(pact_file: Path) -> dict[str, Any]:
    return json.loads(pact_file.read_text())


@pytest.fixture(scope="session")
def pact_ref() -> PactRef:
    return PactRef(consumer="demo-consumer", provider="demo-provider", source="test.json", spec_version="3.0.0")


@pytest.fixture(scope="session")
def make_interaction(pact_ref: PactRef) -> Callable[..., Interaction]:
    """Factory of interactions. GET /v1/users/1 -> 200 {"id": 1} by default"""

    def make(
        description: str = "a request for user 1",
        method: str = "GET",
        path: str = "/v1/users/1",
        status: int | None = 200,
        body: Any = None,
        request_body: Any = None,
        states: tuple[str, ...] = (),
        pact: PactRef | None = None,
        pending: bool = False,
        **response_kwargs: Any,
    ) -> Interaction:
        return Interaction(
            description=description,
            request=HttpRequest(method=method, path=path, body=request_body),
            response=ExpectedResponse(status=status, body={"id": 1} if body is None else body, **response_kwargs),
            pact=pact or pact_ref,
            provider_states=tuple(ProviderState(s) for s in states),
            pending=pending,
        )

    return make


@pytest.fixture(scope="session")
def make_summary() -> Callable[..., RunSummary]:
    """Factory of run summaries"""

    def make(*results: VerificationResult, provider: str = "demo-provider") -> RunSummary:
        started_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        finished_at = datetime(2024, 1, 1, 0, 0, 1, 500000, tzinfo=timezone.utc)
        return RunSummary(provider=provider, results=tuple(results), started_at=started_at, finished_at=finished_at)

    return make
