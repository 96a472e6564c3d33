from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from contract_verifier.exceptions import VerificationFailed

# category -> path (or header name) -> {"combine": "AND"|"OR", "matchers": [{"match": ..., ...}, ...]}
MatchingRules = dict[str, dict[str, dict[str, Any]]]


class FailureReason(StrEnum):
    STATE_SETUP_FAILED = "StateSetupFailed"
    PROVIDER_UNREACHABLE = "ProviderUnreachable"
    MISMATCH_FOUND = "MismatchFound"
    ABORTED = "Aborted"


@dataclass(frozen=True)
class ProviderState:
    """A precondition the provider must establish before an interaction is replayed"""

    name: str
    params: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        if self.params:
            return f"{self.name} {self.params}"
        return self.name


@dataclass(frozen=True)
class PactRef:
    """Identifies the pact (consumer/provider contract) that interactions were loaded from"""

    consumer: str
    provider: str
    source: str
    spec_version: str = "2.0.0"
    pending: bool = False
    publish_url: str | None = None


@dataclass(frozen=True)
class HttpRequest:
    """A recorded request. body=None means the request has no body"""

    method: str
    path: str
    query: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def content_type(self) -> str | None:
        return next((v for k, v in self.headers.items() if k.lower() == "content-type"), None)


@dataclass(frozen=True)
class ExpectedResponse:
    """A recorded response. status/body of None mean the value is not part of the contract"""

    status: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    matching_rules: MatchingRules = field(default_factory=dict)

    def rules_for(self, category: str) -> dict[str, dict[str, Any]]:
        return self.matching_rules.get(category, {})


@dataclass(frozen=True)
class Interaction:
    """One recorded request/response contract between a consumer and the provider"""

    description: str
    request: HttpRequest
    response: ExpectedResponse
    pact: PactRef
    provider_states: tuple[ProviderState, ...] = ()
    interaction_id: str | None = None
    pending: bool = False

    @property
    def is_pending(self) -> bool:
        return self.pending or self.pact.pending

    def __str__(self) -> str:
        label = f"{self.pact.consumer}: {self.description}"
        if self.provider_states:
            label += " (given " + " and ".join(s.name for s in self.provider_states) + ")"
        return label


@dataclass(frozen=True)
class Mismatch:
    """A single difference between the expected and the actual response

    field is a path such as "status", "headers.Content-Type" or "body.items[0].id"
    """

    field: str
    expected: Any
    actual: Any
    message: str = ""

    def __str__(self) -> str:
        msg = f"{self.field}: expected {self.expected!r} but got {self.actual!r}"
        if self.message:
            msg += f" ({self.message})"
        return msg


@dataclass(frozen=True)
class VerificationResult:
    interaction: Interaction
    passed: bool
    reason: FailureReason | None = None
    mismatches: tuple[Mismatch, ...] = ()
    detail: str | None = None
    duration: float = 0.0

    @classmethod
    def success(cls, interaction: Interaction, duration: float = 0.0) -> VerificationResult:
        return cls(interaction, passed=True, duration=duration)

    @classmethod
    def failure(
        cls,
        interaction: Interaction,
        reason: FailureReason,
        detail: str | None = None,
        mismatches: tuple[Mismatch, ...] = (),
        duration: float = 0.0,
    ) -> VerificationResult:
        return cls(interaction, passed=False, reason=reason, mismatches=mismatches, detail=detail, duration=duration)


@dataclass(frozen=True)
class RunSummary:
    """Aggregated outcome of one verification run"""

    provider: str
    results: tuple[VerificationResult, ...]
    started_at: datetime
    finished_at: datetime

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return len([r for r in self.results if r.passed])

    @property
    def failed(self) -> int:
        """Number of failed interactions. Failures of pending interactions are not counted"""
        return len([r for r in self.results if not r.passed and not r.interaction.is_pending])

    @property
    def pending_failed(self) -> int:
        return len([r for r in self.results if not r.passed and r.interaction.is_pending])

    @property
    def aborted(self) -> int:
        return len([r for r in self.results if r.reason == FailureReason.ABORTED])

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def results_for(self, pact: PactRef) -> list[VerificationResult]:
        return [r for r in self.results if r.interaction.pact == pact]

    def raise_for_failures(self, report: str | None = None) -> None:
        """Raise VerificationFailed if any non-pending interaction failed"""
        if not self.success:
            raise VerificationFailed(self, report=report)
