from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contract_verifier.models import Mismatch, RunSummary


class ContractVerifierError(Exception):
    """Base class for all errors raised by the verifier"""


# Fatal errors. These abort the whole run


class ConfigError(ContractVerifierError):
    """The verifier configuration is invalid"""


class SourceUnavailable(ContractVerifierError):
    """The contract source (pact directory or broker) cannot be reached"""


class MalformedContract(ContractVerifierError):
    """A contract, or a matcher inside it, cannot be parsed

    When raised in the middle of a run, partial_summary holds the results of the interactions attempted so far
    """

    partial_summary: RunSummary | None = None


class ListenerStartFailed(ContractVerifierError):
    """A provider or provider-states listener failed to start"""


# Per-interaction errors. These are recorded in the interaction's result


class StateSetupFailed(ContractVerifierError):
    """A provider state could not be established"""

    def __init__(self, state_name: str, reason: str, status_code: int | None = None):
        self.state_name = state_name
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to set up provider state '{state_name}': {reason}")


class ProviderUnreachable(ContractVerifierError):
    """The provider did not respond to a replayed request"""


class MismatchFound(ContractVerifierError):
    """The actual response does not satisfy the expected one"""

    def __init__(self, mismatches: list[Mismatch]):
        self.mismatches = mismatches
        super().__init__("\n".join(str(m) for m in mismatches))


class VerificationFailed(ContractVerifierError):
    """One or more interactions failed verification"""

    def __init__(self, summary: RunSummary, report: str | None = None):
        self.summary = summary
        msg = f"{summary.failed} of {summary.total} interaction(s) failed verification (provider: {summary.provider})"
        if report:
            msg += f"\n{report}"
        super().__init__(msg)
