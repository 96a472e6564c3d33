from __future__ import annotations

import sys
from typing import TextIO

from contract_verifier.libraries.common.ansi_colors import ColorCodes, color
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.libraries.common.utils import list_items
from contract_verifier.models import RunSummary, VerificationResult

logger = get_logger(__name__)


class ResultReporter:
    """Renders verification results

    Example output:
        Verifying provider 'demo-provider' (2 interactions)
          [PASSED] demo-consumer: a request for user 1 (given user exists)
          [FAILED] demo-consumer: a request for user 2 (given user exists) - MismatchFound
              - status: expected 200 but got 404
        2 interactions, 1 passed, 1 failed (0.12s)
    """

    def __init__(self, stream: TextIO | None = None, use_color: bool | None = None):
        """
        :param stream: A stream to write the output to. Defaults to stdout
        :param use_color: Add ANSI color codes. Defaults to True when the stream is a TTY
        """
        self.stream = stream or sys.stdout
        if use_color is None:
            use_color = hasattr(self.stream, "isatty") and self.stream.isatty()
        self.use_color = use_color

    def report(self, summary: RunSummary) -> str:
        """Write the summary to the stream and return the rendered text"""
        output = self.render(summary)
        self._write(output)
        return output

    def report_fatal(self, error: BaseException) -> str:
        """Write a fatal error that aborted the run"""
        output = self._color(f"VERIFICATION ABORTED: {type(error).__name__}: {error}", ColorCodes.RED, bold=True)
        self._write(output)
        logger.error(f"Verification aborted due to {type(error).__name__}")
        return output

    def report_publish_failure(self, error: BaseException) -> str:
        """Write an error that occurred while publishing the verification results"""
        output = self._color(f"PUBLISHING FAILED: {type(error).__name__}: {error}", ColorCodes.YELLOW, bold=True)
        self._write(output)
        logger.error(f"Failed to publish verification results due to {type(error).__name__}")
        return output

    def render(self, summary: RunSummary) -> str:
        lines = [f"Verifying provider '{summary.provider}' ({summary.total} interactions)"]
        for result in summary.results:
            lines.extend(self._render_result(result))

        aggregate = f"{summary.total} interactions, {summary.passed} passed, {summary.failed} failed"
        if summary.pending_failed:
            aggregate += f", {summary.pending_failed} pending failed"
        aggregate += f" ({summary.duration:.2f}s)"
        lines.append(self._color(aggregate, ColorCodes.GREEN if summary.success else ColorCodes.RED, bold=True))
        return "\n".join(lines)

    def _render_result(self, result: VerificationResult) -> list[str]:
        if result.passed:
            return [f"  {self._color('[PASSED]', ColorCodes.GREEN)} {result.interaction}"]

        label = "[PENDING]" if result.interaction.is_pending else "[FAILED]"
        code = ColorCodes.YELLOW if result.interaction.is_pending else ColorCodes.RED
        lines = [f"  {self._color(label, code)} {result.interaction} - {result.reason}"]
        if result.mismatches:
            lines.append(list_items(result.mismatches, indent=6))
        elif result.detail:
            lines.append(f"      {result.detail}")
        return lines

    def _color(self, text: str, color_code: str, bold: bool = False) -> str:
        if self.use_color:
            return color(text, color_code=color_code, bold=bold)
        return text

    def _write(self, output: str) -> None:
        self.stream.write(output + "\n")
        self.stream.flush()
