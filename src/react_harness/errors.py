# errors.py
# Error taxonomy for the ReAct harness.
#
# Every error is a plain value: a stable `kind`, a human message and an
# optional corrective suggestion. Nothing here holds module-level state.
#
# Recoverable (degrade to an error Observation unless strict):
#   ParseError, ToolNotFoundError, ToolArgumentError, ToolExecutionError
# Always fatal:
#   ConfigurationError (before the loop), ProviderError (inside the loop)
# Terminal states, recorded on the result and never raised to the caller:
#   IterationBudgetExceeded, DeadlineExceeded

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass


class HarnessError(Exception):
    """Base class. Subclasses set `kind`."""

    kind = "harness_error"
    recoverable = False

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def describe(self, transcript: Sequence = ()) -> str:
        """Root cause, a short transcript diagnostic and the suggestion."""
        lines = [f"[{self.kind}] {self.message}"]
        if transcript:
            counts = Counter(step.kind for step in transcript)
            summary = ", ".join(f"{counts[k]} {k}" for k in ("thought", "action", "observation", "final") if counts[k])
            lines.append(f"Transcript: {len(transcript)} step(s) ({summary}); last: {_preview(transcript[-1])}")
        else:
            lines.append("Transcript: empty")
        if self.suggestion:
            lines.append(f"Suggestion: {self.suggestion}")
        return "\n".join(lines)


def _preview(step, max_len: int = 80) -> str:
    for attr in ("text", "answer", "result"):
        text = getattr(step, attr, None)
        if text is not None:
            break
    else:
        text = f"{step.tool_name}({step.arguments})"
    text = " ".join(str(text).split())
    if len(text) > max_len:
        text = text[:max_len] + "…"
    return f"{step.kind}: {text}"


# ---------------------------------------------------------------------------
# Pre-flight
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """One failed validation rule."""

    rule: str
    message: str
    suggestion: str

    def __str__(self) -> str:
        return f"{self.rule}: {self.message} (fix: {self.suggestion})"


class ConfigurationError(HarnessError):
    """Raised by the validator before any completion request is issued."""

    kind = "configuration"

    def __init__(self, violations: Sequence[Violation]) -> None:
        self.violations = tuple(violations)
        message = "Invalid execution configuration:\n" + "\n".join(
            f"  - {v.rule}: {v.message}" for v in self.violations
        )
        suggestion = "; ".join(v.suggestion for v in self.violations)
        super().__init__(message, suggestion)

    @property
    def rules(self) -> list[str]:
        return [v.rule for v in self.violations]


# ---------------------------------------------------------------------------
# Recoverable
# ---------------------------------------------------------------------------


class RecoverableError(HarnessError):
    """Degrades to an error Observation in non-strict mode."""

    recoverable = True

    def __init__(self, message: str, tool_name: str, suggestion: str | None = None) -> None:
        super().__init__(message, suggestion)
        self.tool_name = tool_name


class ParseError(RecoverableError):
    kind = "parse_error"

    def __init__(self, message: str, text: str = "", suggestion: str | None = None) -> None:
        super().__init__(message, tool_name="parser", suggestion=suggestion)
        self.text = text


class ToolNotFoundError(RecoverableError):
    kind = "tool_not_found"


class ToolArgumentError(RecoverableError):
    kind = "invalid_arguments"


class ToolExecutionError(RecoverableError):
    kind = "handler_failure"


# ---------------------------------------------------------------------------
# Fatal / terminal
# ---------------------------------------------------------------------------


class ProviderError(HarnessError):
    """The completion service failed. Retry belongs to the service, not the loop."""

    kind = "provider_error"


class IterationBudgetExceeded(HarnessError):
    kind = "exhausted"

    def __init__(self, max_iterations: int) -> None:
        super().__init__(
            f"Maximum iterations ({max_iterations}) reached without a final answer.",
            "Increase max_iterations, enable iteration_reminders, or split the task into smaller ones.",
        )
        self.max_iterations = max_iterations


class DeadlineExceeded(HarnessError):
    kind = "timed_out"

    def __init__(self, timeout: float, during: str = "execution") -> None:
        super().__init__(
            f"Timeout of {timeout:g}s elapsed during {during}.",
            "Increase timeout or simplify the task so it needs fewer steps.",
        )
        self.timeout = timeout
        self.during = during


class Cancelled(DeadlineExceeded):
    """The caller fired the cancellation signal before the deadline."""

    def __init__(self, timeout: float, during: str = "execution") -> None:
        super().__init__(timeout, during)
        self.message = f"Execution cancelled by caller during {during}."
        self.args = (self.message,)
