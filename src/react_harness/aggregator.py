# aggregator.py
# Tallies one execution and folds it into an ExecutionResult.
#
# With timeline recording on, the aggregator also keeps the chronological
# event log that ends up on ExecutionResult.timeline.

import time
from collections.abc import Sequence

from react_harness.models import (
    ExecutionResult,
    Final,
    Observation,
    Step,
    TerminationReason,
    TimelineEvent,
)

LAST_OBSERVATIONS = 3


class ResultAggregator:
    """Counters for a single execution. Not shared between executions."""

    def __init__(self, record_timeline: bool = False) -> None:
        self.iterations = 0
        self.tool_calls = 0
        self.errors = 0
        self.current = 0
        self._record = record_timeline
        self._timeline: list[TimelineEvent] = []
        self._started = time.monotonic()

    def begin(self) -> None:
        """Mark the start of the next iteration."""
        self.current = self.iterations + 1
        self.event("iteration_start", f"Iteration {self.current} started")

    def iteration(self) -> None:
        self.iterations += 1

    def tool_call(self) -> None:
        self.tool_calls += 1

    def error(self) -> None:
        self.errors += 1

    def event(
        self,
        kind: str,
        content: str = "",
        duration: float = 0.0,
        tool_name: str | None = None,
    ) -> None:
        if not self._record:
            return
        self._timeline.append(
            TimelineEvent(
                kind=kind,
                iteration=self.current,
                content=content,
                tool_name=tool_name,
                duration=duration,
            )
        )

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    def finish(
        self,
        reason: TerminationReason,
        transcript: Sequence[Step],
        error: Exception | None = None,
    ) -> ExecutionResult:
        duration = self.elapsed
        self.event("termination", reason.value, duration=duration)
        success = reason == TerminationReason.SUCCESS
        final = transcript[-1] if success and transcript and isinstance(transcript[-1], Final) else None
        observations = [step for step in transcript if isinstance(step, Observation)]
        return ExecutionResult(
            final_answer=final.answer if final else None,
            confidence=final.confidence if final else None,
            iterations_used=self.iterations,
            tool_call_count=self.tool_calls,
            error_count=self.errors + (1 if error is not None else 0),
            success=success,
            termination_reason=reason,
            transcript=tuple(transcript),
            last_observations=() if success else tuple(observations[-LAST_OBSERVATIONS:]),
            error=error,
            duration=duration,
            timeline=tuple(self._timeline),
        )
