# harness.py
# ReAct loop controller.
#
# The Harness is the kernel. The model is a passive responder: this class owns
# control flow, iteration accounting, timeouts and the error policy. The
# strategy decides what the model asked for; the executor runs tools.
#
# Control flow:
#   validate config → Reasoning → (Action → Observation → Reasoning)*
#   → Success | Exhausted | TimedOut | Fatal
#
# Terminal output is left to the caller's hooks (display.print_step).

import logging
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from react_harness import validator
from react_harness.aggregator import ResultAggregator
from react_harness.completion import CompletionService
from react_harness.deadline import Deadline
from react_harness.errors import (
    DeadlineExceeded,
    HarnessError,
    IterationBudgetExceeded,
    ParseError,
    RecoverableError,
)
from react_harness.executor import ToolExecutor, error_observation
from react_harness.models import (
    Action,
    ExecutionConfig,
    ExecutionResult,
    Final,
    Observation,
    Step,
    TerminationReason,
    Thought,
    Unparseable,
)
from react_harness.prompts import correction_prompt
from react_harness.registry import ToolRegistry
from react_harness.strategies import Strategy

logger = logging.getLogger(__name__)

StepSink = Callable[[Step], None]
ToolHook = Callable[[Action, Observation, float], None]
ErrorHook = Callable[[HarnessError], None]
CompletionHook = Callable[[ExecutionResult], None]


@dataclass(frozen=True)
class Hooks:
    """
    Lifecycle callbacks for one execution. All optional, all called on the
    executing thread.

    on_step      every step, in transcript order
    on_tool      after each tool call with its Observation and wall time
    on_error     every error: recoverable ones fed back to the model and the
                 terminal one, if any
    on_complete  once, with the final result
    """

    on_step: StepSink | None = None
    on_tool: ToolHook | None = None
    on_error: ErrorHook | None = None
    on_complete: CompletionHook | None = None


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class Transcript:
    """
    Append-only record of one execution.

    Nothing may follow a Final, and an Action must get its Observation before
    the next Action. Each appended step is handed to the sink immediately, so
    sink order is transcript order.
    """

    def __init__(self, sink: StepSink | None = None) -> None:
        self._steps: list[Step] = []
        self._sink = sink

    def append(self, step: Step) -> None:
        if self._steps and isinstance(self._steps[-1], Final):
            raise RuntimeError("Transcript is closed: a Final step has already been recorded.")
        if isinstance(step, Action) and self.pending_action() is not None:
            raise RuntimeError("Previous Action has no Observation yet.")
        self._steps.append(step)
        logger.debug("Step %d: %s", len(self._steps), step.kind)
        if self._sink is not None:
            self._sink(step)

    def pending_action(self) -> Action | None:
        """The last Action if it is still waiting for its Observation."""
        for step in reversed(self._steps):
            if isinstance(step, Observation):
                return None
            if isinstance(step, Action):
                return step
        return None

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def last(self) -> Step | None:
        return self._steps[-1] if self._steps else None

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)


def parse_error_observation(error: ParseError) -> Observation:
    """Feeds an undecodable turn back to the model with the format reminder."""
    return Observation(
        tool_name=error.tool_name,
        result=correction_prompt(error.message),
        is_error=True,
        error_kind=error.kind,
    )


# ---------------------------------------------------------------------------
# Harness
# ---------------------------------------------------------------------------


class Harness:
    """
    Runs Reason → Act → Observe loops against one completion service and one
    tool registry. Safe to share between threads: every execution builds its
    own transcript, deadline and counters, and the registry is immutable.

    Example:
        harness = Harness(OpenAICompletionService("openai/gpt-4o-mini"), default_registry())
        result = harness.ask("What is 17 * 23?")
        print(result.final_answer)
    """

    def __init__(
        self,
        service: CompletionService,
        registry: ToolRegistry,
        config: ExecutionConfig | None = None,
    ) -> None:
        self._service = service
        self._registry = registry
        self._config = config or ExecutionConfig()

    @property
    def config(self) -> ExecutionConfig:
        return self._config

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ask(
        self,
        task: str,
        config: ExecutionConfig | None = None,
        cancel: threading.Event | None = None,
    ) -> ExecutionResult:
        """
        Run the loop to completion and return the aggregated result.

        Raises ConfigurationError before any completion request if the
        configuration is invalid. Every other failure is reported on the
        result: termination_reason, error and the partial transcript.
        """
        return self._execute(task, config or self._config, Hooks(), cancel)

    def stream(
        self,
        task: str,
        config: ExecutionConfig | None = None,
        on_step: StepSink | None = None,
        cancel: threading.Event | None = None,
        on_tool: ToolHook | None = None,
        on_error: ErrorHook | None = None,
        on_complete: CompletionHook | None = None,
    ) -> ExecutionResult:
        """
        Same as ask(), reporting progress through the hooks as it happens.

        on_step gets each step as it is appended, on_tool each tool call with
        its Observation and duration in seconds, on_error each error and
        on_complete the result just before it is returned. An exception
        raised by a hook propagates to the caller.
        """
        hooks = Hooks(on_step=on_step, on_tool=on_tool, on_error=on_error, on_complete=on_complete)
        return self._execute(task, config or self._config, hooks, cancel)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _execute(
        self,
        task: str,
        config: ExecutionConfig,
        hooks: Hooks,
        cancel: threading.Event | None,
    ) -> ExecutionResult:
        validator.check(config, self._registry)

        strategy = Strategy.for_mode(self._service, self._registry, config)
        executor = ToolExecutor(self._registry, config.namespace_prefixes, config.max_observation_chars)
        transcript = Transcript(hooks.on_step)
        tally = ResultAggregator(record_timeline=config.timeline)
        deadline = Deadline(config.timeout, cancel)

        logger.info(
            "Starting %s execution (max_iterations=%d, timeout=%gs, strict=%s)",
            config.mode.value, config.max_iterations, config.timeout, config.strict,
        )
        tally.event("start", f"{config.mode.value} execution started")

        def report(error: HarnessError) -> None:
            tally.event("error", f"[{error.kind}] {error.message}")
            if hooks.on_error is not None:
                hooks.on_error(error)

        def finish(reason: TerminationReason, error: HarnessError | None = None) -> ExecutionResult:
            if error is not None:
                report(error)
            result = tally.finish(reason, transcript.steps, error)
            if error is not None and reason != TerminationReason.SUCCESS:
                logger.info("Execution ended %s\n%s", reason.value, error.describe(transcript.steps))
            else:
                logger.info("Execution ended %s", result.summary())
            if hooks.on_complete is not None:
                hooks.on_complete(result)
            return result

        try:
            while tally.iterations < config.max_iterations:
                tally.begin()
                started = time.monotonic()
                step = strategy.next_step(task, transcript.steps, tally.iterations, deadline)
                tally.event("completion", type(step).__name__, duration=time.monotonic() - started)

                if isinstance(step, Final):
                    transcript.append(step)
                    tally.iteration()
                    return finish(TerminationReason.SUCCESS)

                if isinstance(step, Thought):
                    transcript.append(step)
                    tally.iteration()
                    continue

                if isinstance(step, Unparseable):
                    error = ParseError(
                        step.reason,
                        text=step.text,
                        suggestion="Answer with exactly one THOUGHT:, ACTION: or FINAL: step per turn.",
                    )
                    tally.iteration()
                    if config.strict:
                        return finish(TerminationReason.FATAL, error)
                    logger.debug("Unparseable turn (%s), sending correction prompt", step.reason)
                    tally.error()
                    report(error)
                    transcript.append(parse_error_observation(error))
                    continue

                transcript.append(step)
                tally.tool_call()
                started = time.monotonic()
                try:
                    observation = executor.execute(step, deadline)
                except RecoverableError as exc:
                    if config.strict:
                        tally.iteration()
                        return finish(TerminationReason.FATAL, exc)
                    logger.debug("Tool %s failed (%s): %s", step.tool_name, exc.kind, exc.message)
                    tally.error()
                    report(exc)
                    observation = error_observation(exc)
                elapsed = time.monotonic() - started
                tally.event("tool", observation.result[:200], duration=elapsed, tool_name=step.tool_name)
                transcript.append(observation)
                tally.iteration()
                if hooks.on_tool is not None:
                    hooks.on_tool(step, observation, elapsed)

            return finish(TerminationReason.EXHAUSTED, IterationBudgetExceeded(config.max_iterations))

        except DeadlineExceeded as exc:
            return finish(TerminationReason.TIMED_OUT, exc)
        except HarnessError as exc:
            return finish(TerminationReason.FATAL, exc)
        finally:
            deadline.close()
