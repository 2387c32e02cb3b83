import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from conftest import ScriptedService, call, calls
from react_harness.errors import (
    Cancelled,
    ConfigurationError,
    DeadlineExceeded,
    IterationBudgetExceeded,
    ParseError,
    ProviderError,
    ToolNotFoundError,
)
from react_harness.harness import Harness, Transcript
from react_harness.models import (
    Action,
    CompletionResponse,
    ExecutionConfig,
    Final,
    Mode,
    Observation,
    TerminationReason,
    Thought,
    ToolCall,
    ToolChoice,
)
from react_harness.registry import ToolRegistry

MATH_ACTION = 'ACTION: math(operation="evaluate", expression="17 * 23")'


def kinds(result):
    return [step.kind for step in result.transcript]


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


def test_transcript_rejects_steps_after_final():
    transcript = Transcript()
    transcript.append(Final(answer="done"))
    with pytest.raises(RuntimeError, match="closed"):
        transcript.append(Thought(text="one more thing"))


def test_transcript_rejects_second_pending_action():
    transcript = Transcript()
    transcript.append(Action(tool_name="echo"))
    assert transcript.pending_action() is not None
    with pytest.raises(RuntimeError, match="Observation"):
        transcript.append(Action(tool_name="echo"))
    transcript.append(Observation(tool_name="echo", result="ok"))
    assert transcript.pending_action() is None
    assert len(transcript) == 2


def test_transcript_feeds_sink_in_order():
    sink = MagicMock()
    transcript = Transcript(sink)
    first, second = Thought(text="a"), Thought(text="b")
    transcript.append(first)
    transcript.append(second)
    assert [c.args[0] for c in sink.call_args_list] == [first, second]


# ---------------------------------------------------------------------------
# Text mode
# ---------------------------------------------------------------------------


def test_text_mode_success(registry):
    service = ScriptedService(["THOUGHT: multiply", MATH_ACTION, "FINAL: 391"])
    result = Harness(service, registry).ask("What is 17 * 23?")

    assert result.success
    assert result.termination_reason == TerminationReason.SUCCESS
    assert result.final_answer == "391"
    assert result.iterations_used == 3
    assert result.tool_call_count == 1
    assert result.error_count == 0
    assert kinds(result) == ["thought", "action", "observation", "final"]
    assert result.transcript[2].result == "391"
    assert result.error is None


def test_text_mode_renders_transcript_into_messages(registry):
    service = ScriptedService(["THOUGHT: multiply", MATH_ACTION, "FINAL: 391"])
    Harness(service, registry).ask("What is 17 * 23?")

    first, last = service.requests[0], service.requests[-1]
    assert first.messages[0]["role"] == "system"
    assert "math(operation, expression?, stat_type?, numbers?)" in first.messages[0]["content"]
    assert first.messages[1] == {"role": "user", "content": "What is 17 * 23?"}
    assert first.tools is None
    assert last.messages[2:] == [
        {"role": "assistant", "content": "THOUGHT: multiply"},
        {"role": "assistant", "content": 'ACTION: math(operation="evaluate", expression="17 * 23")'},
        {"role": "user", "content": "OBSERVATION: 391"},
    ]


def test_namespaced_math_action_runs_through_loop(registry):
    service = ScriptedService(['ACTION: functions.math(operation="evaluate", expression="2+2")', "FINAL: 4"])
    result = Harness(service, registry).ask("What is 2+2?")

    assert result.success
    assert result.final_answer == "4"
    assert result.tool_call_count == 1
    action, observation = result.transcript[0], result.transcript[1]
    assert action.tool_name == "functions.math"
    assert action.arguments == {"operation": "evaluate", "expression": "2+2"}
    assert observation.result == "4"
    assert observation.tool_name == "functions.math"
    assert not observation.is_error


def test_exhausted_after_single_tool_call(registry):
    service = ScriptedService(['ACTION: echo(message="hi")'])
    result = Harness(service, registry).ask("loop", ExecutionConfig(max_iterations=1))

    assert result.termination_reason == TerminationReason.EXHAUSTED
    assert not result.success
    assert result.final_answer is None
    assert result.tool_call_count == 1
    assert result.iterations_used == 1
    assert kinds(result) == ["action", "observation"]
    assert isinstance(result.error, IterationBudgetExceeded)
    assert len(service.requests) == 1
    assert [o.result for o in result.last_observations] == ["hi"]


def test_action_count_never_exceeds_budget(registry):
    service = ScriptedService(['ACTION: echo(message="again")'] * 10)
    result = Harness(service, registry).ask("loop", ExecutionConfig(max_iterations=4))

    assert result.termination_reason == TerminationReason.EXHAUSTED
    assert kinds(result).count("action") == 4
    assert len(result.last_observations) == 3


def test_unknown_tool_is_observed_and_loop_continues(registry):
    service = ScriptedService(["ACTION: nope(x=1)", "FINAL: gave up on nope"])
    result = Harness(service, registry).ask("use nope")

    assert result.success
    assert result.iterations_used == 2
    assert result.tool_call_count == 1
    assert result.error_count == 1
    observation = result.transcript[1]
    assert observation.is_error
    assert observation.error_kind == "tool_not_found"
    assert observation.tool_name == "nope"


def test_strict_unknown_tool_is_fatal(registry):
    service = ScriptedService(["ACTION: nope(x=1)", "FINAL: never reached"])
    result = Harness(service, registry).ask("use nope", ExecutionConfig(strict=True))

    assert result.termination_reason == TerminationReason.FATAL
    assert isinstance(result.error, ToolNotFoundError)
    assert kinds(result) == ["action"]
    assert len(service.requests) == 1


def test_handler_failure_is_observed(registry):
    service = ScriptedService(["ACTION: boom", "FINAL: it broke"])
    result = Harness(service, registry).ask("explode")

    observation = result.transcript[1]
    assert observation.error_kind == "handler_failure"
    assert "kaboom" in observation.result
    assert "Please either" in observation.result
    assert result.success


def test_unparseable_turn_gets_correction_prompt(registry):
    service = ScriptedService(["I think it is 4", "FINAL: 4"])
    result = Harness(service, registry).ask("2+2")

    assert result.success
    assert result.iterations_used == 2
    observation = result.transcript[0]
    assert observation.tool_name == "parser"
    assert observation.error_kind == "parse_error"
    assert "could not be parsed" in observation.result
    assert "THOUGHT:" in observation.result


def test_strict_unparseable_turn_is_fatal(registry):
    service = ScriptedService(["I think it is 4"])
    result = Harness(service, registry).ask("2+2", ExecutionConfig(strict=True))

    assert result.termination_reason == TerminationReason.FATAL
    assert isinstance(result.error, ParseError)
    assert result.transcript == ()
    assert result.iterations_used == 1


def test_tool_choice_none_refuses_actions(registry):
    service = ScriptedService(['ACTION: echo(message="x")', "FINAL: no tools needed"])
    config = ExecutionConfig(tool_choice=ToolChoice.NONE)
    result = Harness(service, registry).ask("hello", config)

    assert result.success
    assert result.tool_call_count == 0
    assert "tool use is disabled" in result.transcript[0].result
    assert "Tool use is disabled" in service.requests[0].messages[0]["content"]


def test_iteration_reminders(registry):
    service = ScriptedService(["THOUGHT: hmm", "FINAL: ok"])
    config = ExecutionConfig(max_iterations=2, iteration_reminders=True)
    Harness(service, registry).ask("task", config)

    assert service.requests[0].messages[-1]["content"].startswith("URGENT")
    assert service.requests[1].messages[-1]["content"].startswith("CRITICAL")
    assert service.requests[1].messages[-1]["role"] == "system"


# ---------------------------------------------------------------------------
# Native mode
# ---------------------------------------------------------------------------

NATIVE = ExecutionConfig(mode=Mode.NATIVE)


def test_native_think_use_tool_final(registry):
    service = ScriptedService([
        calls(call("think", reasoning="I should multiply")),
        calls(call("use_tool", tool_name="math", tool_arguments={"operation": "evaluate", "expression": "6*7"})),
        calls(call("final_answer", answer="42", confidence=0.9)),
    ])
    result = Harness(service, registry).ask("6 times 7?", NATIVE)

    assert result.success
    assert result.final_answer == "42"
    assert result.confidence == 0.9
    assert result.tool_call_count == 1
    assert kinds(result) == ["thought", "action", "observation", "final"]
    assert result.transcript[2].result == "42"

    request = service.requests[0]
    names = [tool["function"]["name"] for tool in request.tools]
    assert names[:3] == ["think", "use_tool", "final_answer"]
    assert set(registry.names()) <= set(names)
    assert request.tool_choice == "auto"
    use_tool = request.tools[1]["function"]["parameters"]["properties"]["tool_name"]
    assert use_tool["enum"] == registry.names()


def test_native_empty_registry_has_no_tool_name_enum():
    service = ScriptedService([calls(call("final_answer", answer="no tools needed"))])
    result = Harness(service, ToolRegistry()).ask("hello", NATIVE)

    assert result.success
    request = service.requests[0]
    assert [tool["function"]["name"] for tool in request.tools] == ["think", "use_tool", "final_answer"]
    tool_name = request.tools[1]["function"]["parameters"]["properties"]["tool_name"]
    assert tool_name["type"] == "string"
    assert "enum" not in tool_name


def test_native_final_answer_wins_in_same_turn(registry):
    service = ScriptedService([
        calls(
            call("use_tool", tool_name="echo", tool_arguments={"message": "ignored"}),
            call("final_answer", answer="done"),
        ),
    ])
    result = Harness(service, registry).ask("task", NATIVE)

    assert result.success
    assert result.tool_call_count == 0
    assert result.iterations_used == 1
    assert kinds(result) == ["final"]
    assert isinstance(result.transcript[-1], Final)


def test_native_direct_tool_call(registry):
    service = ScriptedService([
        calls(call("functions.echo", message="direct")),
        calls(call("final_answer", answer="echoed")),
    ])
    result = Harness(service, registry).ask("echo it", NATIVE)

    assert result.transcript[1].result == "direct"
    assert result.success


def test_native_plain_content_is_implicit_final(registry):
    service = ScriptedService([CompletionResponse(content="  It is 4.  ")])
    result = Harness(service, registry).ask("2+2", NATIVE)

    assert result.success
    assert result.final_answer == "It is 4."


def test_native_bad_arguments_are_unparseable(registry):
    service = ScriptedService([
        CompletionResponse(tool_calls=[ToolCall(name="use_tool", arguments="{nope")]),
        calls(call("final_answer", answer="recovered")),
    ])
    result = Harness(service, registry).ask("task", NATIVE)

    assert result.transcript[0].error_kind == "parse_error"
    assert result.success


def test_native_required_tool_choice_is_forwarded(registry):
    service = ScriptedService([calls(call("final_answer", answer="x"))])
    config = NATIVE.with_overrides(tool_choice=ToolChoice.REQUIRED)
    Harness(service, registry).ask("task", config)
    assert service.requests[0].tool_choice == "required"


# ---------------------------------------------------------------------------
# Time and cancellation
# ---------------------------------------------------------------------------


def test_timeout_during_tool_keeps_transcript(registry):
    service = ScriptedService(["THOUGHT: wait", "ACTION: slow"])
    result = Harness(service, registry).ask("be slow", ExecutionConfig(timeout=0.2))

    assert result.termination_reason == TerminationReason.TIMED_OUT
    assert isinstance(result.error, DeadlineExceeded)
    assert "tool slow" in result.error.message
    assert kinds(result) == ["thought", "action"]
    assert result.iterations_used == 1
    assert result.tool_call_count == 1


def test_timeout_during_completion(registry):
    def stall(request, deadline):
        while not deadline.cancelled:
            time.sleep(0.01)
        return CompletionResponse(content="FINAL: too late")

    service = ScriptedService([stall])
    result = Harness(service, registry).ask("stall", ExecutionConfig(timeout=0.2))

    assert result.termination_reason == TerminationReason.TIMED_OUT
    assert "completion" in result.error.message
    assert result.transcript == ()


def test_cancel_event(registry):
    cancel = threading.Event()
    cancel.set()
    service = ScriptedService(["FINAL: never"])
    result = Harness(service, registry).ask("task", cancel=cancel)

    assert result.termination_reason == TerminationReason.TIMED_OUT
    assert isinstance(result.error, Cancelled)
    assert service.requests == []


def test_timeout_does_not_poison_shared_cancel_event(registry):
    cancel = threading.Event()
    harness = Harness(ScriptedService(["ACTION: slow", "FINAL: ok"]), registry)

    first = harness.ask("be slow", ExecutionConfig(timeout=0.2), cancel=cancel)
    assert first.termination_reason == TerminationReason.TIMED_OUT
    assert not isinstance(first.error, Cancelled)
    assert not cancel.is_set()

    second = harness.ask("be quick", cancel=cancel)
    assert second.termination_reason == TerminationReason.SUCCESS
    assert second.final_answer == "ok"


# ---------------------------------------------------------------------------
# Fatal errors and configuration
# ---------------------------------------------------------------------------


def test_provider_error_is_fatal_not_raised(registry):
    service = ScriptedService(["THOUGHT: start", ProviderError("rate limited")])
    result = Harness(service, registry).ask("task")

    assert result.termination_reason == TerminationReason.FATAL
    assert isinstance(result.error, ProviderError)
    assert kinds(result) == ["thought"]
    assert result.error_count == 1


def test_unexpected_service_exception_becomes_provider_error(registry):
    service = ScriptedService([ValueError("bad payload")])
    result = Harness(service, registry).ask("task")

    assert result.termination_reason == TerminationReason.FATAL
    assert isinstance(result.error, ProviderError)
    assert "bad payload" in result.error.message


def test_invalid_config_raises_before_any_request(registry):
    service = ScriptedService(["FINAL: never"])
    with pytest.raises(ConfigurationError) as excinfo:
        Harness(service, registry).ask("task", ExecutionConfig(max_iterations=0, timeout=900))
    assert excinfo.value.rules == ["max_iterations_range", "timeout_range"]
    assert service.requests == []


# ---------------------------------------------------------------------------
# Streaming and concurrency
# ---------------------------------------------------------------------------


def test_stream_delivers_steps_in_transcript_order(registry):
    seen = []
    service = ScriptedService(["THOUGHT: multiply", MATH_ACTION, "FINAL: 391"])
    result = Harness(service, registry).stream("What is 17 * 23?", on_step=seen.append)

    assert seen == list(result.transcript)
    assert isinstance(seen[-1], Final)


def test_concurrent_executions_are_isolated(registry):
    def run(n):
        service = ScriptedService([f'ACTION: echo(message="{n}")', f"FINAL: {n}"])
        return Harness(service, registry).ask(f"echo {n}")

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(run, range(8)))

    for n, result in enumerate(results):
        assert result.final_answer == str(n)
        assert result.transcript[1].result == str(n)
        assert len(result.transcript) == 3


def test_describe_includes_transcript_diagnostic(registry):
    service = ScriptedService(['ACTION: echo(message="hi")'])
    result = Harness(service, registry).ask("loop", ExecutionConfig(max_iterations=1))

    text = result.error.describe(result.transcript)
    assert text.startswith("[exhausted] Maximum iterations (1)")
    assert "2 step(s) (1 action, 1 observation)" in text
    assert "last: observation: hi" in text
    assert "Suggestion:" in text


# ---------------------------------------------------------------------------
# Timeline and lifecycle hooks
# ---------------------------------------------------------------------------


def test_timeline_is_off_by_default(registry):
    service = ScriptedService([MATH_ACTION, "FINAL: 391"])
    assert Harness(service, registry).ask("17 * 23").timeline == ()


def test_timeline_records_iterations_tools_and_termination(registry):
    service = ScriptedService(["THOUGHT: multiply", MATH_ACTION, "FINAL: 391"])
    result = Harness(service, registry).ask("17 * 23", ExecutionConfig(timeline=True))

    events = [(event.kind, event.iteration) for event in result.timeline]
    assert events == [
        ("start", 0),
        ("iteration_start", 1), ("completion", 1),
        ("iteration_start", 2), ("completion", 2), ("tool", 2),
        ("iteration_start", 3), ("completion", 3),
        ("termination", 3),
    ]
    tool = result.timeline[5]
    assert tool.tool_name == "math"
    assert tool.content == "391"
    assert tool.duration >= 0.0
    termination = result.timeline[-1]
    assert termination.content == "success"
    assert termination.duration == result.duration
    stamps = [event.timestamp for event in result.timeline]
    assert stamps == sorted(stamps)


def test_timeline_records_errors(registry):
    service = ScriptedService(["ACTION: nope", "gibberish"])
    config = ExecutionConfig(timeline=True, max_iterations=2)
    result = Harness(service, registry).ask("fail twice", config)

    errors = [event for event in result.timeline if event.kind == "error"]
    assert [e.content.split("]")[0] for e in errors] == ["[tool_not_found", "[parse_error", "[exhausted"]
    assert [e.iteration for e in errors] == [1, 2, 2]
    assert result.timeline[-1].content == "exhausted"


def test_timeline_measures_slow_tool(registry):
    result = Harness(ScriptedService(["ACTION: slow"]), registry).ask(
        "be slow", ExecutionConfig(timeout=0.3, timeline=True)
    )
    kinds_seen = [event.kind for event in result.timeline]
    assert "tool" not in kinds_seen
    assert kinds_seen[-2:] == ["error", "termination"]
    assert result.timeline[-1].content == "timed_out"
    assert result.timeline[-1].duration >= 0.3


def test_stream_hooks(registry):
    tools_seen, errors_seen, completed = [], [], []
    service = ScriptedService(["ACTION: boom", MATH_ACTION, "FINAL: 391"])
    result = Harness(service, registry).stream(
        "17 * 23",
        on_tool=lambda action, observation, duration: tools_seen.append((action.tool_name, observation, duration)),
        on_error=errors_seen.append,
        on_complete=completed.append,
    )

    assert [(name, obs.is_error) for name, obs, _ in tools_seen] == [("boom", True), ("math", False)]
    assert tools_seen[1][1].result == "391"
    assert all(duration >= 0.0 for _, _, duration in tools_seen)
    assert [error.kind for error in errors_seen] == ["handler_failure"]
    assert completed == [result]


def test_stream_hooks_report_terminal_error(registry):
    errors_seen, completed = [], []
    service = ScriptedService([ProviderError("rate limited")])
    result = Harness(service, registry).stream("task", on_error=errors_seen.append, on_complete=completed.append)

    assert result.termination_reason == TerminationReason.FATAL
    assert errors_seen == [result.error]
    assert completed == [result]


def test_stream_hooks_skip_tool_hook_on_strict_failure(registry):
    on_tool = MagicMock()
    on_error = MagicMock()
    service = ScriptedService(["ACTION: nope"])
    result = Harness(service, registry).stream(
        "task", ExecutionConfig(strict=True), on_tool=on_tool, on_error=on_error
    )

    assert result.termination_reason == TerminationReason.FATAL
    on_tool.assert_not_called()
    on_error.assert_called_once_with(result.error)
