# strategies.py
# Execution strategies: how one model turn becomes one Step.
#
# Exactly two variants, picked once per execution by Strategy.for_mode():
#
#   NativeStrategy  structured function calling with three meta-tools
#                   (think / use_tool / final_answer) plus every tool schema
#   TextStrategy    THOUGHT / ACTION / FINAL line convention decoded by parser.py
#
# Both share transcript rendering and reminder injection. Neither executes
# tools; they only decide what the model asked for.

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from react_harness import parser, prompts
from react_harness.completion import CompletionService
from react_harness.deadline import Deadline
from react_harness.errors import HarnessError, ProviderError
from react_harness.models import (
    Action,
    CompletionRequest,
    CompletionResponse,
    ExecutionConfig,
    Final,
    Mode,
    Observation,
    Step,
    Thought,
    ToolCall,
    ToolChoice,
    Unparseable,
)
from react_harness.registry import ToolRegistry

logger = logging.getLogger(__name__)

NextStep = Thought | Action | Final | Unparseable


def _format_arguments(action: Action) -> str:
    if action.raw is not None:
        return action.raw
    return json.dumps(action.arguments, ensure_ascii=False) if action.arguments else ""


def render_step(step: Step) -> dict[str, str]:
    """One transcript step as a chat message in the line convention."""
    if isinstance(step, Thought):
        return {"role": "assistant", "content": f"THOUGHT: {step.text}"}
    if isinstance(step, Action):
        return {"role": "assistant", "content": f"ACTION: {step.tool_name}({_format_arguments(step)})"}
    if isinstance(step, Observation):
        return {"role": "user", "content": f"OBSERVATION: {step.result}"}
    return {"role": "assistant", "content": f"FINAL: {step.answer}"}


class Strategy(ABC):
    """Obtains exactly one next step per call from the completion service."""

    mode: Mode

    def __init__(self, service: CompletionService, registry: ToolRegistry, config: ExecutionConfig) -> None:
        self._service = service
        self._registry = registry
        self._config = config

    @staticmethod
    def for_mode(service: CompletionService, registry: ToolRegistry, config: ExecutionConfig) -> "Strategy":
        if config.mode == Mode.NATIVE:
            return NativeStrategy(service, registry, config)
        return TextStrategy(service, registry, config)

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    @abstractmethod
    def system_prompt(self) -> str: ...

    def build_messages(self, task: str, transcript: Sequence[Step], iterations_used: int) -> list[dict[str, str]]:
        messages = [
            {"role": "system", "content": self.system_prompt()},
            {"role": "user", "content": task},
        ]
        messages.extend(render_step(step) for step in transcript)

        if self._config.iteration_reminders:
            remaining = self._config.max_iterations - (iterations_used + 1)
            reminder = prompts.reminder_for(remaining)
            if reminder:
                messages.append({"role": "system", "content": reminder})
        return messages

    def next_step(self, task: str, transcript: Sequence[Step], iterations_used: int, deadline: Deadline) -> NextStep:
        request = self.build_request(self.build_messages(task, transcript, iterations_used))
        try:
            response = deadline.run(lambda: self._service.complete(request, deadline), during="completion")
        except HarnessError:
            raise
        except Exception as exc:
            raise ProviderError(
                f"Completion service raised {type(exc).__name__}: {exc}",
                "Check the completion service implementation; only ProviderError is expected from it.",
            ) from exc
        step = self.decode(response)
        logger.debug("%s strategy decoded %s", self.mode.value, type(step).__name__)
        return step

    @abstractmethod
    def build_request(self, messages: list[dict[str, str]]) -> CompletionRequest: ...

    @abstractmethod
    def decode(self, response: CompletionResponse) -> NextStep: ...


# ---------------------------------------------------------------------------
# Native
# ---------------------------------------------------------------------------


class NativeStrategy(Strategy):
    mode = Mode.NATIVE

    META_TOOLS = ("think", "use_tool", "final_answer")

    def system_prompt(self) -> str:
        return prompts.native_system_prompt(self._config, self._registry)

    def meta_tool_schemas(self) -> list[dict[str, Any]]:
        def function(name: str, properties: dict, required: list[str]) -> dict[str, Any]:
            return {
                "type": "function",
                "function": {
                    "name": name,
                    "description": prompts.META_TOOLS_DESCRIPTION[name],
                    "parameters": {"type": "object", "properties": properties, "required": required},
                },
            }

        tool_name: dict[str, Any] = {
            "type": "string",
            "description": "Name of the tool to execute. Must be a registered tool.",
        }
        # Providers reject an empty enum.
        if self._registry:
            tool_name["enum"] = self._registry.names()

        return [
            function(
                "think",
                {"reasoning": {"type": "string", "description": "Your step-by-step thought process."}},
                ["reasoning"],
            ),
            function(
                "use_tool",
                {
                    "tool_name": tool_name,
                    "tool_arguments": {
                        "type": "object",
                        "description": "Arguments for the tool, following its parameter schema.",
                    },
                },
                ["tool_name", "tool_arguments"],
            ),
            function(
                "final_answer",
                {
                    "answer": {"type": "string", "description": "The complete answer for the user."},
                    "confidence": {"type": "number", "description": "Confidence from 0.0 to 1.0 (optional)."},
                },
                ["answer"],
            ),
        ]

    def build_request(self, messages: list[dict[str, str]]) -> CompletionRequest:
        return CompletionRequest(
            messages=messages,
            tools=self.meta_tool_schemas() + self._registry.schemas(),
            tool_choice=self._config.tool_choice.value,
        )

    @staticmethod
    def _arguments(call: ToolCall) -> dict | Unparseable:
        try:
            decoded = json.loads(call.arguments or "{}")
        except json.JSONDecodeError as exc:
            return Unparseable(reason=f"{call.name}() arguments are not valid JSON: {exc}", text=call.arguments)
        if not isinstance(decoded, dict):
            return Unparseable(reason=f"{call.name}() arguments must be a JSON object", text=call.arguments)
        return decoded

    def _final(self, call: ToolCall) -> Final | Unparseable:
        args = self._arguments(call)
        if isinstance(args, Unparseable):
            return args
        answer = args.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            return Unparseable(reason="final_answer() requires a non-empty 'answer' string", text=call.arguments)
        confidence = args.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = None
        else:
            confidence = min(max(float(confidence), 0.0), 1.0)
        return Final(answer=answer, confidence=confidence)

    def _action(self, call: ToolCall) -> Action | Unparseable:
        args = self._arguments(call)
        if isinstance(args, Unparseable):
            return args
        if call.name != "use_tool":
            return Action(tool_name=call.name, arguments=args)

        tool_name = args.get("tool_name")
        if not isinstance(tool_name, str) or not tool_name:
            return Unparseable(reason="use_tool() requires a 'tool_name' string", text=call.arguments)
        tool_arguments = args.get("tool_arguments") or {}
        if isinstance(tool_arguments, str):
            # Some providers double-encode nested objects.
            try:
                tool_arguments = json.loads(tool_arguments)
            except json.JSONDecodeError:
                pass
        if not isinstance(tool_arguments, dict):
            return Unparseable(reason="use_tool() 'tool_arguments' must be an object", text=call.arguments)
        return Action(tool_name=tool_name, arguments=tool_arguments)

    def _thought(self, call: ToolCall) -> Thought | Unparseable:
        args = self._arguments(call)
        if isinstance(args, Unparseable):
            return args
        reasoning = args.get("reasoning")
        if not isinstance(reasoning, str) or not reasoning.strip():
            return Unparseable(reason="think() requires a non-empty 'reasoning' string", text=call.arguments)
        return Thought(text=reasoning)

    def decode(self, response: CompletionResponse) -> NextStep:
        """
        final_answer wins over everything else in the turn, then the first
        tool request, then the first think(). A turn with no calls but text
        content is an implicit final answer.
        """
        calls = response.tool_calls
        if not calls:
            if response.content and response.content.strip():
                return Final(answer=response.content.strip())
            return Unparseable(reason="response contained neither a function call nor text")

        for call in calls:
            if call.name == "final_answer":
                return self._final(call)
        for call in calls:
            if call.name != "think":
                return self._action(call)
        return self._thought(calls[0])


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


class TextStrategy(Strategy):
    mode = Mode.TEXT

    def system_prompt(self) -> str:
        return prompts.text_system_prompt(self._config, self._registry)

    def build_request(self, messages: list[dict[str, str]]) -> CompletionRequest:
        return CompletionRequest(messages=messages)

    def decode(self, response: CompletionResponse) -> NextStep:
        step = parser.parse_response(response.content or "")
        if isinstance(step, Action) and self._config.tool_choice == ToolChoice.NONE:
            return Unparseable(
                reason=f"tool use is disabled (tool_choice=none) but the response called {step.tool_name!r}",
                text=response.content or "",
            )
        return step
