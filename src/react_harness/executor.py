# executor.py
# Resolves an Action to a registered tool, validates its arguments and runs
# the handler under the execution deadline.
#
# execute() either returns a successful Observation or raises one of the
# recoverable tool errors. Turning those into error Observations (or a fatal
# stop under strict mode) is the controller's job.

import json
import logging
from typing import Any

from pydantic import ConfigDict, Field, ValidationError, create_model

from react_harness.deadline import Deadline
from react_harness.errors import (
    DeadlineExceeded,
    RecoverableError,
    ToolArgumentError,
    ToolExecutionError,
    ToolNotFoundError,
)
from react_harness.models import Action, Observation, ToolDescriptor
from react_harness.prompts import TOOL_ERROR_GUIDANCE
from react_harness.registry import ToolRegistry

logger = logging.getLogger(__name__)

_PYTHON_TYPES: dict[str, type] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
}

TRUNCATION_MARKER = "\n... [truncated]"


def arguments_model(descriptor: ToolDescriptor):
    """
    Strict pydantic model for a tool's parameters. Unknown keys pass through.

    Fields get positional names and take the parameter name as their alias,
    so names like `_id` or `model_config` validate like any other key.
    """
    fields: dict[str, Any] = {}
    for index, (name, param) in enumerate(descriptor.parameters.items()):
        python_type = _PYTHON_TYPES[param.type]
        if param.required:
            fields[f"arg_{index}"] = (python_type, Field(..., alias=name))
        else:
            fields[f"arg_{index}"] = (python_type | None, Field(None, alias=name))
    return create_model(
        f"{descriptor.name}_arguments",
        __config__=ConfigDict(strict=True, extra="allow"),
        **fields,
    )


def _describe_validation(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "arguments"
        problems.append(f"{field}: {error['msg'].lower()}")
    return "; ".join(problems)


def error_observation(error: RecoverableError) -> Observation:
    """The Observation a recoverable error degrades to in lenient mode."""
    text = f"Error: {error.message}"
    if error.suggestion:
        text += f"\nHint: {error.suggestion}"
    return Observation(
        tool_name=error.tool_name,
        result=text + "\n" + TOOL_ERROR_GUIDANCE,
        is_error=True,
        error_kind=error.kind,
    )


class ToolExecutor:
    """
    Example:
        executor = ToolExecutor(default_registry())
        observation = executor.execute(Action(tool_name="functions.math", arguments={...}), deadline)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        namespace_prefixes: tuple[str, ...] | list[str] = ("functions",),
        max_observation_chars: int = 4000,
    ) -> None:
        self._registry = registry
        self._prefixes = tuple(namespace_prefixes)
        self._max_chars = max_observation_chars
        self._models: dict[str, type] = {}

    def _model_for(self, descriptor: ToolDescriptor):
        if descriptor.name not in self._models:
            self._models[descriptor.name] = arguments_model(descriptor)
        return self._models[descriptor.name]

    def normalize(self, name: str) -> str:
        """
        Strip recognised namespace prefixes, repeatedly.

        `functions.tools.math` with prefixes ("functions", "tools") resolves
        to `math`. An unrecognised qualifier is left alone so the lookup
        fails with the name the model actually used.
        """
        resolved = name.strip()
        stripped = True
        while stripped:
            stripped = False
            for prefix in self._prefixes:
                head = prefix + "."
                if resolved.startswith(head) and len(resolved) > len(head):
                    resolved = resolved[len(head):]
                    stripped = True
        return resolved

    def _render(self, value: Any) -> str:
        if isinstance(value, str):
            text = value
        else:
            try:
                text = json.dumps(value, ensure_ascii=False, default=str)
            except (TypeError, ValueError):
                text = str(value)
        if len(text) > self._max_chars:
            text = text[: self._max_chars] + TRUNCATION_MARKER
        return text

    def execute(self, action: Action, deadline: Deadline) -> Observation:
        """
        Run one Action.

        Raises ToolNotFoundError, ToolArgumentError or ToolExecutionError.
        DeadlineExceeded from the deadline propagates untouched.
        """
        name = self.normalize(action.tool_name)
        tool = self._registry.get(name)
        if tool is None:
            available = ", ".join(self._registry.names()) or "none"
            raise ToolNotFoundError(
                f"Tool {action.tool_name!r} not found. Available tools: {available}.",
                tool_name=action.tool_name,
                suggestion="Use one of the available tool names exactly as listed.",
            )

        try:
            self._model_for(tool.descriptor).model_validate(action.arguments)
        except ValidationError as exc:
            raise ToolArgumentError(
                f"Invalid arguments for {name!r}: {_describe_validation(exc)}.",
                tool_name=action.tool_name,
                suggestion=f"Call it as {tool.descriptor.signature()} with correctly typed values.",
            ) from exc
        args = dict(action.arguments)

        logger.debug("Executing %s(%s)", name, args)
        try:
            result = deadline.run(lambda: tool.handler(args, deadline), during=f"tool {name}")
        except (DeadlineExceeded, RecoverableError):
            raise
        except Exception as exc:
            raise ToolExecutionError(
                f"Tool {name!r} failed: {type(exc).__name__}: {exc}",
                tool_name=action.tool_name,
            ) from exc

        return Observation(tool_name=action.tool_name, result=self._render(result))
