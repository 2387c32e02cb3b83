# registry.py
# Tool registry: name → descriptor + handler.
#
# Built once, then read-only. Concurrent executions share one registry, so
# nothing here may mutate after construction; the mapping is exposed through
# a MappingProxyType and "adding" a tool returns a new registry.

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from react_harness.deadline import Deadline
from react_harness.models import ToolDescriptor, ToolParameter

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any], Deadline], Any]


@dataclass(frozen=True)
class Tool:
    """A descriptor paired with the callable that implements it."""

    descriptor: ToolDescriptor
    handler: Handler

    @property
    def name(self) -> str:
        return self.descriptor.name

    @classmethod
    def define(
        cls,
        name: str,
        description: str,
        handler: Handler,
        parameters: Mapping[str, ToolParameter | dict] | None = None,
    ) -> "Tool":
        """
        Convenience constructor.

        Example:
            Tool.define(
                "echo", "Repeat a message.", lambda args, deadline: args["message"],
                {"message": {"type": "string", "required": True}},
            )
        """
        params = {
            key: value if isinstance(value, ToolParameter) else ToolParameter.model_validate(value)
            for key, value in (parameters or {}).items()
        }
        return cls(ToolDescriptor(name=name, description=description, parameters=params), handler)


class ToolRegistry:
    """Immutable mapping from unique tool name to Tool."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        table: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in table:
                raise ValueError(f"Duplicate tool name {tool.name!r}; tool names must be unique.")
            table[tool.name] = tool
        self._tools: Mapping[str, Tool] = MappingProxyType(table)
        logger.debug("Registry built with %d tool(s): %s", len(table), ", ".join(table))

    def with_tools(self, *tools: Tool) -> "ToolRegistry":
        """Return a new registry holding this registry's tools plus `tools`."""
        return ToolRegistry([*self._tools.values(), *tools])

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Tool | None:
        """Exact-name lookup. Namespace normalisation happens in the executor."""
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    def schemas(self) -> list[dict[str, Any]]:
        return [tool.descriptor.to_schema() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __bool__(self) -> bool:
        return bool(self._tools)

    def __repr__(self) -> str:
        return f"ToolRegistry({self.names()!r})"
