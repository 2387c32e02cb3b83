# models.py
# Data contracts for the ReAct harness.
# No business logic lives here, only schema and validation.

import os
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Mode(str, Enum):
    """How the next step is obtained from the completion service."""

    NATIVE = "native"
    TEXT = "text"


class ToolChoice(str, Enum):
    AUTO = "auto"
    REQUIRED = "required"
    NONE = "none"


class TerminationReason(str, Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"
    FATAL = "fatal"


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class Thought(BaseModel):
    """Intermediate reasoning emitted by the model."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["thought"] = "thought"
    text: str
    timestamp: datetime = Field(default_factory=_now)


class Action(BaseModel):
    """A request to invoke one registered tool."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["action"] = "action"
    tool_name: str = Field(..., description="Identifier as emitted by the model, possibly namespaced.")
    arguments: dict[str, Any] = Field(default_factory=dict)
    raw: str | None = Field(default=None, description="Original argument text (text mode only).")
    timestamp: datetime = Field(default_factory=_now)


class Observation(BaseModel):
    """Result (or error) of executing an Action, fed back to the model."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["observation"] = "observation"
    tool_name: str
    result: str
    is_error: bool = False
    error_kind: str | None = None
    timestamp: datetime = Field(default_factory=_now)


class Final(BaseModel):
    """The model's final answer. Always the last step of a transcript."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["final"] = "final"
    answer: str
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=_now)


Step = Annotated[Union[Thought, Action, Observation, Final], Field(discriminator="kind")]


class Unparseable(BaseModel):
    """
    A model turn that could not be decoded into a Step.

    Not a Step: it is never appended to a transcript. The loop controller
    decides whether it aborts the run or becomes an error Observation.
    """

    model_config = ConfigDict(frozen=True)

    reason: str
    text: str = ""


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


ParameterType = Literal["string", "number", "integer", "boolean", "array", "object"]


class ToolParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ParameterType = "string"
    description: str = ""
    required: bool = False


class ToolDescriptor(BaseModel):
    """Name, description and parameter schema of one registered tool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    description: str
    parameters: dict[str, ToolParameter] = Field(default_factory=dict)

    def required_parameters(self) -> list[str]:
        return [name for name, param in self.parameters.items() if param.required]

    def to_schema(self) -> dict[str, Any]:
        """OpenAI function-calling schema for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        name: {"type": param.type, "description": param.description}
                        for name, param in self.parameters.items()
                    },
                    "required": self.required_parameters(),
                },
            },
        }

    def signature(self) -> str:
        """Compact `name(a, b?)` form used in text-mode prompts."""
        params = ", ".join(
            name if param.required else f"{name}?" for name, param in self.parameters.items()
        )
        return f"{self.name}({params})"


# ---------------------------------------------------------------------------
# Completion service wire types
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """One function call returned by the provider. `arguments` is raw JSON text."""

    name: str
    arguments: str = "{}"
    id: str | None = None


class CompletionRequest(BaseModel):
    messages: list[dict[str, str]]
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | None = None


class CompletionResponse(BaseModel):
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class Example(BaseModel):
    """A few-shot demonstration of the text-mode line convention."""

    model_config = ConfigDict(frozen=True)

    task: str
    steps: tuple[str, ...]
    description: str = ""


class ExecutionConfig(BaseModel):
    """
    Per-execution settings. Immutable: derive variants with with_overrides().

    Range checks live in validator.py so that every violation is reported
    together, with a suggestion, before any completion request is issued.
    """

    model_config = ConfigDict(frozen=True)

    mode: Mode = Mode.TEXT
    max_iterations: int = 10
    timeout: float = Field(default=60.0, description="Seconds for the whole execution.")
    strict: bool = False
    tool_choice: ToolChoice = ToolChoice.AUTO
    namespace_prefixes: tuple[str, ...] = ("functions",)
    system_prompt: str | None = None
    examples: tuple[Example, ...] = ()
    iteration_reminders: bool = False
    max_observation_chars: int = 4000
    timeline: bool = Field(default=False, description="Record a TimelineEvent log on the result.")

    @classmethod
    def from_env(cls) -> "ExecutionConfig":
        """Build a config from REACT_* environment variables (and .env)."""
        load_dotenv()
        values: dict[str, Any] = {}
        if os.getenv("REACT_MODE"):
            values["mode"] = Mode(os.environ["REACT_MODE"].lower())
        if os.getenv("REACT_MAX_ITERATIONS"):
            values["max_iterations"] = int(os.environ["REACT_MAX_ITERATIONS"])
        if os.getenv("REACT_TIMEOUT"):
            values["timeout"] = float(os.environ["REACT_TIMEOUT"])
        if os.getenv("REACT_STRICT"):
            values["strict"] = os.environ["REACT_STRICT"].lower() in ("1", "true", "yes")
        if os.getenv("REACT_TOOL_CHOICE"):
            values["tool_choice"] = ToolChoice(os.environ["REACT_TOOL_CHOICE"].lower())
        if os.getenv("REACT_TIMELINE"):
            values["timeline"] = os.environ["REACT_TIMELINE"].lower() in ("1", "true", "yes")
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "ExecutionConfig":
        return self.model_validate({**self.model_dump(), **changes})


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


class TimelineEvent(BaseModel):
    """
    One entry of an execution timeline, recorded when ExecutionConfig.timeline is on.

    Kinds: start, iteration_start, completion, tool, error, termination.
    `iteration` is the 1-based iteration the event belongs to (0 before the
    first one). `duration` is set for completion and tool events (the time
    the call took) and for termination (the whole execution).
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    iteration: int = 0
    content: str = ""
    tool_name: str | None = None
    duration: float = 0.0
    timestamp: datetime = Field(default_factory=_now)


class ExecutionResult(BaseModel):
    """Outcome of one loop execution, produced by the aggregator."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    final_answer: str | None = None
    confidence: float | None = None
    iterations_used: int
    tool_call_count: int
    error_count: int = 0
    success: bool
    termination_reason: TerminationReason
    transcript: tuple[Step, ...] = ()
    last_observations: tuple[Observation, ...] = ()
    error: Exception | None = Field(default=None, exclude=True)
    duration: float = 0.0
    timeline: tuple[TimelineEvent, ...] = ()

    def summary(self) -> str:
        head = (
            f"{self.termination_reason.value} after {self.iterations_used} iteration(s), "
            f"{self.tool_call_count} tool call(s) in {self.duration:.2f}s"
        )
        if self.success:
            return f"{head}: {self.final_answer}"
        if self.error is not None:
            return f"{head}: {self.error}"
        return head
