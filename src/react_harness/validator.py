# validator.py
# Pre-flight configuration checks.
#
# Pure function of (config, registry): no network, no tool I/O. Every rule is
# evaluated so the caller sees all problems at once, bundled into a single
# ConfigurationError.

import re

from react_harness.errors import ConfigurationError, Violation
from react_harness.models import ExecutionConfig, Mode, ToolChoice
from react_harness.prompts import TEMPLATE_PLACEHOLDERS, template_placeholders
from react_harness.registry import ToolRegistry

MIN_ITERATIONS = 1
MAX_ITERATIONS = 100
MAX_TIMEOUT = 600.0

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_STEP_KEYWORD_RE = re.compile(r"^\s*(THOUGHT|ACTION|OBSERVATION|FINAL)\s*:", re.IGNORECASE)


def _check_tool_choice(config: ExecutionConfig, registry: ToolRegistry) -> list[Violation]:
    violations = []
    if config.tool_choice in (ToolChoice.REQUIRED, ToolChoice.NONE) and not registry:
        violations.append(Violation(
            "tool_choice_requires_tools",
            f"tool_choice={config.tool_choice.value} needs a non-empty tool registry.",
            "Register at least one tool or use tool_choice=auto.",
        ))
    if config.mode == Mode.NATIVE and config.tool_choice == ToolChoice.NONE:
        violations.append(Violation(
            "native_requires_function_calling",
            "Native mode delivers every step as a function call, so tool_choice=none cannot be honoured.",
            "Use mode=text with tool_choice=none, or keep native mode with tool_choice=auto or required.",
        ))
    return violations


def _check_ranges(config: ExecutionConfig) -> list[Violation]:
    violations = []
    if not MIN_ITERATIONS <= config.max_iterations <= MAX_ITERATIONS:
        violations.append(Violation(
            "max_iterations_range",
            f"max_iterations={config.max_iterations} is outside {MIN_ITERATIONS}..{MAX_ITERATIONS}.",
            "Typical values are 5 to 20.",
        ))
    if not 0 < config.timeout <= MAX_TIMEOUT:
        violations.append(Violation(
            "timeout_range",
            f"timeout={config.timeout:g}s must be greater than 0 and at most {MAX_TIMEOUT:g}s.",
            "Typical values are 30 to 120 seconds.",
        ))
    return violations


def _check_prefixes(config: ExecutionConfig) -> list[Violation]:
    bad = [prefix for prefix in config.namespace_prefixes if not _IDENTIFIER_RE.match(prefix)]
    if not bad:
        return []
    return [Violation(
        "namespace_prefix_shape",
        f"Namespace prefixes must be plain identifiers: {', '.join(repr(p) for p in bad)}.",
        "Drop separators from the prefix, e.g. 'functions' rather than 'functions.'.",
    )]


def _check_examples(config: ExecutionConfig) -> list[Violation]:
    violations = []
    for number, example in enumerate(config.examples, start=1):
        problem = None
        if not example.steps:
            problem = "has no steps"
        elif not example.steps[0].lstrip().upper().startswith("THOUGHT:"):
            problem = "does not start with a THOUGHT: step"
        elif not any(step.lstrip().upper().startswith("FINAL:") for step in example.steps):
            problem = "has no FINAL: step"
        elif unknown := [step for step in example.steps if not _STEP_KEYWORD_RE.match(step)]:
            problem = f"has a step without a known keyword: {unknown[0][:40]!r}"
        if problem:
            violations.append(Violation(
                "example_shape",
                f"Example {number} ({example.task[:40]!r}) {problem}.",
                "Each example should go THOUGHT: ... ACTION: ... OBSERVATION: ... FINAL: ...",
            ))
    return violations


def _check_system_prompt(config: ExecutionConfig) -> list[Violation]:
    if not config.system_prompt:
        return []
    unknown = sorted(template_placeholders(config.system_prompt) - TEMPLATE_PLACEHOLDERS)
    if not unknown:
        return []
    return [Violation(
        "system_prompt_placeholders",
        f"Unknown placeholder(s) in system_prompt: {', '.join('{' + name + '}' for name in unknown)}.",
        f"Only {', '.join('{' + name + '}' for name in sorted(TEMPLATE_PLACEHOLDERS))} are substituted.",
    )]


def validate(config: ExecutionConfig, registry: ToolRegistry) -> list[Violation]:
    """Every violated rule, in a stable order. Empty means the config is usable."""
    return [
        *_check_tool_choice(config, registry),
        *_check_ranges(config),
        *_check_prefixes(config),
        *_check_examples(config),
        *_check_system_prompt(config),
    ]


def check(config: ExecutionConfig, registry: ToolRegistry) -> None:
    """Raise ConfigurationError if validate() reports anything."""
    violations = validate(config, registry)
    if violations:
        raise ConfigurationError(violations)
