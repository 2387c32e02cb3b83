# prompts.py
# System prompts, few-shot examples, iteration reminders and the correction
# prompt. Strategies import from here; nothing in this module talks to a model.

import re

from react_harness.models import Example, ExecutionConfig, ToolChoice
from react_harness.registry import ToolRegistry

TEMPLATE_PLACEHOLDERS = frozenset({"tools", "tool_names", "examples"})

# ---------------------------------------------------------------------------
# Text mode
# ---------------------------------------------------------------------------

TEXT_SYSTEM_PROMPT = """\
You are a helpful assistant that solves problems with the ReAct (Reason + Act) pattern.

Respond with EXACTLY ONE of these lines per turn:

THOUGHT: <your reasoning about what to do next>
ACTION: tool_name(arg1="value1", arg2="value2")
FINAL: <your final answer to the user>

Rules:
1. Start with a THOUGHT to reason about the problem.
2. Use ACTION to call one of the available tools when you need information.
3. After an ACTION, wait: the system replies with "OBSERVATION: <result>".
4. Use FINAL as soon as you have enough information to answer.
5. Never write OBSERVATION lines yourself.
{tool_rule}
Available tools:
{tools}
{examples}"""

TOOL_RULE_REQUIRED = "6. You must call at least one tool with ACTION before giving a FINAL answer.\n"
TOOL_RULE_NONE = "6. Tool use is disabled for this task. Do not emit ACTION lines.\n"

CORRECTION_PROMPT = """\
Your previous response could not be parsed.

Error: {error}

Please follow the EXACT format, one keyword per response:

THOUGHT: [your reasoning]
ACTION: tool_name(arg1="value1", arg2="value2")
FINAL: [your final answer]

Use UPPERCASE keywords and put tool arguments in parentheses with quoted strings."""

TOOL_ERROR_GUIDANCE = """\

Please either:
1. Fix the arguments and try again
2. Use a different tool
3. Provide a FINAL answer based on the information you already have"""

# ---------------------------------------------------------------------------
# Native mode
# ---------------------------------------------------------------------------

NATIVE_SYSTEM_PROMPT = """\
You are an intelligent assistant that uses structured function calling to solve problems step by step.

AVAILABLE FUNCTIONS:
- think(reasoning): express your step-by-step reasoning before taking action
- use_tool(tool_name, tool_arguments): execute one of the registered tools
- final_answer(answer, confidence): give your final response, confidence between 0.0 and 1.0

Registered tools: {tool_names}

WORKFLOW:
1. Call think() to reason about the problem.
2. If you need information or computation, call use_tool() with the tool's expected arguments.
3. Keep thinking and using tools as needed.
4. Finish with final_answer(); this ends the conversation.

Only use tools that are registered. Call one function per turn.
{examples}"""

META_TOOLS_DESCRIPTION = {
    "think": "Express your reasoning about the current task before acting or answering.",
    "use_tool": "Execute one of the available tools.",
    "final_answer": "Provide the final answer to the user's question. This ends the task.",
}

# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------

REMINDERS = {
    2: "REMINDER: 2 iterations remain. Start wrapping up and prepare your final answer.",
    1: "URGENT: 1 iteration remains after this one. Give your final answer next.",
    0: "CRITICAL: this is the LAST iteration. You MUST give your final answer now.",
}


# ---------------------------------------------------------------------------
# Few-shot examples
# ---------------------------------------------------------------------------

EXAMPLE_SETS: dict[str, tuple[Example, ...]] = {
    "search": (
        Example(
            task="What is the capital of France?",
            steps=(
                "THOUGHT: I need to search for information about France's capital.",
                'ACTION: search(query="capital of France")',
                "OBSERVATION: Paris is the capital and largest city of France.",
                "FINAL: The capital of France is Paris.",
            ),
            description="Simple fact lookup",
        ),
    ),
    "calculation": (
        Example(
            task="What is 25% of 80?",
            steps=(
                "THOUGHT: 25 percent of 80 is 0.25 * 80.",
                'ACTION: math(operation="evaluate", expression="0.25 * 80")',
                "OBSERVATION: 20",
                "FINAL: 25% of 80 is 20.",
            ),
            description="Percentage calculation",
        ),
        Example(
            task="Solve: 2x + 5 = 15",
            steps=(
                "THOUGHT: Subtract 5 from both sides first.",
                'ACTION: math(operation="evaluate", expression="15 - 5")',
                "OBSERVATION: 10",
                "THOUGHT: Now divide both sides by 2.",
                'ACTION: math(operation="evaluate", expression="10 / 2")',
                "OBSERVATION: 5",
                "FINAL: x = 5",
            ),
            description="Multi-step equation solving",
        ),
    ),
    "research": (
        Example(
            task="Compare the populations of Tokyo and New York",
            steps=(
                "THOUGHT: I need the population of both cities.",
                'ACTION: search(query="Tokyo metropolitan population")',
                "OBSERVATION: Tokyo has about 37 million people in its metropolitan area.",
                "THOUGHT: Now New York.",
                'ACTION: search(query="New York metropolitan population")',
                "OBSERVATION: New York has about 20 million people in its metropolitan area.",
                "FINAL: Tokyo (about 37 million) is roughly 1.85 times as populous as New York (about 20 million).",
            ),
            description="Multi-source comparison",
        ),
    ),
}


def example_set(name: str) -> tuple[Example, ...]:
    try:
        return EXAMPLE_SETS[name]
    except KeyError:
        raise KeyError(f"Unknown example set {name!r}; available: {', '.join(EXAMPLE_SETS)}") from None


def format_examples(examples: tuple[Example, ...] | list[Example]) -> str:
    if not examples:
        return ""
    parts = ["Here are some examples to guide your reasoning:", ""]
    for i, example in enumerate(examples, start=1):
        parts.append(f"Example {i}:")
        parts.append(f"Task: {example.task}")
        parts.append("")
        parts.extend(example.steps)
        parts.append("")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def format_tools(registry: ToolRegistry) -> str:
    if not registry:
        return "(No tools available)"
    return "\n".join(f"- {d.signature()}: {d.description}" for d in registry.descriptors())


def template_placeholders(template: str) -> set[str]:
    """Placeholder names used in a custom system prompt template."""
    return set(re.findall(r"\{([A-Za-z_][A-Za-z0-9_]*)\}", template))


def render_template(template: str, **values: str) -> str:
    # str.format would choke on literal braces (JSON snippets) in custom prompts.
    return re.sub(
        r"\{(" + "|".join(TEMPLATE_PLACEHOLDERS) + r")\}",
        lambda m: values.get(m.group(1), ""),
        template,
    )


def text_system_prompt(config: ExecutionConfig, registry: ToolRegistry) -> str:
    tools_disabled = config.tool_choice == ToolChoice.NONE
    values = {
        "tools": "(Tool use disabled)" if tools_disabled else format_tools(registry),
        "tool_names": "" if tools_disabled else ", ".join(registry.names()),
        "examples": format_examples(config.examples),
    }
    if config.system_prompt:
        return render_template(config.system_prompt, **values)

    tool_rule = ""
    if config.tool_choice == ToolChoice.REQUIRED:
        tool_rule = TOOL_RULE_REQUIRED
    elif tools_disabled:
        tool_rule = TOOL_RULE_NONE
    return render_template(TEXT_SYSTEM_PROMPT.replace("{tool_rule}", tool_rule), **values).rstrip() + "\n"


def native_system_prompt(config: ExecutionConfig, registry: ToolRegistry) -> str:
    values = {
        "tools": format_tools(registry),
        "tool_names": ", ".join(registry.names()) or "none",
        "examples": format_examples(config.examples),
    }
    template = config.system_prompt or NATIVE_SYSTEM_PROMPT
    return render_template(template, **values).rstrip() + "\n"


def correction_prompt(error: str) -> str:
    return CORRECTION_PROMPT.format(error=error)


def reminder_for(remaining: int) -> str | None:
    return REMINDERS.get(remaining)
