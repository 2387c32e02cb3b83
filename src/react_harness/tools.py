# tools.py
# Built-in tools. All callable implementations.
# The executor reaches these through a ToolRegistry and never calls them directly.
#
# Handlers take (args, deadline) and return a string. Failure is reported by
# raising; the executor turns the exception into an error Observation.

import ast
import math
import operator
import os
import statistics
from pathlib import Path
from typing import Any

from react_harness.deadline import Deadline
from react_harness.registry import Tool, ToolRegistry

WORKSPACE_DIR = Path(os.getenv("REACT_WORKSPACE", "./workspace"))
SUMMARY_LIMIT = 4000


# ---------------------------------------------------------------------------
# echo / summarize
# ---------------------------------------------------------------------------


def _tool_echo(args: dict, deadline: Deadline) -> str:
    return str(args.get("message", ""))


def _tool_summarize(args: dict, deadline: Deadline) -> str:
    text = args.get("text", "").strip()
    if not text:
        raise ValueError("no text provided.")
    return text[:SUMMARY_LIMIT]


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


def _tool_search(args: dict, deadline: Deadline) -> str:
    from ddgs import DDGS

    query = args.get("query", "").strip()
    if not query:
        raise ValueError("no query provided.")

    # Coerce the generator to a list to ensure actual execution
    results = list(DDGS().text(query, max_results=int(args.get("max_results", 4))))
    if not results:
        return "No results found."

    lines = []
    for r in results:
        lines.append(f"[{r.get('title', 'No Title')}]\n{r.get('body', '')}\nSource: {r.get('href', '')}")
    return "\n\n".join(lines)


def _tool_http_post(args: dict, deadline: Deadline) -> str:
    import httpx

    url = args.get("url", "").strip()
    payload = args.get("payload", {})
    if not url:
        raise ValueError("no URL provided.")
    response = httpx.post(url, json=payload, timeout=min(10.0, max(deadline.remaining(), 0.1)))
    return f"POST {url} → {response.status_code} ({len(response.content)} bytes)"


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


def _tool_file_write(args: dict, deadline: Deadline) -> str:
    """Write inside WORKSPACE_DIR only. Traversal out of it is refused."""
    path = args.get("path", "").strip()
    content = args.get("content", "")
    if not path:
        raise ValueError("no path provided.")

    root = WORKSPACE_DIR.resolve()
    target = (root / path).resolve()
    if not target.is_relative_to(root):
        raise PermissionError(f"SECURITY BLOCK: {path!r} resolves outside the workspace {root}.")

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return f"Wrote {len(content)} bytes to {target.relative_to(root)}."


# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------

MAX_EXPONENT = 1000
MAX_RESULT_BITS = 100_000


def _power(base: Any, exponent: Any) -> Any:
    """`**` bounded so an expression like 9**9**9**9 fails fast instead of running forever."""
    if abs(exponent) > MAX_EXPONENT:
        raise ValueError(f"exponent {exponent} is too large (limit {MAX_EXPONENT}).")
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
        if base.bit_length() * exponent > MAX_RESULT_BITS:
            raise ValueError("result of the power is too large.")
    return operator.pow(base, exponent)


_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: _power,
    ast.BitXor: _power,  # ^ as exponentiation
    ast.Mod: operator.mod,
    ast.FloorDiv: operator.floordiv,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_FUNCTIONS = {
    "abs": abs,
    "round": round,
    "max": max,
    "min": min,
    "sqrt": math.sqrt,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "log": math.log,
    "exp": math.exp,
    "pow": _power,
}

_CONSTANTS = {"pi": math.pi, "e": math.e}

_STATISTICS = {
    "mean": statistics.fmean,
    "median": statistics.median,
    "stdev": statistics.stdev,
    "variance": statistics.variance,
    "min": min,
    "max": max,
    "sum": math.fsum,
}


def _eval_node(node: ast.AST) -> Any:
    """Recursively evaluate an arithmetic AST node."""
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_eval_node(node.operand))
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in _FUNCTIONS:
        return _FUNCTIONS[node.func.id](*[_eval_node(arg) for arg in node.args])
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    raise ValueError(f"unsupported expression element: {ast.dump(node)[:60]}")


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def evaluate(expression: str) -> str:
    """Safely evaluate an arithmetic expression, e.g. '2 * (3 + 4) + sqrt(16)'."""
    if not expression.strip():
        raise ValueError("expression cannot be empty.")
    tree = ast.parse(expression.strip(), mode="eval")
    return _format_number(_eval_node(tree.body))


def _tool_math(args: dict, deadline: Deadline) -> str:
    operation = args.get("operation", "evaluate")
    if operation == "evaluate":
        return evaluate(str(args.get("expression", "")))
    if operation == "statistics":
        stat_type = args.get("stat_type", "mean")
        numbers = args.get("numbers") or []
        if stat_type not in _STATISTICS:
            raise ValueError(f"unknown stat_type {stat_type!r}; use one of {', '.join(_STATISTICS)}.")
        if not numbers:
            raise ValueError("statistics needs a non-empty 'numbers' array.")
        return _format_number(_STATISTICS[stat_type]([float(n) for n in numbers]))
    raise ValueError(f"unknown operation {operation!r}; use 'evaluate' or 'statistics'.")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


ECHO = Tool.define(
    "echo", "Repeat a message back verbatim.", _tool_echo,
    {"message": {"type": "string", "description": "Text to repeat.", "required": True}},
)

SEARCH = Tool.define(
    "search", "Search the web with DuckDuckGo and return the top results.", _tool_search,
    {
        "query": {"type": "string", "description": "Search query.", "required": True},
        "max_results": {"type": "integer", "description": "Number of results (default 4)."},
    },
)

SUMMARIZE = Tool.define(
    "summarize", f"Trim text to at most {SUMMARY_LIMIT} characters.", _tool_summarize,
    {"text": {"type": "string", "description": "Text to summarize.", "required": True}},
)

FILE_WRITE = Tool.define(
    "file_write", "Write text to a file inside the agent workspace.", _tool_file_write,
    {
        "path": {"type": "string", "description": "Path relative to the workspace.", "required": True},
        "content": {"type": "string", "description": "File content.", "required": True},
    },
)

HTTP_POST = Tool.define(
    "http_post", "POST a JSON payload to a URL and report the status code.", _tool_http_post,
    {
        "url": {"type": "string", "description": "Destination URL.", "required": True},
        "payload": {"type": "object", "description": "JSON body."},
    },
)

MATH = Tool.define(
    "math",
    "Mathematical operations: 'evaluate' an arithmetic expression, or 'statistics' "
    "(mean, median, stdev, variance, min, max, sum) over a list of numbers.",
    _tool_math,
    {
        "operation": {"type": "string", "description": "evaluate or statistics", "required": True},
        "expression": {"type": "string", "description": "Expression for evaluate, e.g. '2 * (3 + 4)'."},
        "stat_type": {"type": "string", "description": "Statistic for statistics."},
        "numbers": {"type": "array", "description": "Numbers for statistics."},
    },
)

BUILTIN_TOOLS: tuple[Tool, ...] = (ECHO, SEARCH, SUMMARIZE, FILE_WRITE, HTTP_POST, MATH)


def default_registry() -> ToolRegistry:
    return ToolRegistry(BUILTIN_TOOLS)
