# parser.py
# Text-mode action parser.
#
# Decodes the line convention the text strategy teaches the model:
#
#   THOUGHT: <text>
#   ACTION: <name>(<args>)
#   FINAL: <answer>
#
# Nothing here raises on bad input. A line or response that does not fit the
# grammar comes back as Unparseable so the controller can apply one uniform
# strict/lenient policy to it.

import json
import re

from react_harness.models import Action, Final, Observation, Thought, Unparseable

# A tool identifier may carry namespace separators (functions.math,
# tools:search) so qualified names are captured whole instead of truncated.
IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_]*(?:[.:/-][A-Za-z_][A-Za-z0-9_]*)*"

_THOUGHT_RE = re.compile(r"^\s*THOUGHT\s*:\s*(.*)$", re.IGNORECASE)
_FINAL_RE = re.compile(r"^\s*FINAL(?:\s+ANSWER)?\s*:\s*(.*)$", re.IGNORECASE)
_OBSERVATION_RE = re.compile(r"^\s*OBSERVATION\s*:\s*(.*)$", re.IGNORECASE)
_ACTION_RE = re.compile(rf"^\s*ACTION\s*:\s*({IDENTIFIER})\s*(?:\((.*)\))?\s*$", re.IGNORECASE)
_ACTION_KEYWORD_RE = re.compile(r"^\s*ACTION\s*:", re.IGNORECASE)
_KEYWORD_RE = re.compile(r"^\s*(THOUGHT|ACTION|FINAL|OBSERVATION)(?:\s+ANSWER)?\s*:", re.IGNORECASE)

# key="value" | key='value' | key=bare, with commas allowed inside quotes.
_KV_RE = re.compile(
    r"""\s*([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)'|([^,]*))\s*(?:,|$)"""
)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*$")


# ---------------------------------------------------------------------------
# Arguments
# ---------------------------------------------------------------------------


def _coerce(value: str):
    """Bare values become int, float or bool when they look like one."""
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none"):
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def parse_arguments(text: str | None) -> dict | Unparseable:
    """
    Decode the parenthesised argument string of an ACTION line.

    Accepts a JSON object or comma-separated key=value pairs. Quoted values
    stay strings; bare values are coerced.
    """
    text = (text or "").strip()
    if not text:
        return {}

    if text.startswith("{"):
        try:
            decoded = json.loads(text, strict=False)
        except json.JSONDecodeError as exc:
            return Unparseable(reason=f"arguments are not valid JSON: {exc}", text=text)
        if not isinstance(decoded, dict):
            return Unparseable(reason="JSON arguments must be an object", text=text)
        return decoded

    args: dict = {}
    position = 0
    while position < len(text):
        match = _KV_RE.match(text, position)
        if match is None or match.end() == position:
            return Unparseable(reason=f"could not parse arguments near {text[position:]!r}", text=text)
        key, double, single, bare = match.groups()
        if double is not None:
            args[key] = double.replace('\\"', '"')
        elif single is not None:
            args[key] = single.replace("\\'", "'")
        else:
            args[key] = _coerce(bare.strip())
        position = match.end()
    return args


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


def parse_action(line: str) -> Action | Unparseable:
    match = _ACTION_RE.match(line)
    if match is None:
        return Unparseable(reason="ACTION line does not match 'ACTION: name(args)'", text=line.strip())
    name, raw = match.group(1), match.group(2)
    args = parse_arguments(raw)
    if isinstance(args, Unparseable):
        return Unparseable(reason=f"ACTION {name}: {args.reason}", text=line.strip())
    return Action(tool_name=name, arguments=args, raw=raw.strip() if raw else None)


def parse_line(line: str) -> Thought | Action | Final | Observation | Unparseable:
    """Classify a single line. Never raises."""
    if match := _THOUGHT_RE.match(line):
        text = match.group(1).strip()
        return Thought(text=text) if text else Unparseable(reason="empty THOUGHT", text=line.strip())
    if _ACTION_KEYWORD_RE.match(line):
        return parse_action(line)
    if match := _FINAL_RE.match(line):
        answer = match.group(1).strip()
        return Final(answer=answer) if answer else Unparseable(reason="empty FINAL", text=line.strip())
    if match := _OBSERVATION_RE.match(line):
        return Observation(tool_name="", result=match.group(1).strip())
    return Unparseable(reason="line does not start with THOUGHT:, ACTION: or FINAL:", text=line.strip())


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def _strip_fences(text: str) -> list[str]:
    return [line for line in text.strip().splitlines() if not _FENCE_RE.match(line.strip())]


def _continuation(lines: list[str], start: int) -> list[str]:
    """Lines after `start` up to the next keyword line."""
    tail = []
    for line in lines[start + 1:]:
        if _KEYWORD_RE.match(line):
            break
        tail.append(line)
    return tail


def parse_response(text: str) -> Thought | Action | Final | Unparseable:
    """
    Decode a whole model turn into exactly one step.

    Precedence: FINAL beats ACTION beats THOUGHT, so a turn that both
    answers and requests a tool is treated as answered. Only the first
    ACTION in a turn is honoured. Observations written by the model are
    ignored; those come from the harness.
    """
    lines = _strip_fences(text or "")
    if not any(line.strip() for line in lines):
        return Unparseable(reason="empty response", text=text or "")

    thought: tuple[int, Thought] | None = None
    action: Action | Unparseable | None = None

    for index, line in enumerate(lines):
        step = parse_line(line)
        if isinstance(step, Final):
            answer = "\n".join([step.answer, *_continuation(lines, index)]).strip()
            return Final(answer=answer)
        if action is None and _ACTION_KEYWORD_RE.match(line):
            action = step
        elif thought is None and isinstance(step, Thought):
            thought = (index, step)

    if action is not None:
        return action
    if thought is not None:
        index, step = thought
        body = "\n".join([step.text, *_continuation(lines, index)]).strip()
        return Thought(text=body)

    preview = " ".join((text or "").split())[:120]
    return Unparseable(reason=f"response contains no THOUGHT:, ACTION: or FINAL: line: {preview!r}", text=text)
