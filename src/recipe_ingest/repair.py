"""
Best-effort repair of JSON replies from chat models.

Each helper fixes exactly one failure mode and assumes the rest of the text
is mostly well formed, so ``repair_json`` applies them in a fixed order:
truncation trim before bracket balancing, bracket balancing before key
quoting. This is not a parser; a reply it cannot rescue is reported with
JSONRepairError and the caller falls back to a synthetic record.
"""
import json
import logging
import re
from typing import Any, Callable

logger = logging.getLogger(__name__)

REASONING_END_MARKER = "</think>"

_FENCE_OPEN = re.compile(r"^\s*```(?:json)?[ \t]*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*$")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_STRUCTURAL = re.compile(r"[,\]}]")
_STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\\n])*"')
_SINGLE_QUOTED = re.compile(r"'((?:\\.|[^'\\\n])*)'")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$]*)(\s*:)")
_STRING_THEN_OBJECT = re.compile(r'"[ \t]*\n(\s*)\{')
_OBJECT_THEN_OBJECT = re.compile(r"\}[ \t]*\n(\s*)\{")
_LINE_TRAILING_COMMA = re.compile(r",\s*$")

# last lines a reply cut off by the token budget tends to end on
_INCOMPLETE_TAIL = (
    re.compile(r'^"[^"]*$'),                  # unterminated string
    re.compile(r'^"[^"]*":\s*"[^"]*$'),       # "key": "val
    re.compile(r'^"[^"]*":\s*$'),             # "key":
    re.compile(r'^"[^"]*":\s*[{\[]$'),        # "key": { with nothing inside
    re.compile(r'^\{\s*"[^"]*":\s*"[^"]*$'),  # {"key": "val
    re.compile(r"^\{$"),                      # bare {
    re.compile(r"^,?$"),                      # blank line or lone comma
)

_BARE_STRING_LINE = re.compile(r'^"[^"]*"$')

_CLOSERS = {"{": "}", "[": "]"}


class JSONRepairError(ValueError):
    def __init__(self, message: str, *, raw: str, repaired: str | None = None):
        super().__init__(message)
        self.raw = raw
        self.repaired = repaired


def strip_code_fence(text: str) -> str:
    text = _FENCE_OPEN.sub("", text, count=1)
    return _FENCE_CLOSE.sub("", text, count=1).strip()


def strip_reasoning(text: str, marker: str = REASONING_END_MARKER) -> str:
    """Keep only what follows the end of a model's reasoning block."""
    _, found, answer = text.partition(marker)
    return answer.strip() if found else text


def clean_reply(text: str) -> str:
    return strip_reasoning(strip_code_fence(text.strip()))


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def trim_truncated_tail(text: str) -> str:
    lines = text.split("\n")
    trimmed = False
    while lines and _is_incomplete_tail(lines):
        lines.pop()
        trimmed = True

    if trimmed and lines:
        lines[-1] = _LINE_TRAILING_COMMA.sub("", lines[-1])
    return "\n".join(lines)


def close_unterminated_strings(text: str) -> str:
    fixed = []
    for line in text.split("\n"):
        quotes = _quote_positions(line)
        if len(quotes) % 2:
            nxt = _STRUCTURAL.search(line, quotes[-1] + 1)
            if nxt:
                line = line[: nxt.start()] + '"' + line[nxt.start():]
            else:
                line = line + '"'
        fixed.append(line)
    return "\n".join(fixed)


def balance_brackets(text: str) -> str:
    """Append the closers still missing at the end, innermost first."""
    stack: list[str] = []
    in_string = escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in "}]" and stack and _CLOSERS[stack[-1]] == ch:
            stack.pop()

    return text + "".join(_CLOSERS[ch] for ch in reversed(stack))


def fix_common_format_errors(text: str) -> str:
    text = _outside_strings(text, _double_quote_single_quoted)
    text = _outside_strings(text, lambda s: _BARE_KEY.sub(r'\1"\2"\3', s))
    text = _outside_strings(text, remove_trailing_commas)
    text = _STRING_THEN_OBJECT.sub(r'",\n\1{', text)
    return _OBJECT_THEN_OBJECT.sub(r"},\n\1{", text)


def repair_json(text: str, *, truncated: bool = False) -> str:
    if _parses(text):
        return text

    fixed = clean_reply(text)
    fixed = remove_trailing_commas(fixed)
    if truncated:
        fixed = trim_truncated_tail(fixed)
    fixed = close_unterminated_strings(fixed)
    fixed = balance_brackets(fixed)
    return fix_common_format_errors(fixed)


def parse_json_reply(raw: str, *, truncated: bool = False) -> dict[str, Any]:
    """
    Turn a raw model reply into a JSON object.
    - Fences and reasoning preambles are stripped before the first attempt
    - On failure the repair pipeline runs once and parsing is retried
    - Raises JSONRepairError when both attempts fail or the result is not an object
    """
    text = clean_reply(raw)
    try:
        return _as_object(json.loads(text), raw=raw)
    except json.JSONDecodeError as e:
        logger.warning("Reply is not valid JSON (%s); attempting repair", e)

    repaired = repair_json(text, truncated=truncated)
    try:
        result = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise JSONRepairError(f"JSON repair failed: {e}", raw=raw, repaired=repaired) from e

    logger.info("JSON repair succeeded")
    return _as_object(result, raw=raw, repaired=repaired)


def _as_object(value: Any, *, raw: str, repaired: str | None = None) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise JSONRepairError(
            f"Expected a JSON object, got {type(value).__name__}", raw=raw, repaired=repaired
        )
    return value


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


def _is_incomplete_tail(lines: list[str]) -> bool:
    last = lines[-1].strip()
    if any(p.match(last) for p in _INCOMPLETE_TAIL):
        return True
    # a key cut off before its colon; only after a finished member
    return bool(_BARE_STRING_LINE.match(last)) and len(lines) > 1 and lines[-2].rstrip().endswith(",")


def _quote_positions(line: str) -> list[int]:
    positions = []
    escaped = False
    for i, ch in enumerate(line):
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            positions.append(i)
    return positions


def _double_quote_single_quoted(segment: str) -> str:
    return _SINGLE_QUOTED.sub(
        lambda m: '"' + m.group(1).replace("\\'", "'").replace('"', '\\"') + '"',
        segment,
    )


def _outside_strings(text: str, fix: Callable[[str], str]) -> str:
    parts = []
    pos = 0
    for m in _STRING_LITERAL.finditer(text):
        parts.append(fix(text[pos: m.start()]))
        parts.append(m.group(0))
        pos = m.end()
    parts.append(fix(text[pos:]))
    return "".join(parts)
