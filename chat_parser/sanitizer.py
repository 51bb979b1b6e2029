"""
Best-effort cleanup of raw model output before strict JSON parsing, plus the
line-level key/value recovery used when the cleaned text still fails to parse.
"""

import json
import re
from typing import List, Optional


OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
CLOSING_FENCE = re.compile(r"\n?[ \t]*```\s*$")
BRACKET_SPAN = re.compile(r"\[.*\]", re.DOTALL)

RECOVERABLE_KEYS = ("sender", "timestamp", "message")
KEY_VALUE_PATTERNS = {
    key: re.compile(rf'"{key}"\s*:\s*"((?:[^"\\]|\\.)*)"')
    for key in RECOVERABLE_KEYS
}

PREVIEW_LENGTH = 300


def sanitize_response(raw: str) -> str:
    """
    Coerce raw model text towards a JSON array. Does not guarantee validity.
    """
    text = raw.strip()

    if text.startswith("```"):
        text = OPENING_FENCE.sub("", text, count=1)
        text = CLOSING_FENCE.sub("", text, count=1)
        text = text.strip()

    span = BRACKET_SPAN.search(text)
    if span:
        text = span.group(0)

    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if starts:
        text = text[min(starts):]
    end = max(text.rfind("]"), text.rfind("}"))
    if end != -1:
        text = text[: end + 1]

    return text


def parse_json_array(raw: str) -> object:
    """Sanitize then strictly parse. Raises json.JSONDecodeError on invalid JSON."""
    return json.loads(sanitize_response(raw))


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value


def scan_key_values(raw: str) -> Optional[List[dict]]:
    """
    Rebuild partial records from `"key": "value"` pairs found line by line.

    A line contributes a record when at least one of sender, timestamp or
    message appears on it. Returns None when no line matched.
    """
    records = []
    for line in raw.splitlines():
        found = {}
        for key, pattern in KEY_VALUE_PATTERNS.items():
            match = pattern.search(line)
            if match:
                found[key] = _unescape(match.group(1))
        if found:
            records.append({
                "sender": found.get("sender", "Unknown"),
                "timestamp": found.get("timestamp", "Unknown"),
                "message": found.get("message", ""),
            })
    return records or None


def diagnose_response(raw: str) -> str:
    if "```" in raw:
        return "response contains markdown code fencing"
    if "[" not in raw or "]" not in raw:
        return "response is missing array brackets"
    return "response has a malformed JSON structure"


def preview(raw: str, length: int = PREVIEW_LENGTH) -> str:
    if len(raw) <= length:
        return raw
    return raw[:length] + "..."
