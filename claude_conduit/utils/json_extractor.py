"""Pull a JSON document out of free-form assistant text."""

import json
import re
from typing import Any, Optional

from claude_conduit.errors import ParseError

# ```json ... ``` or bare ``` ... ```
FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\[\{].*?[\]\}])\s*```", re.DOTALL | re.IGNORECASE)

LEADING_LABELS = ("Here is the JSON:", "JSON:", "Output:", "Result:", "Response:")


def extract_json(content: str) -> str:
    """Extract a JSON document from content that may be wrapped in markdown or prose.

    Tried in order: the whole text, the first fenced code block, then the first
    balanced object/array starting anywhere in the text.

    Args:
        content: Assistant output that may contain JSON

    Returns:
        JSON text that json.loads accepts

    Raises:
        ParseError: If no valid JSON can be extracted
    """
    if not content or not content.strip():
        raise ParseError("Cannot parse JSON from empty output")

    content = content.strip()
    if _loads_ok(content):
        return content

    for match in FENCED_BLOCK.findall(content):
        if _loads_ok(match):
            return match

    cleaned = content
    for label in LEADING_LABELS:
        if cleaned.lower().startswith(label.lower()):
            cleaned = cleaned[len(label) :].strip()
            break

    start = 0
    while True:
        start = _next_opening(cleaned, start)
        if start < 0:
            break
        candidate = _balanced_prefix(cleaned[start:])
        if candidate is not None and _loads_ok(candidate):
            return candidate
        start += 1

    raise ParseError(
        f"Could not extract valid JSON from output: {content[:200]}...", raw=content
    )


def parse_json(content: str) -> Any:
    """Parse the JSON document embedded in content (see extract_json)."""
    return json.loads(extract_json(content))


def _loads_ok(text: str) -> bool:
    try:
        json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False
    return True


def _next_opening(text: str, start: int) -> int:
    positions = [p for p in (text.find("{", start), text.find("[", start)) if p >= 0]
    return min(positions) if positions else -1


def _balanced_prefix(text: str) -> Optional[str]:
    """Return text up to the bracket closing text[0], or None if unbalanced."""
    depth = 0
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return text[: i + 1]

    return None
