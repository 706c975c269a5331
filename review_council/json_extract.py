"""Pull a JSON object out of free-form model output."""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```json\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```\w*\s*\n?(.*?)```", re.DOTALL)


def _try_load(candidate: str) -> dict[str, Any] | None:
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _first_to_last_brace(text: str) -> str | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def _balanced_objects(text: str):
    """Yield every top-level ``{...}`` span, respecting strings and escapes."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = depth > 0
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]


def extract_json(text: str | None) -> dict[str, Any] | None:
    """Return the first JSON object found in ``text``, or None.

    Tried in order: a ```json fence, any fence, first ``{`` to last ``}``,
    a balanced-brace scan, then the whole text.
    """
    if not text or not text.strip():
        return None

    for match in _JSON_FENCE_RE.finditer(text):
        data = _try_load(match.group(1).strip())
        if data is not None:
            logger.debug("Extracted JSON from ```json fence")
            return data

    for match in _ANY_FENCE_RE.finditer(text):
        data = _try_load(match.group(1).strip())
        if data is not None:
            logger.debug("Extracted JSON from code fence")
            return data

    span = _first_to_last_brace(text)
    if span is not None:
        data = _try_load(span)
        if data is not None:
            logger.debug("Extracted JSON from brace span")
            return data

    for candidate in _balanced_objects(text):
        data = _try_load(candidate)
        if data is not None:
            logger.debug("Extracted JSON from balanced-brace scan")
            return data

    return _try_load(text.strip())
