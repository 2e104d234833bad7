"""Tolerant JSON recovery from free-form model text.

Models often wrap a JSON payload in prose or markdown fences::

    Here you go:
    ```json
    {"shows": [...]}
    ```

:func:`extract_json_payload` strips the fences when present, then walks
the *balanced* ``{...}`` or ``[...]`` spans left to right (braces inside
string literals are skipped) and returns the first one that
:func:`json.loads` accepts.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any

from karaoke_scout.utils.errors import MalformedModelOutputError

_JSON_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or *text* unchanged."""
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _next_opener(text: str, start: int) -> int:
    for idx in range(start, len(text)):
        if text[idx] in _CLOSERS:
            return idx
    return -1


def _balanced_from(text: str, start: int) -> str | None:
    stack: list[str] = []
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not stack or stack[-1] != char:
                return None
            stack.pop()
            if not stack:
                return text[start : idx + 1]
    return None


def find_balanced_span(text: str, start: int = 0) -> str | None:
    """Return the outermost balanced JSON object/array at the first opener.

    Only openers at or after *start* are considered.  Brackets inside
    double-quoted strings (with backslash escapes) are ignored.  Returns
    ``None`` when no opener is found or that opener is never closed.
    """
    opener = _next_opener(text, start)
    if opener < 0:
        return None
    return _balanced_from(text, opener)


def iter_balanced_spans(text: str) -> Iterator[str]:
    """Yield the balanced span at every opener in *text*, left to right.

    Prose such as "see [below]" yields a span that is not JSON; callers
    try each candidate until one parses.
    """
    opener = _next_opener(text, 0)
    while opener >= 0:
        span = _balanced_from(text, opener)
        if span is not None:
            yield span
        opener = _next_opener(text, opener + 1)


def extract_json_payload(text: str, provider_name: str | None = None) -> Any:
    """Parse the JSON payload embedded in a model response.

    Parameters
    ----------
    text:
        Raw model output.
    provider_name:
        Attached to the raised error for log context.

    Returns
    -------
    Any
        The decoded ``dict`` or ``list``.

    Raises
    ------
    MalformedModelOutputError
        If no balanced span exists or none of the spans is valid JSON.
    """
    if not text or not text.strip():
        raise MalformedModelOutputError("Model returned an empty response", provider_name)

    body = strip_code_fences(text)
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        pass

    last_error: json.JSONDecodeError | None = None
    sources = (body,) if body == text.strip() else (body, text)
    for source in sources:
        for span in iter_balanced_spans(source):
            try:
                return json.loads(span)
            except json.JSONDecodeError as exc:
                last_error = exc

    if last_error is None:
        raise MalformedModelOutputError(
            "No JSON object or array found in model response", provider_name
        )
    raise MalformedModelOutputError(
        f"Model response JSON could not be parsed: {last_error.msg}", provider_name
    ) from last_error
