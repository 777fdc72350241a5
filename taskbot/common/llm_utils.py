"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, Iterator, Optional

_CLOSERS = {"{": "}", "[": "]"}


def find_balanced(raw: str, opener: str, start: int = 0) -> Optional[str]:
    """Return the first balanced ``{...}`` or ``[...]`` region of ``raw``.

    The scan begins at the first ``opener`` at or after ``start``. Brackets
    inside JSON string literals are ignored. Returns None when no opener is
    found or the region never closes.
    """
    if opener not in _CLOSERS:
        raise ValueError(f"Unsupported opener: {opener!r}")
    if not raw:
        return None

    start = raw.find(opener, start)
    if start < 0:
        return None

    stack = []
    in_string = False
    escaped = False
    for i in range(start, len(raw)):
        ch = raw[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return raw[start:i + 1]
    return None


def iter_json_regions(raw: str, opener: str) -> Iterator[Any]:
    """Yield every balanced region opened by ``opener`` that parses as JSON.

    Regions are tried from each successive opener, so prose such as
    "see [1]" before the payload does not hide it.
    """
    if not raw:
        return
    pos = raw.find(opener)
    while pos >= 0:
        region = find_balanced(raw, opener, pos)
        if region is not None:
            try:
                yield json.loads(region)
            except json.JSONDecodeError:
                pass
        pos = raw.find(opener, pos + 1)


def parse_json_region(raw: str, opener: str) -> Optional[Any]:
    """Parse the first balanced region opened by ``opener`` that is valid JSON."""
    return next(iter_json_regions(raw, opener), None)
