"""Lenient JSON extraction for model output.

Models asked for "only JSON" still wrap it in markdown fences or prose often enough
that every analysis routine goes through `extract_json`.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_INLINE = re.compile(r"`([\s\S]*?)`")
_BRACES = re.compile(r"\{[\s\S]*\}")


class AnalysisError(RuntimeError):
    """An analysis routine could not produce a usable result."""


def _loads_object(text: str) -> dict[str, Any]:
    value = json.loads(text.strip())
    if not isinstance(value, dict):
        raise ValueError("expected a JSON object")
    return value


def extract_json(raw: str) -> dict[str, Any]:
    """Parse a JSON object out of `raw`.

    Tried in order: the whole text, a ```json fenced block, an inline backtick span,
    the outermost {...} span.

    Raises:
        ValueError: No candidate parsed as a JSON object.
    """

    candidates = [raw]
    for pattern in (_FENCED, _INLINE, _BRACES):
        match = pattern.search(raw)
        if match:
            candidates.append(match.group(1) if pattern.groups else match.group(0))

    for candidate in candidates:
        try:
            return _loads_object(candidate)
        except ValueError:
            continue
    raise ValueError("could not parse a JSON object from model output")
