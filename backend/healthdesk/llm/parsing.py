"""Shared parsing of JSON objects embedded in free-form model output."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T
    rejected_keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParseFailed:
    reason: str
    raw: str


ParseResult = Parsed[T] | ParseFailed


def extract_json_object(raw: str) -> dict[str, Any] | None:
    """Return the first top-level ``{...}`` object found in ``raw``.

    Models often wrap JSON in prose or code fences; braces inside JSON strings
    are skipped while scanning for the matching close brace. When the outer
    braces never balance, the earliest balanced object inside them is used.
    Each character is scanned once.
    """
    start = raw.find("{")
    while start != -1:
        opened: list[int] = []
        spans: list[tuple[int, int]] = []
        in_string = False
        escaped = False
        for idx in range(start, len(raw)):
            ch = raw[idx]
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
            elif ch == "{":
                opened.append(idx)
            elif ch == "}":
                spans.append((opened.pop(), idx + 1))
                if not opened:
                    break
        else:
            # Ran off the end: nothing after this point can close
            return _first_object(raw, spans)

        found = _first_object(raw, spans)
        if found is not None:
            return found
        start = raw.find("{", spans[-1][1])
    return None


def _first_object(raw: str, spans: list[tuple[int, int]]) -> dict[str, Any] | None:
    for begin, end in sorted(spans):
        try:
            candidate = json.loads(raw[begin:end])
        except json.JSONDecodeError:
            continue
        if isinstance(candidate, dict):
            return candidate
    return None


def parse_model_output(raw: str, defaults: T) -> ParseResult:
    """Parse ``raw`` against the schema of ``defaults``, field by field.

    Keys that are present and valid replace the default; missing or invalid
    keys keep it. Returns ParseFailed when no JSON object can be found.
    """
    data = extract_json_object(raw)
    if data is None:
        logger.debug("No JSON object in model output: %r", raw[:200])
        return ParseFailed(reason="no JSON object found", raw=raw)

    model_cls = type(defaults)
    # Only explicitly set values are re-validated; untouched defaults stay as they are.
    merged = defaults.model_dump(exclude_unset=True)
    rejected: list[str] = []
    for key in model_cls.model_fields:
        if key not in data:
            continue
        candidate = {**merged, key: data[key]}
        try:
            model_cls.model_validate(candidate)
        except ValidationError:
            rejected.append(key)
        else:
            merged = candidate

    if rejected:
        logger.debug("Rejected invalid keys from model output: %s", rejected)
    return Parsed(value=model_cls.model_validate(merged), rejected_keys=tuple(rejected))
