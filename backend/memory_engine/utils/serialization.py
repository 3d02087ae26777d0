"""JSON helpers built on orjson."""

from __future__ import annotations

from typing import Any

import orjson

from memory_engine.core.errors import DecodeFailure


def _strip_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def decode_json_object(raw: str | bytes | None) -> dict[str, Any]:
    """Decode a collaborator response that must be a single JSON object.

    A surrounding markdown code fence is tolerated. Anything else that is not
    a JSON object raises ``DecodeFailure`` carrying the raw text.
    """
    if raw is None:
        raise DecodeFailure("empty response", raw=None)
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    body = _strip_fence(text)
    if not body:
        raise DecodeFailure("empty response", raw=text)
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise DecodeFailure(f"response is not valid JSON: {exc}", raw=text) from exc
    if not isinstance(payload, dict):
        raise DecodeFailure("response is not a JSON object", raw=text)
    return payload


def dumps_pretty(payload: Any) -> str:
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2, default=str).decode("utf-8")


__all__ = ["decode_json_object", "dumps_pretty"]
