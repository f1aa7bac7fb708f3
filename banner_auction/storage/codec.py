"""Encoding of persisted JSON documents."""

from __future__ import annotations

from typing import Any

import orjson
from jsonschema import ValidationError

from ..validation.validator import SchemaRegistry

_ORJSON_OPTIONS = orjson.OPT_INDENT_2 | orjson.OPT_STRICT_INTEGER


class CorruptedStateError(RuntimeError):
    """Raised when a persisted document cannot be parsed or has the wrong shape."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


def encode_document(payload: dict[str, Any]) -> bytes:
    return orjson.dumps(payload, option=_ORJSON_OPTIONS) + b"\n"


def is_blank(raw: bytes | None) -> bool:
    return raw is not None and not raw.strip()


def decode_document(
    key: str,
    raw: bytes,
    *,
    schemas: SchemaRegistry | None = None,
    schema_name: str | None = None,
) -> dict[str, Any]:
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise CorruptedStateError(key, f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise CorruptedStateError(key, "document is not a JSON object")
    if schemas is not None and schema_name:
        try:
            schemas.validate(schema_name, payload)
        except ValidationError as exc:
            raise CorruptedStateError(key, exc.message) from exc
    return payload
