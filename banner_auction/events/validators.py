"""Schema validation wrappers for webhook payloads."""

from __future__ import annotations

from typing import Any

from ..validation.validator import SchemaRegistry

EVENT_SCHEMA_MAP = {
    "issue_comment": "issue_comment_event",
}


def validate_delivery(schemas: SchemaRegistry, event_name: str, payload: Any) -> str | None:
    """Validate a supported delivery; returns None for events this server ignores."""
    schema = EVENT_SCHEMA_MAP.get(event_name)
    if not schema:
        return None
    schemas.validate(schema, payload)
    return schema
