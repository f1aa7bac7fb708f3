"""Outcome reporting shared by the auction services."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..validation.bids import FieldError


class FailureReason(str, Enum):
    INVALID_BID = "invalid_bid"
    BID_TOO_LOW = "bid_too_low"
    NO_OPEN_PERIOD = "no_open_period"
    PERIOD_NOT_OPEN = "period_not_open"
    PERIOD_ALREADY_OPEN = "period_already_open"
    COMMENT_NOT_FOUND = "comment_not_found"
    BID_NOT_FOUND = "bid_not_found"
    CORRUPTED = "corrupted"
    PAYMENT_UNAVAILABLE = "payment_unavailable"
    ARCHIVE_CONFLICT = "archive_conflict"


@dataclass
class OperationResult:
    success: bool
    message: str
    reason: FailureReason | None = None
    errors: list[FieldError] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failed(
        cls,
        reason: FailureReason | str,
        message: str,
        errors: list[FieldError] | None = None,
    ) -> "OperationResult":
        return cls(
            success=False,
            message=message,
            reason=FailureReason(reason),
            errors=list(errors or []),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.reason is not None:
            payload["reason"] = self.reason.value
        if self.errors:
            payload["errors"] = [error.to_dict() for error in self.errors]
        payload.update(self.data)
        return payload
