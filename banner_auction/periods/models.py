"""Bidding period data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..transport.timestamps import format_timestamp
from .fsm import BidStatus


class PeriodStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class PaymentStatus(str, Enum):
    PAID = "paid"
    FAILED = "failed"
    PENDING = "pending"


def period_id_for(start: datetime) -> str:
    return f"period-{start.date().isoformat()}"


@dataclass
class Bid:
    bidder: str
    amount: float
    banner_url: str
    destination_url: str
    contact: str
    status: BidStatus
    comment_id: int
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "bidder": self.bidder,
            "amount": self.amount,
            "banner_url": self.banner_url,
            "destination_url": self.destination_url,
            "contact": self.contact,
            "status": self.status.value,
            "comment_id": self.comment_id,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bid":
        return cls(
            bidder=data["bidder"],
            amount=data["amount"],
            banner_url=data["banner_url"],
            destination_url=data["destination_url"],
            contact=data["contact"],
            status=BidStatus(data["status"]),
            comment_id=int(data["comment_id"]),
            timestamp=data["timestamp"],
        )


@dataclass
class PaymentRecord:
    payment_status: PaymentStatus
    amount_cents: int | None = None
    stripe_customer_id: str | None = None
    stripe_payment_intent_id: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"payment_status": self.payment_status.value}
        for key in (
            "amount_cents",
            "stripe_customer_id",
            "stripe_payment_intent_id",
            "failure_code",
            "failure_message",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentRecord":
        return cls(
            payment_status=PaymentStatus(data["payment_status"]),
            amount_cents=data.get("amount_cents"),
            stripe_customer_id=data.get("stripe_customer_id"),
            stripe_payment_intent_id=data.get("stripe_payment_intent_id"),
            failure_code=data.get("failure_code"),
            failure_message=data.get("failure_message"),
        )


@dataclass
class BiddingPeriod:
    period_id: str
    status: PeriodStatus
    start_date: str
    end_date: str
    issue_number: int
    issue_url: str
    created_at: str
    bids: list[Bid] = field(default_factory=list)
    issue_node_id: str | None = None
    payment: PaymentRecord | None = None

    @property
    def is_open(self) -> bool:
        return self.status is PeriodStatus.OPEN

    def find_bid(self, comment_id: int) -> Bid | None:
        return next((bid for bid in self.bids if bid.comment_id == comment_id), None)

    def bids_with_status(self, status: BidStatus) -> list[Bid]:
        return [bid for bid in self.bids if bid.status is status]

    def bid_ids(self) -> list[int]:
        return [bid.comment_id for bid in self.bids]

    def current_highest(self) -> float | None:
        """Highest amount among bids that have not been rejected."""
        amounts = [bid.amount for bid in self.bids if bid.status is not BidStatus.REJECTED]
        return max(amounts, default=None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "period_id": self.period_id,
            "status": self.status.value,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "issue_number": self.issue_number,
            "issue_url": self.issue_url,
            "bids": [bid.to_dict() for bid in self.bids],
            "created_at": self.created_at,
        }
        if self.issue_node_id:
            data["issue_node_id"] = self.issue_node_id
        if self.payment is not None:
            data["payment"] = self.payment.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BiddingPeriod":
        payment = data.get("payment")
        return cls(
            period_id=data["period_id"],
            status=PeriodStatus(data["status"]),
            start_date=data["start_date"],
            end_date=data["end_date"],
            issue_number=int(data.get("issue_number") or 0),
            issue_url=data.get("issue_url") or "",
            created_at=data.get("created_at") or data["start_date"],
            bids=[Bid.from_dict(item) for item in data.get("bids", [])],
            issue_node_id=data.get("issue_node_id"),
            payment=PaymentRecord.from_dict(payment) if payment else None,
        )

    @classmethod
    def opening(
        cls,
        start: datetime,
        end: datetime,
        *,
        issue_number: int = 0,
        issue_url: str = "",
        issue_node_id: str | None = None,
    ) -> "BiddingPeriod":
        return cls(
            period_id=period_id_for(start),
            status=PeriodStatus.OPEN,
            start_date=format_timestamp(start),
            end_date=format_timestamp(end),
            issue_number=issue_number,
            issue_url=issue_url,
            created_at=format_timestamp(start),
            issue_node_id=issue_node_id,
        )
