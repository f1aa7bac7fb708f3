"""Bidder registry: payment-linkage state that persists across periods."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from ..storage import BIDDERS_KEY, StateStorage
from ..storage.codec import decode_document, encode_document, is_blank
from ..transport.timestamps import format_timestamp, parse_timestamp, utc_now
from ..validation.validator import SchemaRegistry


@dataclass
class BidderRecord:
    github_username: str
    payment_linked: bool = False
    linked_at: str | None = None
    warned_at: str | None = None
    stripe_customer_id: str | None = None
    stripe_payment_method_id: str | None = None

    @property
    def has_payment_reference(self) -> bool:
        return bool(self.stripe_customer_id and self.stripe_payment_method_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "github_username": self.github_username,
            "payment_linked": self.payment_linked,
            "linked_at": self.linked_at,
            "warned_at": self.warned_at,
        }
        if self.stripe_customer_id:
            data["stripe_customer_id"] = self.stripe_customer_id
        if self.stripe_payment_method_id:
            data["stripe_payment_method_id"] = self.stripe_payment_method_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BidderRecord":
        return cls(
            github_username=data["github_username"],
            payment_linked=bool(data.get("payment_linked", False)),
            linked_at=data.get("linked_at"),
            warned_at=data.get("warned_at"),
            stripe_customer_id=data.get("stripe_customer_id"),
            stripe_payment_method_id=data.get("stripe_payment_method_id"),
        )


class BidderRegistry:
    """In-memory view of the registry document, owned by one invocation."""

    def __init__(self, bidders: dict[str, BidderRecord] | None = None) -> None:
        self._bidders: dict[str, BidderRecord] = dict(bidders or {})

    def all(self) -> Iterable[BidderRecord]:
        return self._bidders.values()

    def get(self, username: str) -> BidderRecord | None:
        return self._bidders.get(username)

    def register(self, username: str) -> BidderRecord:
        record = self._bidders.get(username)
        if record is None:
            record = BidderRecord(github_username=username)
            self._bidders[username] = record
        return record

    def is_payment_linked(self, username: str) -> bool:
        record = self._bidders.get(username)
        return bool(record and record.payment_linked)

    def mark_payment_linked(
        self,
        username: str,
        customer_id: str,
        payment_method_id: str,
        *,
        now: datetime | None = None,
    ) -> BidderRecord:
        record = self.register(username)
        record.payment_linked = True
        record.stripe_customer_id = customer_id
        record.stripe_payment_method_id = payment_method_id
        record.linked_at = format_timestamp(now or utc_now())
        return record

    def grace_deadline(self, username: str, grace_hours: float) -> datetime | None:
        record = self._bidders.get(username)
        if record is None or not record.warned_at:
            return None
        return parse_timestamp(record.warned_at) + timedelta(hours=grace_hours)

    def set_warned_at(self, username: str, timestamp: str | None = None) -> None:
        self.register(username).warned_at = timestamp or format_timestamp(utc_now())

    def warn(self, username: str, grace_hours: float, *, now: datetime | None = None) -> bool:
        """Start a warning cycle unless one is still running; True when a new cycle began."""
        now = now or utc_now()
        deadline = self.grace_deadline(username, grace_hours)
        if deadline is not None and now < deadline:
            return False
        self.set_warned_at(username, format_timestamp(now))
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"bidders": {name: record.to_dict() for name, record in self._bidders.items()}}


class BidderStore:
    def __init__(self, storage: StateStorage, schemas: SchemaRegistry) -> None:
        self._storage = storage
        self._schemas = schemas

    async def load(self) -> BidderRegistry:
        raw = await self._storage.read_document(BIDDERS_KEY)
        if raw is None or is_blank(raw):
            return BidderRegistry()
        payload = decode_document(BIDDERS_KEY, raw, schemas=self._schemas, schema_name="bidders")
        return BidderRegistry(
            {
                name: BidderRecord.from_dict(item)
                for name, item in payload.get("bidders", {}).items()
            }
        )

    async def save(self, registry: BidderRegistry) -> None:
        await self._storage.write_document(BIDDERS_KEY, encode_document(registry.to_dict()))
