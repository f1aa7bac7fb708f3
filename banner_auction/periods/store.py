"""Persistence of the live bidding period and its archive."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TypeVar

from ..storage import ARCHIVE_PREFIX, PERIOD_KEY, StateStorage, archive_key
from ..storage.codec import CorruptedStateError, decode_document, encode_document, is_blank
from ..validation.validator import SchemaRegistry
from .models import BiddingPeriod

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SlotState(str, Enum):
    ABSENT = "absent"
    EMPTY = "empty"
    PRESENT = "present"


@dataclass
class PeriodSnapshot:
    state: SlotState
    period: BiddingPeriod | None = None


class PeriodUnavailableError(LookupError):
    """Raised when an operation needs an open period and there is none to use."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


class PeriodStore:
    """Reads and replaces the single live period document.

    Every call goes back to storage; nothing is cached between calls, so a
    value read here is always the latest persisted state.
    """

    def __init__(self, storage: StateStorage, schemas: SchemaRegistry) -> None:
        self._storage = storage
        self._schemas = schemas

    async def load(self) -> PeriodSnapshot:
        raw = await self._storage.read_document(PERIOD_KEY)
        if raw is None:
            return PeriodSnapshot(SlotState.ABSENT)
        if is_blank(raw):
            return PeriodSnapshot(SlotState.EMPTY)
        payload = decode_document(PERIOD_KEY, raw, schemas=self._schemas, schema_name="period")
        return PeriodSnapshot(SlotState.PRESENT, BiddingPeriod.from_dict(payload))

    async def load_open(self, period_id: str | None = None) -> BiddingPeriod:
        snapshot = await self.load()
        if snapshot.period is None:
            raise PeriodUnavailableError("no_open_period", "No active bidding period found")
        period = snapshot.period
        if not period.is_open:
            raise PeriodUnavailableError("period_not_open", "Bidding period is not open")
        if period_id is not None and period.period_id != period_id:
            raise PeriodUnavailableError(
                "period_not_open", f"Bidding period {period_id} is not the active period"
            )
        return period

    async def save(self, period: BiddingPeriod) -> None:
        await self._storage.write_document(PERIOD_KEY, encode_document(period.to_dict()))

    async def update(
        self,
        mutate: Callable[[BiddingPeriod], T],
        period_id: str | None = None,
    ) -> tuple[BiddingPeriod, T]:
        """Re-read the open period, apply ``mutate`` to it, and persist the result."""
        period = await self.load_open(period_id)
        outcome = mutate(period)
        await self.save(period)
        return period, outcome

    async def reset(self) -> None:
        await self._storage.write_document(PERIOD_KEY, b"")

    async def archive(self, period: BiddingPeriod) -> bool:
        """Write the archive entry; an existing entry for the same period is kept."""
        key = archive_key(period.period_id)
        if await self._storage.document_exists(key):
            logger.warning("archive %s already exists; keeping the original", key)
            return False
        await self._storage.write_document(key, encode_document(period.to_dict()))
        logger.info("period %s archived", period.period_id)
        return True

    async def has_archive(self, period_id: str) -> bool:
        return await self._storage.document_exists(archive_key(period_id))

    async def get_archived(self, period_id: str) -> BiddingPeriod | None:
        key = archive_key(period_id)
        raw = await self._storage.read_document(key)
        if raw is None:
            return None
        return BiddingPeriod.from_dict(
            decode_document(key, raw, schemas=self._schemas, schema_name="period")
        )

    async def list_archived(self) -> list[BiddingPeriod]:
        periods = []
        for key in await self._storage.list_documents(ARCHIVE_PREFIX):
            raw = await self._storage.read_document(key)
            if not raw:
                continue
            try:
                payload = decode_document(key, raw, schemas=self._schemas, schema_name="period")
            except CorruptedStateError:
                logger.warning("skipping unreadable archive entry %s", key, exc_info=True)
                continue
            periods.append(BiddingPeriod.from_dict(payload))
        return periods
