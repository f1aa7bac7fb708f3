"""Delivery replay guard keyed by the GitHub delivery id."""

from __future__ import annotations

import asyncio
from collections import OrderedDict


class DeliveryReplayError(ValueError):
    """Raised when a webhook delivery id has already been processed."""


class DeliveryReplayGuard:
    def __init__(self, max_entries: int = 4096) -> None:
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._max_entries = max_entries
        self._lock = asyncio.Lock()

    async def assert_unique(self, delivery_id: str) -> None:
        if not delivery_id:
            raise ValueError("delivery id missing")
        async with self._lock:
            if delivery_id in self._seen:
                raise DeliveryReplayError(f"delivery {delivery_id} already processed")
            self._seen[delivery_id] = None
            while len(self._seen) > self._max_entries:
                self._seen.popitem(last=False)
