"""In-memory storage backend for period, bidder, and archive documents."""

from __future__ import annotations

import asyncio


class InMemoryStorage:
    def __init__(self) -> None:
        self._documents: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def read_document(self, key: str) -> bytes | None:
        async with self._lock:
            return self._documents.get(key)

    async def write_document(self, key: str, data: bytes) -> None:
        async with self._lock:
            self._documents[key] = bytes(data)

    async def document_exists(self, key: str) -> bool:
        async with self._lock:
            return key in self._documents

    async def list_documents(self, prefix: str) -> list[str]:
        async with self._lock:
            return sorted(key for key in self._documents if key.startswith(prefix))
