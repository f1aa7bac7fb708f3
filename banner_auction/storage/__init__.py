"""Storage backend factory."""

from __future__ import annotations

from typing import Protocol

from ..config import AuctionConfig
from .filesystem import FileSystemStorage
from .in_memory import InMemoryStorage
from .redis import RedisStorage

PERIOD_KEY = "current-period"
BIDDERS_KEY = "bidders"
ARCHIVE_PREFIX = "archive/"


class StateStorage(Protocol):
    """Whole-document persistence; every write replaces the stored document."""

    async def read_document(self, key: str) -> bytes | None: ...

    async def write_document(self, key: str, data: bytes) -> None: ...

    async def document_exists(self, key: str) -> bool: ...

    async def list_documents(self, prefix: str) -> list[str]: ...


def archive_key(period_id: str) -> str:
    return f"{ARCHIVE_PREFIX}{period_id}"


def build_storage(config: AuctionConfig) -> StateStorage:
    backend = config.storage.backend
    options = dict(config.storage.options)
    if backend == "filesystem":
        return FileSystemStorage(**options)
    if backend == "in_memory":
        return InMemoryStorage()
    if backend == "redis":
        return RedisStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")
