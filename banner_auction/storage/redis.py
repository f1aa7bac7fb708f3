"""Redis storage backend using redis-py asyncio client."""

from __future__ import annotations

from redis import asyncio as aioredis


class RedisStorage:
    def __init__(self, *, url: str, prefix: str = "banner-auction") -> None:
        if not url:
            raise ValueError("redis url missing")
        self._redis = aioredis.from_url(url)
        self._prefix = prefix.rstrip(":")

    def _document_key(self, key: str) -> str:
        return f"{self._prefix}:doc:{key}"

    async def read_document(self, key: str) -> bytes | None:
        return await self._redis.get(self._document_key(key))

    async def write_document(self, key: str, data: bytes) -> None:
        await self._redis.set(self._document_key(key), data)

    async def document_exists(self, key: str) -> bool:
        return bool(await self._redis.exists(self._document_key(key)))

    async def list_documents(self, prefix: str) -> list[str]:
        pattern = self._document_key(f"{prefix}*")
        strip = len(self._document_key(""))
        keys: list[str] = []
        cursor = 0
        while True:
            cursor, batch = await self._redis.scan(cursor=cursor, match=pattern, count=100)
            for raw in batch:
                name = raw.decode() if isinstance(raw, bytes) else raw
                keys.append(name[strip:])
            if cursor == 0:
                break
        return sorted(keys)
