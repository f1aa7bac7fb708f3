"""JSON file storage backend; one file per document under a data directory."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path


class FileSystemStorage:
    def __init__(self, *, data_dir: str | os.PathLike[str] = ".bidme/data") -> None:
        if not data_dir:
            raise ValueError("data_dir missing")
        self._root = Path(data_dir)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        return self._root / f"{key}.json"

    async def read_document(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._read, self._path(key))

    async def write_document(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._replace, self._path(key), data)

    async def document_exists(self, key: str) -> bool:
        return self._path(key).exists()

    async def list_documents(self, prefix: str) -> list[str]:
        directory = self._root / prefix
        if not directory.is_dir():
            return []
        return sorted(f"{prefix}{path.stem}" for path in directory.glob("*.json"))

    def _read(self, path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _replace(self, path: Path, data: bytes) -> None:
        # Readers see either the old document or the new one, never a partial write.
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
