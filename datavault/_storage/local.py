"""Local filesystem storage provider."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, BinaryIO, List, Optional

from .._utils import logger
from .base import ArtifactStat, StorageProvider


class LocalStorageProvider(StorageProvider):
    """Stores artifacts as files under ``base_path``."""

    kind = "local"
    supports_streaming = True

    def __init__(self, base_path: str, allow_create: bool = True, provider_id: Optional[str] = None):
        self.base_path = Path(base_path).expanduser().resolve()
        self.allow_create = allow_create
        super().__init__(provider_id or f"local:{self.base_path}")

    @property
    def location(self) -> str:
        return str(self.base_path)

    def _resolve(self, path: str) -> Path:
        """Map an artifact path to a file below ``base_path``.

        Raises:
            ValueError: If the path is empty, absolute or escapes the base directory
        """
        if not path or Path(path).is_absolute():
            raise ValueError(f"Invalid artifact path: {path!r}")
        target = (self.base_path / path).resolve()
        if self.base_path not in target.parents:
            raise ValueError(f"Artifact path escapes storage root: {path!r}")
        return target

    async def ensure_ready(self) -> None:
        await asyncio.to_thread(self._ensure_directory)

    def _ensure_directory(self) -> None:
        if self.base_path.is_dir():
            return
        if self.base_path.exists():
            raise NotADirectoryError(f"Backup path is not a directory: {self.base_path}")
        if not self.allow_create:
            raise FileNotFoundError(f"Backup directory does not exist: {self.base_path}")
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created backup directory: {self.base_path}")

    async def write_file(self, path: str, data: bytes) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug(f"Wrote {len(data):,} bytes to {target}")

    async def read_file(self, path: str) -> bytes:
        return await asyncio.to_thread(self._resolve(path).read_bytes)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_file)

    async def list_files(self, prefix: Optional[str] = None) -> List[str]:
        def _walk() -> List[str]:
            if not self.base_path.is_dir():
                return []
            paths = (p.relative_to(self.base_path).as_posix() for p in self.base_path.rglob("*") if p.is_file())
            return sorted(p for p in paths if not prefix or p.startswith(prefix))

        return await asyncio.to_thread(_walk)

    async def stat(self, path: str) -> ArtifactStat:
        result = await asyncio.to_thread(self._resolve(path).stat)
        return ArtifactStat(size=result.st_size)

    async def remove_file(self, path: str) -> None:
        target = self._resolve(path)

        def _remove() -> None:
            target.unlink(missing_ok=True)

            # Drop directories emptied by the removal, never the base itself
            parent = target.parent
            while parent != self.base_path and parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent

        await asyncio.to_thread(_remove)

    @asynccontextmanager
    async def open_read_stream(self, path: str) -> AsyncIterator[BinaryIO]:
        f = await asyncio.to_thread(open, self._resolve(path), "rb")
        try:
            yield f
        finally:
            await asyncio.to_thread(f.close)

    @asynccontextmanager
    async def open_write_stream(self, path: str) -> AsyncIterator[BinaryIO]:
        target = self._resolve(path)

        def _open() -> BinaryIO:
            target.parent.mkdir(parents=True, exist_ok=True)
            return open(target, "wb")

        f = await asyncio.to_thread(_open)
        try:
            yield f
        finally:
            await asyncio.to_thread(f.close)
