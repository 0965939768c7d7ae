"""Storage provider interface for backup artifacts."""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, BinaryIO, List, Optional


@dataclass(frozen=True)
class ArtifactStat:
    size: int


class StorageProvider(ABC):
    """Byte-addressable artifact store.

    Paths are relative, ``/``-separated names. Providers that can stream set
    ``supports_streaming = True`` and implement :meth:`open_read_stream` and
    :meth:`open_write_stream`; callers check the flag before streaming instead
    of catching ``NotImplementedError``.
    """

    kind: str = "abstract"
    supports_streaming: bool = False

    def __init__(self, provider_id: str):
        self.id = provider_id

    @property
    def location(self) -> str:
        """Human readable location recorded as a backup's destination."""
        return self.id

    @abstractmethod
    async def ensure_ready(self) -> None:
        """Prepare the backend. Safe to call repeatedly."""

    @abstractmethod
    async def write_file(self, path: str, data: bytes) -> None:
        ...

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        """Raises FileNotFoundError when the artifact does not exist."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    async def list_files(self, prefix: Optional[str] = None) -> List[str]:
        """Sorted artifact paths held by this provider, limited to ``prefix`` when given."""

    @abstractmethod
    async def stat(self, path: str) -> ArtifactStat:
        """Raises FileNotFoundError when the artifact does not exist."""

    @abstractmethod
    async def remove_file(self, path: str) -> None:
        """Remove an artifact. Removing a missing artifact is not an error."""

    @asynccontextmanager
    async def open_read_stream(self, path: str) -> AsyncIterator[BinaryIO]:
        raise NotImplementedError(f"{type(self).__name__} does not support streaming")
        yield  # pragma: no cover

    @asynccontextmanager
    async def open_write_stream(self, path: str) -> AsyncIterator[BinaryIO]:
        raise NotImplementedError(f"{type(self).__name__} does not support streaming")
        yield  # pragma: no cover

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
