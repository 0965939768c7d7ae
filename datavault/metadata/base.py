"""Backup metadata store interface."""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..models import BackupRecord


class MetadataStore(ABC):
    """Durable table of backup records keyed by backup id."""

    @abstractmethod
    async def upsert(self, record: BackupRecord) -> None:
        ...

    @abstractmethod
    async def get(self, backup_id: str) -> Optional[BackupRecord]:
        ...

    @abstractmethod
    async def list(self, destination: Optional[str] = None) -> List[BackupRecord]:
        """Records ordered newest-first, optionally filtered by destination."""

    @abstractmethod
    async def delete(self, backup_ids: Iterable[str]) -> int:
        """Delete records by id and return how many existed."""


def newest_first(records: Iterable[BackupRecord]) -> List[BackupRecord]:
    return sorted(records, key=lambda r: r.metadata.timestamp, reverse=True)
