"""In-process metadata store."""

from typing import Dict, Iterable, List, Optional

from ..models import BackupRecord
from .base import MetadataStore, newest_first


class InMemoryMetadataStore(MetadataStore):
    """Dict-backed store; records live as long as the process."""

    def __init__(self):
        self._records: Dict[str, BackupRecord] = {}

    async def upsert(self, record: BackupRecord) -> None:
        self._records[record.backup_id] = record.model_copy(deep=True)

    async def get(self, backup_id: str) -> Optional[BackupRecord]:
        record = self._records.get(backup_id)
        return record.model_copy(deep=True) if record else None

    async def list(self, destination: Optional[str] = None) -> List[BackupRecord]:
        records = [
            r.model_copy(deep=True)
            for r in self._records.values()
            if destination is None or r.destination == destination
        ]
        return newest_first(records)

    async def delete(self, backup_ids: Iterable[str]) -> int:
        removed = 0
        for backup_id in backup_ids:
            if self._records.pop(backup_id, None) is not None:
                removed += 1
        return removed
