"""Redis-backed metadata store for multi-instance deployments."""

from typing import Iterable, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from .._utils import logger
from ..models import BackupRecord
from .base import MetadataStore


class RedisMetadataStore(MetadataStore):
    """One JSON document per record plus a sorted set indexing ids by timestamp."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "datavault"):
        self.redis = redis_client
        self._record_prefix = f"{prefix}:backup:"
        self._index_key = f"{prefix}:backups"

    def _get_key(self, backup_id: str) -> str:
        return f"{self._record_prefix}{backup_id}"

    async def upsert(self, record: BackupRecord) -> None:
        async with self.redis.pipeline() as pipe:
            pipe.set(self._get_key(record.backup_id), record.model_dump_json())
            pipe.zadd(self._index_key, {record.backup_id: record.metadata.timestamp.timestamp()})
            await pipe.execute()
        logger.debug(f"Stored backup record {record.backup_id}")

    async def get(self, backup_id: str) -> Optional[BackupRecord]:
        data = await self.redis.get(self._get_key(backup_id))
        if data:
            return BackupRecord.model_validate_json(data)
        return None

    async def list(self, destination: Optional[str] = None) -> List[BackupRecord]:
        raw_ids = await self.redis.zrevrange(self._index_key, 0, -1)
        if not raw_ids:
            return []

        backup_ids = [i.decode("utf-8") if isinstance(i, bytes) else i for i in raw_ids]
        documents = await self.redis.mget([self._get_key(i) for i in backup_ids])

        records: List[BackupRecord] = []
        for backup_id, data in zip(backup_ids, documents):
            if data is None:
                logger.warning(f"Backup index references missing record {backup_id}")
                continue
            try:
                record = BackupRecord.model_validate_json(data)
            except ValueError as e:
                logger.error(f"Failed to parse backup record {backup_id}: {e}")
                continue
            if destination is None or record.destination == destination:
                records.append(record)
        return records

    async def delete(self, backup_ids: Iterable[str]) -> int:
        backup_ids = list(backup_ids)
        if not backup_ids:
            return 0

        try:
            async with self.redis.pipeline() as pipe:
                pipe.delete(*[self._get_key(i) for i in backup_ids])
                pipe.zrem(self._index_key, *backup_ids)
                results = await pipe.execute()
        except RedisError as e:
            logger.error(f"Redis delete error for {backup_ids}: {e}")
            raise
        return int(results[0])
