"""Restore token stores: in-process and Redis-backed."""

import asyncio
import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

import redis.asyncio as redis

from .._utils import logger, utc_now
from ..models import RestorePreviewToken


class RestoreTokenStore(ABC):
    """Time-bounded map from opaque token to restore preview.

    ``get`` returns expired tokens too so callers can tell "expired" from
    "unknown"; expiry is enforced by the caller and by :meth:`purge_expired`.
    ``consume`` must be an atomic check-and-delete.
    """

    @abstractmethod
    async def issue(self, token: RestorePreviewToken) -> None:
        ...

    @abstractmethod
    async def get(self, token: str) -> Optional[RestorePreviewToken]:
        ...

    @abstractmethod
    async def approve(
        self,
        token: str,
        approved_by: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[RestorePreviewToken]:
        """Record approval on an existing token; None when the token is unknown."""

    @abstractmethod
    async def consume(self, token: str) -> Optional[RestorePreviewToken]:
        """Remove and return the token; None when another caller got there first."""

    @abstractmethod
    async def delete(self, token: str) -> None:
        ...

    @abstractmethod
    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        ...


def _apply_approval(
    entry: RestorePreviewToken,
    approved_by: str,
    reason: Optional[str],
    now: datetime,
) -> RestorePreviewToken:
    metadata = dict(entry.metadata)
    if reason:
        metadata["approval_reason"] = reason
    return entry.model_copy(update={"approved_at": now, "approved_by": approved_by, "metadata": metadata})


class InMemoryRestoreTokenStore(RestoreTokenStore):
    """Single-process store; expired tokens linger until the next purge."""

    def __init__(self):
        self._tokens: Dict[str, RestorePreviewToken] = {}
        self._lock = asyncio.Lock()

    async def issue(self, token: RestorePreviewToken) -> None:
        async with self._lock:
            self._tokens[token.token] = token

    async def get(self, token: str) -> Optional[RestorePreviewToken]:
        async with self._lock:
            return self._tokens.get(token)

    async def approve(
        self,
        token: str,
        approved_by: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[RestorePreviewToken]:
        async with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return None
            entry = _apply_approval(entry, approved_by, reason, now or utc_now())
            self._tokens[token] = entry
            return entry

    async def consume(self, token: str) -> Optional[RestorePreviewToken]:
        async with self._lock:
            return self._tokens.pop(token, None)

    async def delete(self, token: str) -> None:
        async with self._lock:
            self._tokens.pop(token, None)

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        async with self._lock:
            expired = [key for key, entry in self._tokens.items() if entry.is_expired(now)]
            for key in expired:
                del self._tokens[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired restore tokens")
        return len(expired)

    def __len__(self) -> int:
        return len(self._tokens)


class RedisRestoreTokenStore(RestoreTokenStore):
    """Shared store for multi-instance deployments.

    Keys carry a native TTL of the token lifetime plus ``expired_grace_seconds``
    so an expired token can still be reported as expired for a while before
    Redis drops it.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        prefix: str = "datavault:restore_token:",
        expired_grace_seconds: int = 3600,
    ):
        self.redis = redis_client
        self.prefix = prefix
        self.expired_grace_seconds = expired_grace_seconds

    def _get_key(self, token: str) -> str:
        return f"{self.prefix}{token}"

    def _ttl_seconds(self, entry: RestorePreviewToken) -> int:
        remaining = (entry.expires_at - utc_now()).total_seconds()
        return max(1, math.ceil(remaining) + self.expired_grace_seconds)

    async def issue(self, token: RestorePreviewToken) -> None:
        await self.redis.set(self._get_key(token.token), token.model_dump_json(), ex=self._ttl_seconds(token))

    async def get(self, token: str) -> Optional[RestorePreviewToken]:
        data = await self.redis.get(self._get_key(token))
        if data:
            return RestorePreviewToken.model_validate_json(data)
        return None

    async def approve(
        self,
        token: str,
        approved_by: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[RestorePreviewToken]:
        entry = await self.get(token)
        if entry is None:
            return None
        entry = _apply_approval(entry, approved_by, reason, now or utc_now())
        # xx: never resurrect a token consumed in the meantime
        stored = await self.redis.set(self._get_key(token), entry.model_dump_json(), keepttl=True, xx=True)
        return entry if stored else None

    async def consume(self, token: str) -> Optional[RestorePreviewToken]:
        data = await self.redis.getdel(self._get_key(token))
        if data:
            return RestorePreviewToken.model_validate_json(data)
        return None

    async def delete(self, token: str) -> None:
        await self.redis.delete(self._get_key(token))

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        # Redis expires keys natively
        return 0
