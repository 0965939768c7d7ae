"""Named storage providers and per-operation storage context resolution."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .._utils import logger
from ..config import BackupConfig
from ..errors import BackupOperationError, ErrorCode
from .base import StorageProvider
from .factory import StorageProviderFactory
from .local import LocalStorageProvider

DEFAULT_LOCAL_PROVIDER_ID = "local"


@dataclass
class StorageContext:
    """Provider an operation runs against plus the destination it records."""

    provider: StorageProvider
    destination: str

    @property
    def provider_id(self) -> str:
        return self.provider.id


class StorageProviderRegistry:
    """Holds storage providers by id and resolves the default."""

    def __init__(self, default_provider_id: Optional[str] = None):
        self._providers: Dict[str, StorageProvider] = {}
        self._default_provider_id = default_provider_id

    @classmethod
    def from_config(cls, config: BackupConfig) -> "StorageProviderRegistry":
        """Build a registry with the local provider plus every configured provider.

        Providers that fail to construct are logged and skipped.
        """
        registry = cls(default_provider_id=config.default_provider)
        registry.register(
            DEFAULT_LOCAL_PROVIDER_ID,
            LocalStorageProvider(
                config.local_base_path,
                allow_create=config.local_allow_create,
                provider_id=DEFAULT_LOCAL_PROVIDER_ID,
            ),
        )

        for provider_id, definition in config.providers.items():
            try:
                registry.register(provider_id, StorageProviderFactory.create(provider_id, definition))
            except BackupOperationError as e:
                logger.warning(f"Skipping storage provider {provider_id}: {e.message}")

        return registry

    def register(self, provider_id: str, provider: StorageProvider) -> None:
        if provider_id in self._providers:
            logger.debug(f"Replacing storage provider {provider_id}")
        self._providers[provider_id] = provider

    def get(self, provider_id: str) -> Optional[StorageProvider]:
        return self._providers.get(provider_id)

    def ids(self) -> List[str]:
        return list(self._providers)

    def get_default(self) -> StorageProvider:
        """Configured default when registered, else the first local provider, else the first one."""
        if self._default_provider_id:
            provider = self._providers.get(self._default_provider_id)
            if provider is not None:
                return provider
            logger.warning(
                f"Default storage provider {self._default_provider_id} is not registered, falling back"
            )

        for provider in self._providers.values():
            if isinstance(provider, LocalStorageProvider):
                return provider
        for provider in self._providers.values():
            return provider

        raise BackupOperationError(
            "No storage providers registered",
            ErrorCode.STORAGE_PROVIDER_UNKNOWN,
        )

    def provider_for_destination(self, destination: str) -> StorageProvider:
        """Local provider rooted at ``destination``, registered on first use."""
        base_path = Path(destination).expanduser().resolve()
        for provider in self._providers.values():
            if isinstance(provider, LocalStorageProvider) and provider.base_path == base_path:
                return provider

        provider = LocalStorageProvider(str(base_path))
        self.register(provider.id, provider)
        logger.info(f"Registered ad-hoc local storage provider {provider.id}")
        return provider

    async def resolve(
        self,
        storage_provider_id: Optional[str] = None,
        destination: Optional[str] = None,
    ) -> StorageContext:
        """Pick the provider for one operation and make sure it is ready.

        An explicit provider id wins, then an explicit local destination, then
        the default provider.

        Raises:
            BackupOperationError: ``STORAGE_PROVIDER_UNKNOWN`` for an unregistered id,
                ``DEPENDENCY_UNAVAILABLE`` when the provider cannot be prepared
        """
        if storage_provider_id:
            provider = self.get(storage_provider_id)
            if provider is None:
                raise BackupOperationError(
                    f"Unknown storage provider: {storage_provider_id}",
                    ErrorCode.STORAGE_PROVIDER_UNKNOWN,
                )
        elif destination:
            provider = self.provider_for_destination(destination)
        else:
            provider = self.get_default()

        try:
            await provider.ensure_ready()
        except BackupOperationError:
            raise
        except Exception as e:
            raise BackupOperationError(
                f"Storage provider {provider.id} is not ready: {e}",
                ErrorCode.DEPENDENCY_UNAVAILABLE,
                component="storage",
                cause=e,
            ) from e

        return StorageContext(provider=provider, destination=provider.location)

    async def resolve_for_record(
        self,
        record_provider_id: Optional[str],
        record_destination: Optional[str],
        storage_provider_id: Optional[str] = None,
        destination: Optional[str] = None,
    ) -> StorageContext:
        """Storage context of an existing backup.

        Explicit overrides win; then the provider that wrote the backup; then
        its recorded local destination (ad-hoc providers do not survive restarts).
        """
        if storage_provider_id or destination:
            return await self.resolve(storage_provider_id, destination)
        if record_provider_id and self.get(record_provider_id) is not None:
            return await self.resolve(storage_provider_id=record_provider_id)
        if record_destination and "://" not in record_destination:
            return await self.resolve(destination=record_destination)
        raise BackupOperationError(
            f"Unknown storage provider: {record_provider_id}",
            ErrorCode.STORAGE_PROVIDER_UNKNOWN,
        )
