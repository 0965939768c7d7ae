"""Backup service facade wiring storage, metadata, backends and orchestrators."""

from dataclasses import asdict
from typing import Any, Dict, List, Mapping, Optional

from ._storage.registry import StorageProviderRegistry
from ._utils import logger
from .backends.base import ComponentBackend
from .backends.config_snapshot import ConfigSnapshotBackend
from .backup.integrity import IntegrityVerifier
from .backup.manager import BackupOrchestrator
from .backup.retention import RetentionEnforcer
from .config import BackupConfig
from .errors import BackupOperationError, ErrorCode
from .metadata.base import MetadataStore
from .metadata.memory import InMemoryMetadataStore
from .metrics import OperationMetrics
from .models import (
    BackupMetadata,
    BackupOptions,
    BackupRecord,
    Component,
    IntegrityResult,
    RestoreOptions,
    RestorePreviewToken,
    RestoreResult,
    RetentionReport,
)
from .restore.manager import RestoreOrchestrator
from .restore.tokens import InMemoryRestoreTokenStore, RestoreTokenStore


def config_settings(config: BackupConfig) -> Dict[str, Any]:
    """Default configuration snapshot source: the backup configuration itself."""
    return {"backup": asdict(config)}


class BackupService:
    """Single entry point for backup, restore, verification and retention.

    Without explicit stores everything lives in process memory; pass Redis
    stores for deployments with more than one instance.
    """

    def __init__(
        self,
        config: Optional[BackupConfig] = None,
        backends: Optional[Mapping[Component, ComponentBackend]] = None,
        metadata_store: Optional[MetadataStore] = None,
        token_store: Optional[RestoreTokenStore] = None,
        registry: Optional[StorageProviderRegistry] = None,
        metrics: Optional[OperationMetrics] = None,
    ):
        self.config = config or BackupConfig()
        self.registry = registry or StorageProviderRegistry.from_config(self.config)
        self.metadata_store = metadata_store or InMemoryMetadataStore()
        self.token_store = token_store or InMemoryRestoreTokenStore()
        self.metrics = metrics or OperationMetrics()

        self.backends: Dict[Component, ComponentBackend] = dict(backends or {})
        if Component.CONFIG not in self.backends:
            self.backends[Component.CONFIG] = ConfigSnapshotBackend(source=lambda: config_settings(self.config))

        self.verifier = IntegrityVerifier(self.metadata_store, self.registry)
        self.retention = RetentionEnforcer(self.metadata_store, self.registry, self.config.retention)
        self.backup_orchestrator = BackupOrchestrator(
            self.backends,
            self.registry,
            self.metadata_store,
            retention=self.retention,
            metrics=self.metrics,
        )
        self.restore_orchestrator = RestoreOrchestrator(
            self.backends,
            self.registry,
            self.metadata_store,
            self.token_store,
            self.verifier,
            policy=self.config.restore,
            metrics=self.metrics,
        )
        logger.info(
            f"Backup service ready: providers={self.registry.ids()}, "
            f"backends={[c.value for c in self.backends]}"
        )

    async def create_backup(self, options: Optional[BackupOptions] = None) -> BackupMetadata:
        return await self.backup_orchestrator.create_backup(options)

    async def list_backups(self, destination: Optional[str] = None) -> List[BackupMetadata]:
        return await self.backup_orchestrator.list_backups(destination)

    async def get_backup_record(self, backup_id: str) -> Optional[BackupRecord]:
        return await self.backup_orchestrator.get_backup_record(backup_id)

    async def get_backup(self, backup_id: str) -> BackupRecord:
        """Like :meth:`get_backup_record` but raises ``BACKUP_METADATA_NOT_FOUND``."""
        record = await self.get_backup_record(backup_id)
        if record is None:
            raise BackupOperationError(f"Backup {backup_id} not found", ErrorCode.BACKUP_METADATA_NOT_FOUND)
        return record

    async def verify_backup_integrity(
        self,
        backup_id: str,
        storage_provider_id: Optional[str] = None,
        destination: Optional[str] = None,
    ) -> IntegrityResult:
        return await self.verifier.verify_backup_integrity(backup_id, storage_provider_id, destination)

    async def restore_backup(self, backup_id: str, options: Optional[RestoreOptions] = None) -> RestoreResult:
        return await self.restore_orchestrator.restore_backup(backup_id, options)

    async def approve_restore(
        self,
        token: str,
        approved_by: str,
        reason: Optional[str] = None,
    ) -> RestorePreviewToken:
        return await self.restore_orchestrator.approve_restore(token, approved_by, reason)

    async def enforce_retention_policy(self) -> RetentionReport:
        return await self.retention.enforce_retention_policy()

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.snapshot()

    async def close(self) -> None:
        for backend in self.backends.values():
            try:
                await backend.close()
            except Exception as e:
                logger.warning(f"Failed to close {backend.name} backend: {e}")
