"""Backup orchestration across component backends and storage providers."""

import asyncio
import time
from typing import List, Mapping, Optional

from .._storage.base import StorageProvider
from .._storage.registry import StorageContext, StorageProviderRegistry
from .._utils import generate_backup_id, logger, utc_now
from ..backends.base import ComponentBackend, check_readiness
from ..errors import BackupOperationError, ErrorCode
from ..metadata.base import MetadataStore
from ..metrics import OperationMetrics
from ..models import (
    DATA_COMPONENTS,
    BackupMetadata,
    BackupOptions,
    BackupRecord,
    BackupStatus,
    Component,
)
from .retention import RetentionEnforcer
from .utils import (
    artifact_path,
    compute_backup_checksum,
    compute_backup_size,
    create_bundle,
    bundle_path,
    list_backup_artifacts,
)


class BackupOrchestrator:
    """Create backups: export components, store artifacts, record metadata.

    Data component failures are tolerated and recorded as ``False`` in
    ``metadata.components``. A configuration snapshot failure aborts the
    backup and leaves a ``failed`` record behind.
    """

    def __init__(
        self,
        backends: Mapping[Component, ComponentBackend],
        registry: StorageProviderRegistry,
        metadata_store: MetadataStore,
        retention: Optional[RetentionEnforcer] = None,
        metrics: Optional[OperationMetrics] = None,
    ):
        self.backends = backends
        self.registry = registry
        self.metadata_store = metadata_store
        self.retention = retention
        self.metrics = metrics or OperationMetrics()

    def _requested_components(self, options: BackupOptions) -> List[Component]:
        components: List[Component] = []
        if options.include_data:
            components.extend(c for c in DATA_COMPONENTS if c in self.backends)
        if options.include_config:
            components.append(Component.CONFIG)
        return components

    async def create_backup(self, options: Optional[BackupOptions] = None) -> BackupMetadata:
        """Create a backup.

        Args:
            options: What to back up and where; defaults to a full backup of
                every configured component to the default provider

        Returns:
            Finalized metadata with ``status = completed``

        Raises:
            BackupOperationError: ``DEPENDENCY_UNAVAILABLE`` before anything is
                written, ``BACKUP_CONFIG_FAILED`` / ``BACKUP_COMPRESSION_FAILED`` /
                ``BACKUP_FAILED`` after a ``failed`` record has been persisted
        """
        options = options or BackupOptions()
        started = time.monotonic()
        provider_id = options.storage_provider_id
        try:
            context = await self.registry.resolve(options.storage_provider_id, options.destination)
            provider_id = context.provider_id
            metadata = await self._run_backup(options, context)
        except Exception:
            self._record_metrics("failure", started, options, provider_id)
            raise

        self._record_metrics("success", started, options, provider_id, metadata.size)
        await self._enforce_retention(metadata.id)
        return metadata.model_copy(deep=True)

    def _record_metrics(
        self,
        status: str,
        started: float,
        options: BackupOptions,
        provider_id: Optional[str],
        size: Optional[int] = None,
    ) -> None:
        self.metrics.record_backup(
            status,
            time.monotonic() - started,
            options.type.value,
            provider_id,
            size_bytes=size,
        )

    async def _run_backup(self, options: BackupOptions, context: StorageContext) -> BackupMetadata:
        requested = self._requested_components(options)
        await check_readiness(self.backends, requested, stage="backup")

        backup_id = generate_backup_id()
        metadata = BackupMetadata(
            id=backup_id,
            type=options.type,
            timestamp=utc_now(),
            components={c.value: False for c in Component},
            status=BackupStatus.IN_PROGRESS,
        )
        record = BackupRecord(
            metadata=metadata,
            storage_provider_id=context.provider_id,
            destination=context.destination,
            labels=dict(options.labels),
        )
        metadata = record.metadata
        provider = context.provider
        logger.info(f"Starting backup: {backup_id} -> {context.provider_id}")

        try:
            for component in requested:
                if component is Component.CONFIG:
                    continue
                try:
                    await self._export_component(provider, backup_id, self.backends[component])
                    metadata.components[component.value] = True
                except Exception as e:
                    logger.warning(f"Backup {backup_id}: {component.value} export failed: {e}")

            if Component.CONFIG in requested:
                try:
                    await self._export_component(provider, backup_id, self.backends[Component.CONFIG])
                    metadata.components[Component.CONFIG.value] = True
                except Exception as e:
                    raise BackupOperationError(
                        f"Configuration backup failed: {e}",
                        ErrorCode.BACKUP_CONFIG_FAILED,
                        component=Component.CONFIG.value,
                        stage="backup",
                        cause=e,
                    ) from e

            if options.compression:
                await self._compress(provider, backup_id)

            paths = await list_backup_artifacts(provider, backup_id)
            metadata.size, metadata.checksum = await asyncio.gather(
                compute_backup_size(provider, paths),
                compute_backup_checksum(provider, paths),
            )
            metadata.status = BackupStatus.COMPLETED
            await self.metadata_store.upsert(record)
        except Exception as e:
            await self._record_failure(record, e)
            if isinstance(e, BackupOperationError):
                raise
            raise BackupOperationError(
                f"Backup {backup_id} failed: {e}",
                ErrorCode.BACKUP_FAILED,
                stage="backup",
                cause=e,
            ) from e

        logger.info(f"Backup complete: {backup_id} ({metadata.size:,} bytes, components={metadata.components})")
        return metadata

    async def _export_component(
        self,
        provider: StorageProvider,
        backup_id: str,
        backend: ComponentBackend,
    ) -> None:
        snapshot = await backend.export_snapshot()
        if snapshot.primary_name not in snapshot.artifacts:
            raise ValueError(f"{backend.name} export produced no {snapshot.primary_name}")

        written: List[str] = []
        try:
            for name, data in snapshot.artifacts.items():
                path = artifact_path(backup_id, name)
                await provider.write_file(path, data)
                written.append(path)
        except Exception:
            await self._remove_quietly(provider, written)
            raise

        logger.debug(f"Backup {backup_id}: {backend.name} wrote {len(written)} artifacts")

    async def _compress(self, provider: StorageProvider, backup_id: str) -> None:
        if not provider.supports_streaming:
            logger.info(f"Backup {backup_id}: provider {provider.id} cannot stream, skipping compression")
            return

        paths = await list_backup_artifacts(provider, backup_id)
        try:
            await create_bundle(provider, backup_id, paths)
        except Exception as e:
            await self._remove_quietly(provider, [bundle_path(backup_id)])
            raise BackupOperationError(
                f"Compression failed: {e}",
                ErrorCode.BACKUP_COMPRESSION_FAILED,
                stage="compression",
                cause=e,
            ) from e

    async def _remove_quietly(self, provider: StorageProvider, paths: List[str]) -> None:
        for path in paths:
            try:
                await provider.remove_file(path)
            except Exception as e:
                logger.warning(f"Failed to clean up artifact {path}: {e}")

    async def _record_failure(self, record: BackupRecord, error: Exception) -> None:
        record.metadata.status = BackupStatus.FAILED
        record.error = str(error)
        logger.error(f"Backup {record.backup_id} failed: {error}")
        try:
            await self.metadata_store.upsert(record)
        except Exception as e:
            logger.error(f"Backup {record.backup_id}: failed to persist failed record: {e}")

    async def _enforce_retention(self, backup_id: str) -> None:
        if self.retention is None:
            return
        try:
            await self.retention.enforce_retention_policy()
        except Exception as e:
            logger.error(f"Retention enforcement after backup {backup_id} failed: {e}")

    async def list_backups(self, destination: Optional[str] = None) -> List[BackupMetadata]:
        records = await self.metadata_store.list(destination)
        return [r.metadata for r in records]

    async def get_backup_record(self, backup_id: str) -> Optional[BackupRecord]:
        return await self.metadata_store.get(backup_id)
