"""Two-phase restore: preview issues a token, apply consumes it."""

import time
from datetime import timedelta
from typing import List, Mapping, Optional, Tuple

from .._storage.base import StorageProvider
from .._storage.registry import StorageProviderRegistry
from .._utils import generate_restore_token, logger, utc_now
from ..backends.base import PRIMARY_ARTIFACTS, ComponentBackend, ComponentSnapshot, check_readiness
from ..backup.integrity import IntegrityVerifier
from ..backup.utils import artifact_path, manifest_references
from ..config import RestorePolicyConfig
from ..errors import BackupOperationError, ErrorCode
from ..metadata.base import MetadataStore
from ..metrics import OperationMetrics
from ..models import (
    RESTORE_ORDER,
    BackupRecord,
    Component,
    ComponentChange,
    ComponentValidation,
    IntegrityResult,
    RestoreOptions,
    RestorePreviewToken,
    RestoreResult,
    RestoreStatus,
    ValidationStatus,
)
from .tokens import RestoreTokenStore

# Used only for the preview's duration estimate
RESTORE_THROUGHPUT_BYTES_PER_SECOND = 50 * 1024 * 1024

BLOCKING_STATUSES = (ValidationStatus.INVALID, ValidationStatus.MISSING)


async def load_snapshot(
    provider: StorageProvider,
    backup_id: str,
    component: Component,
) -> Tuple[ComponentSnapshot, List[str]]:
    """Read a component's stored artifacts.

    Returns:
        The snapshot and the paths of declared sub-artifacts that are missing

    Raises:
        FileNotFoundError: If the primary artifact is missing
    """
    primary_name = PRIMARY_ARTIFACTS[component]
    primary = await provider.read_file(artifact_path(backup_id, primary_name))
    snapshot = ComponentSnapshot(component=component, artifacts={primary_name: primary})

    missing: List[str] = []
    for name in manifest_references(primary):
        path = artifact_path(backup_id, name)
        try:
            snapshot.artifacts[name] = await provider.read_file(path)
        except FileNotFoundError:
            missing.append(path)
    return snapshot, missing


class RestoreOrchestrator:
    """Preview, approve and apply restores.

    Preview never touches a live backend and reports problems in the result.
    Apply raises :class:`BackupOperationError` for every rejection or failure
    and restores components in a fixed order, stopping at the first failure.
    """

    def __init__(
        self,
        backends: Mapping[Component, ComponentBackend],
        registry: StorageProviderRegistry,
        metadata_store: MetadataStore,
        token_store: RestoreTokenStore,
        verifier: IntegrityVerifier,
        policy: Optional[RestorePolicyConfig] = None,
        metrics: Optional[OperationMetrics] = None,
    ):
        self.backends = backends
        self.registry = registry
        self.metadata_store = metadata_store
        self.token_store = token_store
        self.verifier = verifier
        self.policy = policy or RestorePolicyConfig()
        self.metrics = metrics or OperationMetrics()

    async def restore_backup(self, backup_id: str, options: Optional[RestoreOptions] = None) -> RestoreResult:
        """Preview when no token is given (or ``dry_run``), otherwise apply."""
        options = options or RestoreOptions()
        if options.is_preview:
            return await self.preview_restore(backup_id, options)
        return await self.apply_restore(backup_id, options)

    # Preview

    async def preview_restore(self, backup_id: str, options: RestoreOptions) -> RestoreResult:
        started = time.monotonic()
        try:
            result = await self._preview(backup_id, options)
        except BackupOperationError as e:
            logger.warning(f"Restore preview of {backup_id} failed: {e.message}")
            result = self._failed_preview(backup_id, options, e)
        except Exception as e:
            logger.error(f"Restore preview of {backup_id} failed: {e}")
            result = self._failed_preview(
                backup_id,
                options,
                BackupOperationError(
                    f"Restore preview failed: {e}",
                    ErrorCode.RESTORE_VALIDATION_FAILED,
                    stage="preview",
                    cause=e,
                ),
            )

        self._record_metrics("preview", result, started)
        return result

    def _failed_preview(
        self,
        backup_id: str,
        options: RestoreOptions,
        error: BackupOperationError,
    ) -> RestoreResult:
        return RestoreResult(
            backup_id=backup_id,
            status=RestoreStatus.FAILED,
            success=False,
            estimated_duration=0.0,
            storage_provider_id=options.storage_provider_id,
            error=error.to_dict(),
        )

    def _record_metrics(self, mode: str, result: RestoreResult, started: float) -> None:
        self.metrics.record_restore(
            mode,
            "success" if result.success else "failure",
            time.monotonic() - started,
            result.requires_approval,
            result.storage_provider_id,
            result.backup_id,
        )

    async def _preview(self, backup_id: str, options: RestoreOptions) -> RestoreResult:
        record = await self.metadata_store.get(backup_id)
        if record is None:
            raise BackupOperationError(
                f"Backup {backup_id} not found",
                ErrorCode.BACKUP_METADATA_NOT_FOUND,
                stage="preview",
            )

        context = await self.registry.resolve_for_record(
            record.storage_provider_id,
            record.destination,
            storage_provider_id=options.storage_provider_id,
            destination=options.destination,
        )

        validations = await self.validate_backup(record, context.provider)
        blocked = [v for v in validations if v.status in BLOCKING_STATUSES]

        integrity: Optional[IntegrityResult] = None
        if options.validate_integrity:
            integrity = await self.verifier.verify_record(record, context.provider)

        can_proceed = not blocked and (integrity is None or (integrity.passed and integrity.is_valid))

        now = utc_now()
        token = RestorePreviewToken(
            token=generate_restore_token(),
            backup_id=backup_id,
            issued_at=now,
            expires_at=now + timedelta(seconds=self.policy.token_ttl_seconds),
            requested_by=options.requested_by,
            requires_approval=self.policy.require_second_approval,
            metadata={
                "can_proceed": can_proceed,
                "requested_by": options.requested_by,
                "created_at": now.isoformat(),
                "storage_provider_id": context.provider_id,
                "destination": context.destination,
            },
        )
        await self.token_store.purge_expired(now)
        await self.token_store.issue(token)

        error = None
        if not can_proceed:
            reasons = [f"{v.component}: {v.status.value}" for v in blocked]
            if integrity is not None and not integrity.passed:
                reasons.append(f"integrity: {integrity.details}")
            error = BackupOperationError(
                f"Restore validation failed ({'; '.join(reasons)})",
                ErrorCode.RESTORE_VALIDATION_FAILED,
                stage="preview",
            ).to_dict()

        logger.info(
            f"Restore preview of {backup_id}: can_proceed={can_proceed}, "
            f"requires_approval={token.requires_approval}"
        )
        return RestoreResult(
            backup_id=backup_id,
            status=RestoreStatus.DRY_RUN_COMPLETED if can_proceed else RestoreStatus.FAILED,
            success=can_proceed,
            validations=validations,
            estimated_duration=round(record.metadata.size / RESTORE_THROUGHPUT_BYTES_PER_SECOND, 3),
            integrity_check=integrity,
            token=token.token,
            expires_at=token.expires_at,
            requires_approval=token.requires_approval,
            storage_provider_id=context.provider_id,
            error=error,
        )

    async def validate_backup(self, record: BackupRecord, provider: StorageProvider) -> List[ComponentValidation]:
        """Offline validation of every component the backup contains."""
        validations = []
        for component in RESTORE_ORDER:
            if record.metadata.components.get(component.value):
                validations.append(await self._validate_component(record.backup_id, provider, component))
        return validations

    async def _validate_component(
        self,
        backup_id: str,
        provider: StorageProvider,
        component: Component,
    ) -> ComponentValidation:
        primary = artifact_path(backup_id, PRIMARY_ARTIFACTS[component])
        if not await provider.exists(primary):
            return ComponentValidation(
                component=component.value,
                status=ValidationStatus.MISSING,
                details=f"Artifact not found: {primary}",
            )

        try:
            snapshot, missing = await load_snapshot(provider, backup_id, component)
        except Exception as e:
            return ComponentValidation(
                component=component.value,
                status=ValidationStatus.INVALID,
                details=f"Failed to read {primary}: {e}",
            )

        if missing:
            return ComponentValidation(
                component=component.value,
                status=ValidationStatus.MISSING,
                details=f"Missing artifacts: {', '.join(missing)}",
                metadata={"missing_files": missing},
            )

        backend = self.backends.get(component)
        if backend is None:
            return ComponentValidation(
                component=component.value,
                status=ValidationStatus.WARNING,
                details=f"No backend configured to restore {component.value}",
                metadata={"size": len(snapshot.primary)},
            )
        return backend.inspect_snapshot(snapshot)

    # Approval

    async def approve_restore(
        self,
        token: str,
        approved_by: str,
        reason: Optional[str] = None,
    ) -> RestorePreviewToken:
        """Record a second approval on an unexpired token.

        Raises:
            BackupOperationError: ``RESTORE_TOKEN_INVALID`` or ``RESTORE_TOKEN_EXPIRED``
        """
        try:
            approved = await self._approve(token, approved_by, reason)
        except BackupOperationError:
            self.metrics.record_restore_approval("failed")
            raise
        self.metrics.record_restore_approval("approved", approved.backup_id)
        return approved

    async def _approve(self, token: str, approved_by: str, reason: Optional[str]) -> RestorePreviewToken:
        now = utc_now()
        entry = await self.token_store.get(token)
        await self.token_store.purge_expired(now)

        if entry is None:
            raise BackupOperationError("Restore token not found", ErrorCode.RESTORE_TOKEN_INVALID, stage="approve")
        if entry.is_expired(now):
            await self.token_store.delete(token)
            raise BackupOperationError("Restore token expired", ErrorCode.RESTORE_TOKEN_EXPIRED, stage="approve")

        approved = await self.token_store.approve(token, approved_by, reason, now)
        if approved is None:
            raise BackupOperationError("Restore token not found", ErrorCode.RESTORE_TOKEN_INVALID, stage="approve")

        logger.info(f"Restore of {approved.backup_id} approved by {approved_by}")
        return approved

    # Apply

    async def apply_restore(self, backup_id: str, options: RestoreOptions) -> RestoreResult:
        started = time.monotonic()
        try:
            result = await self._apply(backup_id, options)
        except Exception as e:
            self.metrics.record_restore(
                "apply",
                "failure",
                time.monotonic() - started,
                self.policy.require_second_approval,
                options.storage_provider_id,
                backup_id,
            )
            if isinstance(e, BackupOperationError):
                raise
            logger.error(f"Restore of {backup_id} failed: {e}")
            raise BackupOperationError(
                f"Restore failed: {e}",
                ErrorCode.RESTORE_FAILED,
                stage="apply",
                cause=e,
            ) from e

        self._record_metrics("apply", result, started)
        return result

    async def _authorize(self, backup_id: str, token_value: Optional[str]) -> RestorePreviewToken:
        if not token_value:
            raise BackupOperationError(
                "A restore token from a preview is required",
                ErrorCode.RESTORE_TOKEN_REQUIRED,
                stage="apply",
            )

        now = utc_now()
        entry = await self.token_store.get(token_value)
        await self.token_store.purge_expired(now)

        if entry is None or entry.backup_id != backup_id:
            raise BackupOperationError(
                "Restore token is invalid for this backup",
                ErrorCode.RESTORE_TOKEN_INVALID,
                stage="apply",
            )
        if entry.is_expired(now):
            await self.token_store.delete(token_value)
            raise BackupOperationError("Restore token expired", ErrorCode.RESTORE_TOKEN_EXPIRED, stage="apply")
        if not entry.can_proceed and not entry.is_approved:
            raise BackupOperationError(
                "Restore preview reported blocking issues and no approval was recorded",
                ErrorCode.RESTORE_VALIDATION_FAILED,
                stage="apply",
            )
        if entry.requires_approval and not entry.is_approved:
            raise BackupOperationError(
                "Restore requires a second approval",
                ErrorCode.RESTORE_APPROVAL_REQUIRED,
                stage="apply",
            )
        return entry

    async def _apply(self, backup_id: str, options: RestoreOptions) -> RestoreResult:
        started = time.monotonic()
        entry = await self._authorize(backup_id, options.restore_token)

        record = await self.metadata_store.get(backup_id)
        if record is None:
            raise BackupOperationError(
                f"Backup {backup_id} not found",
                ErrorCode.BACKUP_METADATA_NOT_FOUND,
                stage="apply",
            )

        context = await self.registry.resolve_for_record(
            entry.metadata.get("storage_provider_id") or record.storage_provider_id,
            entry.metadata.get("destination") or record.destination,
            storage_provider_id=options.storage_provider_id,
            destination=options.destination,
        )
        components = [c for c in RESTORE_ORDER if record.metadata.components.get(c.value)]
        await check_readiness(self.backends, components, stage="apply")

        integrity: Optional[IntegrityResult] = None
        if options.validate_integrity:
            integrity = await self.verifier.verify_record(record, context.provider)
            if not integrity.passed:
                raise BackupOperationError(
                    f"Integrity check failed: {integrity.details}",
                    ErrorCode.RESTORE_INTEGRITY_FAILED,
                    stage="apply",
                )

        claimed = await self.token_store.consume(entry.token)
        if claimed is None:
            raise BackupOperationError(
                "Restore token was already used",
                ErrorCode.RESTORE_TOKEN_INVALID,
                stage="apply",
            )

        logger.info(f"Applying restore of {backup_id}: {[c.value for c in components]}")
        changes: List[ComponentChange] = []
        for component in components:
            try:
                changes.append(await self._restore_component(backup_id, context.provider, component))
            except Exception as e:
                logger.error(f"Restore of {backup_id}: {component.value} failed, aborting: {e}")
                await self._reinstate_token(claimed)
                raise BackupOperationError(
                    f"Restore of {component.value} failed: {e}",
                    ErrorCode.RESTORE_FAILED,
                    component=component.value,
                    stage="apply",
                    cause=e,
                ) from e

        logger.info(f"Restore of {backup_id} completed")
        return RestoreResult(
            backup_id=backup_id,
            status=RestoreStatus.COMPLETED,
            success=True,
            changes=changes,
            estimated_duration=round(time.monotonic() - started, 3),
            integrity_check=integrity,
            requires_approval=claimed.requires_approval,
            storage_provider_id=context.provider_id,
        )

    async def _restore_component(
        self,
        backup_id: str,
        provider: StorageProvider,
        component: Component,
    ) -> ComponentChange:
        snapshot, missing = await load_snapshot(provider, backup_id, component)
        if missing:
            raise FileNotFoundError(f"Missing artifacts: {', '.join(missing)}")
        details = await self.backends[component].import_snapshot(snapshot)
        return ComponentChange(component=component.value, details=details or {})

    async def _reinstate_token(self, token: RestorePreviewToken) -> None:
        """Put a claimed token back so a failed apply can be retried."""
        try:
            await self.token_store.issue(token)
        except Exception as e:
            logger.error(f"Failed to reinstate restore token for {token.backup_id}: {e}")
