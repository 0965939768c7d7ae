"""Data models for backup/restore operations."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Component(str, Enum):
    """Data sources covered by a backup. Values are the ``components`` map keys."""

    GRAPH = "falkordb"
    VECTOR = "qdrant"
    RELATIONAL = "postgres"
    CONFIG = "config"


DATA_COMPONENTS = (Component.GRAPH, Component.VECTOR, Component.RELATIONAL)

# Restore always runs in this order
RESTORE_ORDER = (Component.GRAPH, Component.VECTOR, Component.RELATIONAL, Component.CONFIG)


class BackupType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class BackupStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ValidationStatus(str, Enum):
    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"
    MISSING = "missing"


class RestoreStatus(str, Enum):
    DRY_RUN_COMPLETED = "dry_run_completed"
    COMPLETED = "completed"
    FAILED = "failed"


class BackupMetadata(BaseModel):
    """Metadata of a single backup, finalized once at the end of creation."""

    id: str = Field(..., description="Unique backup identifier")
    type: BackupType = BackupType.FULL
    timestamp: datetime = Field(..., description="Backup creation timestamp")
    size: int = Field(0, description="Total artifact bytes")
    checksum: str = Field("", description="SHA-256 over sorted artifact contents")
    components: Dict[str, bool] = Field(default_factory=dict)
    status: BackupStatus = BackupStatus.IN_PROGRESS


class BackupRecord(BaseModel):
    """Persisted backup row; the source of truth for which backups exist."""

    metadata: BackupMetadata
    storage_provider_id: str
    destination: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def backup_id(self) -> str:
        return self.metadata.id


class BackupOptions(BaseModel):
    type: BackupType = BackupType.FULL
    include_data: bool = True
    include_config: bool = True
    compression: bool = False
    destination: Optional[str] = None
    storage_provider_id: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)


class RestoreOptions(BaseModel):
    dry_run: bool = False
    restore_token: Optional[str] = None
    validate_integrity: bool = False
    destination: Optional[str] = None
    storage_provider_id: Optional[str] = None
    requested_by: Optional[str] = None

    @property
    def is_preview(self) -> bool:
        return self.dry_run or not self.restore_token


class ComponentValidation(BaseModel):
    """Offline check of one component's artifacts during restore preview."""

    component: str
    status: ValidationStatus
    details: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IntegrityResult(BaseModel):
    passed: bool
    is_valid: bool
    details: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RestorePreviewToken(BaseModel):
    """Time-bounded grant issued by a restore preview and consumed by apply."""

    token: str
    backup_id: str
    issued_at: datetime
    expires_at: datetime
    requested_by: Optional[str] = None
    requires_approval: bool = False
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def can_proceed(self) -> bool:
        return bool(self.metadata.get("can_proceed", False))

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ComponentChange(BaseModel):
    component: str
    action: str = "restored"
    status: str = "completed"
    details: Dict[str, Any] = Field(default_factory=dict)


class RestoreResult(BaseModel):
    """Outcome of a restore preview or apply."""

    backup_id: str
    status: RestoreStatus
    success: bool
    changes: List[ComponentChange] = Field(default_factory=list)
    validations: List[ComponentValidation] = Field(default_factory=list)
    estimated_duration: Optional[float] = Field(None, description="Seconds")
    integrity_check: Optional[IntegrityResult] = None
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    requires_approval: bool = False
    storage_provider_id: Optional[str] = None
    error: Optional[Dict[str, Any]] = None


class RetentionReport(BaseModel):
    """Which backups a retention pass removed and why."""

    deleted: List[str] = Field(default_factory=list)
    reasons: Dict[str, str] = Field(default_factory=dict)
    artifact_errors: List[str] = Field(default_factory=list)
    retained: int = 0
