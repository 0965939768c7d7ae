from .config import BackupConfig, ProviderDefinition, RestorePolicyConfig, RetentionPolicyConfig
from .errors import BackupOperationError, ErrorCode
from .models import (
    BackupMetadata,
    BackupOptions,
    BackupRecord,
    BackupStatus,
    BackupType,
    Component,
    ComponentValidation,
    IntegrityResult,
    RestoreOptions,
    RestorePreviewToken,
    RestoreResult,
    RestoreStatus,
)
from .service import BackupService

__version__ = "0.3.0"
__author__ = "datavault-maintainers"
__url__ = ""
