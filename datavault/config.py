"""Configuration management for datavault."""

import os
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class ProviderDefinition:
    """Storage provider definition: a factory type name plus type-specific options."""
    type: str = "local"  # local, s3, gcs, or any registered type
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProviderDefinition':
        return cls(
            type=str(data.get("type") or "local").lower(),
            options=dict(data.get("options") or {}),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.type:
            raise ValueError("provider type must be a non-empty string")


@dataclass(frozen=True)
class RetentionPolicyConfig:
    """Retention rules. A missing or non-positive limit disables that rule."""
    max_age_days: Optional[int] = None
    max_entries: Optional[int] = None
    max_total_size_bytes: Optional[int] = None
    delete_artifacts: bool = True

    @classmethod
    def from_env(cls) -> 'RetentionPolicyConfig':
        """Create config from environment variables."""
        return cls(
            max_age_days=_optional_int("DATAVAULT_RETENTION_MAX_AGE_DAYS"),
            max_entries=_optional_int("DATAVAULT_RETENTION_MAX_ENTRIES"),
            max_total_size_bytes=_optional_int("DATAVAULT_RETENTION_MAX_TOTAL_SIZE_BYTES"),
            delete_artifacts=_bool("DATAVAULT_RETENTION_DELETE_ARTIFACTS", "true"),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetentionPolicyConfig':
        return cls(
            max_age_days=data.get("max_age_days"),
            max_entries=data.get("max_entries"),
            max_total_size_bytes=data.get("max_total_size_bytes"),
            delete_artifacts=bool(data.get("delete_artifacts", True)),
        )

    @property
    def is_active(self) -> bool:
        return any(
            value is not None and value > 0
            for value in (self.max_age_days, self.max_entries, self.max_total_size_bytes)
        )

    def __post_init__(self):
        """Validate configuration."""
        for name in ("max_age_days", "max_entries", "max_total_size_bytes"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must not be negative, got {value}")


@dataclass(frozen=True)
class RestorePolicyConfig:
    """Restore approval policy."""
    require_second_approval: bool = False
    token_ttl_seconds: float = 15 * 60

    @classmethod
    def from_env(cls) -> 'RestorePolicyConfig':
        """Create config from environment variables."""
        return cls(
            require_second_approval=_bool("DATAVAULT_RESTORE_REQUIRE_APPROVAL", "false"),
            token_ttl_seconds=float(os.getenv("DATAVAULT_RESTORE_TOKEN_TTL_SECONDS", "900")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.token_ttl_seconds <= 0:
            raise ValueError(f"token_ttl_seconds must be positive, got {self.token_ttl_seconds}")


@dataclass(frozen=True)
class BackupConfig:
    """Backup storage, retention and restore configuration."""
    local_base_path: str = "./backups"
    local_allow_create: bool = True
    default_provider: Optional[str] = None
    providers: Dict[str, ProviderDefinition] = field(default_factory=dict)
    retention: Optional[RetentionPolicyConfig] = None
    restore: RestorePolicyConfig = field(default_factory=RestorePolicyConfig)

    @classmethod
    def from_env(cls) -> 'BackupConfig':
        """Create config from environment variables.

        ``DATAVAULT_STORAGE_PROVIDERS`` holds a JSON object mapping provider id
        to ``{"type": ..., "options": {...}}``.
        """
        raw_providers = os.getenv("DATAVAULT_STORAGE_PROVIDERS")
        providers: Dict[str, ProviderDefinition] = {}
        if raw_providers:
            try:
                parsed = json.loads(raw_providers)
            except json.JSONDecodeError as e:
                raise ValueError(f"DATAVAULT_STORAGE_PROVIDERS is not valid JSON: {e}")
            providers = {
                provider_id: ProviderDefinition.from_dict(definition or {})
                for provider_id, definition in parsed.items()
            }

        retention = RetentionPolicyConfig.from_env()

        return cls(
            local_base_path=os.getenv("DATAVAULT_BACKUP_DIR", "./backups"),
            local_allow_create=_bool("DATAVAULT_BACKUP_DIR_ALLOW_CREATE", "true"),
            default_provider=os.getenv("DATAVAULT_DEFAULT_STORAGE_PROVIDER") or None,
            providers=providers,
            retention=retention if retention.is_active else None,
            restore=RestorePolicyConfig.from_env(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BackupConfig':
        """Create config from a plain mapping (e.g. a parsed YAML/JSON file)."""
        local = data.get("local") or {}
        retention = data.get("retention")
        restore = data.get("restore") or {}
        return cls(
            local_base_path=local.get("base_path", "./backups"),
            local_allow_create=bool(local.get("allow_create", True)),
            default_provider=data.get("default_provider"),
            providers={
                provider_id: ProviderDefinition.from_dict(definition or {})
                for provider_id, definition in (data.get("providers") or {}).items()
            },
            retention=RetentionPolicyConfig.from_dict(retention) if retention else None,
            restore=RestorePolicyConfig(
                require_second_approval=bool(restore.get("require_second_approval", False)),
                token_ttl_seconds=float(restore.get("token_ttl_seconds", 15 * 60)),
            ),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.local_base_path:
            raise ValueError("local_base_path must be a non-empty path")
        if self.default_provider is not None and not self.default_provider:
            raise ValueError("default_provider must be None or a provider id")
