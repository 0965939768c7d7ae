import hashlib
import importlib.util
import secrets
import uuid
import logging
from datetime import datetime, timezone
from typing import Iterable

logger = logging.getLogger("datavault")


def ensure_dependency(module_name: str, package_name: str, feature: str) -> None:
    """Raise a helpful ImportError when an optional dependency is missing.

    Args:
        module_name: Import name to check (e.g. ``qdrant_client``)
        package_name: Distribution name to suggest (e.g. ``qdrant-client``)
        feature: Human readable feature that needs the dependency
    """
    if importlib.util.find_spec(module_name) is None:
        raise ImportError(
            f"{feature} requires the '{package_name}' package. "
            f"Install with: pip install {package_name}"
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_backup_id() -> str:
    """Generate a unique backup id.

    Returns:
        Backup ID in format: backup_YYYYMMDDTHHMMSSffffffZ_<8 hex chars>
    """
    timestamp = utc_now().strftime("%Y%m%dT%H%M%S%fZ")
    return f"backup_{timestamp}_{uuid.uuid4().hex[:8]}"


def generate_restore_token() -> str:
    """Opaque, unguessable restore token."""
    return secrets.token_urlsafe(32)


def compute_sequence_checksum(chunks: Iterable[bytes]) -> str:
    """SHA-256 hex digest over the concatenation of ``chunks`` in order."""
    sha256 = hashlib.sha256()
    for chunk in chunks:
        sha256.update(chunk)
    return sha256.hexdigest()
