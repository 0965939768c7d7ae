"""Configuration snapshot backend."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

from .._utils import logger, utc_now
from ..models import Component, ComponentValidation, ValidationStatus
from .base import ComponentBackend, ComponentSnapshot

REDACTED = "[REDACTED]"

SECRET_MARKERS = (
    "password", "secret", "token", "api_key", "apikey", "access_key", "credential", "private_key", "auth",
)


def redact_url(url: str, markers: Sequence[str] = SECRET_MARKERS) -> str:
    """Mask the password and secret-looking query parameters of a connection URL."""
    try:
        parts = urlsplit(url)
        has_password = parts.password is not None
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url

    netloc = parts.netloc
    if has_password:
        userinfo, _, hostport = netloc.rpartition("@")
        netloc = f"{userinfo.partition(':')[0]}:{REDACTED}@{hostport}"

    query = parts.query
    if query:
        pairs = []
        for pair in query.split("&"):
            key, sep, item = pair.partition("=")
            if sep and item and any(marker in key.lower() for marker in markers):
                item = REDACTED
            pairs.append(f"{key}{sep}{item}")
        query = "&".join(pairs)

    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


def redact(value: Any, markers: Sequence[str] = SECRET_MARKERS) -> Any:
    """Replace string values of secret-looking keys, recursing into mappings and lists.

    Other strings that look like URLs keep everything but their credentials.
    """
    if isinstance(value, Mapping):
        redacted = {}
        for key, item in value.items():
            if isinstance(item, str) and item and any(marker in str(key).lower() for marker in markers):
                redacted[key] = REDACTED
            else:
                redacted[key] = redact(item, markers)
        return redacted
    if isinstance(value, (list, tuple)):
        return [redact(item, markers) for item in value]
    if isinstance(value, str) and "://" in value:
        return redact_url(value, markers)
    return value


def parse_config_snapshot(data: bytes) -> Dict[str, Any]:
    document = json.loads(data.decode("utf-8"))
    if not isinstance(document, dict):
        raise ValueError("config snapshot must be a JSON object")
    return document


class ConfigSnapshotBackend(ComponentBackend):
    """Capture the platform configuration with secrets redacted.

    ``source`` returns the live configuration mapping. On restore the snapshot
    is written to ``restore_path`` when set; live settings are never rewritten
    in place since redacted secrets cannot be recovered from a snapshot.
    """

    component = Component.CONFIG

    def __init__(
        self,
        source: Callable[[], Mapping[str, Any]],
        restore_path: Optional[str] = None,
    ):
        self.source = source
        self.restore_path = Path(restore_path) if restore_path else None

    async def health_check(self) -> bool:
        return True

    async def export_snapshot(self) -> ComponentSnapshot:
        settings = redact(dict(self.source()))
        payload = {"captured_at": utc_now().isoformat(), "settings": settings}
        data = json.dumps(payload, indent=2, default=str).encode("utf-8")
        return ComponentSnapshot(
            component=self.component,
            artifacts={"config.json": data},
            details={"keys": sorted(settings)},
        )

    async def import_snapshot(self, snapshot: ComponentSnapshot) -> Dict[str, Any]:
        document = parse_config_snapshot(snapshot.primary)
        settings = document.get("settings") or {}
        logger.info(f"Configuration snapshot loaded with keys: {sorted(settings)}")

        if self.restore_path is not None:
            self.restore_path.parent.mkdir(parents=True, exist_ok=True)
            self.restore_path.write_text(json.dumps(settings, indent=2, default=str))
            logger.info(f"Configuration snapshot written to {self.restore_path}")

        return {
            "keys": sorted(settings),
            "written_to": str(self.restore_path) if self.restore_path else None,
        }

    def inspect_snapshot(self, snapshot: ComponentSnapshot) -> ComponentValidation:
        try:
            document = parse_config_snapshot(snapshot.primary)
        except (ValueError, UnicodeDecodeError) as e:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.INVALID,
                details=f"Unreadable configuration snapshot: {e}",
            )

        keys = sorted(document.get("settings") or {})
        if not keys:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.WARNING,
                details="Configuration snapshot is empty",
            )
        return ComponentValidation(
            component=self.name,
            status=ValidationStatus.VALID,
            details=f"{len(keys)} configuration keys",
            metadata={"keys": keys},
        )
