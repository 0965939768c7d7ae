"""Tests for the configuration snapshot backend."""

import json
import pytest

from datavault.backends.base import ComponentSnapshot
from datavault.backends.config_snapshot import REDACTED, ConfigSnapshotBackend, redact, redact_url
from datavault.models import Component, ValidationStatus


def test_redact_only_secret_strings():
    settings = {
        "neo4j_url": "bolt://db:7687",
        "neo4j_password": "hunter2",
        "providers": {
            "archive": {"options": {"bucket": "b", "secret_access_key": "xyz", "access_key_id": "AKIA"}},
        },
        "restore": {"token_ttl_seconds": 900},
        "clients": [{"api_key": "k"}, {"name": "plain"}],
        "auth_token": "",
    }

    redacted = redact(settings)

    assert redacted["neo4j_url"] == "bolt://db:7687"
    assert redacted["neo4j_password"] == REDACTED
    options = redacted["providers"]["archive"]["options"]
    assert options == {"bucket": "b", "secret_access_key": REDACTED, "access_key_id": REDACTED}
    assert redacted["restore"]["token_ttl_seconds"] == 900
    assert redacted["clients"] == [{"api_key": REDACTED}, {"name": "plain"}]
    assert redacted["auth_token"] == ""
    assert settings["neo4j_password"] == "hunter2"


@pytest.mark.parametrize("url, expected", [
    ("postgresql://admin:hunter2@db:5432/app", f"postgresql://admin:{REDACTED}@db:5432/app"),
    ("redis://:hunter2@cache:6379/0", f"redis://:{REDACTED}@cache:6379/0"),
    ("https://s3.example.com/bucket?region=eu&access_key=AKIA", f"https://s3.example.com/bucket?region=eu&access_key={REDACTED}"),
    ("redis://cache:6379/0", "redis://cache:6379/0"),
    ("http://q:6333", "http://q:6333"),
    ("sqlite+aiosqlite:///app.db", "sqlite+aiosqlite:///app.db"),
])
def test_redact_url(url, expected):
    assert redact_url(url) == expected


def test_redact_masks_credentials_in_url_values():
    settings = {
        "postgres_url": "postgresql://admin:hunter2@db:5432/app",
        "replicas": ["redis://:hunter2@cache:6379/0"],
        "qdrant_url": "http://q:6333",
    }

    redacted = redact(settings)

    assert "hunter2" not in json.dumps(redacted)
    assert redacted["postgres_url"] == f"postgresql://admin:{REDACTED}@db:5432/app"
    assert redacted["replicas"] == [f"redis://:{REDACTED}@cache:6379/0"]
    assert redacted["qdrant_url"] == "http://q:6333"


@pytest.mark.asyncio
async def test_export_snapshot():
    backend = ConfigSnapshotBackend(source=lambda: {"qdrant_url": "http://q:6333", "qdrant_api_key": "k"})

    snapshot = await backend.export_snapshot()

    assert snapshot.component is Component.CONFIG
    document = json.loads(snapshot.primary)
    assert document["settings"] == {"qdrant_url": "http://q:6333", "qdrant_api_key": REDACTED}
    assert "captured_at" in document
    assert snapshot.details == {"keys": ["qdrant_api_key", "qdrant_url"]}
    assert await backend.health_check() is True


@pytest.mark.asyncio
async def test_import_writes_restore_path(temp_backup_dir):
    target = temp_backup_dir / "restored" / "config.json"
    backend = ConfigSnapshotBackend(source=dict, restore_path=str(target))
    snapshot = ComponentSnapshot(
        component=Component.CONFIG,
        artifacts={"config.json": json.dumps({"settings": {"a": 1}}).encode()},
    )

    details = await backend.import_snapshot(snapshot)

    assert json.loads(target.read_text()) == {"a": 1}
    assert details == {"keys": ["a"], "written_to": str(target)}


@pytest.mark.asyncio
async def test_import_without_restore_path():
    backend = ConfigSnapshotBackend(source=dict)
    snapshot = ComponentSnapshot(
        component=Component.CONFIG,
        artifacts={"config.json": json.dumps({"settings": {"b": 2}}).encode()},
    )

    assert await backend.import_snapshot(snapshot) == {"keys": ["b"], "written_to": None}


@pytest.mark.parametrize("payload, status", [
    (b'{"settings": {"a": 1}}', ValidationStatus.VALID),
    (b'{"settings": {}}', ValidationStatus.WARNING),
    (b"[1, 2, 3]", ValidationStatus.INVALID),
    (b"\xff\xfe", ValidationStatus.INVALID),
])
def test_inspect_snapshot(payload, status):
    backend = ConfigSnapshotBackend(source=dict)
    snapshot = ComponentSnapshot(component=Component.CONFIG, artifacts={"config.json": payload})

    assert backend.inspect_snapshot(snapshot).status is status
