"""Tests for the backup HTTP API."""

import json
import pytest
from dataclasses import replace
from fastapi.testclient import TestClient

from datavault.api.app import build_backends, create_app
from datavault.api.config import Settings
from datavault.config import BackupConfig, RestorePolicyConfig, RetentionPolicyConfig
from datavault.models import Component
from datavault.service import BackupService

PREFIX = "/api/v1"


@pytest.fixture
def service(backup_config, backends):
    return BackupService(backup_config, backends=backends)


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as client:
        yield client


def create_backup(client, **options):
    response = client.post(f"{PREFIX}/backups", json=options)
    assert response.status_code == 201
    return response.json()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == f"{PREFIX}/docs"


def test_create_and_list_backups(client):
    first = create_backup(client, labels={"reason": "manual"})
    second = create_backup(client)

    assert first["status"] == "completed"
    assert first["components"]["config"] is True

    listed = client.get(f"{PREFIX}/backups").json()
    assert [b["id"] for b in listed] == [second["id"], first["id"]]


def test_create_backup_without_body(client):
    response = client.post(f"{PREFIX}/backups")
    assert response.status_code == 201
    assert response.json()["status"] == "completed"


def test_get_backup(client):
    created = create_backup(client, labels={"reason": "manual"})

    response = client.get(f"{PREFIX}/backups/{created['id']}")

    assert response.status_code == 200
    record = response.json()
    assert record["metadata"]["id"] == created["id"]
    assert record["storage_provider_id"] == "local"
    assert record["labels"] == {"reason": "manual"}


def test_unknown_backup_error_shape(client):
    response = client.get(f"{PREFIX}/backups/backup_missing")

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "BACKUP_METADATA_NOT_FOUND"
    assert error["statusCode"] == 404


def test_unknown_storage_provider_is_rejected(client):
    response = client.post(f"{PREFIX}/backups", json={"storage_provider_id": "nope"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "STORAGE_PROVIDER_UNKNOWN"


def test_verify_backup(client):
    created = create_backup(client)

    response = client.get(f"{PREFIX}/backups/{created['id']}/verify")

    assert response.status_code == 200
    assert response.json()["passed"] is True
    assert response.json()["is_valid"] is True


def test_preview_then_apply_restore(client, restore_log):
    created = create_backup(client)
    url = f"{PREFIX}/backups/{created['id']}/restore"

    preview = client.post(url, json={"requested_by": "ops"}).json()
    assert preview["status"] == "dry_run_completed"
    assert preview["success"] is True
    assert preview["token"]
    assert restore_log == []

    applied = client.post(url, json={"restore_token": preview["token"]})
    assert applied.status_code == 200
    assert applied.json()["status"] == "completed"
    assert [c["component"] for c in applied.json()["changes"]] == ["falkordb", "qdrant", "postgres", "config"]

    replay = client.post(url, json={"restore_token": preview["token"]})
    assert replay.status_code == 404
    assert replay.json()["error"]["code"] == "RESTORE_TOKEN_INVALID"


def test_apply_with_unknown_token(client):
    created = create_backup(client)

    response = client.post(
        f"{PREFIX}/backups/{created['id']}/restore",
        json={"restore_token": "not-a-token"},
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESTORE_TOKEN_INVALID"


def test_second_approval_flow(backup_config, backends):
    config = replace(backup_config, restore=RestorePolicyConfig(require_second_approval=True))
    with TestClient(create_app(BackupService(config, backends=backends))) as client:
        created = create_backup(client)
        url = f"{PREFIX}/backups/{created['id']}/restore"
        preview = client.post(url, json={}).json()
        assert preview["requires_approval"] is True

        blocked = client.post(url, json={"restore_token": preview["token"]})
        assert blocked.status_code == 403
        assert blocked.json()["error"]["code"] == "RESTORE_APPROVAL_REQUIRED"

        approved = client.post(
            f"{PREFIX}/restore/approve",
            json={"token": preview["token"], "approved_by": "lead", "reason": "incident"},
        )
        assert approved.status_code == 200
        assert approved.json()["approved_by"] == "lead"

        applied = client.post(url, json={"restore_token": preview["token"]})
        assert applied.status_code == 200
        assert applied.json()["success"] is True


def test_approve_validates_request(client):
    response = client.post(f"{PREFIX}/restore/approve", json={"token": "", "approved_by": "lead"})
    assert response.status_code == 422


def test_enforce_retention(backup_config, backends):
    config = replace(backup_config, retention=RetentionPolicyConfig(max_entries=10))
    service = BackupService(config, backends=backends)
    with TestClient(create_app(service)) as client:
        for _ in range(3):
            create_backup(client)

        service.retention.policy = RetentionPolicyConfig(max_entries=1)
        report = client.post(f"{PREFIX}/retention/enforce").json()

        assert len(report["deleted"]) == 2
        assert report["retained"] == 1
        assert len(client.get(f"{PREFIX}/backups").json()) == 1


@pytest.mark.asyncio
async def test_config_snapshot_masks_connection_url_passwords():
    app_settings = Settings(
        postgres_url="postgresql://admin:hunter2@db:5432/app",
        redis_url="redis://:hunter2@cache:6379/0",
        redis_password="hunter2",
    )
    backends = build_backends(app_settings, BackupConfig())

    snapshot = await backends[Component.CONFIG].export_snapshot()

    assert b"hunter2" not in snapshot.primary
    api_settings = json.loads(snapshot.primary)["settings"]["api"]
    assert api_settings["postgres_url"].startswith("postgresql://admin:")
    assert api_settings["postgres_url"].endswith("@db:5432/app")
    await backends[Component.RELATIONAL].close()


def test_metrics_endpoint(client):
    created = create_backup(client)
    client.post(f"{PREFIX}/backups/{created['id']}/restore", json={})

    response = client.get(f"{PREFIX}/metrics")

    assert response.status_code == 200
    body = response.json()
    assert body["counters"] == {"backup.success": 1, "restore.preview.success": 1}
    assert body["backup_bytes"] == created["size"]
    assert [event["operation"] for event in body["recent"]] == ["backup", "restore.preview"]
