"""Tests for the BackupService facade."""

import json
import pytest
from unittest.mock import AsyncMock

from datavault.backends.config_snapshot import ConfigSnapshotBackend
from datavault.errors import BackupOperationError, ErrorCode
from datavault.models import Component
from datavault.service import BackupService, config_settings


def test_config_settings(backup_config):
    settings = config_settings(backup_config)
    assert settings["backup"]["local_base_path"] == backup_config.local_base_path
    assert settings["backup"]["restore"]["token_ttl_seconds"] == 900


def test_default_config_backend(backup_config):
    service = BackupService(backup_config)

    assert isinstance(service.backends[Component.CONFIG], ConfigSnapshotBackend)
    assert service.registry.ids() == ["local"]


@pytest.mark.asyncio
async def test_config_only_backup_with_defaults(backup_config):
    service = BackupService(backup_config)

    metadata = await service.create_backup()

    assert metadata.components == {"falkordb": False, "qdrant": False, "postgres": False, "config": True}
    provider = service.registry.get("local")
    document = json.loads(await provider.read_file(f"{metadata.id}_config.json"))
    assert document["settings"]["backup"]["local_base_path"] == backup_config.local_base_path


@pytest.mark.asyncio
async def test_get_backup_raises_when_missing(backup_config):
    service = BackupService(backup_config)

    with pytest.raises(BackupOperationError) as exc_info:
        await service.get_backup("backup_missing")

    assert exc_info.value.code is ErrorCode.BACKUP_METADATA_NOT_FOUND


@pytest.mark.asyncio
async def test_close_continues_past_failing_backend(backup_config, backends):
    backends[Component.GRAPH].close = AsyncMock(side_effect=RuntimeError("already closed"))
    service = BackupService(backup_config, backends=backends)

    await service.close()

    assert backends[Component.RELATIONAL].closed is True
    assert backends[Component.CONFIG].closed is True
