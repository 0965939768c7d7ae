"""Global pytest configuration and fixtures."""

import pytest
import sys
import tempfile
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from datavault._storage.local import LocalStorageProvider
from datavault._storage.registry import StorageProviderRegistry
from datavault.config import BackupConfig
from datavault.metadata.memory import InMemoryMetadataStore
from datavault.models import Component
from datavault.restore.tokens import InMemoryRestoreTokenStore

from fakes import FakeBackend, fake_vector_backend


@pytest.fixture
def temp_backup_dir():
    """Create temporary backup directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def local_provider(temp_backup_dir):
    return LocalStorageProvider(str(temp_backup_dir), provider_id="local")


@pytest.fixture
def registry(local_provider):
    registry = StorageProviderRegistry(default_provider_id="local")
    registry.register("local", local_provider)
    return registry


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def token_store():
    return InMemoryRestoreTokenStore()


@pytest.fixture
def restore_log():
    """Shared list backends append their component to on import."""
    return []


@pytest.fixture
def backends(restore_log):
    """One healthy fake backend per component."""
    return {
        Component.GRAPH: FakeBackend(Component.GRAPH, restore_log=restore_log),
        Component.VECTOR: fake_vector_backend(restore_log=restore_log),
        Component.RELATIONAL: FakeBackend(Component.RELATIONAL, restore_log=restore_log),
        Component.CONFIG: FakeBackend(Component.CONFIG, restore_log=restore_log),
    }


@pytest.fixture
def backup_config(temp_backup_dir):
    return BackupConfig(local_base_path=str(temp_backup_dir), default_provider="local")
