from .base import ArtifactStat, StorageProvider
from .factory import StorageProviderFactory
from .local import LocalStorageProvider
from .registry import StorageContext, StorageProviderRegistry

__all__ = [
    "ArtifactStat",
    "StorageProvider",
    "StorageProviderFactory",
    "LocalStorageProvider",
    "StorageContext",
    "StorageProviderRegistry",
]
