from .base import MetadataStore
from .memory import InMemoryMetadataStore
from .redis import RedisMetadataStore

__all__ = ["MetadataStore", "InMemoryMetadataStore", "RedisMetadataStore"]
