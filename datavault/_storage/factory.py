"""Storage provider factory keyed by provider type name."""

from typing import Any, Callable, Dict, Set

from ..config import ProviderDefinition
from ..errors import BackupOperationError, ErrorCode
from .base import StorageProvider

ProviderConstructor = Callable[[str, Dict[str, Any]], StorageProvider]


class StorageProviderFactory:
    """Factory for creating storage providers from typed configuration.

    New provider types are added with :meth:`register`; nothing else needs to
    change for the registry or the orchestrators to use them.
    """

    _providers: Dict[str, ProviderConstructor] = {}

    @classmethod
    def register(cls, type_name: str, constructor: ProviderConstructor) -> None:
        """Register a provider type.

        Args:
            type_name: Value of ``ProviderDefinition.type`` that selects this constructor
            constructor: Callable taking ``(provider_id, options)`` and returning a provider
        """
        cls._providers[type_name.lower()] = constructor

    @classmethod
    def registered_types(cls) -> Set[str]:
        return set(cls._providers)

    @classmethod
    def create(cls, provider_id: str, definition: ProviderDefinition) -> StorageProvider:
        """Create a provider instance.

        Raises:
            BackupOperationError: ``STORAGE_PROVIDER_CONFIG_INVALID`` for an unknown
                type or options the provider rejects
        """
        constructor = cls._providers.get(definition.type.lower())
        if constructor is None:
            raise BackupOperationError(
                f"Unknown storage provider type '{definition.type}' for '{provider_id}'. "
                f"Available: {sorted(cls._providers)}",
                ErrorCode.STORAGE_PROVIDER_CONFIG_INVALID,
            )

        try:
            return constructor(provider_id, dict(definition.options))
        except (TypeError, ValueError) as e:
            raise BackupOperationError(
                f"Invalid options for storage provider '{provider_id}': {e}",
                ErrorCode.STORAGE_PROVIDER_CONFIG_INVALID,
                cause=e,
            ) from e


def _create_local(provider_id: str, options: Dict[str, Any]) -> StorageProvider:
    from .local import LocalStorageProvider

    base_path = options.pop("base_path", None)
    if not base_path:
        raise ValueError("local provider requires 'base_path'")
    return LocalStorageProvider(base_path, provider_id=provider_id, **options)


def _create_s3(provider_id: str, options: Dict[str, Any]) -> StorageProvider:
    from .s3 import S3StorageProvider
    return S3StorageProvider(provider_id=provider_id, **options)


def _create_gcs(provider_id: str, options: Dict[str, Any]) -> StorageProvider:
    from .s3 import GCSStorageProvider
    return GCSStorageProvider(provider_id=provider_id, **options)


def _register_builtin_providers():
    """Register built-in provider types with lazy imports."""
    StorageProviderFactory.register("local", _create_local)
    StorageProviderFactory.register("s3", _create_s3)
    StorageProviderFactory.register("gcs", _create_gcs)


_register_builtin_providers()
