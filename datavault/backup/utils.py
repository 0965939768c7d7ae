"""Utility functions for backup artifacts: naming, checksums, sizes, compression."""

import asyncio
import json
import tarfile
from typing import Iterable, List, Optional

from .._storage.base import StorageProvider
from .._utils import compute_sequence_checksum, logger

BUNDLE_SUFFIX = ".tar.gz"
_ID_SEPARATORS = ("_", "/", ".")


def artifact_path(backup_id: str, name: str) -> str:
    """Storage path of an artifact.

    ``falkordb.dump`` -> ``{backup_id}_falkordb.dump``;
    ``qdrant/x.snapshot`` -> ``{backup_id}/qdrant/x.snapshot``.
    Names already carrying the backup id are returned unchanged.
    """
    if belongs_to_backup(backup_id, name):
        return name
    if "/" in name:
        return f"{backup_id}/{name}"
    return f"{backup_id}_{name}"


def bundle_path(backup_id: str) -> str:
    return f"{backup_id}{BUNDLE_SUFFIX}"


def belongs_to_backup(backup_id: str, path: str) -> bool:
    """True when ``path`` is prefixed by the backup id followed by a separator.

    Requiring the separator keeps ``backup_1`` from claiming ``backup_10_...``.
    """
    return any(path.startswith(f"{backup_id}{sep}") for sep in _ID_SEPARATORS)


def is_bundle(path: str) -> bool:
    return path.endswith(BUNDLE_SUFFIX)


def manifest_references(data: bytes) -> List[str]:
    """Sub-artifact names declared by a primary artifact's ``artifacts`` list.

    Non-JSON or manifest-less artifacts declare nothing.
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return []
    if not isinstance(document, dict):
        return []
    names = document.get("artifacts")
    if not isinstance(names, list):
        return []
    return [name for name in names if isinstance(name, str) and name]


async def list_backup_artifacts(
    provider: StorageProvider,
    backup_id: str,
    all_paths: Optional[Iterable[str]] = None,
) -> List[str]:
    """Sorted paths belonging to ``backup_id``, bundle included."""
    if all_paths is None:
        all_paths = await provider.list_files(prefix=backup_id)
    return sorted(p for p in all_paths if belongs_to_backup(backup_id, p))


async def compute_backup_checksum(provider: StorageProvider, paths: Iterable[str]) -> str:
    """SHA-256 over the contents of ``paths`` in sorted order, skipping bundles.

    Reads run concurrently; hashing is done in path order afterwards.
    """
    ordered = sorted(p for p in paths if not is_bundle(p))
    contents = await asyncio.gather(*(provider.read_file(p) for p in ordered))
    return compute_sequence_checksum(contents)


async def compute_backup_size(provider: StorageProvider, paths: Iterable[str]) -> int:
    stats = await asyncio.gather(*(provider.stat(p) for p in paths))
    return sum(s.size for s in stats)


async def create_bundle(provider: StorageProvider, backup_id: str, paths: Iterable[str]) -> str:
    """Archive artifacts into ``{backup_id}.tar.gz`` through provider streams.

    Args:
        provider: Streaming-capable storage provider
        backup_id: Backup the artifacts belong to
        paths: Artifact paths to include

    Returns:
        Path of the bundle
    """
    bundle = bundle_path(backup_id)
    members = sorted(p for p in paths if not is_bundle(p))
    logger.info(f"Creating archive: {bundle} ({len(members)} artifacts)")

    async with provider.open_write_stream(bundle) as out:
        with tarfile.open(fileobj=out, mode="w:gz") as tar:
            for path in members:
                stat = await provider.stat(path)
                info = tarfile.TarInfo(name=path)
                info.size = stat.size
                async with provider.open_read_stream(path) as source:
                    await asyncio.to_thread(tar.addfile, info, source)

    logger.info(f"Archive created: {bundle}")
    return bundle
