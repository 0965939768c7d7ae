"""Qdrant vector store backend using the collection snapshot API."""

import json
from typing import Any, Dict, List, Optional

import httpx

from .._utils import ensure_dependency, logger
from ..models import Component, ComponentValidation, ValidationStatus
from .base import ComponentBackend, ComponentSnapshot

MANIFEST_NAME = "qdrant_collections.json"


def snapshot_artifact_name(collection: str) -> str:
    return f"qdrant/{collection}.snapshot"


def parse_manifest(data: bytes) -> List[Dict[str, Any]]:
    """Collection entries of a manifest.

    Raises:
        ValueError: If the manifest is not a JSON object with a ``collections`` list
    """
    document = json.loads(data.decode("utf-8"))
    if not isinstance(document, dict) or not isinstance(document.get("collections"), list):
        raise ValueError("vector manifest requires a 'collections' list")
    return document["collections"]


class VectorBackend(ComponentBackend):
    """Snapshot every (or every listed) collection into one artifact each.

    The manifest records ``name``, ``artifact``, ``points_count`` and
    ``error`` per collection; a collection whose snapshot fails keeps its
    entry with the error and no artifact.
    """

    component = Component.VECTOR

    def __init__(
        self,
        url: str = "http://localhost:6333",
        api_key: Optional[str] = None,
        collections: Optional[List[str]] = None,
        timeout: float = 300.0,
        client: Optional[Any] = None,
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.collections = collections
        self.timeout = timeout
        self._client = client

    async def _get_client(self):
        """Get or create the Qdrant client."""
        if self._client is None:
            ensure_dependency("qdrant_client", "qdrant-client", "Vector backup backend")
            from qdrant_client import AsyncQdrantClient
            self._client = AsyncQdrantClient(url=self.url, api_key=self.api_key)
        return self._client

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["api-key"] = self.api_key
        return headers

    async def health_check(self) -> bool:
        try:
            client = await self._get_client()
            await client.get_collections()
        except Exception as e:
            logger.warning(f"Vector backend {self.url} unreachable: {e}")
            return False
        return True

    async def _collection_names(self) -> List[str]:
        if self.collections is not None:
            return list(self.collections)
        client = await self._get_client()
        response = await client.get_collections()
        return sorted(c.name for c in response.collections)

    async def export_snapshot(self) -> ComponentSnapshot:
        client = await self._get_client()
        artifacts: Dict[str, bytes] = {}
        entries: List[Dict[str, Any]] = []

        async with httpx.AsyncClient(timeout=self.timeout) as http_client:
            for name in await self._collection_names():
                entry: Dict[str, Any] = {"name": name, "artifact": None, "points_count": None, "error": None}
                try:
                    info = await client.get_collection(collection_name=name)
                    entry["points_count"] = info.points_count or 0
                    artifacts[snapshot_artifact_name(name)] = await self._download_snapshot(
                        client, http_client, name
                    )
                    entry["artifact"] = snapshot_artifact_name(name)
                except Exception as e:
                    logger.warning(f"Vector snapshot failed for collection {name}: {e}")
                    entry["error"] = str(e)
                entries.append(entry)

        manifest = {
            "collections": entries,
            "artifacts": [e["artifact"] for e in entries if e["artifact"]],
        }
        artifacts[MANIFEST_NAME] = json.dumps(manifest, indent=2).encode("utf-8")

        logger.info(f"Vector export complete: {len(manifest['artifacts'])}/{len(entries)} collections")
        return ComponentSnapshot(
            component=self.component,
            artifacts=artifacts,
            details={"collections": len(entries), "snapshots": len(manifest["artifacts"])},
        )

    async def _download_snapshot(self, client, http_client: httpx.AsyncClient, collection: str) -> bytes:
        snapshot_description = await client.create_snapshot(collection_name=collection)
        snapshot_name = snapshot_description.name
        logger.debug(f"Snapshot created: {snapshot_name}")

        download_url = f"{self.url}/collections/{collection}/snapshots/{snapshot_name}"
        response = await http_client.get(download_url, headers=self._headers())
        response.raise_for_status()
        content = response.content

        try:
            await client.delete_snapshot(collection_name=collection, snapshot_name=snapshot_name)
        except Exception as e:
            logger.warning(f"Failed to delete server-side snapshot {snapshot_name}: {e}")

        return content

    async def import_snapshot(self, snapshot: ComponentSnapshot) -> Dict[str, Any]:
        client = await self._get_client()
        restored: List[str] = []

        async with httpx.AsyncClient(timeout=self.timeout) as http_client:
            for entry in parse_manifest(snapshot.primary):
                artifact = entry.get("artifact")
                if not artifact:
                    continue
                name = entry["name"]

                try:
                    await client.delete_collection(collection_name=name)
                except Exception as e:
                    logger.debug(f"No existing collection {name} to delete: {e}")

                upload_url = f"{self.url}/collections/{name}/snapshots/upload?priority=snapshot"
                files = {"snapshot": (f"{name}.snapshot", snapshot.artifacts[artifact], "application/octet-stream")}
                response = await http_client.post(upload_url, files=files, headers=self._headers())
                response.raise_for_status()
                restored.append(name)
                logger.info(f"Vector collection restored: {name}")

        return {"collections": restored}

    def inspect_snapshot(self, snapshot: ComponentSnapshot) -> ComponentValidation:
        try:
            entries = parse_manifest(snapshot.primary)
        except (ValueError, UnicodeDecodeError) as e:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.INVALID,
                details=f"Unreadable vector manifest: {e}",
            )

        failed = [e.get("name") for e in entries if e.get("error")]
        metadata = {
            "collections": len(entries),
            "points": sum(e.get("points_count") or 0 for e in entries),
            "failed_collections": failed,
        }
        if not entries:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.WARNING,
                details="No collections in manifest",
                metadata=metadata,
            )
        if failed:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.WARNING,
                details=f"Collections without snapshot: {', '.join(failed)}",
                metadata=metadata,
            )
        return ComponentValidation(
            component=self.name,
            status=ValidationStatus.VALID,
            details=f"{len(entries)} collections",
            metadata=metadata,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
