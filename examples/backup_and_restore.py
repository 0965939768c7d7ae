"""Back up the configuration snapshot to a local directory and restore it.

Run with ``python examples/backup_and_restore.py``. Set ``NEO4J_URL``,
``QDRANT_URL`` or ``POSTGRES_URL`` to include those stores as well.
"""

import asyncio
import logging
import os

from datavault import BackupConfig, BackupOptions, BackupService, RestoreOptions
from datavault.models import Component

logging.basicConfig(level=logging.INFO)


def build_backends():
    backends = {}
    if os.getenv("NEO4J_URL"):
        from datavault.backends import GraphBackend
        backends[Component.GRAPH] = GraphBackend(
            os.environ["NEO4J_URL"],
            auth=(os.getenv("NEO4J_USER", "neo4j"), os.getenv("NEO4J_PASSWORD", "")),
        )
    if os.getenv("QDRANT_URL"):
        from datavault.backends import VectorBackend
        backends[Component.VECTOR] = VectorBackend(os.environ["QDRANT_URL"])
    if os.getenv("POSTGRES_URL"):
        from datavault.backends import RelationalBackend
        backends[Component.RELATIONAL] = RelationalBackend(os.environ["POSTGRES_URL"])
    return backends


async def main():
    service = BackupService(BackupConfig(local_base_path="./example_backups"), backends=build_backends())
    try:
        metadata = await service.create_backup(BackupOptions(labels={"source": "example"}))
        print(f"Backup {metadata.id}: {metadata.components} ({metadata.size} bytes)")

        integrity = await service.verify_backup_integrity(metadata.id)
        print(f"Integrity passed: {integrity.passed}")

        preview = await service.restore_backup(metadata.id, RestoreOptions(validate_integrity=True))
        for validation in preview.validations:
            print(f"  {validation.component}: {validation.status.value} ({validation.details})")
        if not preview.success:
            print(f"Restore blocked: {preview.error}")
            return

        result = await service.restore_backup(metadata.id, RestoreOptions(restore_token=preview.token))
        print(f"Restore {result.status.value}: {[c.component for c in result.changes]}")
    finally:
        await service.close()


if __name__ == "__main__":
    asyncio.run(main())
