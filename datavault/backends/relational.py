"""PostgreSQL backend dumping tables as tagged JSON rows through SQLAlchemy async."""

import json
from typing import Any, Dict, List, Optional

from sqlalchemy import MetaData, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .._utils import logger
from ..models import Component, ComponentValidation, ValidationStatus
from ..serialization import decode_row, encode_row
from .base import ComponentBackend, ComponentSnapshot

DUMP_FORMAT = "datavault.postgres.v1"


def normalize_database_url(database_url: str) -> str:
    """``postgres://`` / ``postgresql://`` -> ``postgresql+asyncpg://``."""
    url = database_url
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def parse_table_dump(data: bytes) -> Dict[str, Dict[str, Any]]:
    """Tables of a dump keyed by name.

    Raises:
        ValueError: If the dump is not a JSON object with a ``tables`` mapping
    """
    document = json.loads(data.decode("utf-8"))
    if not isinstance(document, dict) or not isinstance(document.get("tables"), dict):
        raise ValueError("relational dump requires a 'tables' object")
    return document["tables"]


class RelationalBackend(ComponentBackend):
    """Dump every table of a schema (or the listed tables) with row values tagged.

    Restore replaces table contents inside a single transaction: rows are
    deleted child-first and inserted parent-first following foreign keys.
    """

    component = Component.RELATIONAL

    def __init__(
        self,
        database_url: str,
        schema: Optional[str] = None,
        tables: Optional[List[str]] = None,
        engine: Optional[AsyncEngine] = None,
        **engine_kwargs: Any,
    ):
        self.schema = schema
        self.tables = tables
        self._engine = engine or create_async_engine(
            normalize_database_url(database_url),
            pool_pre_ping=True,
            **engine_kwargs,
        )

    async def health_check(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning(f"Relational backend unreachable: {e}")
            return False
        return True

    async def _reflect(self, conn) -> MetaData:
        metadata = MetaData(schema=self.schema)
        await conn.run_sync(lambda sync_conn: metadata.reflect(bind=sync_conn, only=self.tables))
        return metadata

    async def export_snapshot(self) -> ComponentSnapshot:
        tables: Dict[str, Dict[str, Any]] = {}
        row_count = 0

        async with self._engine.connect() as conn:
            metadata = await self._reflect(conn)
            for table in metadata.sorted_tables:
                result = await conn.execute(select(table))
                rows = [encode_row(dict(row)) for row in result.mappings().all()]
                tables[table.name] = {
                    "columns": [column.name for column in table.columns],
                    "rows": rows,
                }
                row_count += len(rows)
                logger.debug(f"Dumped {len(rows)} rows from {table.name}")

        payload = {"format": DUMP_FORMAT, "schema": self.schema, "tables": tables}
        data = json.dumps(payload).encode("utf-8")

        logger.info(f"Relational export complete: {len(tables)} tables, {row_count} rows")
        return ComponentSnapshot(
            component=self.component,
            artifacts={"postgres.json": data},
            details={"tables": len(tables), "rows": row_count},
        )

    async def import_snapshot(self, snapshot: ComponentSnapshot) -> Dict[str, Any]:
        dumped = parse_table_dump(snapshot.primary)
        restored: Dict[str, int] = {}

        async with self._engine.begin() as conn:
            metadata = await self._reflect(conn)
            ordered = [t for t in metadata.sorted_tables if t.name in dumped]

            for table in reversed(ordered):
                await conn.execute(table.delete())

            for table in ordered:
                rows = [decode_row(row) for row in dumped[table.name].get("rows", [])]
                if rows:
                    await conn.execute(table.insert(), rows)
                restored[table.name] = len(rows)

        skipped = sorted(set(dumped) - set(restored))
        if skipped:
            logger.warning(f"Tables in dump but not in database, skipped: {skipped}")

        logger.info(f"Relational restore complete: {len(restored)} tables")
        return {"tables": restored, "skipped": skipped}

    def inspect_snapshot(self, snapshot: ComponentSnapshot) -> ComponentValidation:
        try:
            tables = parse_table_dump(snapshot.primary)
        except (ValueError, UnicodeDecodeError) as e:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.INVALID,
                details=f"Unreadable relational dump: {e}",
            )

        metadata = {
            "tables": len(tables),
            "rows": sum(len(t.get("rows", [])) for t in tables.values()),
        }
        if not tables:
            return ComponentValidation(
                component=self.name,
                status=ValidationStatus.WARNING,
                details="Relational dump contains no tables",
                metadata=metadata,
            )
        return ComponentValidation(
            component=self.name,
            status=ValidationStatus.VALID,
            details=f"{metadata['tables']} tables, {metadata['rows']} rows",
            metadata=metadata,
        )

    async def close(self) -> None:
        await self._engine.dispose()
