"""Tests for the PostgreSQL backend against a mocked async engine."""

import json
from decimal import Decimal
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy import Column, Delete, ForeignKey, Insert, Integer, LargeBinary, MetaData, String, Table

from datavault.backends.base import ComponentSnapshot
from datavault.backends.relational import (
    DUMP_FORMAT,
    RelationalBackend,
    normalize_database_url,
    parse_table_dump,
)
from datavault.models import Component, ValidationStatus
from datavault.serialization import encode_row

from fakes import async_cm


def make_metadata() -> MetaData:
    metadata = MetaData()
    Table(
        "orders",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("user_id", Integer, ForeignKey("users.id")),
        Column("receipt", LargeBinary),
    )
    Table(
        "users",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String),
    )
    return metadata


def mapping_result(rows):
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    return result


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.execute = AsyncMock()
    return conn


@pytest.fixture
def engine(conn):
    engine = MagicMock()
    engine.connect.return_value = async_cm(conn)
    engine.begin.return_value = async_cm(conn)
    engine.dispose = AsyncMock()
    return engine


@pytest.mark.parametrize("url, expected", [
    ("postgres://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
    ("postgresql://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
    ("postgresql+asyncpg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
    ("sqlite+aiosqlite:///app.db", "sqlite+aiosqlite:///app.db"),
])
def test_normalize_database_url(url, expected):
    assert normalize_database_url(url) == expected


def test_parse_table_dump():
    assert parse_table_dump(b'{"tables": {"users": {"rows": []}}}') == {"users": {"rows": []}}
    with pytest.raises(ValueError):
        parse_table_dump(b'{"tables": []}')


@pytest.mark.asyncio
async def test_export_snapshot(engine, conn):
    conn.execute.side_effect = [
        mapping_result([{"id": 1, "name": "ada"}]),
        mapping_result([{"id": 7, "user_id": 1, "receipt": b"\x00\x01"}]),
    ]
    backend = RelationalBackend("postgres://db/app", schema="public", engine=engine)

    with patch.object(backend, "_reflect", AsyncMock(return_value=make_metadata())):
        snapshot = await backend.export_snapshot()

    document = json.loads(snapshot.primary)
    assert document["format"] == DUMP_FORMAT
    assert document["schema"] == "public"
    assert list(document["tables"]) == ["users", "orders"]
    assert document["tables"]["users"]["columns"] == ["id", "name"]
    assert document["tables"]["orders"]["rows"] == [
        {
            "id": {"kind": "plain", "value": 7},
            "user_id": {"kind": "plain", "value": 1},
            "receipt": {"kind": "bytes", "value": "AAE="},
        }
    ]
    assert snapshot.details == {"tables": 2, "rows": 2}


@pytest.mark.asyncio
async def test_export_keeps_decimal_and_rejects_unsupported_values(engine, conn):
    conn.execute.side_effect = [
        mapping_result([{"id": 1, "name": Decimal("1.50")}]),
        mapping_result([]),
    ]
    backend = RelationalBackend("postgres://db/app", engine=engine)

    with patch.object(backend, "_reflect", AsyncMock(return_value=make_metadata())):
        snapshot = await backend.export_snapshot()

    row = json.loads(snapshot.primary)["tables"]["users"]["rows"][0]
    assert row["name"] == {"kind": "decimal", "value": "1.50"}

    conn.execute.side_effect = [mapping_result([{"id": 1, "name": object()}])]
    with patch.object(backend, "_reflect", AsyncMock(return_value=make_metadata())):
        with pytest.raises(TypeError):
            await backend.export_snapshot()


@pytest.mark.asyncio
async def test_import_deletes_children_first_and_inserts_parents_first(engine, conn):
    dump = {
        "format": DUMP_FORMAT,
        "tables": {
            "users": {"rows": [encode_row({"id": 1, "name": "ada"})]},
            "orders": {"rows": [encode_row({"id": 7, "user_id": 1, "receipt": b"\x00\x01"})]},
            "audit": {"rows": []},
        },
    }
    snapshot = ComponentSnapshot(
        component=Component.RELATIONAL,
        artifacts={"postgres.json": json.dumps(dump).encode()},
    )
    backend = RelationalBackend("postgres://db/app", engine=engine)

    with patch.object(backend, "_reflect", AsyncMock(return_value=make_metadata())):
        details = await backend.import_snapshot(snapshot)

    assert details == {"tables": {"users": 1, "orders": 1}, "skipped": ["audit"]}
    engine.begin.assert_called_once()

    statements = [call.args[0] for call in conn.execute.await_args_list]
    deletes = [s.table.name for s in statements if isinstance(s, Delete)]
    inserts = [s.table.name for s in statements if isinstance(s, Insert)]
    assert deletes == ["orders", "users"]
    assert inserts == ["users", "orders"]

    order_rows = conn.execute.await_args_list[-1].args[1]
    assert order_rows == [{"id": 7, "user_id": 1, "receipt": b"\x00\x01"}]


@pytest.mark.asyncio
async def test_health_check(engine, conn):
    backend = RelationalBackend("postgres://db/app", engine=engine)
    assert await backend.health_check() is True

    conn.execute.side_effect = OSError("connection refused")
    assert await backend.health_check() is False


@pytest.mark.asyncio
async def test_close_disposes_engine(engine):
    backend = RelationalBackend("postgres://db/app", engine=engine)
    await backend.close()
    engine.dispose.assert_awaited_once()


@pytest.mark.parametrize("dump, status", [
    ({"tables": {"users": {"rows": [{}, {}]}}}, ValidationStatus.VALID),
    ({"tables": {}}, ValidationStatus.WARNING),
    ({"rows": []}, ValidationStatus.INVALID),
])
def test_inspect_snapshot(engine, dump, status):
    snapshot = ComponentSnapshot(
        component=Component.RELATIONAL,
        artifacts={"postgres.json": json.dumps(dump).encode()},
    )
    validation = RelationalBackend("postgres://db/app", engine=engine).inspect_snapshot(snapshot)

    assert validation.status is status
    assert validation.component == "postgres"
