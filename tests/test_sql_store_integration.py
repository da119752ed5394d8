"""SqlDocumentStore against a real database (SQLite through aiosqlite)."""
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import regtrack.models  # noqa: F401  registers stored_documents
from regtrack.core.database import Base
from regtrack.core.errors import NotFoundError
from regtrack.core.sql_store import SqlDocumentStore
from regtrack.core.store import REGULATIONS, SERVER_TIMESTAMP, Filter, WriteOp
from tests.conftest import NOW

pytestmark = pytest.mark.anyio


@pytest.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlDocumentStore]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield SqlDocumentStore(async_sessionmaker(engine, expire_on_commit=False))
    finally:
        await engine.dispose()


async def test_failed_batch_writes_nothing(sql_store: SqlDocumentStore) -> None:
    existing = await sql_store.add(REGULATIONS, {"title": "Existing", "status": "Draft"})

    with pytest.raises(NotFoundError):
        await sql_store.batch_write(
            [
                WriteOp(collection=REGULATIONS, id="new", fields={"title": "New"}),
                WriteOp(collection=REGULATIONS, id=existing, fields={"status": "Published"}, kind="update"),
                WriteOp(collection=REGULATIONS, id="missing", fields={"status": "Draft"}, kind="update"),
            ]
        )

    assert await sql_store.get(REGULATIONS, "new") is None
    assert (await sql_store.get(REGULATIONS, existing))["status"] == "Draft"
    assert await sql_store.count(REGULATIONS) == 1


async def test_update_merges_top_level_fields(sql_store: SqlDocumentStore) -> None:
    doc_id = await sql_store.add(REGULATIONS, {"title": "Policy", "status": "Draft", "version": 1})

    await sql_store.update(REGULATIONS, doc_id, {"status": "Pending Review", "updatedAt": SERVER_TIMESTAMP})

    stored = await sql_store.get(REGULATIONS, doc_id)
    assert stored["title"] == "Policy"
    assert stored["version"] == 1
    assert stored["status"] == "Pending Review"
    assert datetime.fromisoformat(stored["updatedAt"]).tzinfo is not None


async def test_status_pushdown_excludes_published(sql_store: SqlDocumentStore) -> None:
    for doc_id, status in [("a", "Draft"), ("b", "Published"), ("c", "Pending Review")]:
        await sql_store.batch_write([WriteOp(collection=REGULATIONS, id=doc_id, fields={"status": status})])

    docs = await sql_store.query(REGULATIONS, [Filter("status", "!=", "Published")])

    assert sorted(d["id"] for d in docs) == ["a", "c"]
    assert await sql_store.count(REGULATIONS, [Filter("status", "in", ["Draft", "Published"])]) == 2


async def test_query_orders_by_created_at(sql_store: SqlDocumentStore) -> None:
    for offset, doc_id in [(2, "middle"), (5, "oldest"), (0, "newest")]:
        await sql_store.batch_write(
            [
                WriteOp(
                    collection=REGULATIONS,
                    id=doc_id,
                    fields={"createdAt": NOW - timedelta(days=offset)},
                )
            ]
        )

    newest_first = await sql_store.query(REGULATIONS, order_by="createdAt", descending=True)
    oldest_first = await sql_store.query(REGULATIONS, order_by="createdAt", limit=2)

    assert [d["id"] for d in newest_first] == ["newest", "middle", "oldest"]
    assert [d["id"] for d in oldest_first] == ["oldest", "middle"]


async def test_delete(sql_store: SqlDocumentStore) -> None:
    doc_id = await sql_store.add(REGULATIONS, {"title": "Temporary"})

    await sql_store.delete(REGULATIONS, doc_id)

    assert await sql_store.get(REGULATIONS, doc_id) is None
    with pytest.raises(NotFoundError):
        await sql_store.delete(REGULATIONS, doc_id)
