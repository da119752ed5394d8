"""SQLAlchemy adapter implementing the DocumentStore contract on one JSON table."""

from __future__ import annotations

import enum
import operator
import uuid
from collections.abc import Callable, Sequence
from datetime import date, datetime, timezone
from typing import Any

import sentry_sdk
import structlog
from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from regtrack.core.errors import NotFoundError, StoreError
from regtrack.core.store import FILTER_OPS, SERVER_TIMESTAMP, Filter, WriteOp
from regtrack.models.documents import StoredDocument

logger = structlog.get_logger()

_COMPARATORS: dict[str, Callable[[Any, Any], ColumnElement[bool]]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def encode_value(value: Any, commit_time: datetime) -> Any:
    """Convert a Python value into its JSON storage form.

    Datetimes are stored as fixed-width UTC ISO strings so that string
    comparison in SQL matches chronological order.
    """
    if value is SERVER_TIMESTAMP:
        value = commit_time
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(encode_value(k, commit_time)): encode_value(v, commit_time) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v, commit_time) for v in value]
    return value


def _element(field: str, sample: Any) -> ColumnElement[Any]:
    element = StoredDocument.data[field]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, (int, float)):
        return element.as_float()
    return element.as_string()


def build_conditions(collection: str, filters: Sequence[Filter]) -> list[ColumnElement[bool]]:
    """Translate store filters into SQL conditions on the JSON ``data`` column."""
    now = datetime.now(timezone.utc)
    conditions: list[ColumnElement[bool]] = [StoredDocument.collection == collection]
    for flt in filters:
        if flt.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter operator: {flt.op!r}")
        if flt.op in ("in", "not_in"):
            values = [encode_value(v, now) for v in flt.value]
            if not values:
                # empty IN matches nothing; empty NOT IN matches everything
                if flt.op == "in":
                    conditions.append(StoredDocument.collection != collection)
                continue
            column = _element(flt.field, values[0])
            conditions.append(column.in_(values) if flt.op == "in" else column.not_in(values))
            continue
        value = encode_value(flt.value, now)
        if value is None:
            is_null = StoredDocument.data[flt.field].as_string().is_(None)
            conditions.append(is_null if flt.op == "==" else ~is_null)
            continue
        conditions.append(_COMPARATORS[flt.op](_element(flt.field, value), value))
    return conditions


class SqlDocumentStore:
    """DocumentStore backed by the ``stored_documents`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    def _fail(self, operation: str, collection: str | None, exc: Exception) -> StoreError:
        logger.error(
            "store.operation_failed",
            operation=operation,
            collection=collection,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        sentry_sdk.capture_exception(exc)
        return StoreError(
            f"Document store {operation} failed",
            operation=operation,
            collection=collection,
        )

    @staticmethod
    def _to_document(row: StoredDocument) -> dict[str, Any]:
        return {**row.data, "id": row.id}

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(StoredDocument, (collection, doc_id))
                return self._to_document(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise self._fail("get", collection, exc) from exc

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        stmt = select(StoredDocument).where(*build_conditions(collection, filters))
        if order_by is not None:
            key = StoredDocument.data[order_by].as_string()
            stmt = stmt.order_by(key.desc() if descending else key.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_document(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise self._fail("query", collection, exc) from exc

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        stmt = (
            select(func.count())
            .select_from(StoredDocument)
            .where(*build_conditions(collection, filters))
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise self._fail("count", collection, exc) from exc

    # ── Writes ───────────────────────────────────────────────────────────────

    async def add(self, collection: str, fields: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self.batch_write([WriteOp(collection=collection, fields=fields, id=doc_id)])
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        await self.batch_write(
            [WriteOp(collection=collection, fields=fields, id=doc_id, kind="update")]
        )

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.batch_write([WriteOp(collection=collection, id=doc_id, kind="delete")])

    async def batch_write(self, operations: Sequence[WriteOp]) -> None:
        if not operations:
            return
        commit_time = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for op in operations:
                        await self._apply(session, op, commit_time)
        except SQLAlchemyError as exc:
            raise self._fail("batch_write", operations[0].collection, exc) from exc
        logger.debug("store.batch_committed", operations=len(operations))

    async def _apply(self, session: AsyncSession, op: WriteOp, commit_time: datetime) -> None:
        if op.kind in ("update", "delete"):
            if op.id is None:
                raise ValueError(f"{op.kind} operations need a document id")
            row = await session.get(StoredDocument, (op.collection, op.id), with_for_update=True)
            if row is None:
                raise NotFoundError(f"Document {op.collection}/{op.id} not found")
            if op.kind == "delete":
                await session.delete(row)
            else:
                fields = encode_value({k: v for k, v in op.fields.items() if k != "id"}, commit_time)
                row.data = {**row.data, **fields}
            return

        fields = encode_value({k: v for k, v in op.fields.items() if k != "id"}, commit_time)
        doc_id = op.id or uuid.uuid4().hex
        row = await session.get(StoredDocument, (op.collection, doc_id))
        if row is None:
            session.add(StoredDocument(collection=op.collection, id=doc_id, data=fields))
        else:
            row.data = fields
