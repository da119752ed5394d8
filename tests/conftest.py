"""Shared fixtures: an in-memory document store and a seeded user directory."""

import copy
import operator
import uuid
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import pytest

from regtrack.core.errors import NotFoundError
from regtrack.core.store import REGULATIONS, SERVER_TIMESTAMP, USERS, Filter, WriteOp

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _matches(doc: dict[str, Any], flt: Filter) -> bool:
    value = doc.get(flt.field)
    if flt.op == "==":
        return value == flt.value
    if flt.op == "!=":
        return value != flt.value
    if flt.op == "in":
        return value in flt.value
    if flt.op == "not_in":
        return value not in flt.value
    if value is None:
        return False
    try:
        return _COMPARATORS[flt.op](value, flt.value)
    except TypeError:
        return False


class InMemoryStore:
    """DocumentStore fake with the same atomicity guarantees as the SQL adapter."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.clock = clock
        self.batches: list[list[WriteOp]] = []

    def seed(self, collection: str, doc_id: str, fields: dict[str, Any]) -> str:
        self.collections[collection][doc_id] = copy.deepcopy(fields)
        return doc_id

    def raw(self, collection: str, doc_id: str) -> dict[str, Any]:
        return self.collections[collection][doc_id]

    def _resolve(self, value: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return self.clock()
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(v) for v in value]
        return copy.deepcopy(value)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self.collections[collection].get(doc_id)
        if doc is None:
            return None
        return {**copy.deepcopy(doc), "id": doc_id}

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        docs = [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in self.collections[collection].items()
            if all(_matches(doc, flt) for flt in filters)
        ]
        if order_by is not None:
            present = [d for d in docs if d.get(order_by) is not None]
            missing = [d for d in docs if d.get(order_by) is None]
            docs = sorted(present, key=lambda d: d[order_by], reverse=descending) + missing
        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return docs

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
        staged = copy.deepcopy(self.collections)
        for op in operations:
            fields = self._resolve({k: v for k, v in op.fields.items() if k != "id"})
            if op.kind in ("update", "delete"):
                if op.id not in staged[op.collection]:
                    raise NotFoundError(f"Document {op.collection}/{op.id} not found")
                if op.kind == "delete":
                    del staged[op.collection][op.id]
                else:
                    staged[op.collection][op.id].update(fields)
            else:
                staged[op.collection][op.id or uuid.uuid4().hex] = fields
        self.collections = staged
        self.batches.append(list(operations))

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        return len(await self.query(collection, filters))


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store(now: datetime) -> InMemoryStore:
    store = InMemoryStore(clock=lambda: now)
    store.seed(USERS, "emp-1", {"name": "Erin Employee", "email": "erin@example.com", "role": "employee"})
    store.seed(USERS, "emp-2", {"name": "No Role", "email": "norole@example.com"})
    store.seed(USERS, "rev-1", {"name": "Riley Reviewer", "email": "riley@example.com", "role": "reviewer"})
    store.seed(USERS, "adm-1", {"name": "Ada Admin", "email": "ada@example.com", "role": "admin"})
    return store


def seed_regulation(store: InMemoryStore, doc_id: str = "reg-1", **fields: Any) -> str:
    """Insert a regulation document with sensible defaults."""
    doc: dict[str, Any] = {
        "title": "Data Retention Policy",
        "category": "Compliance",
        "status": "Draft",
        "version": 1,
        "createdBy": "emp-1",
        "createdAt": NOW,
        "workflow": {
            "currentStage": "draft",
            "stages": {"draft": {"status": "active", "timestamp": NOW}},
        },
        "history": [],
        "versionHistory": [],
    }
    doc.update(fields)
    return store.seed(REGULATIONS, doc_id, doc)
