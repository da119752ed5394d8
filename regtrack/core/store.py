"""Document store contract consumed by the lifecycle, deadline and SLA services.

The store is a key-document database: documents live in named collections,
are addressed by an opaque string id, and are plain JSON-compatible dicts.
Every implementation must give atomic single-document updates and an
all-or-nothing ``batch_write``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, NamedTuple, Protocol

# ── Collections ───────────────────────────────────────────────────────────────

REGULATIONS = "regulations"
DEADLINE_REMINDERS = "deadline_reminders"
USERS = "users"
NOTIFICATIONS = "notifications"

# ── Query / write primitives ──────────────────────────────────────────────────

FilterOp = Literal["==", "!=", "<", "<=", ">", ">=", "in", "not_in"]
FILTER_OPS: frozenset[str] = frozenset({"==", "!=", "<", "<=", ">", ">=", "in", "not_in"})


class Filter(NamedTuple):
    field: str
    op: FilterOp
    value: Any


class _ServerTimestamp:
    """Sentinel resolved by the store to its own commit time."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass
class WriteOp:
    """One entry of a batch write.

    ``kind="set"`` creates (or replaces) a document, generating an id when
    none is given. ``kind="update"`` merges top-level fields into an existing
    document and fails the whole batch when it is missing; ``kind="delete"``
    removes one, with the same failure rule.
    """

    collection: str
    fields: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    kind: Literal["set", "update", "delete"] = "set"


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the document (with its ``id`` key) or ``None``."""
        ...

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        ...

    async def add(self, collection: str, fields: dict[str, Any]) -> str:
        """Create a document with a store-assigned id and return that id."""
        ...

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge top-level ``fields``; raises ``NotFoundError`` if absent."""
        ...

    async def batch_write(self, operations: Sequence[WriteOp]) -> None:
        ...

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        """Remove the document; raises ``NotFoundError`` if absent."""
        ...
