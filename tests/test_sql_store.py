"""Tests for the SQLAlchemy document store adapter that need no database."""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from regtrack.core.errors import StoreError
from regtrack.core.sql_store import SqlDocumentStore, build_conditions, encode_value
from regtrack.core.store import SERVER_TIMESTAMP, Filter
from regtrack.models.enums import RegulationStatus

pytestmark = pytest.mark.anyio

COMMIT = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _sql(conditions: list) -> str:
    dialect = postgresql.dialect()
    return " AND ".join(
        str(c.compile(dialect=dialect, compile_kwargs={"literal_binds": True})) for c in conditions
    )


# ── encode_value ──────────────────────────────────────────────────────────


def test_encode_resolves_server_timestamp() -> None:
    assert encode_value({"notifiedAt": SERVER_TIMESTAMP}, COMMIT) == {
        "notifiedAt": "2025-03-10T12:00:00.000000+00:00"
    }


def test_encode_normalizes_datetimes_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    assert encode_value(datetime(2025, 3, 10, 14, 0, tzinfo=plus_two), COMMIT) == (
        "2025-03-10T12:00:00.000000+00:00"
    )
    assert encode_value(datetime(2025, 3, 10, 12, 0), COMMIT) == "2025-03-10T12:00:00.000000+00:00"


def test_encode_nested_values() -> None:
    encoded = encode_value(
        {
            "status": RegulationStatus.PENDING_REVIEW,
            "history": [{"timestamp": COMMIT, "day": date(2025, 3, 1)}],
            "version": 2,
        },
        COMMIT,
    )
    assert encoded == {
        "status": "Pending Review",
        "history": [{"timestamp": "2025-03-10T12:00:00.000000+00:00", "day": "2025-03-01"}],
        "version": 2,
    }


# ── build_conditions ──────────────────────────────────────────────────────


def test_conditions_scope_to_collection() -> None:
    sql = _sql(build_conditions("regulations", []))
    assert "stored_documents.collection = 'regulations'" in sql


def test_conditions_compare_json_fields() -> None:
    sql = _sql(
        build_conditions(
            "regulations",
            [Filter("status", "!=", "Published"), Filter("version", ">=", 2)],
        )
    )
    assert "stored_documents.data ->> 'status'" in sql
    assert "!= 'Published'" in sql
    assert ">= 2" in sql


def test_conditions_in_and_null() -> None:
    sql = _sql(
        build_conditions(
            "deadline_reminders",
            [Filter("type", "in", ["overdue", "upcoming"]), Filter("notifiedAt", "==", None)],
        )
    )
    assert "IN ('overdue', 'upcoming')" in sql
    assert "IS NULL" in sql


def test_empty_in_matches_nothing() -> None:
    sql = _sql(build_conditions("regulations", [Filter("status", "in", [])]))
    assert "stored_documents.collection != 'regulations'" in sql


def test_unknown_operator_rejected() -> None:
    with pytest.raises(ValueError):
        build_conditions("regulations", [Filter("status", "like", "%x%")])  # type: ignore[arg-type]


# ── Failure wrapping ──────────────────────────────────────────────────────


async def test_sqlalchemy_errors_become_store_errors() -> None:
    session = MagicMock()
    session.get = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=session)
    session_cm.__aexit__ = AsyncMock(return_value=False)
    factory = MagicMock(return_value=session_cm)

    store = SqlDocumentStore(factory)
    with pytest.raises(StoreError) as exc_info:
        await store.get("regulations", "reg-1")

    assert exc_info.value.operation == "get"
    assert exc_info.value.collection == "regulations"


def test_stored_document_repr() -> None:
    from regtrack.models import StoredDocument

    doc = StoredDocument(collection="regulations", id="reg-1", data={})
    assert repr(doc) == "<StoredDocument(collection='regulations', id='reg-1')>"
