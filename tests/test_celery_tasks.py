"""Tests for Celery wiring and the scheduled deadline scan."""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from celery.schedules import crontab

from regtrack.core.store import DEADLINE_REMINDERS
from tests.conftest import InMemoryStore, seed_regulation

# ── Queue topology ──────────────────────────────────────────────────────────


def test_scan_task_routed_to_deadlines_queue() -> None:
    from regtrack.core.celery_config import CELERY_QUEUES, CELERY_TASK_ROUTES

    assert {q.name for q in CELERY_QUEUES} == {"default", "deadlines"}
    assert CELERY_TASK_ROUTES["tasks.scan_deadlines"] == {"queue": "deadlines"}


def test_task_annotations_have_timeouts() -> None:
    from regtrack.core.celery_config import CELERY_TASK_ANNOTATIONS

    for task, annotations in CELERY_TASK_ANNOTATIONS.items():
        assert "time_limit" in annotations, f"Task {task} missing time_limit"


# ── Beat schedule ───────────────────────────────────────────────────────────


def test_beat_schedule_has_both_cadences() -> None:
    from regtrack.worker import celery_app

    schedule = celery_app.conf.beat_schedule
    frequent = schedule["scan-deadlines-frequent"]
    daily = schedule["scan-deadlines-daily"]

    assert frequent["task"] == daily["task"] == "tasks.scan_deadlines"
    assert frequent["schedule"] == 21600.0
    assert isinstance(daily["schedule"], crontab)
    assert daily["schedule"].hour == {9}
    assert daily["schedule"].minute == {0}
    assert celery_app.conf.timezone == "UTC"


def test_worker_registers_scan_task() -> None:
    from regtrack.worker import celery_app

    celery_app.loader.import_default_modules()
    assert "tasks.scan_deadlines" in celery_app.tasks


# ── Scan task ───────────────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_run_deadline_scan_summarises(store: InMemoryStore, now: datetime) -> None:
    from regtrack.tasks.deadlines import run_deadline_scan

    seed_regulation(store, "late", deadline=now - timedelta(days=1))
    seed_regulation(store, "soon", deadline=now + timedelta(days=2))
    seed_regulation(store, "bad", deadline="??")

    summary = await run_deadline_scan(store, "daily", now)

    assert summary == {
        "status": "ok",
        "cadence": "daily",
        "reminders": 1,
        "overdue": 1,
        "skipped": 1,
    }
    assert len(store.collections[DEADLINE_REMINDERS]) == 2


def test_scan_task_runs_against_built_store(store: InMemoryStore, now: datetime) -> None:
    from regtrack.tasks import deadlines

    seed_regulation(store, deadline=datetime.now(now.tzinfo) - timedelta(days=1))

    with patch.object(deadlines, "_build_store", return_value=store):
        result = deadlines.scan_deadlines.run(cadence="frequent")

    assert result["status"] == "ok"
    assert result["overdue"] == 1


def test_scan_task_failure_is_reported_not_raised(store: InMemoryStore) -> None:
    from regtrack.tasks import deadlines

    with (
        patch.object(deadlines, "_build_store", side_effect=RuntimeError("db down")),
        patch.object(deadlines.sentry_sdk, "capture_exception") as capture,
    ):
        result = deadlines.scan_deadlines.run()

    assert result == {"status": "error", "cadence": "frequent", "error": "RuntimeError"}
    capture.assert_called_once()
