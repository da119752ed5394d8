"""Celery task: scheduled deadline scans."""

from __future__ import annotations

import asyncio
from datetime import datetime

import sentry_sdk
import structlog
from celery import shared_task

from regtrack.core.store import DocumentStore
from regtrack.modules.deadlines.service import DeadlineService

logger = structlog.get_logger()


def _build_store() -> DocumentStore:
    from regtrack.core.database import async_session_factory
    from regtrack.core.sql_store import SqlDocumentStore

    return SqlDocumentStore(async_session_factory)


async def run_deadline_scan(
    store: DocumentStore,
    cadence: str,
    now: datetime | None = None,
) -> dict:
    result = await DeadlineService(store).scan_deadlines(now)
    summary = {
        "status": "ok",
        "cadence": cadence,
        "reminders": len(result.reminders),
        "overdue": len(result.overdue),
        "skipped": result.skipped,
    }
    logger.info("deadlines.scheduled_scan_finished", **summary)
    return summary


async def _run(cadence: str) -> dict:
    from regtrack.core.database import engine

    try:
        return await run_deadline_scan(_build_store(), cadence)
    finally:
        # pooled connections belong to this event loop
        await engine.dispose()


@shared_task(name="tasks.scan_deadlines")
def scan_deadlines(cadence: str = "frequent") -> dict:
    """Run one deadline scan. Failures are reported, never retried."""
    try:
        return asyncio.run(_run(cadence))
    except Exception as exc:
        logger.error(
            "deadlines.scheduled_scan_failed",
            cadence=cadence,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        sentry_sdk.capture_exception(exc)
        return {"status": "error", "cadence": cadence, "error": type(exc).__name__}
