"""Deadline scan engine and read-only deadline queries."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from regtrack.core.config import settings
from regtrack.core.dates import DAY, ceil_days, coerce_datetime, resolve_now
from regtrack.core.errors import NotFoundError
from regtrack.core.store import (
    DEADLINE_REMINDERS,
    REGULATIONS,
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    WriteOp,
)
from regtrack.models.enums import RegulationStatus, ReminderPriority, ReminderType
from regtrack.modules.deadlines.schemas import (
    DeadlineEntry,
    DeadlineReminder,
    DeadlineSummary,
    ScanResult,
)
from regtrack.modules.regulations.status import is_published, status_label
from regtrack.modules.sla.service import SLAService

logger = structlog.get_logger()


@dataclass(frozen=True)
class Classification:
    type: ReminderType
    days: int  # days until the deadline, or days overdue
    priority: ReminderPriority | None = None


def classify_deadline(
    deadline: datetime,
    now: datetime,
    window_days: int | None = None,
    high_priority_days: int | None = None,
) -> Classification | None:
    """Place a deadline relative to ``now``; ``None`` when outside the reminder window.

    A deadline exactly at ``now`` counts as an upcoming, high-priority reminder.
    """
    window = timedelta(days=window_days if window_days is not None else settings.DEADLINE_REMINDER_WINDOW_DAYS)
    high = timedelta(
        days=high_priority_days if high_priority_days is not None else settings.DEADLINE_HIGH_PRIORITY_DAYS
    )
    now = resolve_now(now)
    days = ceil_days(deadline - now)
    if deadline < now:
        return Classification(type=ReminderType.OVERDUE, days=abs(days))
    if deadline <= now + window:
        priority = ReminderPriority.HIGH if deadline <= now + high else ReminderPriority.MEDIUM
        return Classification(type=ReminderType.UPCOMING, days=days, priority=priority)
    return None


class DeadlineService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def _open_regulations(self) -> tuple[list[tuple[dict[str, Any], datetime]], int]:
        """Non-published regulations with a readable deadline, plus the unreadable count."""
        docs = await self.store.query(
            REGULATIONS,
            [Filter("status", "!=", RegulationStatus.PUBLISHED.value)],
        )
        open_docs: list[tuple[dict[str, Any], datetime]] = []
        skipped = 0
        for doc in docs:
            if is_published(doc.get("status")):
                continue
            try:
                deadline = coerce_datetime(doc.get("deadline"))
            except (ValueError, TypeError, OverflowError) as exc:
                skipped += 1
                logger.warning(
                    "deadlines.unreadable_deadline",
                    regulation_id=doc.get("id"),
                    deadline=repr(doc.get("deadline")),
                    error=str(exc),
                )
                continue
            if deadline is not None:
                open_docs.append((doc, deadline))
        return open_docs, skipped

    @staticmethod
    def _malformed(doc: dict[str, Any], exc: PydanticValidationError) -> None:
        logger.warning(
            "deadlines.malformed_regulation",
            regulation_id=doc.get("id"),
            errors=exc.error_count(),
            fields=[".".join(str(part) for part in err["loc"]) for err in exc.errors()],
        )

    def _entries(
        self,
        open_docs: list[tuple[dict[str, Any], datetime]],
        computed: Callable[[datetime], dict[str, Any] | None],
    ) -> list[DeadlineEntry]:
        """Validate each document that ``computed`` selects; malformed ones are dropped."""
        entries: list[DeadlineEntry] = []
        for doc, deadline in open_docs:
            extra = computed(deadline)
            if extra is None:
                continue
            try:
                entries.append(
                    DeadlineEntry.model_validate(
                        {**doc, "status": status_label(doc.get("status")), "deadline": deadline, **extra}
                    )
                )
            except PydanticValidationError as exc:
                self._malformed(doc, exc)
        entries.sort(key=lambda e: e.deadline)
        return entries

    # ── Scan ──────────────────────────────────────────────────────────────────

    async def scan_deadlines(self, now: datetime | None = None) -> ScanResult:
        """Write one reminder per regulation that is overdue or due soon.

        All reminders of one scan commit in a single batch, or none do.
        Documents that cannot be read are skipped and counted. Repeated scans
        write fresh reminders for the same regulations.
        """
        now = resolve_now(now)
        open_docs, skipped = await self._open_regulations()

        reminders: list[DeadlineReminder] = []
        overdue: list[DeadlineReminder] = []
        for doc, deadline in open_docs:
            classification = classify_deadline(deadline, now)
            if classification is None:
                continue
            is_overdue = classification.type is ReminderType.OVERDUE
            try:
                reminder = DeadlineReminder(
                    id=uuid.uuid4().hex,
                    regulation_id=doc["id"],
                    regulation_title=doc.get("title") or "",
                    deadline=deadline,
                    days_overdue=classification.days if is_overdue else None,
                    days_until_deadline=None if is_overdue else classification.days,
                    status=status_label(doc.get("status")),
                    created_by=doc.get("createdBy"),
                    type=classification.type,
                    priority=classification.priority,
                    created_at=now,
                )
            except PydanticValidationError as exc:
                skipped += 1
                self._malformed(doc, exc)
                continue
            (overdue if is_overdue else reminders).append(reminder)

        if reminders or overdue:
            await self.store.batch_write(
                [
                    WriteOp(collection=DEADLINE_REMINDERS, id=r.id, fields=r.to_store())
                    for r in [*reminders, *overdue]
                ]
            )

        logger.info(
            "deadlines.scan_completed",
            scanned=len(open_docs),
            reminders=len(reminders),
            overdue=len(overdue),
            skipped=skipped,
        )
        return ScanResult(reminders=reminders, overdue=overdue, skipped=skipped, scanned_at=now)

    # ── Queries ───────────────────────────────────────────────────────────────

    async def get_overdue_regulations(self, now: datetime | None = None) -> list[DeadlineEntry]:
        now = resolve_now(now)
        open_docs, _ = await self._open_regulations()
        return self._entries(
            open_docs,
            lambda deadline: {"daysOverdue": ceil_days(now - deadline)} if deadline < now else None,
        )

    async def get_upcoming_deadlines(
        self,
        now: datetime | None = None,
        horizon_days: int | None = None,
    ) -> list[DeadlineEntry]:
        """Deadlines within ``[now, now + horizon_days]``, soonest first."""
        now = resolve_now(now)
        if horizon_days is None:
            horizon_days = settings.UPCOMING_DEFAULT_HORIZON_DAYS
        horizon = now + horizon_days * DAY
        open_docs, _ = await self._open_regulations()
        return self._entries(
            open_docs,
            lambda deadline: (
                {"daysUntilDeadline": ceil_days(deadline - now)} if now <= deadline <= horizon else None
            ),
        )

    # ── Reminders ─────────────────────────────────────────────────────────────

    async def list_reminders(
        self,
        notified: bool | None = None,
        reminder_type: ReminderType | str | None = None,
        limit: int | None = None,
    ) -> list[DeadlineReminder]:
        """Newest first."""
        filters: list[Filter] = []
        if notified is not None:
            filters.append(Filter("notified", "==", notified))
        if reminder_type is not None:
            filters.append(Filter("type", "==", ReminderType(reminder_type).value))
        docs = await self.store.query(
            DEADLINE_REMINDERS,
            filters,
            order_by="createdAt",
            descending=True,
            limit=limit or settings.REMINDER_LIST_LIMIT,
        )
        return [DeadlineReminder.model_validate(doc) for doc in docs]

    async def mark_reminder_notified(self, reminder_id: str) -> DeadlineReminder:
        if await self.store.get(DEADLINE_REMINDERS, reminder_id) is None:
            raise NotFoundError(
                f"Reminder {reminder_id} not found",
                detail={"reminder_id": reminder_id},
            )
        await self.store.update(
            DEADLINE_REMINDERS,
            reminder_id,
            {"notified": True, "notifiedAt": SERVER_TIMESTAMP},
        )
        doc = await self.store.get(DEADLINE_REMINDERS, reminder_id)
        logger.info("deadlines.reminder_notified", reminder_id=reminder_id)
        return DeadlineReminder.model_validate(doc)

    # ── Summary ───────────────────────────────────────────────────────────────

    async def deadline_summary(self, now: datetime | None = None) -> DeadlineSummary:
        now = resolve_now(now)
        overdue = await self.get_overdue_regulations(now)
        upcoming_7 = await self.get_upcoming_deadlines(now, 7)
        upcoming_30 = await self.get_upcoming_deadlines(now, 30)
        metrics = await SLAService(self.store).published_sla_metrics(now)
        pending = await self.store.count(DEADLINE_REMINDERS, [Filter("notified", "==", False)])
        return DeadlineSummary(
            overdue=overdue,
            overdue_count=len(overdue),
            upcoming_7_days=len(upcoming_7),
            upcoming_30_days=len(upcoming_30),
            pending_reminders=pending,
            sla_metrics=metrics,
        )
