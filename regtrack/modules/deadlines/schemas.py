"""Deadline reminder and deadline query schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from regtrack.models.enums import ReminderPriority, ReminderType
from regtrack.modules.regulations.schemas import StoreModel
from regtrack.modules.sla.schemas import SLAAverages


class DeadlineReminder(StoreModel):
    """A disposable record flagging an approaching or missed deadline."""

    id: str | None = None
    regulation_id: str
    regulation_title: str = ""
    deadline: datetime
    days_until_deadline: int | None = None
    days_overdue: int | None = None
    status: str = ""
    created_by: str | None = None
    type: ReminderType
    priority: ReminderPriority | None = None
    created_at: datetime | None = None
    notified: bool = False
    notified_at: datetime | None = None

    def to_store(self) -> dict[str, Any]:
        fields = self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
        fields["notified"] = self.notified
        return fields


class ScanResult(BaseModel):
    reminders: list[DeadlineReminder] = Field(default_factory=list)
    overdue: list[DeadlineReminder] = Field(default_factory=list)
    skipped: int = 0
    scanned_at: datetime


class DeadlineEntry(StoreModel):
    """A non-published regulation with a computed distance to its deadline."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str | None = None
    ref_number: str | None = None
    status: str = ""
    deadline: datetime
    created_by: str | None = None
    assigned_reviewer: str | None = None
    days_overdue: int | None = None
    days_until_deadline: int | None = None


class DeadlineSummary(BaseModel):
    overdue: list[DeadlineEntry] = Field(default_factory=list)
    overdue_count: int = 0
    upcoming_7_days: int = 0
    upcoming_30_days: int = 0
    pending_reminders: int = 0
    sla_metrics: SLAAverages = Field(default_factory=SLAAverages)
