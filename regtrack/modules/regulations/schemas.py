"""Regulation document shapes.

Field names are snake_case in Python and camelCase in the store, matching the
documents written by the web client.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from regtrack.core.dates import coerce_datetime
from regtrack.models.enums import (
    RegulationStatus,
    StageStatus,
    WorkflowStage,
)

logger = structlog.get_logger()


class StoreModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="allow",
    )

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})


def _timestamp(value: Any) -> datetime | None:
    # unreadable timestamps read as absent
    try:
        return coerce_datetime(value)
    except (ValueError, TypeError, OverflowError):
        logger.warning("regulation.unreadable_timestamp", value=repr(value))
        return None


class Attachment(StoreModel):
    # uploads that never finished are stored without a url
    name: str = ""
    url: str = ""


class StageState(StoreModel):
    status: StageStatus = StageStatus.PENDING
    timestamp: datetime | None = None

    _coerce_timestamp = field_validator("timestamp", mode="before")(_timestamp)


class Workflow(StoreModel):
    current_stage: WorkflowStage = WorkflowStage.DRAFT
    stages: dict[str, StageState] = Field(default_factory=dict)

    @classmethod
    def initial(cls, now: datetime) -> Workflow:
        return cls(
            current_stage=WorkflowStage.DRAFT,
            stages={WorkflowStage.DRAFT.value: StageState(status=StageStatus.ACTIVE, timestamp=now)},
        )

    def mark(self, stage: WorkflowStage, status: StageStatus, now: datetime | None = None) -> None:
        """Set a stage's status; ``now`` also stamps its timestamp."""
        state = self.stages.get(stage.value) or StageState()
        state.status = status.value
        if now is not None:
            state.timestamp = now
        self.stages[stage.value] = state

    def activate(self, stage: WorkflowStage, now: datetime) -> None:
        self.mark(stage, StageStatus.ACTIVE, now)
        self.current_stage = stage.value


class HistoryEntry(StoreModel):
    action: str = ""
    actor_id: str | None = None
    actor_role: str | None = None
    timestamp: datetime | None = None
    note: str = ""

    _coerce_timestamp = field_validator("timestamp", mode="before")(_timestamp)


class VersionHistoryEntry(StoreModel):
    version: int
    updated_at: datetime | None = None
    notes: str = ""
    status: str = "published"

    _coerce_timestamp = field_validator("updated_at", mode="before")(_timestamp)


_VERSION_NUMBER = re.compile(r"(\d+)")


class Regulation(StoreModel):
    """A regulation document as read from the store."""

    id: str
    title: str = ""
    category: str = ""
    description: str = ""
    notes: str = ""
    code: str = ""
    ref_number: str | None = None
    version: int = 1
    attachments: list[Attachment] = Field(default_factory=list)
    status: str | None = RegulationStatus.DRAFT.value
    created_by: str | None = None

    deadline: datetime | None = None
    revision_deadline: datetime | None = None
    feedback: str | None = None
    admin_notes: str | None = None
    assigned_reviewer: str | None = None
    assigned_reviewer_name: str | None = None
    reviewed_by: str | None = None
    reviewer_name: str | None = None
    published_by: str | None = None
    is_active: bool = False

    created_at: datetime | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None
    published_at: datetime | None = None
    updated_at: datetime | None = None

    workflow: Workflow = Field(default_factory=Workflow)
    history: list[HistoryEntry] = Field(default_factory=list)
    version_history: list[VersionHistoryEntry] = Field(default_factory=list)

    _coerce_timestamps = field_validator(
        "deadline",
        "revision_deadline",
        "created_at",
        "submitted_at",
        "reviewed_at",
        "approved_at",
        "published_at",
        "updated_at",
        mode="before",
    )(_timestamp)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> int:
        # legacy documents store "v1.0"
        if value is None or value == "":
            return 1
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
        match = _VERSION_NUMBER.search(str(value))
        return int(match.group(1)) if match else 1

    @field_validator("title", "category", "description", "notes", "code", mode="before")
    @classmethod
    def _none_as_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("attachments", "history", "version_history", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("workflow", mode="before")
    @classmethod
    def _none_as_default(cls, value: Any) -> Any:
        return {} if value is None else value


# ── Inputs ────────────────────────────────────────────────────────────────────


class RegulationCreate(BaseModel):
    title: str
    category: str
    description: str = ""
    notes: str = ""
    code: str = ""
    deadline: datetime | None = None
    attachments: list[Attachment] = Field(default_factory=list)

    _coerce_deadline = field_validator("deadline", mode="before")(coerce_datetime)


class RegulationUpdate(BaseModel):
    """Author-editable fields; identity, authorship and workflow keys are dropped."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    title: str | None = None
    category: str | None = None
    description: str | None = None
    notes: str | None = None
    code: str | None = None
    deadline: datetime | None = None
    attachments: list[Attachment] | None = None

    _coerce_deadline = field_validator("deadline", mode="before")(coerce_datetime)
