"""SLA result schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class StageDuration(BaseModel):
    duration_days: int
    start_time: datetime
    end_time: datetime | None = None  # None while the stage is still running


class SLAResult(BaseModel):
    regulation_id: str
    regulation_title: str
    current_status: str
    stages: dict[str, StageDuration] = Field(default_factory=dict)
    total_time_days: int = 0
    deadline: datetime | None = None
    is_overdue: bool = False
    days_until_deadline: int | None = None


class SLAAverages(BaseModel):
    average_draft_time: int = 0
    average_review_time: int = 0
    average_approval_time: int = 0
    average_publish_time: int = 0
    average_total_time: int = 0
    regulations_analyzed: int = 0
