"""Notification Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from regtrack.models.enums import NotificationType
from regtrack.modules.regulations.schemas import StoreModel


class Notification(StoreModel):
    id: str | None = None
    type: NotificationType
    user_id: str
    regulation_id: str
    message: str = ""
    comment: str = ""
    read: bool = False
    created_at: datetime | None = None
    read_at: datetime | None = None
