"""Notification service: build, send, list and mark-read."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime

import structlog

from regtrack.core.config import settings
from regtrack.core.dates import resolve_now
from regtrack.core.errors import ForbiddenError, NotFoundError
from regtrack.core.store import NOTIFICATIONS, SERVER_TIMESTAMP, DocumentStore, Filter, WriteOp
from regtrack.models.enums import NotificationType
from regtrack.modules.notifications.schemas import Notification

logger = structlog.get_logger()


def build_notifications(
    recipients: Iterable[str | None],
    type: NotificationType,
    regulation_id: str,
    message: str,
    comment: str = "",
    now: datetime | None = None,
) -> list[Notification]:
    """One unread notification per distinct recipient; blank ids are dropped."""
    now = resolve_now(now)
    seen: set[str] = set()
    notifications: list[Notification] = []
    for user_id in recipients:
        if not user_id or user_id in seen:
            continue
        seen.add(user_id)
        notifications.append(
            Notification(
                id=uuid.uuid4().hex,
                type=type,
                user_id=user_id,
                regulation_id=regulation_id,
                message=message,
                comment=comment or "",
                created_at=now,
            )
        )
    return notifications


def notification_writes(notifications: Iterable[Notification]) -> list[WriteOp]:
    return [WriteOp(collection=NOTIFICATIONS, id=n.id, fields=n.to_store()) for n in notifications]


class NotificationService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def notify(
        self,
        recipients: Iterable[str | None],
        type: NotificationType,
        regulation_id: str,
        message: str,
        comment: str = "",
        now: datetime | None = None,
    ) -> list[Notification]:
        """Write notifications for ``recipients`` in one batch."""
        notifications = build_notifications(recipients, type, regulation_id, message, comment, now)
        if notifications:
            await self.store.batch_write(notification_writes(notifications))
            logger.info(
                "notifications.sent",
                type=NotificationType(type).value,
                regulation_id=regulation_id,
                count=len(notifications),
            )
        return notifications

    async def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int | None = None,
    ) -> list[Notification]:
        """A user's notifications, newest first."""
        filters = [Filter("userId", "==", user_id)]
        if unread_only:
            filters.append(Filter("read", "==", False))
        docs = await self.store.query(
            NOTIFICATIONS,
            filters,
            order_by="createdAt",
            descending=True,
            limit=limit or settings.NOTIFICATION_LIST_LIMIT,
        )
        return [Notification.model_validate(doc) for doc in docs]

    async def mark_notification_read(self, notification_id: str, user_id: str) -> Notification:
        doc = await self.store.get(NOTIFICATIONS, notification_id)
        if doc is None:
            raise NotFoundError(
                f"Notification {notification_id} not found",
                detail={"notification_id": notification_id},
            )
        if doc.get("userId") != user_id:
            logger.warning(
                "notifications.foreign_mark_read",
                notification_id=notification_id,
                user_id=user_id,
            )
            raise ForbiddenError("Notifications can only be marked read by their recipient")

        await self.store.update(NOTIFICATIONS, notification_id, {"read": True, "readAt": SERVER_TIMESTAMP})
        logger.info("notifications.marked_read", notification_id=notification_id, user_id=user_id)
        return Notification.model_validate(await self.store.get(NOTIFICATIONS, notification_id))
