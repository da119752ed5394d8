"""Regulation lifecycle: creation, submission, review, publication, edits and admin overrides."""

from __future__ import annotations

import random
import string
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from regtrack.auth.roles import REVIEWER_ROLES, Capability, RoleResolver, display_name, parse_role
from regtrack.core.dates import coerce_datetime, resolve_now
from regtrack.core.errors import NotFoundError, ValidationError
from regtrack.core.store import REGULATIONS, DocumentStore, Filter, WriteOp
from regtrack.models.enums import (
    HistoryAction,
    NotificationType,
    RegulationStatus,
    ReviewDecision,
    StageStatus,
    StatusBucket,
    WorkflowStage,
)
from regtrack.modules.notifications.schemas import Notification
from regtrack.modules.notifications.service import build_notifications, notification_writes
from regtrack.modules.regulations.schemas import (
    HistoryEntry,
    Regulation,
    RegulationCreate,
    RegulationUpdate,
    VersionHistoryEntry,
    Workflow,
)
from regtrack.modules.regulations.status import canonical_status, is_published, status_bucket

logger = structlog.get_logger()

_REF_LETTERS = string.ascii_uppercase[:10]  # A-J
_SUBMITTABLE = (RegulationStatus.DRAFT, RegulationStatus.NEEDS_REVISION)
_REVIEWABLE = (RegulationStatus.PENDING_REVIEW, RegulationStatus.NEEDS_REVISION)


def generate_ref_number(category: str, rng: random.Random | None = None) -> str:
    """``[A-J][1000-9999]``, led by the category's initial when it falls in A-J."""
    rng = rng or random
    initial = (category or "").strip()[:1].upper()
    letter = initial if initial in _REF_LETTERS else rng.choice(_REF_LETTERS)
    return f"{letter}{rng.randint(1000, 9999)}"


def _parse_instant(value: Any, field: str) -> datetime | None:
    try:
        return coerce_datetime(value)
    except (ValueError, TypeError, OverflowError) as exc:
        raise ValidationError(f"{field} is not a valid timestamp", detail={"field": field}) from exc


class RegulationService:
    """Role-gated transitions on one regulation document at a time.

    Every transition is a read-modify-write of a single document, committed
    together with its notifications in one ``DocumentStore.batch_write``;
    concurrent writers are last-writer-wins.
    """

    def __init__(self, store: DocumentStore, roles: RoleResolver | None = None) -> None:
        self.store = store
        self.roles = roles or RoleResolver(store)

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _load(self, regulation_id: str) -> tuple[dict[str, Any], Regulation]:
        doc = await self.store.get(REGULATIONS, regulation_id)
        if doc is None:
            raise NotFoundError(
                f"Regulation {regulation_id} not found",
                detail={"regulation_id": regulation_id},
            )
        doc.setdefault("id", regulation_id)
        try:
            return doc, Regulation.model_validate(doc)
        except PydanticValidationError as exc:
            logger.error("regulation.malformed", regulation_id=regulation_id, errors=exc.error_count())
            raise ValidationError(
                f"Regulation {regulation_id} is malformed",
                detail={"regulation_id": regulation_id},
            ) from exc

    async def _commit(
        self,
        doc: dict[str, Any],
        regulation: Regulation,
        fields: dict[str, Any],
        notifications: Sequence[Notification] = (),
    ) -> Regulation:
        """Write the transition and its notifications in one batch."""
        fields["workflow"] = regulation.workflow.to_store()
        fields["history"] = [entry.to_store() for entry in regulation.history]
        await self.store.batch_write(
            [
                WriteOp(collection=REGULATIONS, id=regulation.id, fields=fields, kind="update"),
                *notification_writes(notifications),
            ]
        )
        return Regulation.model_validate({**doc, **fields})

    async def _require_author_or_manager(self, created_by: Any, actor_id: str) -> dict[str, Any]:
        """The regulation's creator, or anyone allowed to manage others' regulations."""
        user = await self.roles.get_user(actor_id)
        if user is not None and created_by == actor_id:
            return user
        return await self.roles.require(actor_id, Capability.MANAGE)

    @staticmethod
    def _record(
        regulation: Regulation,
        action: HistoryAction,
        actor_id: str,
        actor_role: str | None,
        now: datetime,
        note: str = "",
    ) -> None:
        regulation.history.append(
            HistoryEntry(
                action=action.value,
                actor_id=actor_id,
                actor_role=actor_role,
                timestamp=now,
                note=note or "",
            )
        )

    @staticmethod
    def _require_status(
        regulation: Regulation,
        allowed: tuple[RegulationStatus, ...],
        message: str | None = None,
    ) -> RegulationStatus:
        current = canonical_status(regulation.status)
        if current not in allowed:
            raise ValidationError(
                message or f"Cannot perform this action on a regulation in status {regulation.status!r}",
                detail={
                    "regulation_id": regulation.id,
                    "status": regulation.status,
                    "allowed": [s.value for s in allowed],
                },
            )
        return current

    @staticmethod
    def _reject_published(regulation: Regulation, message: str) -> None:
        if canonical_status(regulation.status) is RegulationStatus.PUBLISHED:
            raise ValidationError(message, detail={"regulation_id": regulation.id})

    @staticmethod
    def _require_revision_deadline(value: Any, now: datetime) -> datetime:
        deadline = _parse_instant(value, "revision_deadline")
        if deadline is None:
            raise ValidationError("A revision deadline is required when requesting changes")
        if deadline < now:
            raise ValidationError(
                "Revision deadline cannot be in the past",
                detail={"revision_deadline": deadline.isoformat()},
            )
        return deadline

    # ── Create ────────────────────────────────────────────────────────────────

    async def create_regulation(
        self,
        payload: RegulationCreate,
        actor_id: str,
        now: datetime | None = None,
    ) -> Regulation:
        now = resolve_now(now)
        actor = await self.roles.require(actor_id, Capability.CREATE)
        title = payload.title.strip()
        category = payload.category.strip()
        if not title or not category:
            raise ValidationError(
                "Title and category are required",
                detail={"missing": [n for n, v in (("title", title), ("category", category)) if not v]},
            )

        regulation = Regulation(
            id="",
            title=title,
            category=category,
            description=payload.description,
            notes=payload.notes,
            code=payload.code,
            ref_number=generate_ref_number(category),
            version=1,
            attachments=payload.attachments,
            status=RegulationStatus.DRAFT.value,
            created_by=actor_id,
            deadline=payload.deadline,
            created_at=now,
            updated_at=now,
            workflow=Workflow.initial(now),
        )
        self._record(regulation, HistoryAction.CREATED, actor_id, parse_role(actor.get("role")).value, now)

        fields = regulation.to_store()
        regulation_id = await self.store.add(REGULATIONS, fields)
        logger.info(
            "regulation.created",
            regulation_id=regulation_id,
            ref_number=regulation.ref_number,
            created_by=actor_id,
        )
        return Regulation.model_validate({**fields, "id": regulation_id})

    # ── Submit / resubmit ─────────────────────────────────────────────────────

    async def submit_regulation(
        self,
        regulation_id: str,
        actor_id: str,
        note: str | None = None,
        now: datetime | None = None,
    ) -> Regulation:
        """Move a draft, or a regulation sent back for revision, into review.

        Ownership is checked by the caller. The first ``submittedAt`` is kept
        on resubmission. Every reviewer except the submitter is notified.
        """
        now = resolve_now(now)
        actor = await self.roles.require(actor_id, Capability.SUBMIT)
        doc, regulation = await self._load(regulation_id)
        current = self._require_status(
            regulation,
            _SUBMITTABLE,
            f"Only draft or revision-requested regulations can be submitted (status is {regulation.status!r})",
        )
        action = (
            HistoryAction.RESUBMITTED
            if current is RegulationStatus.NEEDS_REVISION
            else HistoryAction.SUBMITTED
        )

        regulation.workflow.mark(WorkflowStage.DRAFT, StageStatus.COMPLETED)
        regulation.workflow.activate(WorkflowStage.REVIEW, now)
        self._record(regulation, action, actor_id, parse_role(actor.get("role")).value, now, note or "")

        fields: dict[str, Any] = {
            "status": RegulationStatus.PENDING_REVIEW.value,
            "updatedAt": now,
        }
        if regulation.submitted_at is None:
            fields["submittedAt"] = now

        reviewers = [uid for uid in await self.roles.reviewer_ids() if uid != actor_id]
        notifications = build_notifications(
            reviewers,
            NotificationType.REVIEW_REQUESTED,
            regulation.id,
            f"New regulation submitted for review: {regulation.title}",
            note or "",
            now,
        )
        updated = await self._commit(doc, regulation, fields, notifications)
        logger.info(
            "regulation.submitted",
            regulation_id=regulation_id,
            actor_id=actor_id,
            action=action.value,
            previous_status=current.value,
        )
        return updated

    # ── Review ────────────────────────────────────────────────────────────────

    async def review_regulation(
        self,
        regulation_id: str,
        reviewer_id: str,
        decision: ReviewDecision | str,
        feedback: str,
        revision_deadline: datetime | str | None = None,
        now: datetime | None = None,
    ) -> Regulation:
        now = resolve_now(now)
        reviewer = await self.roles.require(reviewer_id, Capability.REVIEW)

        try:
            decision = ReviewDecision(decision)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown review decision {decision!r}",
                detail={"allowed": [d.value for d in ReviewDecision]},
            ) from exc
        feedback = (feedback or "").strip()
        if not feedback:
            raise ValidationError("Feedback is required")
        deadline = (
            self._require_revision_deadline(revision_deadline, now)
            if decision is ReviewDecision.DENY
            else None
        )

        doc, regulation = await self._load(regulation_id)
        previous = self._require_status(
            regulation,
            _REVIEWABLE,
            f"Only regulations awaiting review can be reviewed (status is {regulation.status!r})",
        )

        fields: dict[str, Any] = {
            "feedback": feedback,
            "reviewedAt": now,
            "reviewedBy": reviewer_id,
            "reviewerName": display_name(reviewer, reviewer_id),
            "updatedAt": now,
        }
        workflow = regulation.workflow
        if decision is ReviewDecision.APPROVE:
            fields["status"] = RegulationStatus.PENDING_PUBLISH.value
            workflow.mark(WorkflowStage.REVIEW, StageStatus.COMPLETED)
            workflow.activate(WorkflowStage.APPROVAL, now)
            action = HistoryAction.REVIEWER_APPROVED
            notice_type, outcome = NotificationType.REVIEW_APPROVED, "has been approved by reviewer"
        else:
            fields["status"] = RegulationStatus.NEEDS_REVISION.value
            fields["revisionDeadline"] = deadline
            workflow.mark(WorkflowStage.REVIEW, StageStatus.PENDING)
            workflow.activate(WorkflowStage.DRAFT, now)
            action = HistoryAction.REVIEWER_REJECTED
            notice_type, outcome = NotificationType.REVIEW_REJECTED, "requires changes"

        role = parse_role(reviewer.get("role")).value
        self._record(regulation, action, reviewer_id, role, now, feedback)

        notifications = build_notifications(
            [regulation.created_by],
            notice_type,
            regulation.id,
            f"Your regulation \"{regulation.title}\" {outcome}",
            feedback,
            now,
        )
        updated = await self._commit(doc, regulation, fields, notifications)
        logger.info(
            "regulation.reviewed",
            regulation_id=regulation_id,
            reviewer_id=reviewer_id,
            decision=decision.value,
            previous_status=previous.value,
            status=fields["status"],
        )
        return updated

    # ── Publish ───────────────────────────────────────────────────────────────

    async def publish_regulation(
        self,
        regulation_id: str,
        admin_id: str,
        version_notes: str | None = None,
        now: datetime | None = None,
    ) -> Regulation:
        now = resolve_now(now)
        admin = await self.roles.require(admin_id, Capability.PUBLISH)
        doc, regulation = await self._load(regulation_id)
        self._require_status(
            regulation,
            (RegulationStatus.PENDING_PUBLISH,),
            "Only regulations under review can be published",
        )

        old_version = regulation.version
        notes = version_notes or "Initial publication"
        version_history = [
            *(entry.to_store() for entry in regulation.version_history),
            VersionHistoryEntry(version=old_version, updated_at=now, notes=notes).to_store(),
        ]

        workflow = regulation.workflow
        workflow.mark(WorkflowStage.APPROVAL, StageStatus.COMPLETED)
        workflow.mark(WorkflowStage.PUBLISH, StageStatus.COMPLETED, now)
        workflow.current_stage = WorkflowStage.PUBLISH.value
        role = parse_role(admin.get("role")).value
        self._record(regulation, HistoryAction.ADMIN_PUBLISHED, admin_id, role, now, notes)

        fields: dict[str, Any] = {
            "status": RegulationStatus.PUBLISHED.value,
            "publishedAt": now,
            "publishedBy": admin_id,
            "updatedAt": now,
            "version": old_version + 1,
            "versionHistory": version_history,
            "isActive": True,
            "revisionDeadline": None,
        }
        if regulation.approved_at is None:
            fields["approvedAt"] = now

        notifications = build_notifications(
            [regulation.created_by],
            NotificationType.REGULATION_PUBLISHED,
            regulation.id,
            f"Your regulation \"{regulation.title}\" has been published",
            notes,
            now,
        )
        updated = await self._commit(doc, regulation, fields, notifications)
        logger.info(
            "regulation.published",
            regulation_id=regulation_id,
            admin_id=admin_id,
            version=old_version + 1,
        )
        return updated

    # ── Admin overrides ───────────────────────────────────────────────────────

    async def assign_reviewer(
        self,
        regulation_id: str,
        admin_id: str,
        reviewer_id: str,
        now: datetime | None = None,
    ) -> Regulation:
        """Assign a reviewer and force the regulation into review."""
        now = resolve_now(now)
        admin = await self.roles.require(admin_id, Capability.ASSIGN_REVIEWER)

        reviewer = await self.roles.get_user(reviewer_id)
        if reviewer is None:
            raise NotFoundError(f"User {reviewer_id} not found", detail={"user_id": reviewer_id})
        if parse_role(reviewer.get("role")) not in REVIEWER_ROLES:
            raise ValidationError(
                "Assigned user must be a reviewer or admin",
                detail={"user_id": reviewer_id, "role": reviewer.get("role")},
            )

        doc, regulation = await self._load(regulation_id)
        self._reject_published(regulation, "Published regulations cannot be reassigned")

        reviewer_name = display_name(reviewer, reviewer_id)
        regulation.workflow.mark(WorkflowStage.DRAFT, StageStatus.COMPLETED)
        regulation.workflow.activate(WorkflowStage.REVIEW, now)
        self._record(
            regulation,
            HistoryAction.ADMIN_ASSIGNED_REVIEWER,
            admin_id,
            parse_role(admin.get("role")).value,
            now,
            f"Assigned to {reviewer_name}",
        )

        fields: dict[str, Any] = {
            "assignedReviewer": reviewer_id,
            "assignedReviewerName": reviewer_name,
            "status": RegulationStatus.PENDING_REVIEW.value,
            "updatedAt": now,
        }
        if regulation.submitted_at is None:
            fields["submittedAt"] = now

        notifications = build_notifications(
            [reviewer_id],
            NotificationType.REVIEWER_ASSIGNED,
            regulation.id,
            f"You have been assigned to review: {regulation.title}",
            now=now,
        )
        updated = await self._commit(doc, regulation, fields, notifications)
        logger.info(
            "regulation.reviewer_assigned",
            regulation_id=regulation_id,
            admin_id=admin_id,
            reviewer_id=reviewer_id,
        )
        return updated

    async def request_revision(
        self,
        regulation_id: str,
        admin_id: str,
        revision_deadline: datetime | str | None,
        admin_notes: str = "",
        now: datetime | None = None,
    ) -> Regulation:
        """Send a regulation back from the publish queue to its author."""
        now = resolve_now(now)
        admin = await self.roles.require(admin_id, Capability.REQUEST_REVISION)
        deadline = self._require_revision_deadline(revision_deadline, now)

        doc, regulation = await self._load(regulation_id)
        self._require_status(
            regulation,
            (RegulationStatus.PENDING_PUBLISH,),
            "Only regulations awaiting publication can be sent back for revision",
        )

        notes = (admin_notes or "").strip()
        workflow = regulation.workflow
        workflow.mark(WorkflowStage.APPROVAL, StageStatus.PENDING)
        workflow.activate(WorkflowStage.DRAFT, now)
        self._record(
            regulation,
            HistoryAction.ADMIN_REQUESTED_REVISION,
            admin_id,
            parse_role(admin.get("role")).value,
            now,
            notes,
        )

        fields: dict[str, Any] = {
            "status": RegulationStatus.NEEDS_REVISION.value,
            "revisionDeadline": deadline,
            "adminNotes": notes,
            "updatedAt": now,
        }
        notifications = build_notifications(
            [regulation.created_by],
            NotificationType.REVISION_REQUESTED,
            regulation.id,
            f"Your regulation \"{regulation.title}\" was sent back for revision",
            notes,
            now,
        )
        updated = await self._commit(doc, regulation, fields, notifications)
        logger.info("regulation.revision_requested", regulation_id=regulation_id, admin_id=admin_id)
        return updated

    async def set_deadline(
        self,
        regulation_id: str,
        admin_id: str,
        deadline: datetime | str | None,
        now: datetime | None = None,
    ) -> Regulation:
        """Set or clear (``deadline=None``) the regulation's deadline."""
        now = resolve_now(now)
        admin = await self.roles.require(admin_id, Capability.SET_DEADLINE)
        parsed = _parse_instant(deadline, "deadline")

        doc, regulation = await self._load(regulation_id)
        self._reject_published(regulation, "Deadlines cannot be changed on published regulations")

        note = parsed.isoformat() if parsed else "cleared"
        self._record(
            regulation,
            HistoryAction.DEADLINE_SET,
            admin_id,
            parse_role(admin.get("role")).value,
            now,
            note,
        )
        updated = await self._commit(doc, regulation, {"deadline": parsed, "updatedAt": now})
        logger.info("regulation.deadline_set", regulation_id=regulation_id, deadline=note)
        return updated

    # ── Edit / delete ─────────────────────────────────────────────────────────

    async def update_regulation(
        self,
        regulation_id: str,
        actor_id: str,
        changes: RegulationUpdate | dict[str, Any],
        now: datetime | None = None,
    ) -> Regulation:
        """Edit content fields without moving the regulation through its lifecycle.

        Only the creator or a manager may edit. An edit made while the
        regulation is back with its author is recorded as ``revised``.
        """
        now = resolve_now(now)
        if not isinstance(changes, RegulationUpdate):
            try:
                changes = RegulationUpdate.model_validate(changes)
            except PydanticValidationError as exc:
                raise ValidationError(
                    "Invalid regulation update",
                    detail={"fields": [".".join(str(p) for p in err["loc"]) for err in exc.errors()]},
                ) from exc

        doc, regulation = await self._load(regulation_id)
        actor = await self._require_author_or_manager(regulation.created_by, actor_id)
        self._reject_published(regulation, "Published regulations cannot be edited")

        fields = changes.model_dump(by_alias=True, exclude_unset=True)
        for key in ("title", "category"):
            if key in fields:
                value = (fields[key] or "").strip()
                if not value:
                    raise ValidationError(f"{key.capitalize()} cannot be blank", detail={"field": key})
                fields[key] = value
        for key in ("description", "notes", "code"):
            if key in fields and fields[key] is None:
                fields[key] = ""
        if "attachments" in fields and fields["attachments"] is None:
            fields["attachments"] = []
        changed = sorted(fields)

        revising = canonical_status(regulation.status) is RegulationStatus.NEEDS_REVISION
        self._record(
            regulation,
            HistoryAction.REVISED if revising else HistoryAction.UPDATED,
            actor_id,
            parse_role(actor.get("role")).value,
            now,
            "Regulation revised by author" if revising else "Regulation updated",
        )
        fields["updatedAt"] = now

        updated = await self._commit(doc, regulation, fields)
        logger.info(
            "regulation.updated",
            regulation_id=regulation_id,
            actor_id=actor_id,
            fields=changed,
            revised=revising,
        )
        return updated

    async def delete_regulation(self, regulation_id: str, actor_id: str) -> None:
        """Remove a regulation; published ones can only be removed by a manager."""
        doc = await self.store.get(REGULATIONS, regulation_id)
        if doc is None:
            raise NotFoundError(
                f"Regulation {regulation_id} not found",
                detail={"regulation_id": regulation_id},
            )
        if is_published(doc.get("status")):
            await self.roles.require(actor_id, Capability.MANAGE)
        else:
            await self._require_author_or_manager(doc.get("createdBy"), actor_id)

        await self.store.delete(REGULATIONS, regulation_id)
        logger.info(
            "regulation.deleted",
            regulation_id=regulation_id,
            actor_id=actor_id,
            status=doc.get("status"),
        )

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_regulation(self, regulation_id: str) -> Regulation:
        _, regulation = await self._load(regulation_id)
        return regulation

    async def get_history(self, regulation_id: str) -> list[HistoryEntry]:
        _, regulation = await self._load(regulation_id)
        return list(regulation.history)

    async def list_regulations(
        self,
        created_by: str | None = None,
        assigned_reviewer: str | None = None,
        bucket: StatusBucket | None = None,
        limit: int | None = None,
    ) -> list[Regulation]:
        """Newest first, optionally narrowed by author, reviewer or status bucket."""
        filters: list[Filter] = []
        if created_by:
            filters.append(Filter("createdBy", "==", created_by))
        if assigned_reviewer:
            filters.append(Filter("assignedReviewer", "==", assigned_reviewer))

        docs = await self.store.query(REGULATIONS, filters, order_by="createdAt", descending=True)
        results: list[Regulation] = []
        for doc in docs:
            if bucket is not None and status_bucket(doc.get("status")) is not bucket:
                continue
            try:
                results.append(Regulation.model_validate(doc))
            except PydanticValidationError:
                logger.warning("regulation.list_skipped_malformed", regulation_id=doc.get("id"))
                continue
            if limit is not None and len(results) >= limit:
                break
        return results


def group_by_bucket(regulations: list[Regulation]) -> dict[StatusBucket, list[Regulation]]:
    """Reviewer dashboard grouping; every bucket is present, possibly empty."""
    grouped: dict[StatusBucket, list[Regulation]] = {bucket: [] for bucket in StatusBucket}
    for regulation in regulations:
        grouped[status_bucket(regulation.status)].append(regulation)
    return grouped
