"""Closed vocabularies for the regulation lifecycle."""

import enum


# ── Users ────────────────────────────────────────────────────────────────────


class UserRole(str, enum.Enum):
    EMPLOYEE = "employee"
    REVIEWER = "reviewer"
    ADMIN = "admin"


# ── Regulation lifecycle ─────────────────────────────────────────────────────


class RegulationStatus(str, enum.Enum):
    DRAFT = "Draft"
    PENDING_REVIEW = "Pending Review"
    NEEDS_REVISION = "Needs Revision"
    PENDING_PUBLISH = "Pending Publish"
    PUBLISHED = "Published"


class StatusBucket(str, enum.Enum):
    """Reviewer-centric grouping used by read-side listings."""

    NEEDS_REVIEW = "needs_review"
    REJECTED = "rejected"
    PENDING_ADMIN = "pending_admin"
    COMPLETED = "completed"
    OTHER = "other"


class WorkflowStage(str, enum.Enum):
    DRAFT = "draft"
    REVIEW = "review"
    APPROVAL = "approval"
    PUBLISH = "publish"


class StageStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class ReviewDecision(str, enum.Enum):
    APPROVE = "approve"
    DENY = "deny"


class HistoryAction(str, enum.Enum):
    CREATED = "created"
    SUBMITTED = "submitted"
    RESUBMITTED = "resubmitted"
    REVIEWER_APPROVED = "reviewer_approved"
    REVIEWER_REJECTED = "reviewer_rejected"
    ADMIN_ASSIGNED_REVIEWER = "admin_assigned_reviewer"
    ADMIN_REQUESTED_REVISION = "admin_requested_revision"
    ADMIN_PUBLISHED = "admin_published"
    DEADLINE_SET = "deadline_set"
    UPDATED = "updated"
    REVISED = "revised"


# ── Deadline reminders ───────────────────────────────────────────────────────


class ReminderType(str, enum.Enum):
    UPCOMING = "upcoming"
    OVERDUE = "overdue"


class ReminderPriority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"


# ── Notifications ────────────────────────────────────────────────────────────


class NotificationType(str, enum.Enum):
    REVIEW_REQUESTED = "review_requested"
    REVIEW_APPROVED = "review_approved"
    REVIEW_REJECTED = "review_rejected"
    REVIEWER_ASSIGNED = "reviewer_assigned"
    REVISION_REQUESTED = "revision_requested"
    REGULATION_PUBLISHED = "regulation_published"
