"""Per-stage elapsed time for a regulation, and averages across published ones."""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timedelta

import structlog
from pydantic import ValidationError as PydanticValidationError

from regtrack.core.dates import ceil_days, resolve_now
from regtrack.core.errors import NotFoundError, ValidationError
from regtrack.core.store import REGULATIONS, DocumentStore
from regtrack.models.enums import RegulationStatus, WorkflowStage
from regtrack.modules.regulations.schemas import Regulation
from regtrack.modules.regulations.status import canonical_status, is_published, status_label
from regtrack.modules.sla.schemas import SLAAverages, SLAResult, StageDuration

logger = structlog.get_logger()


def _stage(
    regulation: Regulation,
    stage: WorkflowStage,
    start: datetime,
    end: datetime | None,
    now: datetime,
) -> tuple[StageDuration, timedelta]:
    elapsed = (end or now) - start
    if elapsed < timedelta(0):
        logger.warning(
            "sla.negative_stage_duration",
            regulation_id=regulation.id,
            stage=stage.value,
            seconds=elapsed.total_seconds(),
        )
        elapsed = timedelta(0)
    return StageDuration(duration_days=ceil_days(elapsed), start_time=start, end_time=end), elapsed


def compute_sla(regulation: Regulation, now: datetime | None = None) -> SLAResult:
    """Compute stage durations from the regulation's timestamps.

    A stage appears only when its start timestamp is present; a running stage
    is measured up to ``now``. The approval clock does not run while the
    regulation is back with its author. The total is the ceiling of the sum
    of each stage's own elapsed time.
    """
    now = resolve_now(now)
    status = canonical_status(regulation.status)

    spans: list[tuple[WorkflowStage, datetime | None, datetime | None]] = [
        (WorkflowStage.DRAFT, regulation.created_at, regulation.submitted_at),
        (WorkflowStage.REVIEW, regulation.submitted_at, regulation.reviewed_at),
        (
            WorkflowStage.APPROVAL,
            regulation.reviewed_at if status is not RegulationStatus.NEEDS_REVISION else None,
            regulation.approved_at,
        ),
        (WorkflowStage.PUBLISH, regulation.approved_at, regulation.published_at),
    ]

    stages: dict[str, StageDuration] = {}
    total = timedelta(0)
    for stage, start, end in spans:
        if start is None:
            continue
        duration, elapsed = _stage(regulation, stage, start, end, now)
        stages[stage.value] = duration
        total += elapsed

    deadline = regulation.deadline
    return SLAResult(
        regulation_id=regulation.id,
        regulation_title=regulation.title,
        current_status=status_label(regulation.status),
        stages=stages,
        total_time_days=ceil_days(total),
        deadline=deadline,
        is_overdue=deadline is not None and deadline < now and not is_published(regulation.status),
        days_until_deadline=ceil_days(deadline - now) if deadline is not None else None,
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def average_sla_metrics(results: Iterable[SLAResult]) -> SLAAverages:
    """Mean stage days, each divided by the number of results analysed."""
    totals = {stage: 0 for stage in WorkflowStage}
    total_time = 0
    count = 0
    for result in results:
        for stage in WorkflowStage:
            duration = result.stages.get(stage.value)
            if duration is not None:
                totals[stage] += duration.duration_days
        total_time += result.total_time_days
        count += 1

    if count == 0:
        return SLAAverages()
    return SLAAverages(
        average_draft_time=_round_half_up(totals[WorkflowStage.DRAFT] / count),
        average_review_time=_round_half_up(totals[WorkflowStage.REVIEW] / count),
        average_approval_time=_round_half_up(totals[WorkflowStage.APPROVAL] / count),
        average_publish_time=_round_half_up(totals[WorkflowStage.PUBLISH] / count),
        average_total_time=_round_half_up(total_time / count),
        regulations_analyzed=count,
    )


class SLAService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def calculate_sla(self, regulation_id: str, now: datetime | None = None) -> SLAResult:
        doc = await self.store.get(REGULATIONS, regulation_id)
        if doc is None:
            raise NotFoundError(
                f"Regulation {regulation_id} not found",
                detail={"regulation_id": regulation_id},
            )
        try:
            regulation = Regulation.model_validate({**doc, "id": doc.get("id", regulation_id)})
        except PydanticValidationError as exc:
            logger.error("sla.malformed_regulation", regulation_id=regulation_id, errors=exc.error_count())
            raise ValidationError(
                f"Regulation {regulation_id} is malformed",
                detail={"regulation_id": regulation_id},
            ) from exc
        return compute_sla(regulation, now)

    async def published_sla_metrics(self, now: datetime | None = None) -> SLAAverages:
        """Averages over published regulations that carry a ``publishedAt``."""
        now = resolve_now(now)
        results: list[SLAResult] = []
        for doc in await self.store.query(REGULATIONS):
            if not is_published(doc.get("status")) or not doc.get("publishedAt"):
                continue
            try:
                regulation = Regulation.model_validate(doc)
            except PydanticValidationError:
                logger.warning("sla.skipped_malformed", regulation_id=doc.get("id"))
                continue
            results.append(compute_sla(regulation, now))
        return average_sla_metrics(results)
