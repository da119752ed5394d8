"""Status vocabulary boundary.

Stored regulations carry Title Case, snake_case and legacy status spellings.
Everything that branches on a status goes through ``normalize_status`` first.
"""

from __future__ import annotations

import re
from typing import Any

from regtrack.models.enums import RegulationStatus, StatusBucket

_CANONICAL_BY_LOWER: dict[str, RegulationStatus] = {s.value.lower(): s for s in RegulationStatus}

# Keys are compacted: lower case with spaces, underscores and hyphens removed.
_ALIASES: dict[str, RegulationStatus] = {
    "draft": RegulationStatus.DRAFT,
    "assigned": RegulationStatus.DRAFT,
    "pendingreview": RegulationStatus.PENDING_REVIEW,
    "underreview": RegulationStatus.PENDING_REVIEW,
    "submittedforreview": RegulationStatus.PENDING_REVIEW,
    "inreview": RegulationStatus.PENDING_REVIEW,
    "needsrevision": RegulationStatus.NEEDS_REVISION,
    "revisionrequired": RegulationStatus.NEEDS_REVISION,
    "needschanges": RegulationStatus.NEEDS_REVISION,
    "rejected": RegulationStatus.NEEDS_REVISION,
    "pendingpublish": RegulationStatus.PENDING_PUBLISH,
    "pendingapproval": RegulationStatus.PENDING_PUBLISH,
    "approved": RegulationStatus.PENDING_PUBLISH,
    "published": RegulationStatus.PUBLISHED,
    "publish": RegulationStatus.PUBLISHED,
}

_BUCKETS: dict[RegulationStatus, StatusBucket] = {
    RegulationStatus.DRAFT: StatusBucket.OTHER,
    RegulationStatus.PENDING_REVIEW: StatusBucket.NEEDS_REVIEW,
    RegulationStatus.NEEDS_REVISION: StatusBucket.REJECTED,
    RegulationStatus.PENDING_PUBLISH: StatusBucket.PENDING_ADMIN,
    RegulationStatus.PUBLISHED: StatusBucket.COMPLETED,
}

_SEPARATORS = re.compile(r"[\s_\-]+")


def _compact(text: str) -> str:
    return _SEPARATORS.sub("", text.lower())


def _guess(lowered: str) -> RegulationStatus | None:
    if "revision" in lowered or "reject" in lowered:
        return RegulationStatus.NEEDS_REVISION
    if "pending" in lowered and "publish" in lowered:
        return RegulationStatus.PENDING_PUBLISH
    if "approv" in lowered:
        return RegulationStatus.PENDING_PUBLISH
    if "published" in lowered:
        return RegulationStatus.PUBLISHED
    if "review" in lowered:
        return RegulationStatus.PENDING_REVIEW
    return None


def normalize_status(raw: Any) -> RegulationStatus | str:
    """Map a stored status onto the canonical enum.

    Tries an exact case-insensitive match, then a separator-insensitive match
    against canonical labels and known aliases, then token heuristics. When
    nothing matches the original value is returned as a string.
    """
    if isinstance(raw, RegulationStatus):
        return raw
    text = "" if raw is None else str(raw).strip()
    if not text:
        return text

    lowered = text.lower()
    exact = _CANONICAL_BY_LOWER.get(lowered)
    if exact is not None:
        return exact

    alias = _ALIASES.get(_compact(text))
    if alias is not None:
        return alias

    guessed = _guess(lowered)
    if guessed is not None:
        return guessed
    return text


def canonical_status(raw: Any) -> RegulationStatus | None:
    """Like ``normalize_status`` but ``None`` for unrecognised values."""
    status = normalize_status(raw)
    return status if isinstance(status, RegulationStatus) else None


def status_bucket(raw: Any) -> StatusBucket:
    lowered = "" if raw is None else str(raw).strip().lower()
    if lowered in ("archived", "completed"):
        return StatusBucket.COMPLETED
    status = canonical_status(raw)
    if status is None:
        return StatusBucket.OTHER
    return _BUCKETS[status]


def is_published(raw: Any) -> bool:
    return canonical_status(raw) is RegulationStatus.PUBLISHED


def status_label(raw: Any) -> str:
    """Canonical label when recognised, otherwise the stored string."""
    status = normalize_status(raw)
    return status.value if isinstance(status, RegulationStatus) else status
