"""SQLAlchemy models; importing the package registers every table on Base.metadata."""

from regtrack.models.base import ModelMixin, TimestampedModel
from regtrack.models.documents import StoredDocument

__all__ = [
    "ModelMixin",
    "StoredDocument",
    "TimestampedModel",
]
