"""Backing table for the document store adapter."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from regtrack.models.base import TimestampedModel


class StoredDocument(TimestampedModel):
    """One JSON document in a named collection (regulations, deadline_reminders, users)."""

    __tablename__ = "stored_documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )

    __table_args__ = (
        Index("ix_stored_documents_collection_created", "collection", "created_at"),
    )
