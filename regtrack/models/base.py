"""Base model classes for the SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Mapped, mapped_column

from regtrack.core.database import Base


class ModelMixin:
    """Readable ``__repr__`` built from the primary key columns."""

    def __repr__(self) -> str:
        keys = ", ".join(
            f"{column.name}={getattr(self, column.name, None)!r}"
            for column in self.__table__.primary_key.columns  # type: ignore[attr-defined]
        )
        return f"<{self.__class__.__name__}({keys})>"


class TimestampedModel(Base, ModelMixin):
    """Abstract base adding created/updated timestamps."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
