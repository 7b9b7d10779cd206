"""SQLAlchemy ORM models for the sql store backend.

Learn: The relay stores schemaless documents, so there is one table.
Each row is one document: its collection path ("users",
"chats/C1/messages"), its id, and its fields as JSON (JSONB on
PostgreSQL). Equality filters and ordering run against JSON fields.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    """A single document in a (sub-)collection."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(500), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (Index("ix_documents_collection", "collection"),)
