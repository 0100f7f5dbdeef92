"""
FAQ Pipeline Models

Models Included:
----------------
1. QueueEntry - One Wikipedia page to process (work queue row)
2. FaqFile - One FAQ document per page slug
3. FaqRecord - One question/answer pair belonging to a FaqFile
4. FaqVector - Embedding + metadata row for the pgvector backend
5. QueueStatus (Enum) - Queue state machine states
6. QueueSource (Enum) - How a page entered the queue

Database Tables:
----------------
- processing_queue: work queue, unique by slug
- faq_files: FAQ documents, unique by slug
- raw_faqs: FAQ records, owned by a faq_files row
- faq_vectors: vector index rows (only used when VECTOR_DB_TYPE=pgvector)

Relationships:
--------------
- FaqFile (1) ←→ (Many) FaqRecord

The slug is the join key across the queue, faq_files and vector metadata;
there is no foreign key from the queue to faq_files.
"""

import enum
from datetime import datetime
from typing import Any, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wikifaq.db.base import Base, BaseModel, String50, String255, String1000

# Titles may contain commas (Washington,_D.C.) but never a line break
CROSS_LINK_SEPARATOR = "\n"


# ================================
# Enums
# ================================

class QueueStatus(str, enum.Enum):
    """
    Processing queue states.

    Status Flow:
    ------------
    PENDING → PROCESSING → COMPLETED (success path)
                    ↓
                 FAILED (terminal, error_message set)

    FAILED rows are only moved back to PENDING by the explicit requeue
    policy (QUEUE_AUTO_REQUEUE_FAILED).
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class QueueSource(str, enum.Enum):
    """How a page was discovered."""

    SEED = "seed"
    CROSS_LINK = "cross_link"

    def __str__(self) -> str:
        return self.value


def _enum_column(enum_cls: type[enum.Enum]) -> SAEnum:
    # Store the lowercase value as plain VARCHAR; no native ENUM type to migrate
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ================================
# Processing Queue
# ================================

class QueueEntry(BaseModel):
    """
    A Wikipedia page waiting to be (or already) turned into FAQs.

    The unique slug makes enqueue idempotent: a page discovered twice (as a
    seed and as a cross-link, or by two concurrent pages) has one row.
    """

    __tablename__ = "processing_queue"

    title: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        comment="Wikipedia page title as used for API lookups"
    )

    slug: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        unique=True,
        comment="URL-safe identifier derived from the title"
    )

    url: Mapped[str] = mapped_column(
        String1000,
        nullable=False,
        comment="Canonical Wikipedia URL"
    )

    human_readable_name: Mapped[Optional[str]] = mapped_column(
        String255,
        nullable=True,
        comment="Display title; filled from the LLM when absent"
    )

    status: Mapped[QueueStatus] = mapped_column(
        _enum_column(QueueStatus),
        nullable=False,
        default=QueueStatus.PENDING,
        index=True,
        comment="pending, processing, completed, failed"
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of times this row was claimed"
    )

    source: Mapped[QueueSource] = mapped_column(
        _enum_column(QueueSource),
        nullable=False,
        default=QueueSource.SEED,
        comment="seed or cross_link"
    )

    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set when the row reaches a terminal state"
    )

    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Failure reason; cleared on completion"
    )

    __table_args__ = (
        Index("ix_processing_queue_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"QueueEntry(id={self.id}, slug='{self.slug}', status={self.status})"


# ================================
# FAQ Files & Records
# ================================

class FaqFile(BaseModel):
    """One FAQ document per page slug, created lazily on first persist."""

    __tablename__ = "faq_files"

    slug: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        unique=True,
        comment="Same slug as the queue row"
    )

    human_readable_name: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        comment="Display title of the page"
    )

    records: Mapped[list["FaqRecord"]] = relationship(
        "FaqRecord",
        back_populates="faq_file",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"FaqFile(id={self.id}, slug='{self.slug}')"


class FaqRecord(BaseModel):
    """
    A single question/answer pair.

    ``cross_link`` stores the links one per line; ``cross_links`` gives the
    list view.
    """

    __tablename__ = "raw_faqs"

    faq_file_id: Mapped[int] = mapped_column(
        ForeignKey("faq_files.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    url: Mapped[str] = mapped_column(String1000, nullable=False)
    title: Mapped[str] = mapped_column(String255, nullable=False)
    human_readable_name: Mapped[Optional[str]] = mapped_column(String255, nullable=True)
    last_updated: Mapped[Optional[str]] = mapped_column(
        String50,
        nullable=True,
        comment="Last-modified timestamp of the source page (ISO 8601)"
    )
    subheader: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    cross_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_link: Mapped[Optional[str]] = mapped_column(String1000, nullable=True)

    vector_upsert_success: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
        comment="True once the vector index is known to hold this record"
    )

    faq_file: Mapped[FaqFile] = relationship("FaqFile", back_populates="records")

    @property
    def cross_links(self) -> list[str]:
        if not self.cross_link:
            return []
        return [link.strip() for link in self.cross_link.split(CROSS_LINK_SEPARATOR) if link.strip()]

    def __repr__(self) -> str:
        return f"FaqRecord(id={self.id}, question='{self.question[:30]}...')"


# ================================
# Vector Rows (pgvector backend)
# ================================

class FaqVector(Base):
    """
    Vector index row for the pgvector backend.

    Mirrors the external vector record shape: string id (the FaqRecord id),
    embedding values and a metadata document. Dimension follows
    EMBEDDING_DIMENSION at runtime, so the column is declared unsized.
    """

    __tablename__ = "faq_vectors"

    id: Mapped[str] = mapped_column(String50, primary_key=True)

    embedding = mapped_column(Vector(), nullable=False)

    vector_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    slug: Mapped[Optional[str]] = mapped_column(
        String255,
        nullable=True,
        index=True,
        comment="Copy of metadata.slug for filtered lookups"
    )

    def __repr__(self) -> str:
        return f"FaqVector(id='{self.id}', slug='{self.slug}')"
