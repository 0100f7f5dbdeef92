"""
Database Base Classes

Foundation for the pipeline's relational models.

Key Concepts:
--------------
1. Base: DeclarativeBase bound to metadata with a constraint naming convention
2. TimestampedRow: id / created_at / updated_at shared by every table
3. BaseModel: abstract base combining the two; models inherit from this

Queue rows, FAQ files and FAQ records all need a surrogate integer key and
creation time (the queue is read oldest-first), so the mixin lives here
rather than being repeated per model.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry


# ================================
# Naming Convention for Constraints
# ================================
# Deterministic constraint names, e.g.
# - uq_processing_queue_slug
# - fk_raw_faqs_faq_file_id_faq_files
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# ================================
# Base DeclarativeBase Class
# ================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Every table in the pipeline is registered on ``Base.metadata``, which is
    what ``init_db`` hands to ``create_all`` in development and tests.
    """

    registry = orm_registry
    metadata = metadata

    __tablename__: str


# ================================
# Shared Columns Mixin
# ================================
class TimestampedRow:
    """
    Mixin providing the columns every pipeline table carries.

    Fields:
    -------
    - id: auto-incrementing surrogate key
    - created_at: set once on insert; queue reads order by it
    - updated_at: refreshed on every ORM update

    Timestamps are stored as TIMESTAMP WITH TIME ZONE in UTC.
    """

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing primary key"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"


# ================================
# Convenient Base Model
# ================================
class BaseModel(Base, TimestampedRow):
    """
    Abstract base for pipeline models.

    Usage:
        class FaqFile(BaseModel):
            __tablename__ = "faq_files"
            slug: Mapped[str] = mapped_column(String255, unique=True)
    """

    __abstract__ = True


# ================================
# String Length Constraints
# ================================
String50 = String(50)  # timestamps as text, vector ids
String255 = String(255)  # slugs, titles, display names
String1000 = String(1000)  # URLs
