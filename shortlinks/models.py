"""SQLAlchemy ORM models for the short link service.

This module defines the database schema using SQLAlchemy declarative models
with the indexes that the allocation and visit-recording paths rely on.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ short_code (VARCHAR(32) UNIQUE, INDEXED)
    ├─ original_url (TEXT NOT NULL, HASH INDEX)
    ├─ visits (INTEGER DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ)
    └─ last_visited_at (TIMESTAMPTZ NULL)

    visit_details table
    ├─ id (SERIAL PRIMARY KEY, append order)
    ├─ link_id (FK short_links.id, INDEXED)
    ├─ timestamp (TIMESTAMPTZ)
    ├─ user_agent (TEXT NULL)
    └─ referrer (TEXT NULL)

    counters table
    ├─ name (VARCHAR(64) PRIMARY KEY)
    └─ seq (BIGINT DEFAULT 0)

How to Use
===========
**Step 1 — Import**::
    from shortlinks.models import Link, SequenceCounter, Visit

**Step 2 — Query with history**::
    stmt = select(Link).options(selectinload(Link.visit_history)).where(Link.short_code == "abc")

Key Behaviours
===============
- short_code carries the hard uniqueness constraint; an allocator bug surfaces
  as an IntegrityError on insert instead of a silent collision.
- original_url is indexed for the dedup lookup but is not unique.
- The hash index keeps very long URLs indexable on PostgreSQL.
- visit_details ids are the append order of the visit history.
- timestamps are written by the application so visits recorded in the same
  second still order correctly.

Classes:
    Link:  A short code to original URL mapping with visit counters.
    Visit:  One recorded resolve of a Link.
    SequenceCounter:  Named monotonically increasing sequence.
"""

import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shortlinks.database import Base

__all__ = ["Link", "Visit", "SequenceCounter", "utcnow"]

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Link(Base):
    __tablename__ = "short_links"
    __table_args__ = (
        Index("ix_short_links_original_url", "original_url", postgresql_using="hash"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    short_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    visits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_visited_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    visit_history: Mapped[list["Visit"]] = relationship(
        back_populates="link",
        order_by="Visit.id",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, short_code='{self.short_code}', visits={self.visits})>"


class Visit(Base):
    __tablename__ = "visit_details"

    id: Mapped[int] = mapped_column(_BigIntPK, primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(
        ForeignKey("short_links.id", ondelete="CASCADE"), index=True, nullable=False
    )
    timestamp: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)

    link: Mapped[Link] = relationship(back_populates="visit_history", lazy="raise")

    def __repr__(self) -> str:
        return f"<Visit(id={self.id}, link_id={self.link_id}, timestamp={self.timestamp!r})>"


class SequenceCounter(Base):
    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<SequenceCounter(name='{self.name}', seq={self.seq})>"
