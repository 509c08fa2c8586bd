"""Core SQLAlchemy models (2.x style) for the tracker schema.

A research program is the root of a one-to-many fan-out to deadlines,
people and links. Child rows cascade-delete with their program both in the
database (ON DELETE CASCADE) and in the ORM (passive deletes).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Program(Base):
    """Research programs table."""
    __tablename__ = "research_programs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    university: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    program_type: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(50), default="active", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    deadlines: Mapped[list[Deadline]] = relationship(
        "Deadline",
        back_populates="program",
        order_by="Deadline.deadline_date",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    people: Mapped[list[Person]] = relationship(
        "Person",
        back_populates="program",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    links: Mapped[list[Link]] = relationship(
        "Link",
        back_populates="program",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_research_programs_created_at", "created_at"),
    )


class Deadline(Base):
    """Program deadlines table."""
    __tablename__ = "program_deadlines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    program_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("research_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    deadline_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deadline_type: Mapped[str] = mapped_column(String(100), nullable=False)  # application, interview, ...
    description: Mapped[str | None] = mapped_column(Text)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationship
    program: Mapped[Program] = relationship("Program", back_populates="deadlines")

    __table_args__ = (
        Index("ix_program_deadlines_date", "deadline_date"),
    )


class Person(Base):
    """Program contacts table."""
    __tablename__ = "program_people"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    program_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("research_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    linkedin_url: Mapped[str | None] = mapped_column(Text)
    role: Mapped[str | None] = mapped_column(String(100))  # professor, researcher, contact, ...
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationship
    program: Mapped[Program] = relationship("Program", back_populates="people")


class Link(Base):
    """Program links table."""
    __tablename__ = "program_links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    program_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("research_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    link_type: Mapped[str | None] = mapped_column(String(100))  # website, application, ...
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationship
    program: Mapped[Program] = relationship("Program", back_populates="links")
