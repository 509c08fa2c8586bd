"""Read path for the calendar, timeline and knowledge views.

Simple owner-scoped queries plus the two mutations the views perform:
toggling a deadline's completion and deleting a program.
"""
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Sequence

from rapidfuzz import fuzz
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from . import models
from .config import settings

logger = logging.getLogger(__name__)


def search_score(query: str, fields: Iterable[str | None]) -> float:
    """Best similarity (0-100) of a search query against any field.

    A field containing the query scores 100. Fields shorter than the query
    are compared whole, so short values do not match long queries by
    accident.
    """
    needle = query.strip().lower()
    if not needle:
        return 100.0

    best = 0.0
    for value in fields:
        if not value:
            continue
        haystack = value.lower()
        if needle in haystack:
            return 100.0
        if len(haystack) >= len(needle):
            score = fuzz.partial_ratio(needle, haystack)
        else:
            score = fuzz.ratio(needle, haystack)
        best = max(best, score)
    return best


def matches_search(query: str | None, fields: Iterable[str | None], threshold: int | None = None) -> bool:
    if not query or not query.strip():
        return True
    threshold = settings.search.fuzzy_threshold if threshold is None else threshold
    return search_score(query, fields) >= threshold


async def list_deadlines(
    session: AsyncSession,
    user_id: str,
    *,
    on_date: date | None = None,
) -> Sequence[models.Deadline]:
    """All deadlines joined to their program, soonest first.

    Args:
        session: Database session
        user_id: Owner
        on_date: Restrict to deadlines falling on this UTC calendar day
    """
    query = (
        select(models.Deadline)
        .join(models.Deadline.program)
        .where(models.Program.user_id == user_id)
        .options(joinedload(models.Deadline.program))
        .order_by(models.Deadline.deadline_date.asc())
    )
    if on_date is not None:
        start = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
        query = query.where(
            models.Deadline.deadline_date >= start,
            models.Deadline.deadline_date < start + timedelta(days=1),
        )

    result = await session.execute(query)
    return result.scalars().all()


async def list_upcoming_deadlines(
    session: AsyncSession,
    user_id: str,
    *,
    now: datetime | None = None,
    days: int | None = None,
    limit: int | None = None,
) -> Sequence[models.Deadline]:
    """Incomplete deadlines due within the next ``days`` days."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    days = days or settings.search.upcoming_window_days
    limit = limit or settings.search.upcoming_limit

    query = (
        select(models.Deadline)
        .join(models.Deadline.program)
        .where(
            models.Program.user_id == user_id,
            models.Deadline.completed.is_(False),
            models.Deadline.deadline_date >= now,
            models.Deadline.deadline_date <= now + timedelta(days=days),
        )
        .options(joinedload(models.Deadline.program))
        .order_by(models.Deadline.deadline_date.asc())
        .limit(limit)
    )
    result = await session.execute(query)
    return result.scalars().all()


async def list_programs(session: AsyncSession, user_id: str) -> Sequence[models.Program]:
    """Programs with nested children, newest first.

    Each program's deadlines are sorted by date ascending.
    """
    query = (
        select(models.Program)
        .where(models.Program.user_id == user_id)
        .options(
            selectinload(models.Program.deadlines),
            selectinload(models.Program.people),
            selectinload(models.Program.links),
        )
        .order_by(models.Program.created_at.desc())
    )
    result = await session.execute(query)
    return result.scalars().all()


async def list_people(
    session: AsyncSession,
    user_id: str,
    *,
    search: str | None = None,
) -> list[models.Person]:
    """People joined to their program, optionally filtered by a search term."""
    query = (
        select(models.Person)
        .join(models.Person.program)
        .where(models.Program.user_id == user_id)
        .options(joinedload(models.Person.program))
    )
    result = await session.execute(query)
    return [
        person
        for person in result.scalars().all()
        if matches_search(
            search,
            (person.name, person.description, person.program.title, person.program.university),
        )
    ]


async def list_links(
    session: AsyncSession,
    user_id: str,
    *,
    search: str | None = None,
) -> list[models.Link]:
    """Links joined to their program, optionally filtered by a search term."""
    query = (
        select(models.Link)
        .join(models.Link.program)
        .where(models.Program.user_id == user_id)
        .options(joinedload(models.Link.program))
    )
    result = await session.execute(query)
    return [
        link
        for link in result.scalars().all()
        if matches_search(
            search,
            (link.title, link.description, link.program.title, link.program.university),
        )
    ]


async def set_deadline_completed(
    session: AsyncSession,
    user_id: str,
    deadline_id: uuid.UUID,
    completed: bool,
) -> models.Deadline | None:
    """Mark a deadline complete or incomplete. None if not found for the user."""
    query = (
        select(models.Deadline)
        .join(models.Deadline.program)
        .where(models.Deadline.id == deadline_id, models.Program.user_id == user_id)
        .options(joinedload(models.Deadline.program))
    )
    result = await session.execute(query)
    deadline = result.scalar_one_or_none()
    if deadline is None:
        return None

    deadline.completed = completed
    await session.commit()
    logger.info(f"Deadline {deadline_id} marked completed={completed}")
    return deadline


async def delete_program(session: AsyncSession, user_id: str, program_id: uuid.UUID) -> bool:
    """Delete a program; its deadlines, people and links cascade."""
    result = await session.execute(
        delete(models.Program).where(
            models.Program.id == program_id,
            models.Program.user_id == user_id,
        )
    )
    await session.commit()
    deleted = result.rowcount > 0
    if deleted:
        logger.info(f"Deleted program {program_id} for user {user_id}")
    return deleted
