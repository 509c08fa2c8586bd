"""Persistence pipeline: candidate graph to durable program records.

Programs are written in batch order, each in its own transaction. Every row
is inserted inside a SAVEPOINT, so a failed child rolls back alone while its
siblings and parent proceed. Children join their program by exact title
equality; when a title repeats within a batch, the first program carrying it
owns the children (first-match-wins), whether or not its insert succeeded.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tracker import models
from tracker.schemas import (
    CandidateDeadline,
    CandidateLink,
    CandidatePerson,
    CandidateProgram,
    MalformedResponseError,
    validate_candidate,
)

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a single row insert fails."""
    pass


@dataclass(frozen=True)
class ChildKind:
    """How one child kind is validated and materialized."""
    kind: str
    graph_key: str
    candidate: type
    model: type
    label_field: str


CHILD_KINDS: tuple[ChildKind, ...] = (
    ChildKind("deadline", "deadlines", CandidateDeadline, models.Deadline, "title"),
    ChildKind("person", "people", CandidatePerson, models.Person, "name"),
    ChildKind("link", "links", CandidateLink, models.Link, "title"),
)


@dataclass
class SkippedEntity:
    """A requested entity that was not persisted, with the reason."""
    kind: str
    label: str | None
    program_title: str | None
    reason: str


@dataclass
class PersistedBatch:
    """Rows actually written for one extraction batch."""
    programs: list[models.Program] = field(default_factory=list)
    deadlines: list[models.Deadline] = field(default_factory=list)
    people: list[models.Person] = field(default_factory=list)
    links: list[models.Link] = field(default_factory=list)
    skipped: list[SkippedEntity] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """True when some requested entity was not persisted."""
        return bool(self.skipped)

    def rows_for(self, graph_key: str) -> list[Any]:
        return getattr(self, graph_key)


def _field(entry: Any, name: str) -> str | None:
    if isinstance(entry, Mapping):
        value = entry.get(name)
        return value if isinstance(value, str) else None
    return None


class ProgramGraphPersister:
    """Materializes a candidate graph into programs and their children."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _insert(self, row: models.Base) -> models.Base:
        """Insert one row inside a SAVEPOINT.

        Raises:
            PersistenceError: If the flush fails; only this row is rolled back
        """
        try:
            # Flushed when the savepoint is released.
            async with self.session.begin_nested():
                self.session.add(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to insert into {row.__tablename__}: {e}") from e
        return row

    async def persist(self, graph: Mapping[str, Sequence[Any]], *, user_id: str) -> PersistedBatch:
        """Write programs and their children for one user.

        Args:
            graph: Mapping with programs/deadlines/people/links lists
            user_id: Owner stamped on every program row

        Returns:
            PersistedBatch with persisted rows and skipped entities
        """
        programs = list(graph.get("programs") or [])
        children = {child_kind.graph_key: list(graph.get(child_kind.graph_key) or []) for child_kind in CHILD_KINDS}
        batch = PersistedBatch()

        if not programs:
            self._skip_unmatched(children, owned_titles=set(), batch=batch)
            logger.info("No programs extracted; nothing to persist")
            return batch

        # First program in batch order carrying a title owns that title.
        owner_index: dict[str, int] = {}
        for index, entry in enumerate(programs):
            title = _field(entry, "title")
            if title is None:
                continue
            if title in owner_index:
                logger.warning(
                    f"Duplicate program title {title!r} in batch; children attach to the first occurrence"
                )
                continue
            owner_index[title] = index

        for index, entry in enumerate(programs):
            await self._persist_program(
                index,
                entry,
                user_id=user_id,
                children=children,
                owner_index=owner_index,
                batch=batch,
            )

        self._skip_unmatched(children, owned_titles=set(owner_index), batch=batch)

        logger.info(
            f"Persisted {len(batch.programs)} programs, {len(batch.deadlines)} deadlines, "
            f"{len(batch.people)} people, {len(batch.links)} links "
            f"({len(batch.skipped)} skipped)"
        )
        return batch

    async def _persist_program(
        self,
        index: int,
        entry: Any,
        *,
        user_id: str,
        children: Mapping[str, list[Any]],
        owner_index: Mapping[str, int],
        batch: PersistedBatch,
    ) -> None:
        title = _field(entry, "title")
        owns_title = title is not None and owner_index.get(title) == index

        try:
            candidate = validate_candidate(CandidateProgram, entry)
            program = await self._insert(
                models.Program(
                    user_id=user_id,
                    title=candidate.title,
                    university=candidate.university,
                    description=candidate.description,
                    program_type=candidate.program_type,
                    status=candidate.status,
                )
            )
        except (MalformedResponseError, PersistenceError) as e:
            logger.error(f"Skipping program {title!r}: {e}")
            batch.skipped.append(SkippedEntity("program", title, None, str(e)))
            if owns_title:
                self._skip_children_of(title, children, batch, reason="program was not persisted")
            return

        batch.programs.append(program)

        if owns_title:
            for child_kind in CHILD_KINDS:
                for child in children[child_kind.graph_key]:
                    if _field(child, "program_title") == title:
                        await self._persist_child(child_kind, child, program, batch)

        await self.session.commit()
        logger.debug(f"Committed program {program.id} ({program.title!r})")

    async def _persist_child(
        self,
        child_kind: ChildKind,
        entry: Any,
        program: models.Program,
        batch: PersistedBatch,
    ) -> None:
        """Validate and insert one child; failures are recorded, not raised."""
        label = _field(entry, child_kind.label_field)
        try:
            candidate = validate_candidate(child_kind.candidate, entry)
            values = candidate.model_dump(exclude={"program_title"})
            row = await self._insert(child_kind.model(program_id=program.id, **values))
        except (MalformedResponseError, PersistenceError) as e:
            logger.error(f"Skipping {child_kind.kind} {label!r} of program {program.title!r}: {e}")
            batch.skipped.append(SkippedEntity(child_kind.kind, label, program.title, str(e)))
            return
        batch.rows_for(child_kind.graph_key).append(row)

    def _skip_children_of(
        self,
        title: str,
        children: Mapping[str, list[Any]],
        batch: PersistedBatch,
        *,
        reason: str,
    ) -> None:
        for child_kind in CHILD_KINDS:
            for child in children[child_kind.graph_key]:
                if _field(child, "program_title") == title:
                    batch.skipped.append(
                        SkippedEntity(child_kind.kind, _field(child, child_kind.label_field), title, reason)
                    )

    def _skip_unmatched(
        self,
        children: Mapping[str, list[Any]],
        *,
        owned_titles: set[str],
        batch: PersistedBatch,
    ) -> None:
        for child_kind in CHILD_KINDS:
            for child in children[child_kind.graph_key]:
                program_title = _field(child, "program_title")
                if program_title not in owned_titles:
                    logger.warning(f"Dropping {child_kind.kind} with unknown program_title {program_title!r}")
                    batch.skipped.append(
                        SkippedEntity(
                            child_kind.kind,
                            _field(child, child_kind.label_field),
                            program_title,
                            "no program with this title in the batch",
                        )
                    )
