import uuid
from datetime import date

import pytest
from sqlalchemy import select

from tracker import models
from tracker.pipelines.persistence import PersistenceError, ProgramGraphPersister


def _program(title, university="MIT", **extra):
    return {"title": title, "university": university, **extra}


def _deadline(title, program_title, deadline_date="2026-01-15", deadline_type="application"):
    return {
        "title": title,
        "deadline_date": deadline_date,
        "deadline_type": deadline_type,
        "program_title": program_title,
    }


def _person(name, program_title, role="professor"):
    return {"name": name, "role": role, "program_title": program_title}


def _link(title, program_title, url="https://example.edu"):
    return {"title": title, "url": url, "link_type": "website", "program_title": program_title}


class FailingPersister(ProgramGraphPersister):
    """Fails inserts for rows whose title/name is in ``fail_on``."""

    def __init__(self, session, fail_on):
        super().__init__(session)
        self.fail_on = set(fail_on)
        self.attempted = []

    async def _insert(self, row):
        label = getattr(row, "title", None) or getattr(row, "name", None)
        self.attempted.append((type(row).__name__, label))
        if label in self.fail_on:
            raise PersistenceError(f"simulated failure for {label}")
        return await super()._insert(row)


class DanglingForeignKeyPersister(ProgramGraphPersister):
    """Points selected deadlines at a program id that does not exist."""

    def __init__(self, session, broken_titles):
        super().__init__(session)
        self.broken_titles = set(broken_titles)

    async def _insert(self, row):
        if isinstance(row, models.Deadline) and row.title in self.broken_titles:
            row.program_id = uuid.uuid4()
        return await super()._insert(row)


@pytest.mark.asyncio
async def test_single_program_and_deadline_round_trip(session, session_factory):
    graph = {
        "programs": [_program("X")],
        "deadlines": [_deadline("Apply", "X")],
    }

    batch = await ProgramGraphPersister(session).persist(graph, user_id="u1")

    assert len(batch.programs) == 1
    assert len(batch.deadlines) == 1
    assert batch.partial is False

    async with session_factory() as fresh:
        programs = (await fresh.execute(select(models.Program))).scalars().all()
        deadlines = (await fresh.execute(select(models.Deadline))).scalars().all()

    assert len(programs) == 1 and len(deadlines) == 1
    assert deadlines[0].program_id == programs[0].id
    assert programs[0].user_id == "u1"
    assert programs[0].status == "active"
    assert deadlines[0].completed is False


@pytest.mark.asyncio
async def test_children_fan_out_to_matching_program_only(session):
    graph = {
        "programs": [_program("A"), _program("B", university="Stanford")],
        "deadlines": [_deadline("A apply", "A"), _deadline("B apply", "B"), _deadline("B interview", "B", deadline_type="interview")],
        "people": [_person("Prof. A", "A")],
        "links": [_link("B site", "B")],
    }

    batch = await ProgramGraphPersister(session).persist(graph, user_id="u1")

    ids = {p.title: p.id for p in batch.programs}
    assert [p.title for p in batch.programs] == ["A", "B"]
    assert {d.title: d.program_id for d in batch.deadlines} == {
        "A apply": ids["A"],
        "B apply": ids["B"],
        "B interview": ids["B"],
    }
    assert batch.people[0].program_id == ids["A"]
    assert batch.links[0].program_id == ids["B"]


@pytest.mark.asyncio
async def test_invalid_program_persists_no_children(session, row_count):
    graph = {
        "programs": [{"title": "X"}, _program("Y")],  # X has no university
        "deadlines": [_deadline("X apply", "X"), _deadline("X interview", "X"), _deadline("Y apply", "Y")],
        "people": [_person("Prof. X", "X")],
        "links": [_link("X site", "X")],
    }

    batch = await ProgramGraphPersister(session).persist(graph, user_id="u1")

    assert [p.title for p in batch.programs] == ["Y"]
    assert [d.title for d in batch.deadlines] == ["Y apply"]
    assert batch.people == [] and batch.links == []
    assert batch.partial is True
    skipped = {(s.kind, s.label) for s in batch.skipped}
    assert skipped == {
        ("program", "X"),
        ("deadline", "X apply"),
        ("deadline", "X interview"),
        ("person", "Prof. X"),
        ("link", "X site"),
    }
    assert await row_count(models.Program) == 1
    assert await row_count(models.Deadline) == 1


@pytest.mark.asyncio
async def test_failed_program_insert_attempts_no_children(session, row_count):
    graph = {
        "programs": [_program("X"), _program("Y")],
        "deadlines": [_deadline("X apply", "X"), _deadline("Y apply", "Y")],
        "people": [_person("Prof. X", "X")],
    }
    persister = FailingPersister(session, fail_on={"X"})

    batch = await persister.persist(graph, user_id="u1")

    assert ("Deadline", "X apply") not in persister.attempted
    assert ("Person", "Prof. X") not in persister.attempted
    assert [p.title for p in batch.programs] == ["Y"]
    assert await row_count(models.Program) == 1
    assert await row_count(models.Deadline) == 1
    assert await row_count(models.Person) == 0


@pytest.mark.asyncio
async def test_child_failure_is_isolated(session, row_count):
    graph = {
        "programs": [_program("X")],
        "deadlines": [
            _deadline("Bad date", "X", deadline_date="sometime in spring"),
            _deadline("Apply", "X"),
            _deadline("Interview", "X", deadline_type="interview"),
        ],
        "people": [_person("Prof. Fail", "X"), _person("Prof. Ok", "X")],
        "links": [_link("Site", "X")],
    }
    persister = FailingPersister(session, fail_on={"Prof. Fail"})

    batch = await persister.persist(graph, user_id="u1")

    assert [d.title for d in batch.deadlines] == ["Apply", "Interview"]
    assert [p.name for p in batch.people] == ["Prof. Ok"]
    assert [link.title for link in batch.links] == ["Site"]
    assert len(batch.programs) == 1
    assert {(s.kind, s.label) for s in batch.skipped} == {("deadline", "Bad date"), ("person", "Prof. Fail")}
    assert await row_count(models.Deadline) == 2
    assert await row_count(models.Person) == 1
    assert await row_count(models.Link) == 1


@pytest.mark.asyncio
async def test_store_level_child_failure_rolls_back_only_that_row(session, row_count):
    graph = {
        "programs": [_program("X")],
        "deadlines": [_deadline("Dangling", "X"), _deadline("Apply", "X")],
        "links": [_link("Site", "X")],
    }

    batch = await DanglingForeignKeyPersister(session, broken_titles={"Dangling"}).persist(graph, user_id="u1")

    assert [d.title for d in batch.deadlines] == ["Apply"]
    assert batch.skipped[0].kind == "deadline"
    assert batch.skipped[0].label == "Dangling"
    assert await row_count(models.Program) == 1
    assert await row_count(models.Deadline) == 1
    assert await row_count(models.Link) == 1


@pytest.mark.asyncio
async def test_children_with_unknown_program_are_never_orphaned(session, row_count):
    graph = {
        "programs": [_program("X")],
        "deadlines": [_deadline("Elsewhere", "Not in batch")],
        "people": [_person("Nobody", "x")],  # case differs: no match
    }

    batch = await ProgramGraphPersister(session).persist(graph, user_id="u1")

    assert batch.deadlines == [] and batch.people == []
    assert batch.partial is True
    assert {s.reason for s in batch.skipped} == {"no program with this title in the batch"}
    assert await row_count(models.Deadline) == 0
    assert await row_count(models.Person) == 0


@pytest.mark.asyncio
async def test_duplicate_titles_first_match_wins(session):
    graph = {
        "programs": [_program("X", university="MIT"), _program("X", university="Harvard")],
        "deadlines": [_deadline("Apply", "X")],
        "people": [_person("Prof. X", "X")],
    }

    batch = await ProgramGraphPersister(session).persist(graph, user_id="u1")

    first, second = batch.programs
    assert (first.university, second.university) == ("MIT", "Harvard")
    assert [d.program_id for d in batch.deadlines] == [first.id]
    assert [p.program_id for p in batch.people] == [first.id]


@pytest.mark.asyncio
async def test_duplicate_title_children_are_not_redirected_when_first_fails(session, row_count):
    graph = {
        "programs": [{"title": "X"}, _program("X", university="Harvard")],
        "deadlines": [_deadline("Apply", "X")],
    }

    batch = await ProgramGraphPersister(session).persist(graph, user_id="u1")

    assert [p.university for p in batch.programs] == ["Harvard"]
    assert batch.deadlines == []
    assert await row_count(models.Deadline) == 0


@pytest.mark.asyncio
async def test_same_graph_twice_creates_duplicate_programs(session, mit_graph, row_count):
    persister = ProgramGraphPersister(session)

    first = await persister.persist(mit_graph, user_id="u1")
    second = await persister.persist(mit_graph, user_id="u1")

    assert first.programs[0].id != second.programs[0].id
    assert await row_count(models.Program) == 2
    assert await row_count(models.Deadline) == 2


@pytest.mark.asyncio
async def test_empty_programs_attempts_no_writes(session, row_count):
    graph = {"programs": [], "deadlines": [_deadline("Apply", "X")], "people": [], "links": []}
    persister = FailingPersister(session, fail_on=set())

    batch = await persister.persist(graph, user_id="u1")

    assert persister.attempted == []
    assert (batch.programs, batch.deadlines, batch.people, batch.links) == ([], [], [], [])
    assert await row_count(models.Program) == 0
    assert await row_count(models.Deadline) == 0


@pytest.mark.asyncio
async def test_deadline_dates_are_stored_as_given(session, mit_graph):
    batch = await ProgramGraphPersister(session).persist(mit_graph, user_id="u1")

    assert batch.deadlines[0].deadline_date.date() == date(2025, 12, 1)
    assert batch.deadlines[0].description is None
