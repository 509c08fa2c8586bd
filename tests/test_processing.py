from datetime import date

import pytest

from ai.completion import CompletionClient, ConfigurationError, UpstreamError
from ai.extractor import ProgramExtractor
from tracker import models
from tracker.config import CompletionSettings
from tracker.pipelines.processing import process_program_message
from tracker.schemas import MalformedResponseError

MESSAGE = "PhD in Biology at MIT, application due 2025-12-01"


@pytest.mark.asyncio
async def test_mit_biology_scenario(session, extractor_factory, mit_graph):
    processed = await process_program_message(
        session,
        message=MESSAGE,
        user_id="u1",
        extractor=extractor_factory(mit_graph),
    )

    batch = processed.batch
    assert len(batch.programs) == 1
    program = batch.programs[0]
    assert "Biology" in program.title
    assert program.university == "MIT"
    assert len(batch.deadlines) == 1
    deadline = batch.deadlines[0]
    assert deadline.deadline_type == "application"
    assert deadline.deadline_date.date() == date(2025, 12, 1)
    assert deadline.program_id == program.id
    assert batch.people == [] and batch.links == []
    assert processed.partial is False
    assert processed.raw_response.startswith("{")


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_write(session, row_count):
    extractor = ProgramExtractor(client=CompletionClient(CompletionSettings(api_key=None)))

    with pytest.raises(ConfigurationError):
        await process_program_message(session, message=MESSAGE, user_id="u1", extractor=extractor)

    for model in (models.Program, models.Deadline, models.Person, models.Link):
        assert await row_count(model) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"error": UpstreamError("503")}, UpstreamError),
        ({"response": "Sorry, I can't help with that."}, MalformedResponseError),
    ],
)
async def test_fatal_extraction_errors_write_nothing(session, extractor_factory, row_count, kwargs, error):
    with pytest.raises(error):
        await process_program_message(
            session,
            message=MESSAGE,
            user_id="u1",
            extractor=extractor_factory(**kwargs),
        )

    assert await row_count(models.Program) == 0


@pytest.mark.asyncio
async def test_empty_programs_yields_empty_result(session, extractor_factory, row_count):
    processed = await process_program_message(
        session,
        message="Nothing relevant here",
        user_id="u1",
        extractor=extractor_factory({"programs": [], "deadlines": [], "people": [], "links": []}),
    )

    batch = processed.batch
    assert (batch.programs, batch.deadlines, batch.people, batch.links) == ([], [], [], [])
    assert processed.partial is False
    assert await row_count(models.Program) == 0


@pytest.mark.asyncio
async def test_same_message_twice_is_not_deduplicated(session, extractor_factory, mit_graph, row_count):
    for _ in range(2):
        await process_program_message(
            session,
            message=MESSAGE,
            user_id="u1",
            extractor=extractor_factory(mit_graph),
        )

    assert await row_count(models.Program) == 2


@pytest.mark.asyncio
async def test_blank_user_id_is_rejected(session, extractor_factory, mit_graph):
    extractor = extractor_factory(mit_graph)

    with pytest.raises(ValueError):
        await process_program_message(session, message=MESSAGE, user_id=" ", extractor=extractor)
    assert extractor.client.calls == []
