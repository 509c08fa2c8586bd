import json
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from ai.extractor import ProgramExtractor
from tracker.db import build_engine, build_sessionmaker
from tracker.models import Base


class FakeCompletionClient:
    """Stands in for CompletionClient; records the messages it receives."""

    def __init__(self, response: Any = None, *, error: Exception | None = None):
        if response is not None and not isinstance(response, str):
            response = json.dumps(response)
        self.response = response
        self.error = error
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.response


def make_extractor(response: Any = None, *, error: Exception | None = None) -> ProgramExtractor:
    return ProgramExtractor(client=FakeCompletionClient(response, error=error))


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mit_graph():
    return {
        "programs": [
            {
                "title": "PhD in Biology",
                "university": "MIT",
                "description": "Doctoral program in biology",
                "program_type": "PhD",
                "status": "active",
            }
        ],
        "deadlines": [
            {
                "title": "Application deadline",
                "deadline_date": "2025-12-01",
                "deadline_type": "application",
                "description": "",
                "program_title": "PhD in Biology",
            }
        ],
        "people": [],
        "links": [],
    }


@pytest.fixture
def extractor_factory():
    return make_extractor


@pytest.fixture
def row_count(session_factory):
    async def _count(model) -> int:
        return await count_rows(session_factory, model)

    return _count
