"""FastAPI app with health, program extraction and read endpoints.

Implements the process-program-data call wired to the full extraction and
persistence pipeline, plus the owner-scoped queries behind the calendar,
timeline and knowledge views.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from ai.completion import ConfigurationError, UpstreamError
from ai.extractor import ProgramExtractor
from config.category_taxonomy import TAXONOMY_VERSION

from . import models, queries
from .categories import CategoryKind, classify_category
from .config import settings
from .db import get_session
from .logging_config import setup_logging
from .pipelines.persistence import SkippedEntity
from .pipelines.processing import process_program_message
from .schemas import MalformedResponseError

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Failed to process message"
MISSING_FIELDS = "Message and userId are required"
PROCESS_PATH = "/process-program-data"

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": ", ".join(CORS_HEADERS),
    "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
}


# Pydantic response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    taxonomy_version: str


class FailureResponse(BaseModel):
    """Failure response."""
    error: str
    success: bool = False


class CategoryDTO(BaseModel):
    """Stored category value with its resolved variant and colour."""
    value: str | None
    variant: str
    color: str


def _badge(kind: CategoryKind, value: str | None) -> CategoryDTO:
    badge = classify_category(kind, value)
    return CategoryDTO(value=badge.value, variant=badge.variant.value, color=badge.color)


class ProgramSummaryDTO(BaseModel):
    """Program fields embedded in child listings."""
    id: uuid.UUID
    title: str
    university: str
    program_type: str | None
    status: str


class ProgramDTO(ProgramSummaryDTO):
    user_id: str
    description: str | None
    program_type_badge: CategoryDTO
    created_at: datetime
    updated_at: datetime


class DeadlineDTO(BaseModel):
    id: uuid.UUID
    program_id: uuid.UUID
    title: str
    deadline_date: datetime
    deadline_type: str
    deadline_type_badge: CategoryDTO
    description: str | None
    completed: bool
    created_at: datetime


class PersonDTO(BaseModel):
    id: uuid.UUID
    program_id: uuid.UUID
    name: str
    description: str | None
    linkedin_url: str | None
    role: str | None
    role_badge: CategoryDTO
    created_at: datetime


class LinkDTO(BaseModel):
    id: uuid.UUID
    program_id: uuid.UUID
    title: str
    url: str
    description: str | None
    link_type: str | None
    link_type_badge: CategoryDTO
    created_at: datetime


class DeadlineWithProgramDTO(DeadlineDTO):
    program: ProgramSummaryDTO


class PersonWithProgramDTO(PersonDTO):
    program: ProgramSummaryDTO


class LinkWithProgramDTO(LinkDTO):
    program: ProgramSummaryDTO


class ProgramDetailDTO(ProgramDTO):
    deadlines: list[DeadlineDTO] = Field(default_factory=list)
    people: list[PersonDTO] = Field(default_factory=list)
    links: list[LinkDTO] = Field(default_factory=list)


class SkippedDTO(BaseModel):
    """An extracted entity that was not persisted."""
    kind: str
    label: str | None
    program_title: str | None
    reason: str


class ProcessRequest(BaseModel):
    """Process program data request."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    user_id: str = Field(alias="userId", min_length=1)

    @field_validator("message", "user_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class ProcessResponse(BaseModel):
    """Process program data response: the rows actually persisted."""
    model_config = ConfigDict(populate_by_name=True)

    programs: list[ProgramDTO]
    deadlines: list[DeadlineDTO]
    people: list[PersonDTO]
    links: list[LinkDTO]
    raw_response: str = Field(alias="rawResponse")
    partial: bool
    skipped: list[SkippedDTO] = Field(default_factory=list)


class UpdateDeadlineRequest(BaseModel):
    completed: bool


# ORM -> DTO
def program_summary(program: models.Program) -> ProgramSummaryDTO:
    return ProgramSummaryDTO(
        id=program.id,
        title=program.title,
        university=program.university,
        program_type=program.program_type,
        status=program.status,
    )


def program_dto(program: models.Program) -> ProgramDTO:
    return ProgramDTO(
        **program_summary(program).model_dump(),
        user_id=program.user_id,
        description=program.description,
        program_type_badge=_badge(CategoryKind.PROGRAM_TYPE, program.program_type),
        created_at=program.created_at,
        updated_at=program.updated_at,
    )


def deadline_dto(deadline: models.Deadline) -> DeadlineDTO:
    return DeadlineDTO(
        id=deadline.id,
        program_id=deadline.program_id,
        title=deadline.title,
        deadline_date=deadline.deadline_date,
        deadline_type=deadline.deadline_type,
        deadline_type_badge=_badge(CategoryKind.DEADLINE_TYPE, deadline.deadline_type),
        description=deadline.description,
        completed=deadline.completed,
        created_at=deadline.created_at,
    )


def person_dto(person: models.Person) -> PersonDTO:
    return PersonDTO(
        id=person.id,
        program_id=person.program_id,
        name=person.name,
        description=person.description,
        linkedin_url=person.linkedin_url,
        role=person.role,
        role_badge=_badge(CategoryKind.ROLE, person.role),
        created_at=person.created_at,
    )


def link_dto(link: models.Link) -> LinkDTO:
    return LinkDTO(
        id=link.id,
        program_id=link.program_id,
        title=link.title,
        url=link.url,
        description=link.description,
        link_type=link.link_type,
        link_type_badge=_badge(CategoryKind.LINK_TYPE, link.link_type),
        created_at=link.created_at,
    )


def skipped_dto(skipped: SkippedEntity) -> SkippedDTO:
    return SkippedDTO(
        kind=skipped.kind,
        label=skipped.label,
        program_title=skipped.program_title,
        reason=skipped.reason,
    )


def get_extractor() -> ProgramExtractor:
    """Extractor dependency (overridable in tests)."""
    return ProgramExtractor()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Free-text research program capture with LLM-powered extraction",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=CORS_HEADERS,
)


@app.middleware("http")
async def answer_preflight(request, call_next):
    """Answer every OPTIONS request with an empty body and the CORS headers."""
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_200_OK, headers=PREFLIGHT_HEADERS)
    return await call_next(request)


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=FailureResponse(error=error).model_dump(),
    )


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc: RequestValidationError):
    """Handle malformed request bodies and parameters.

    The process endpoint answers a missing or blank message/userId with a
    500, like any other failure of that call. Read endpoints answer 400.
    """
    fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
    logger.warning(f"Invalid request to {request.url.path}: {fields}")
    if request.url.path == PROCESS_PATH:
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, MISSING_FIELDS)
    return _failure(status.HTTP_400_BAD_REQUEST, f"Invalid request: {fields}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request, exc: StarletteHTTPException):
    """Render 404s and other HTTP errors in the common failure shape."""
    return _failure(exc.status_code, str(exc.detail))


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request, exc: ConfigurationError):
    """Handle missing completion credentials."""
    logger.error(f"Configuration error: {exc}")
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE)


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request, exc: UpstreamError):
    """Handle completion service failures."""
    logger.error(f"Upstream error: {exc}")
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE)


@app.exception_handler(MalformedResponseError)
async def malformed_response_handler(request, exc: MalformedResponseError):
    """Handle unparseable completion output."""
    logger.error(f"Malformed completion: {exc}")
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE)


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    """Handle anything the endpoints did not anticipate."""
    logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=exc)
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        taxonomy_version=TAXONOMY_VERSION,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "taxonomy_version": TAXONOMY_VERSION,
        "endpoints": {
            "health": "/health",
            "process_program_data": PROCESS_PATH,
            "programs": "/programs",
            "deadlines": "/deadlines",
            "upcoming_deadlines": "/deadlines/upcoming",
            "people": "/people",
            "links": "/links",
            "docs": "/docs",
        },
    }


@app.post(
    PROCESS_PATH,
    response_model=ProcessResponse,
    status_code=status.HTTP_200_OK,
    responses={500: {"model": FailureResponse}},
)
async def process_program_data(
    request: ProcessRequest,
    session: AsyncSession = Depends(get_session),
    extractor: ProgramExtractor = Depends(get_extractor),
):
    """Extract programs, deadlines, people and links from free text and store them.

    This endpoint:
    1. Sends the message to the completion service with the extraction prompt
    2. Parses the returned JSON graph
    3. Persists each program with the children that reference it by title

    Returns the rows actually written. ``partial`` is true when some
    extracted entity was skipped; ``skipped`` says which and why.
    """
    logger.info(f"Processing program data for user {request.user_id}")

    try:
        processed = await process_program_message(
            session,
            message=request.message,
            user_id=request.user_id,
            extractor=extractor,
        )
    except (ConfigurationError, UpstreamError, MalformedResponseError):
        # Re-raise to be caught by exception handlers
        raise
    except Exception as e:
        logger.error(f"Unexpected error processing program data: {e}", exc_info=True)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE)

    batch = processed.batch
    return ProcessResponse(
        programs=[program_dto(p) for p in batch.programs],
        deadlines=[deadline_dto(d) for d in batch.deadlines],
        people=[person_dto(p) for p in batch.people],
        links=[link_dto(link) for link in batch.links],
        raw_response=processed.raw_response,
        partial=batch.partial,
        skipped=[skipped_dto(s) for s in batch.skipped],
    )


@app.get("/programs", response_model=list[ProgramDetailDTO])
async def get_programs(
    user_id: str = Query(min_length=1),
    session: AsyncSession = Depends(get_session),
) -> list[ProgramDetailDTO]:
    """Programs with nested deadlines, people and links, newest first."""
    programs = await queries.list_programs(session, user_id)
    return [
        ProgramDetailDTO(
            **program_dto(p).model_dump(),
            deadlines=[deadline_dto(d) for d in p.deadlines],
            people=[person_dto(person) for person in p.people],
            links=[link_dto(link) for link in p.links],
        )
        for p in programs
    ]


@app.get("/deadlines", response_model=list[DeadlineWithProgramDTO])
async def get_deadlines(
    user_id: str = Query(min_length=1),
    on_date: date | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[DeadlineWithProgramDTO]:
    """All deadlines with their program, soonest first."""
    deadlines = await queries.list_deadlines(session, user_id, on_date=on_date)
    return [
        DeadlineWithProgramDTO(**deadline_dto(d).model_dump(), program=program_summary(d.program))
        for d in deadlines
    ]


@app.get("/deadlines/upcoming", response_model=list[DeadlineWithProgramDTO])
async def get_upcoming_deadlines(
    user_id: str = Query(min_length=1),
    days: int | None = Query(default=None, ge=1, le=365),
    limit: int | None = Query(default=None, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> list[DeadlineWithProgramDTO]:
    """Incomplete deadlines due soon."""
    deadlines = await queries.list_upcoming_deadlines(session, user_id, days=days, limit=limit)
    return [
        DeadlineWithProgramDTO(**deadline_dto(d).model_dump(), program=program_summary(d.program))
        for d in deadlines
    ]


@app.patch("/deadlines/{deadline_id}", response_model=DeadlineWithProgramDTO)
async def update_deadline(
    deadline_id: uuid.UUID,
    request: UpdateDeadlineRequest,
    user_id: str = Query(min_length=1),
    session: AsyncSession = Depends(get_session),
) -> DeadlineWithProgramDTO:
    """Toggle a deadline's completion flag."""
    deadline = await queries.set_deadline_completed(session, user_id, deadline_id, request.completed)
    if deadline is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Deadline {deadline_id} not found",
        )
    return DeadlineWithProgramDTO(**deadline_dto(deadline).model_dump(), program=program_summary(deadline.program))


@app.delete("/programs/{program_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_program(
    program_id: uuid.UUID,
    user_id: str = Query(min_length=1),
    session: AsyncSession = Depends(get_session),
) -> Response:
    """Delete a program together with its deadlines, people and links."""
    deleted = await queries.delete_program(session, user_id, program_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Program {program_id} not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/people", response_model=list[PersonWithProgramDTO])
async def get_people(
    user_id: str = Query(min_length=1),
    search: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[PersonWithProgramDTO]:
    """People across all programs, filtered by an optional search term."""
    people = await queries.list_people(session, user_id, search=search)
    return [
        PersonWithProgramDTO(**person_dto(p).model_dump(), program=program_summary(p.program))
        for p in people
    ]


@app.get("/links", response_model=list[LinkWithProgramDTO])
async def get_links(
    user_id: str = Query(min_length=1),
    search: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[LinkWithProgramDTO]:
    """Links across all programs, filtered by an optional search term."""
    links = await queries.list_links(session, user_id, search=search)
    return [
        LinkWithProgramDTO(**link_dto(link).model_dump(), program=program_summary(link.program))
        for link in links
    ]
