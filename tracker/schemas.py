"""Candidate entity contract for one extraction batch.

The completion model returns four arrays. Every non-program entry carries
``program_title``, the join key against ``programs[].title`` in the same
response. These models validate a single entry right before it is written,
so malformed model output surfaces as ``MalformedResponseError`` rather than
a store failure.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .pipelines.normalization import clean_optional_text

GRAPH_KEYS = ("programs", "deadlines", "people", "links")

DEFAULT_PROGRAM_STATUS = "active"


class MalformedResponseError(Exception):
    """Raised when completion output does not match the extraction contract."""
    pass


def _required_text(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


class CandidateEntity(BaseModel):
    """Base for candidate entries: unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")

    @field_validator("description", mode="before", check_fields=False)
    @classmethod
    def clean_description(cls, v):
        return clean_optional_text(v, collapse_whitespace=True)


class CandidateProgram(CandidateEntity):
    # Kept verbatim: it is the join key for children.
    title: str = Field(min_length=1)
    university: str = Field(min_length=1)
    description: str | None = None
    program_type: str | None = None
    status: str = DEFAULT_PROGRAM_STATUS

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("university", mode="before")
    @classmethod
    def strip_university(cls, v):
        return _required_text(v)

    @field_validator("program_type", mode="before")
    @classmethod
    def clean_program_type(cls, v):
        return clean_optional_text(v)

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v):
        return clean_optional_text(v) or DEFAULT_PROGRAM_STATUS


class CandidateChild(CandidateEntity):
    program_title: str = Field(min_length=1)


class CandidateDeadline(CandidateChild):
    title: str = Field(min_length=1)
    deadline_date: datetime
    deadline_type: str = Field(min_length=1)
    description: str | None = None

    @field_validator("title", "deadline_type", mode="before")
    @classmethod
    def strip_required(cls, v):
        return _required_text(v)

    @field_validator("deadline_date", mode="before")
    @classmethod
    def parse_iso_date(cls, v):
        if isinstance(v, str):
            text = v.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                return datetime.fromisoformat(text)
            except ValueError:
                raise ValueError(f"deadline_date is not ISO-8601: {v!r}") from None
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime.combine(v, time.min)
        return v

    @field_validator("deadline_date")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class CandidatePerson(CandidateChild):
    name: str = Field(min_length=1)
    description: str | None = None
    linkedin_url: str | None = None
    role: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return _required_text(v)

    @field_validator("linkedin_url", "role", mode="before")
    @classmethod
    def clean_optional(cls, v):
        return clean_optional_text(v)


class CandidateLink(CandidateChild):
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: str | None = None
    link_type: str | None = None

    @field_validator("title", "url", mode="before")
    @classmethod
    def strip_required(cls, v):
        return _required_text(v)

    @field_validator("link_type", mode="before")
    @classmethod
    def clean_link_type(cls, v):
        return clean_optional_text(v)


def validate_candidate(model: type[CandidateEntity], entry: Any) -> CandidateEntity:
    """Validate one raw entry, raising MalformedResponseError on failure."""
    if not isinstance(entry, Mapping):
        raise MalformedResponseError(
            f"{model.__name__} entry must be an object, got {type(entry).__name__}"
        )
    try:
        return model.model_validate(dict(entry))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedResponseError(f"Invalid {model.__name__} ({fields}): {e.error_count()} error(s)") from e
