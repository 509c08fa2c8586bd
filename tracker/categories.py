"""Closed category variants for free-text category fields.

Category columns are stored as open text. At the boundary where records are
consumed, each value is mapped to a closed variant with an ``unknown``
fallback so that new category strings from the model never break rendering.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from config.category_taxonomy import CATEGORY_TAXONOMY, DEFAULT_COLOR

logger = logging.getLogger(__name__)


class CategoryKind(str, Enum):
    """Category-bearing fields."""
    PROGRAM_TYPE = "program_type"
    DEADLINE_TYPE = "deadline_type"
    ROLE = "role"
    LINK_TYPE = "link_type"


class ProgramType(str, Enum):
    PHD = "PhD"
    MASTERS = "Masters"
    FELLOWSHIP = "Fellowship"
    POSTDOC = "Postdoc"
    UNKNOWN = "unknown"


class DeadlineType(str, Enum):
    APPLICATION = "application"
    PROJECT = "project"
    INTERVIEW = "interview"
    NOTIFICATION = "notification"
    UNKNOWN = "unknown"


class PersonRole(str, Enum):
    PROFESSOR = "professor"
    RESEARCHER = "researcher"
    CONTACT = "contact"
    ADVISOR = "advisor"
    UNKNOWN = "unknown"


class LinkType(str, Enum):
    WEBSITE = "website"
    APPLICATION = "application"
    RESEARCH = "research"
    DOCUMENTATION = "documentation"
    UNKNOWN = "unknown"


VARIANTS: dict[CategoryKind, type[Enum]] = {
    CategoryKind.PROGRAM_TYPE: ProgramType,
    CategoryKind.DEADLINE_TYPE: DeadlineType,
    CategoryKind.ROLE: PersonRole,
    CategoryKind.LINK_TYPE: LinkType,
}


@dataclass(frozen=True)
class CategoryBadge:
    """A stored category value together with its resolved variant."""
    value: str | None
    variant: Enum
    color: str


def _build_lookup() -> dict[CategoryKind, dict[str, tuple[str, str]]]:
    """synonym (lowercase) -> (canonical, color), per kind."""
    lookup: dict[CategoryKind, dict[str, tuple[str, str]]] = {}
    for kind in CategoryKind:
        entries = CATEGORY_TAXONOMY.get(kind.value, [])
        table: dict[str, tuple[str, str]] = {}
        for entry in entries:
            canonical = entry["canonical"]
            table[canonical.lower()] = (canonical, entry["color"])
            for syn in entry.get("synonyms", []):
                table[syn.lower()] = (canonical, entry["color"])
        lookup[kind] = table
    return lookup


_LOOKUP = _build_lookup()


def classify_category(kind: CategoryKind | str, value: str | None) -> CategoryBadge:
    """Resolve a stored category string to its closed variant.

    Matching is exact on the trimmed, case-folded value against canonical
    names and synonyms. Anything else resolves to ``UNKNOWN`` with the
    default colour.
    """
    kind = CategoryKind(kind)
    variants = VARIANTS[kind]
    if value:
        hit = _LOOKUP[kind].get(value.strip().lower())
        if hit is not None:
            canonical, color = hit
            return CategoryBadge(value=value, variant=variants(canonical), color=color)
        logger.debug(f"Unrecognized {kind.value} value: {value!r}")
    return CategoryBadge(value=value, variant=variants("unknown"), color=DEFAULT_COLOR)
