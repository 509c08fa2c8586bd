"""Program extraction: free text to a candidate entity graph.

One completion round trip per message. The parsed graph is a plain mapping
with four lists (programs, deadlines, people, links). Entries are not
validated here; that happens row by row in the persistence pipeline.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from ai.completion import CompletionClient, ConfigurationError, UpstreamError
from ai.prompts import build_extraction_messages
from tracker.pipelines.normalization import strip_code_fences
from tracker.schemas import GRAPH_KEYS, MalformedResponseError

logger = logging.getLogger(__name__)

__all__ = [
    "ConfigurationError",
    "ExtractionResult",
    "MalformedResponseError",
    "ProgramExtractor",
    "UpstreamError",
    "parse_program_graph",
]


class Completer(Protocol):
    async def complete(self, messages: list[dict[str, str]]) -> str: ...


@dataclass
class ExtractionResult:
    """Parsed candidate graph plus the raw completion text."""
    graph: dict[str, list[Any]]
    raw_response: str
    counts: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.counts = {key: len(self.graph.get(key, [])) for key in GRAPH_KEYS}


def parse_program_graph(raw: str) -> dict[str, list[Any]]:
    """Parse completion text into the four-list graph.

    Missing keys and null values default to empty lists so that partial
    model output is tolerated.

    Raises:
        MalformedResponseError: If the text is not a JSON object, or a key
            holds something other than a list
    """
    try:
        payload = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Completion is not valid JSON: {e.msg} (pos {e.pos})") from e

    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Completion JSON must be an object, got {type(payload).__name__}"
        )

    graph: dict[str, list[Any]] = {}
    for key in GRAPH_KEYS:
        value = payload.get(key)
        if value is None:
            graph[key] = []
        elif isinstance(value, list):
            graph[key] = value
        else:
            raise MalformedResponseError(f"'{key}' must be an array, got {type(value).__name__}")
    return graph


class ProgramExtractor:
    """Turns one natural-language message into a candidate entity graph."""

    def __init__(self, client: Completer | None = None) -> None:
        self.client = client or CompletionClient()

    async def extract(self, message: str) -> ExtractionResult:
        """Run the extraction call for a single message.

        Args:
            message: Non-empty user text

        Returns:
            ExtractionResult with the parsed graph and raw response text

        Raises:
            ValueError: If the message is blank
            ConfigurationError: If the completion credential is missing
            UpstreamError: If the completion call fails
            MalformedResponseError: If the response is not the expected JSON
        """
        if not message or not message.strip():
            raise ValueError("message must not be empty")

        logger.info(f"Extracting program data from message ({len(message)} chars)")

        raw = await self.client.complete(build_extraction_messages(message))
        graph = parse_program_graph(raw)
        result = ExtractionResult(graph=graph, raw_response=raw)

        logger.info(f"Extracted candidates: {result.counts}")
        return result
