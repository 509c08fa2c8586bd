"""Complete pipeline orchestration for one program message.

Combines extraction (completion call + parsing) and graph persistence.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from ai.extractor import ExtractionResult, ProgramExtractor
from tracker.pipelines.persistence import PersistedBatch, ProgramGraphPersister

logger = logging.getLogger(__name__)


@dataclass
class ProcessedMessage:
    """Result of processing one user message."""
    user_id: str
    batch: PersistedBatch
    extraction: ExtractionResult

    @property
    def raw_response(self) -> str:
        return self.extraction.raw_response

    @property
    def partial(self) -> bool:
        return self.batch.partial


async def process_program_message(
    session: AsyncSession,
    *,
    message: str,
    user_id: str,
    extractor: ProgramExtractor | None = None,
) -> ProcessedMessage:
    """Process a single free-text message through the complete pipeline.

    Steps:
    1. Extract the candidate graph (one completion call)
    2. Persist programs and their children for the user

    Extraction errors propagate unchanged, so nothing is written when the
    completion step fails.

    Args:
        session: Database session
        message: User free text
        user_id: Owner of the created programs
        extractor: Extractor to use (a default one if omitted)

    Returns:
        ProcessedMessage with persisted rows and the raw completion

    Raises:
        ConfigurationError: If the completion credential is missing
        UpstreamError: If the completion call fails
        MalformedResponseError: If the completion is not the expected JSON
    """
    if not user_id or not user_id.strip():
        raise ValueError("user_id must not be empty")

    extractor = extractor or ProgramExtractor()

    logger.info(f"Processing program message for user {user_id}")

    extraction = await extractor.extract(message)

    persister = ProgramGraphPersister(session)
    batch = await persister.persist(extraction.graph, user_id=user_id)

    if batch.partial:
        logger.warning(f"Partial persistence for user {user_id}: {len(batch.skipped)} entities skipped")

    return ProcessedMessage(user_id=user_id, batch=batch, extraction=extraction)
