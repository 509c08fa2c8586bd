"""Chat-completion client for the extraction call.

Thin wrapper around ``openai.AsyncOpenAI``. One attempt per call: the SDK's
built-in retries are disabled and failures surface as ``UpstreamError``.
"""
from __future__ import annotations

import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from tracker.config import CompletionSettings, settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when the completion credential is not configured."""
    pass


class UpstreamError(Exception):
    """Raised when the completion service call fails or returns nothing."""
    pass


class CompletionClient:
    """Async chat-completion client returning the first choice's text."""

    def __init__(self, config: CompletionSettings | None = None) -> None:
        self.config = config or settings.completion
        self._client: AsyncOpenAI | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialize the OpenAI client.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not self.is_configured:
            raise ConfigurationError("OpenAI API key not configured (set OPENAI_API_KEY)")
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def complete(self, messages: list[dict[str, str]]) -> str:
        """Send one chat completion request and return the response text.

        Args:
            messages: Chat messages in OpenAI format

        Returns:
            Content of the first choice

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: On non-success status, transport failure or empty body
        """
        client = self.client

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if self.config.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            logger.error(f"Completion service returned {e.status_code}: {e.message}")
            raise UpstreamError(f"Completion service returned status {e.status_code}") from e
        except openai.APIError as e:
            logger.error(f"Completion request failed: {e}")
            raise UpstreamError(f"Completion request failed: {e}") from e

        if not response.choices:
            raise UpstreamError("Completion service returned no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise UpstreamError("Completion service returned an empty response")

        logger.debug(f"Completion returned {len(content)} characters")
        return content
