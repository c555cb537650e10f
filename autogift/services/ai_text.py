"""
AI Text Generation — short personalized messages written by Claude.

The caller owns the fallback: `generate()` raises on any failure
(not configured, timeout, API error, empty reply) so the nudge
dispatcher can switch to its template.
"""

import asyncio
import logging
from typing import Protocol

from anthropic import AsyncAnthropic

from autogift.core.config import (
    AI_TIMEOUT_SECONDS,
    ANTHROPIC_API_KEY,
    ANTHROPIC_MODEL,
    is_anthropic_configured,
)

logger = logging.getLogger(__name__)

MAX_TOKENS = 400

NUDGE_SYSTEM_PROMPT = (
    "You write short, warm personal messages on behalf of a user of a gifting "
    "app. Reply with the message text only: no subject line, no quotes, no "
    "signature, at most four sentences."
)


class TextGenerator(Protocol):
    async def generate(self, prompt: str, system: str = NUDGE_SYSTEM_PROMPT) -> str: ...


class AIUnavailableError(RuntimeError):
    """Claude could not produce a message."""


class ClaudeTextGenerator:
    """TextGenerator backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str = ANTHROPIC_API_KEY,
        model: str = ANTHROPIC_MODEL,
        timeout: float = AI_TIMEOUT_SECONDS,
    ):
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    async def generate(self, prompt: str, system: str = NUDGE_SYSTEM_PROMPT) -> str:
        if not self._api_key or not is_anthropic_configured():
            raise AIUnavailableError("Anthropic API key not configured")

        client = AsyncAnthropic(api_key=self._api_key)
        try:
            response = await asyncio.wait_for(
                client.messages.create(
                    model=self._model,
                    max_tokens=MAX_TOKENS,
                    system=system,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AIUnavailableError(f"Claude timed out after {self._timeout}s") from exc
        except Exception as exc:
            raise AIUnavailableError(f"Claude request failed: {exc}") from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip().strip('"')
        if not text:
            raise AIUnavailableError("Claude returned an empty message")

        logger.info("Generated %d-character message with %s", len(text), self._model)
        return text
