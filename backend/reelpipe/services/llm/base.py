"""Abstract base class for text completion provider adapters.

Defines the async interface all adapters implement: ``complete()`` raises on
provider failure, ``text_completion()`` wraps it into an Outcome so callers
never see provider exceptions.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from reelpipe.services.outcome import Outcome

logger = logging.getLogger(__name__)


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    stripped = raw.strip()
    if stripped.startswith("```"):
        # Remove opening fence (```json or ```)
        first_newline = stripped.find("\n")
        stripped = stripped[first_newline + 1:] if first_newline != -1 else stripped[3:]
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters.

    Subclasses implement complete(); text_completion() is the
    non-raising entry point used by pipeline steps.
    """

    model_id: str

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> str:
        """Return the model's text reply to ``prompt``.

        Args:
            prompt: The user prompt to send to the model.
            temperature: Sampling temperature. Higher = more varied.
            system_prompt: Optional system/instruction prompt.
            max_retries: Maximum attempts for transient failures.

        Raises:
            Exception: Any provider or transport failure after retries.
        """
        ...

    async def text_completion(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> Outcome[str]:
        """Like complete(), but failures come back as an Outcome error."""
        try:
            text = await self.complete(
                prompt,
                temperature=temperature,
                system_prompt=system_prompt,
                max_retries=max_retries,
            )
        except Exception as e:
            logger.error(f"{self.model_id} completion failed: {type(e).__name__}: {e}")
            return Outcome.failure(f"{self.model_id} error: {e}")

        if not text or not text.strip():
            return Outcome.failure(f"No response received from {self.model_id}")
        return Outcome.success(text.strip())

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None
