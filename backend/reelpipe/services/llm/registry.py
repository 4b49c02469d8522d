"""Provider registry for LLM adapters.

Routes model IDs to the correct adapter implementation based on the model
ID prefix: Ollama (ollama/ prefix), Vertex AI (gemini- prefix), and
OpenAI-compatible chat completions for everything else (e.g. gpt-4o).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reelpipe.services.llm.base import LLMAdapter

if TYPE_CHECKING:
    from reelpipe.config import Settings

logger = logging.getLogger(__name__)


def _is_ollama_model(model_id: str) -> bool:
    """Return True if the model ID uses the ollama/ prefix."""
    return model_id.startswith("ollama/")


def _is_gemini_model(model_id: str) -> bool:
    """Return True if the model ID uses the gemini- prefix."""
    return model_id.startswith("gemini-")


def get_adapter(model_id: str, settings: "Settings") -> LLMAdapter:
    """Return the appropriate LLM adapter for the given model ID.

    Routing logic:
    - "ollama/*"  → OllamaAdapter (providers.ollama_endpoint, optional key)
    - "gemini-*"  → VertexAIAdapter (google_cloud project/location)
    - anything else → OpenAIChatAdapter (providers.openai_*)

    Args:
        model_id: Model identifier string (e.g., "gpt-4o",
                  "gemini-2.5-flash", "ollama/llama3.1").
        settings: Application settings carrying provider credentials.

    Returns:
        Configured LLMAdapter instance ready for use.
    """
    providers = settings.providers
    base_delay = settings.pipeline.retry_base_delay

    if _is_ollama_model(model_id):
        from reelpipe.services.llm.ollama_adapter import OllamaAdapter

        logger.debug(
            "Routing %s to OllamaAdapter (base_url=%s, has_key=%s)",
            model_id,
            providers.ollama_endpoint,
            bool(providers.ollama_api_key),
        )
        return OllamaAdapter(
            model_id=model_id,
            base_url=providers.ollama_endpoint,
            api_key=providers.ollama_api_key,
            retry_base_delay=base_delay,
        )

    if _is_gemini_model(model_id):
        from reelpipe.services.llm.vertex_adapter import VertexAIAdapter

        logger.debug("Routing %s to VertexAIAdapter", model_id)
        return VertexAIAdapter(
            model_id=model_id,
            project_id=settings.google_cloud.project_id,
            location=settings.google_cloud.location,
            retry_base_delay=base_delay,
        )

    from reelpipe.services.llm.openai_adapter import OpenAIChatAdapter

    logger.debug("Routing %s to OpenAIChatAdapter", model_id)
    return OpenAIChatAdapter(
        model_id=model_id,
        api_key=providers.openai_api_key,
        base_url=providers.openai_base_url,
        timeout=providers.request_timeout,
        retry_base_delay=base_delay,
    )
