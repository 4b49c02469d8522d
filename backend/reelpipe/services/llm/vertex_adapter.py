"""Vertex AI adapter for the LLM abstraction layer.

Wraps the google-genai client in Vertex AI mode. Authentication uses
Application Default Credentials (GOOGLE_APPLICATION_CREDENTIALS).
"""

import logging
from typing import Optional

from google import genai
from google.genai import types as genai_types
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from reelpipe.errors import AdapterError
from reelpipe.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)

# Models that must use the global endpoint
GLOBAL_REGION_MODELS = {
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
}


def location_for_model(model_id: str, default_location: str) -> str:
    """Return the Vertex AI location needed for a given model ID."""
    if model_id in GLOBAL_REGION_MODELS:
        return "global"
    return default_location


class VertexAIAdapter(LLMAdapter):
    """LLM adapter backed by Google Vertex AI (google-genai SDK).

    The client is created lazily on first use and owned by the adapter.
    """

    def __init__(
        self,
        model_id: str,
        project_id: Optional[str],
        location: str = "us-central1",
        retry_base_delay: float = 2,
        client: Optional[genai.Client] = None,
    ) -> None:
        self.model_id = model_id
        self._project_id = project_id
        self._location = location_for_model(model_id, location)
        self._retry_base_delay = retry_base_delay
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._project_id:
                raise AdapterError("google_cloud.project_id is required for Vertex AI models")
            self._client = genai.Client(
                vertexai=True,
                project=self._project_id,
                location=self._location,
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> str:
        client = self._get_client()
        config = genai_types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_prompt,
        )

        @retry(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=self._retry_base_delay, max=30),
            retry=retry_if_exception_type(Exception),
            reraise=True,
        )
        async def _call() -> str:
            response = await client.aio.models.generate_content(
                model=self.model_id,
                contents=prompt,
                config=config,
            )
            return response.text or ""

        text = await _call()
        if not text:
            raise AdapterError(f"No response received from {self.model_id}")
        return text.strip()
