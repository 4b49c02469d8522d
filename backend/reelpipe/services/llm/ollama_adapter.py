"""Ollama adapter for the LLM abstraction layer.

Connects via ollama.AsyncClient with optional auth headers (Ollama Cloud).
Always passes stream=False to avoid async generator responses.
"""

import logging
from typing import Optional

from ollama import AsyncClient
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from reelpipe.errors import AdapterError
from reelpipe.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


class OllamaAdapter(LLMAdapter):
    """LLM adapter backed by a local or cloud Ollama instance.

    Strips the "ollama/" prefix from model IDs before passing to the ollama
    library.
    """

    def __init__(
        self,
        model_id: str,
        base_url: str = "http://localhost:11434",
        api_key: Optional[str] = None,
        retry_base_delay: float = 2,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self.model_id = model_id
        # The library uses bare model names
        self._ollama_model = model_id.removeprefix("ollama/")
        self._retry_base_delay = retry_base_delay
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or AsyncClient(host=base_url, headers=headers)

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        @retry(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=self._retry_base_delay, max=30),
            retry=retry_if_exception_type(Exception),
            reraise=True,
        )
        async def _call() -> str:
            response = await self._client.chat(
                model=self._ollama_model,
                messages=messages,
                options={"temperature": temperature},
                stream=False,
            )
            return response.message.content or ""

        text = await _call()
        if not text:
            raise AdapterError(f"No response received from {self.model_id}")
        return text.strip()
