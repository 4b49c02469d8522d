"""OpenAI-compatible chat completions adapter (httpx).

Works with api.openai.com and any server exposing ``/chat/completions`` with
the same request shape. Retries transport errors, 429 and 5xx responses with
exponential backoff.
"""

import logging
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from reelpipe.errors import AdapterError
from reelpipe.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


def is_transient(exc: BaseException) -> bool:
    """True for failures worth retrying: network errors, 429 and 5xx."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def describe_http_error(exc: httpx.HTTPStatusError) -> str:
    """Short human-readable message for a failed provider response."""
    detail = exc.response.text[:300] if exc.response.content else exc.response.reason_phrase
    return f"HTTP {exc.response.status_code}: {detail}"


class OpenAIChatAdapter(LLMAdapter):
    """LLM adapter for OpenAI-style chat completion endpoints."""

    def __init__(
        self,
        model_id: str,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120.0,
        retry_base_delay: float = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.model_id = model_id
        self._retry_base_delay = retry_base_delay
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

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
        payload = {
            "model": self.model_id,
            "messages": messages,
            "temperature": temperature,
        }

        @retry(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=self._retry_base_delay, max=30),
            retry=retry_if_exception(is_transient),
            reraise=True,
        )
        async def _call() -> dict:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            return response.json()

        try:
            data = await _call()
        except httpx.HTTPStatusError as e:
            raise AdapterError(f"OpenAI API error: {describe_http_error(e)}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AdapterError("Malformed chat completion response") from e
        if not content:
            raise AdapterError("No response received from OpenAI")
        return content.strip()

    async def aclose(self) -> None:
        await self._client.aclose()
