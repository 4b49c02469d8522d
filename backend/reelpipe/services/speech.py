"""ElevenLabs text-to-speech adapter.

Returns MP3 bytes wrapped in an Outcome; provider failures never raise.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from reelpipe.services.llm.openai_adapter import describe_http_error, is_transient
from reelpipe.services.outcome import Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechOptions:
    stability: float = 0.75
    similarity_boost: float = 0.75
    style_exaggeration: float = 0.30
    model_id: str = "eleven_multilingual_v2"


class ElevenLabsSpeechAdapter:
    """Synthesizes narration audio with a fixed ElevenLabs voice."""

    def __init__(
        self,
        api_key: Optional[str],
        voice_id: Optional[str],
        base_url: str = "https://api.elevenlabs.io/v1",
        timeout: float = 120.0,
        max_retries: int = 3,
        retry_base_delay: float = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.voice_id = voice_id
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        headers = {"xi-api-key": api_key} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def text_to_speech(
        self, text: str, options: Optional[SpeechOptions] = None
    ) -> Outcome[bytes]:
        options = options or SpeechOptions()
        if not self.voice_id:
            return Outcome.failure("ElevenLabs voice id is not configured")
        if not text or not text.strip():
            return Outcome.failure("No narration text to synthesize")

        payload = {
            "text": text,
            "model_id": options.model_id,
            "voice_settings": {
                "stability": options.stability,
                "similarity_boost": options.similarity_boost,
                "style_exaggeration": options.style_exaggeration,
            },
        }

        @retry(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_base_delay, max=30),
            retry=retry_if_exception(is_transient),
            reraise=True,
        )
        async def _call() -> bytes:
            response = await self._client.post(
                f"/text-to-speech/{self.voice_id}",
                json=payload,
                headers={"Accept": "audio/mpeg"},
            )
            response.raise_for_status()
            return response.content

        try:
            audio = await _call()
        except httpx.HTTPStatusError as e:
            return Outcome.failure(f"ElevenLabs API error: {describe_http_error(e)}")
        except httpx.HTTPError as e:
            return Outcome.failure(f"ElevenLabs API error: {type(e).__name__}: {e}")

        if not audio:
            return Outcome.failure("ElevenLabs returned empty audio")
        logger.debug(f"Synthesized {len(audio)} bytes of speech")
        return Outcome.success(audio)

    async def aclose(self) -> None:
        await self._client.aclose()
