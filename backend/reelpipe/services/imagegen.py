"""Replicate text-to-image adapter.

Creates a prediction with ``Prefer: wait`` so short generations finish in
one round trip, then polls the prediction until it reaches a terminal state.
Every public method returns an Outcome.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from reelpipe.services.llm.openai_adapter import describe_http_error, is_transient
from reelpipe.services.outcome import Outcome

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}


@dataclass(frozen=True)
class ImageOptions:
    aspect_ratio: str = "9:16"
    output_format: str = "jpg"
    count: int = 1


class ReplicateImageAdapter:
    """Generates images with a Replicate-hosted model (flux-dev by default)."""

    def __init__(
        self,
        api_token: Optional[str],
        model: str = "black-forest-labs/flux-dev",
        base_url: str = "https://api.replicate.com/v1",
        timeout: float = 120.0,
        max_retries: int = 3,
        retry_base_delay: float = 2,
        poll_interval: float = 1.0,
        max_polls: int = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def _retrying(self):
        return retry(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_base_delay, max=30),
            retry=retry_if_exception(is_transient),
            reraise=True,
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        @self._retrying()
        async def _call() -> httpx.Response:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response

        return await _call()

    async def _wait_for(self, prediction: dict) -> dict:
        polls = 0
        if not isinstance(prediction, dict):
            raise ValueError(f"expected a prediction object, got {type(prediction).__name__}")
        while prediction.get("status") not in TERMINAL_STATUSES:
            if polls >= self._max_polls:
                raise TimeoutError(
                    f"Prediction {prediction.get('id')} still {prediction.get('status')} "
                    f"after {polls} polls"
                )
            await asyncio.sleep(self._poll_interval)
            polls += 1
            response = await self._request("GET", f"/predictions/{prediction['id']}")
            prediction = response.json()
            if not isinstance(prediction, dict):
                raise ValueError(f"expected a prediction object, got {type(prediction).__name__}")
        return prediction

    async def text_to_image(
        self, prompt: str, options: Optional[ImageOptions] = None
    ) -> Outcome[list[str]]:
        """Generate images and return their temporary download URLs."""
        options = options or ImageOptions()
        payload = {
            "input": {
                "prompt": prompt,
                "aspect_ratio": options.aspect_ratio,
                "output_format": options.output_format,
                "num_outputs": options.count,
            }
        }

        try:
            response = await self._request(
                "POST",
                f"/models/{self.model}/predictions",
                json=payload,
                headers={"Prefer": "wait"},
            )
            prediction = await self._wait_for(response.json())
        except httpx.HTTPStatusError as e:
            return Outcome.failure(f"Replicate API error: {describe_http_error(e)}")
        except (httpx.HTTPError, TimeoutError) as e:
            return Outcome.failure(f"Replicate API error: {type(e).__name__}: {e}")
        except ValueError as e:
            return Outcome.failure(f"Replicate API returned invalid JSON: {e}")

        status = prediction.get("status")
        if status != "succeeded":
            detail = prediction.get("error") or "no error detail"
            return Outcome.failure(f"Image generation {status}: {detail}")

        output = prediction.get("output")
        if isinstance(output, str):
            output = [output]
        urls = [url for url in (output or []) if isinstance(url, str) and url]
        if not urls:
            return Outcome.failure("Image generation returned no output")

        logger.debug(f"Prediction {prediction.get('id')} produced {len(urls)} image(s)")
        return Outcome.success(urls)

    async def download(self, url: str) -> Outcome[bytes]:
        """Fetch a generated image."""
        try:
            response = await self._request("GET", url)
        except httpx.HTTPStatusError as e:
            return Outcome.failure(f"Image download failed: {describe_http_error(e)}")
        except httpx.HTTPError as e:
            return Outcome.failure(f"Image download failed: {type(e).__name__}: {e}")
        return Outcome.success(response.content)

    async def aclose(self) -> None:
        await self._client.aclose()
