"""Attribute extraction client — asks a vision-language model to describe the photo.

The model receives the staged image URL and a fixed prompt requesting seven
labeled fields, and returns free text. The whole call runs under a hard
timeout; the pending request is cancelled when it expires.

Two providers:
- openrouter: OpenAI-compatible chat completions over httpx
- anthropic: Messages API with a URL image block
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Protocol

import anthropic
import httpx
import structlog

from photomatch.errors import InferenceError, InferenceTimeout

log = structlog.get_logger("photomatch.describe")

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

MAX_TOKENS = 1024

_prompt_cache: str | None = None


def load_prompt() -> str:
    """Load the product identification prompt (cached after first read)."""
    global _prompt_cache  # noqa: PLW0603
    if _prompt_cache is None:
        _prompt_cache = (PROMPTS_DIR / "product_identification.txt").read_text()
    return _prompt_cache


class VisionDescriber(Protocol):
    name: str

    async def describe(self, image_url: str, prompt: str) -> str: ...


class OpenRouterDescriber:
    """OpenAI-compatible chat completions endpoint (OpenRouter by default)."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str,
        model: str,
        referer: str = "",
        title: str = "",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self.model = model
        self._referer = referer
        self._title = title
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._title:
            headers["X-Title"] = self._title
        return headers

    @staticmethod
    def build_payload(model: str, image_url: str, prompt: str) -> dict[str, Any]:
        return {
            "model": model,
            "max_tokens": MAX_TOKENS,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
        }

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self._api_url, headers=self._headers(), json=payload)
        async with httpx.AsyncClient() as client:
            return await client.post(self._api_url, headers=self._headers(), json=payload)

    async def describe(self, image_url: str, prompt: str) -> str:
        payload = self.build_payload(self.model, image_url, prompt)
        try:
            resp = await self._post(payload)
        except httpx.TimeoutException as exc:
            raise InferenceTimeout(f"Vision request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise InferenceError(f"Network error calling vision service: {type(exc).__name__}") from exc

        if resp.status_code != 200:
            log.error(
                "vision_api_error",
                provider=self.name,
                status=resp.status_code,
                body=resp.text[:200],
            )
            raise InferenceError(f"Vision service returned HTTP {resp.status_code}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise InferenceError("Vision service returned an unexpected payload") from exc

        # Some providers return content parts instead of a plain string
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        return content or ""


class AnthropicDescriber:
    """Claude vision through the Anthropic Messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self.model = model
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def describe(self, image_url: str, prompt: str) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "image", "source": {"type": "url", "url": image_url}},
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
        except anthropic.APITimeoutError as e:
            raise InferenceTimeout(f"Claude request timed out: {e}") from e
        except anthropic.APIStatusError as e:
            log.error("vision_api_error", provider=self.name, status=e.status_code)
            raise InferenceError(f"Claude API error ({e.status_code}): {e}") from e
        except anthropic.APIConnectionError as e:
            raise InferenceError(f"Claude connection error: {e}") from e

        log.info(
            "vision_tokens",
            provider=self.name,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
        )

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return text


async def describe_image(
    describer: VisionDescriber,
    image_url: str,
    *,
    timeout: float,
    prompt: str | None = None,
) -> str:
    """Return the model's free-text description of the image at ``image_url``."""
    prompt_text = prompt if prompt is not None else load_prompt()
    log.info("vision_describe_start", provider=describer.name, timeout=timeout)
    try:
        description = await asyncio.wait_for(
            describer.describe(image_url, prompt_text),
            timeout=timeout,
        )
    except TimeoutError as exc:
        log.warning("vision_describe_timeout", provider=describer.name, timeout=timeout)
        raise InferenceTimeout(f"Vision service did not answer within {timeout:g}s") from exc

    log.info("vision_describe_complete", provider=describer.name, length=len(description))
    return description
