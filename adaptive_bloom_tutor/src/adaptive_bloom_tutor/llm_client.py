"""
Completion Service Client

Thin wrapper around AsyncOpenAI pointed at an OpenAI-compatible gateway.
Translates transport and status failures into the quiz error taxonomy and
offers a helper that pulls the first JSON object out of a model reply.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from adaptive_bloom_tutor.config import LLMSettings
from adaptive_bloom_tutor.errors import (
    MalformedResponse,
    QuotaExceeded,
    RateLimited,
    UpstreamError,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Return the first well-formed JSON object embedded in `text`.

    Handles bare JSON, ```json fenced blocks and objects wrapped in prose.

    Raises:
        MalformedResponse: If no JSON object can be decoded.
    """
    if not text:
        raise MalformedResponse("Empty response from AI service")

    start = text.find("{")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)

    raise MalformedResponse(f"No JSON object in AI response: {text[:200]!r}")


def translate_upstream_error(error: Exception) -> Exception:
    """Map an openai SDK exception onto the quiz upstream taxonomy."""
    if isinstance(error, (openai.APITimeoutError, openai.APIConnectionError)):
        return UpstreamUnavailable(f"AI service unreachable: {error}")

    if isinstance(error, openai.APIStatusError):
        code = getattr(error, "code", None)
        if error.status_code == 402 or code == "insufficient_quota":
            return QuotaExceeded()
        if error.status_code == 429:
            return RateLimited()
        return UpstreamError(f"AI service error: {error.status_code}")

    return UpstreamError(f"AI service error: {error}")


class LLMClient:
    """Request/response and streaming access to the completion service."""

    def __init__(self, settings: LLMSettings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            max_retries=0,
        )

    async def close(self):
        await self._client.close()

    async def complete(self, system_prompt: str, user_prompt: str,
                       temperature: Optional[float] = None) -> str:
        """
        Send one chat completion and return the reply text.

        Raises:
            UpstreamUnavailable, RateLimited, QuotaExceeded, UpstreamError:
                Upstream failures.
            MalformedResponse: The reply carried no content.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self.settings.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.settings.temperature if temperature is None else temperature,
            )
        except openai.OpenAIError as e:
            translated = translate_upstream_error(e)
            logger.warning("Completion request failed: %s", translated)
            raise translated from e

        if not response.choices or not response.choices[0].message.content:
            raise MalformedResponse("No content in AI response")
        return response.choices[0].message.content

    async def complete_json(self, system_prompt: str, user_prompt: str,
                            temperature: Optional[float] = None) -> Dict[str, Any]:
        content = await self.complete(system_prompt, user_prompt, temperature)
        return extract_json_object(content)

    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield text deltas of a streamed chat completion in arrival order."""
        try:
            stream = await self._client.chat.completions.create(
                model=self.settings.model,
                messages=messages,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            translated = translate_upstream_error(e)
            logger.warning("Streaming completion failed: %s", translated)
            raise translated from e
