"""
Content-Understanding Model Adapters
====================================
Thin async clients for the multimodal model that turns frames and text into
structured JSON signals.

Providers:
- Gemini (default): REST ``generateContent`` over httpx with a response schema
- OpenAI: chat completions with ``response_format={"type": "json_object"}``

Both return the provider's raw response envelope. ``extract_text`` is the one
place that knows how to pull the JSON text out of any of those envelopes.
"""

import base64
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from loguru import logger
from openai import AsyncOpenAI, APIConnectionError, APIStatusError

from config import settings
from services.infrastructure.errors import (
    ExternalServiceError,
    SchemaValidationError,
    error_for_status,
)
from shared.logging_config import truncate


@dataclass
class MediaPart:
    """One inline media attachment (frame buffer + mime type)."""
    data: bytes
    mime_type: str = "image/jpeg"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")


class ContentAnalyzer(Protocol):
    """Anything that can answer a prompt + media with a JSON-bearing envelope."""

    async def generate(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> Any:
        ...


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _first(items: Any) -> Any:
    if isinstance(items, (list, tuple)) and items:
        return items[0]
    return None


def extract_text(response: Any) -> str:
    """
    Normalize a model response envelope to its JSON text.

    Accepts a bare string, anything with a string ``text`` field, the Gemini
    ``candidates[0].content.parts[0].text`` envelope and the OpenAI
    ``choices[0].message.content`` envelope.

    Raises:
        SchemaValidationError: no text could be found
    """
    if isinstance(response, str):
        return response.strip()

    text = _get(response, "text")
    if isinstance(text, str):
        return text.strip()

    part = _first(_get(_get(_first(_get(response, "candidates")), "content"), "parts"))
    text = _get(part, "text")
    if isinstance(text, str):
        return text.strip()

    text = _get(_get(_first(_get(response, "choices")), "message"), "content")
    if isinstance(text, str):
        return text.strip()

    raise SchemaValidationError(
        "Invalid response structure from content model",
        raw=truncate(repr(response)),
    )


class GeminiContentAnalyzer:
    """
    Gemini REST client.

    Usage:
        analyzer = GeminiContentAnalyzer(api_key="...")
        envelope = await analyzer.generate(prompt, parts, schema)
        data = json.loads(extract_text(envelope))
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.GOOGLE_API_KEY or os.getenv("GOOGLE_API_KEY")
        self.model = model or settings.GEMINI_MODEL
        self.endpoint = (endpoint or settings.GEMINI_ENDPOINT).rstrip("/")
        self.timeout = timeout or settings.CONTENT_MODEL_TIMEOUT
        self._transport = transport

        if not self.api_key:
            logger.warning("GOOGLE_API_KEY not set - content analysis will fail")

    def build_payload(
        self,
        prompt: str,
        parts: Sequence[MediaPart],
        response_schema: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        content_parts: List[Dict[str, Any]] = [{"text": prompt}]
        for part in parts:
            content_parts.append({
                "inline_data": {"mime_type": part.mime_type, "data": part.to_base64()}
            })

        generation_config: Dict[str, Any] = {"responseMimeType": "application/json"}
        if response_schema:
            generation_config["responseSchema"] = response_schema

        return {
            "contents": [{"parts": content_parts}],
            "generationConfig": generation_config,
        }

    async def generate(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.endpoint}/models/{self.model}:generateContent"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key or "",
        }
        payload = self.build_payload(prompt, parts, response_schema)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Gemini request failed: {e}") from e

        if response.status_code != 200:
            raise error_for_status(
                f"Gemini returned {response.status_code}",
                response.status_code,
                body=truncate(response.text),
            )

        try:
            return response.json()
        except ValueError as e:
            raise SchemaValidationError("Gemini returned a non-JSON envelope", raw=truncate(response.text)) from e


class OpenAIContentAnalyzer:
    """OpenAI chat-completions client with inline data-URI images."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or settings.OPENAI_API_KEY or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY env var or pass api_key")

        self.model = model or settings.OPENAI_MODEL
        self.client = AsyncOpenAI(api_key=self.api_key)

    async def generate(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> Any:
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for part in parts:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{part.mime_type};base64,{part.to_base64()}"},
            })

        try:
            return await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a video analyst that outputs JSON only."},
                    {"role": "user", "content": content},
                ],
                response_format={"type": "json_object"},
            )
        except APIStatusError as e:
            raise error_for_status(f"OpenAI returned {e.status_code}", e.status_code, body=str(e)) from e
        except APIConnectionError as e:
            raise ExternalServiceError(f"OpenAI request failed: {e}") from e


def build_content_analyzer(provider: Optional[str] = None) -> ContentAnalyzer:
    """Create the configured content analyzer."""
    provider = (provider or settings.CONTENT_MODEL_PROVIDER).lower()
    if provider == "gemini":
        return GeminiContentAnalyzer()
    if provider == "openai":
        return OpenAIContentAnalyzer()
    raise ValueError(f"Unknown content model provider: {provider}")
