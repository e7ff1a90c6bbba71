"""
Transcript Fetcher
==================
Fetches captions for YouTube videos from the transcript service.

The service answers ``GET {TRANSCRIPT_SERVICE_URL}?videoUrl=<url>`` with a JSON
array of caption items; their ``text`` fields joined by spaces make the
transcript. A missing transcript is normal, so every failure returns None.
"""

from typing import Optional

import httpx
from loguru import logger

from config import settings
from services.infrastructure.errors import ExternalServiceError, error_for_status
from services.infrastructure.retry import ResilientCaller
from shared.logging_config import truncate


def detect_source_platform(url: Optional[str]) -> str:
    """Classify a source URL as youtube, vimeo, zoom, google_drive or direct_upload."""
    if not url:
        return "direct_upload"
    if "youtube.com" in url or "youtu.be" in url:
        return "youtube"
    if "vimeo.com" in url:
        return "vimeo"
    if "zoom.us" in url:
        return "zoom"
    if "drive.google.com" in url:
        return "google_drive"
    return "direct_upload"


def is_transcript_source(url: Optional[str]) -> bool:
    """Only YouTube URLs have fetchable captions."""
    return detect_source_platform(url) == "youtube"


def parse_transcript(payload) -> Optional[str]:
    """Join caption item texts; None when there are no usable items."""
    if not isinstance(payload, list) or not payload:
        return None
    texts = [str(item["text"]) for item in payload if isinstance(item, dict) and item.get("text")]
    if not texts:
        return None
    return " ".join(texts)


class TranscriptFetcher:
    """
    Caption lookup for YouTube URLs.

    Usage:
        fetcher = TranscriptFetcher(caller=ResilientCaller(limiters.default))
        transcript = await fetcher.fetch("https://youtu.be/abc")
    """

    def __init__(
        self,
        caller: ResilientCaller,
        service_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.caller = caller
        self.service_url = service_url or settings.TRANSCRIPT_SERVICE_URL
        self.timeout = timeout
        self._transport = transport

    async def _get(self, video_url: str) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.service_url, params={"videoUrl": video_url})
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Transcript request failed: {e}") from e

        if response.status_code >= 400:
            raise error_for_status(
                f"Transcript service returned {response.status_code}",
                response.status_code,
                body=truncate(response.text),
            )
        return response

    async def fetch(self, video_url: str) -> Optional[str]:
        if not is_transcript_source(video_url):
            return None

        try:
            response = await self.caller.run("transcript-fetch", lambda: self._get(video_url))
        except ExternalServiceError as e:
            logger.warning(f"Transcript unavailable for {video_url}: {e}")
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning(
                f"Transcript response for {video_url} is not JSON: {truncate(response.text)}"
            )
            return None

        transcript = parse_transcript(payload)
        if transcript:
            logger.info(f"Fetched transcript for {video_url} ({len(transcript)} chars)")
        return transcript
