"""
Shared fixtures and fakes for the viral clip pipeline tests.
"""
import os
import sys
from typing import Any, Callable, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.analysis.extractors import build_extractors
from services.infrastructure.errors import PerClipRenderError
from services.infrastructure.rate_limiter import RateLimiter
from services.infrastructure.retry import ResilientCaller, RetryPolicy
from services.media.models import ClipRenderMetadata, Frame, RenderedClip, VideoMetadata
from services.repurpose.orchestrator import RepurposeOrchestrator
from services.repurpose.storage import LocalAssetStore, SqlRepurposeStorage


async def no_sleep(_seconds: float) -> None:
    return None


class FakeContentAnalyzer:
    """
    Content model double.

    ``responder(prompt, parts)`` returns the envelope, or an exception instance
    to raise. Every call is recorded.
    """

    def __init__(self, responder: Callable[[str, Any], Any]):
        self.responder = responder
        self.calls: List[dict] = []

    async def generate(self, prompt, parts=(), response_schema=None):
        self.calls.append({"prompt": prompt, "parts": list(parts), "schema": response_schema})
        result = self.responder(prompt, parts)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeMediaEngine:
    """Media engine double that renders fixed bytes and can fail chosen platforms."""

    def __init__(
        self,
        duration: float = 60.0,
        fail_resolutions: Optional[set] = None,
        clip_bytes: bytes = b"clip-bytes",
    ):
        self.duration = duration
        self.fail_resolutions = fail_resolutions or set()
        self.clip_bytes = clip_bytes
        self.frame_requests: List[tuple] = []
        self.clip_requests: List[tuple] = []
        self.thumbnail_requests: List[tuple] = []

    async def metadata(self, video):
        return VideoMetadata(
            duration=self.duration, width=1920, height=1080, fps=30.0,
            codec="h264", format_name="mp4", file_size=1_000_000,
        )

    async def extract_frames(self, video, start, end, count):
        self.frame_requests.append((start, end, count))
        step = (end - start) / count if count else 0
        return [Frame(data=b"frame", timestamp=start + i * step) for i in range(count)]

    async def clip(self, video, start, end, options):
        self.clip_requests.append((start, end, options))
        if str(options.resolution) in self.fail_resolutions:
            raise PerClipRenderError(f"render failed at {options.resolution}")
        return RenderedClip(
            data=self.clip_bytes,
            metadata=ClipRenderMetadata(
                frame_count=int((end - start) * options.fps),
                fps=options.fps,
                resolution=str(options.resolution),
                file_size=len(self.clip_bytes),
                audio_enabled=options.include_audio,
            ),
        )

    async def thumbnail(self, video, timestamp, width, height):
        self.thumbnail_requests.append((timestamp, width, height))
        return b"thumb"


def scene_payload(duration: float, scene_type: str = "action", score: float = 0.9) -> list:
    """A one-scene model answer covering the whole video."""
    return [{
        "id": "scene_1",
        "start_time": 0,
        "end_time": duration,
        "duration": duration,
        "scene_type": scene_type,
        "importance_score": score,
        "visual_complexity": score,
        "motion_level": score,
    }]


def scripted_responder(scenes: Any, visual: Any = None, transcript: Any = None) -> Callable:
    """Answer each extractor prompt with its own canned JSON text."""
    import json

    def respond(prompt: str, parts):
        if "scene segments" in prompt:
            payload = scenes
        elif "visual analysis" in prompt:
            payload = visual if visual is not None else {}
        else:
            payload = transcript if transcript is not None else {}
        if isinstance(payload, BaseException):
            return payload
        return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}

    return respond


@pytest.fixture
def caller():
    return ResilientCaller(
        RateLimiter(1000, 1.0, name="test"),
        RetryPolicy(max_retries=2, initial_delay=0.0),
        sleep=no_sleep,
    )


@pytest.fixture
def storage():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return SqlRepurposeStorage(engine=engine)


@pytest.fixture
def assets(tmp_path):
    return LocalAssetStore(tmp_path / "assets")


@pytest.fixture
def make_orchestrator(caller, storage, assets):
    def factory(media: FakeMediaEngine, analyzer: FakeContentAnalyzer, transcript_fetcher=None, asset_store=None):
        return RepurposeOrchestrator(
            media=media,
            extractors=build_extractors(analyzer, caller),
            storage=storage,
            assets=asset_store or assets,
            transcript_fetcher=transcript_fetcher,
        )
    return factory
