"""
Signal Extractors
=================
Turn frames and transcript text into structured signals with the
content-understanding model.

Every model call goes through the shared ResilientCaller (one rate-limit token
per call, retries on 429/5xx), then ``extract_text`` + ``json.loads`` + strict
pydantic validation. Extractors never raise on bad model output or exhausted
external failures: they log and return their documented default.

Usage:
    extractors = build_extractors(build_content_analyzer(), ResilientCaller(limiters.ai))
    visual = await extractors.visual.analyze(frames, duration)
    scenes = await extractors.scenes.segment(frames, duration)
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from services.infrastructure.errors import ExternalServiceError, SchemaValidationError
from services.infrastructure.retry import ResilientCaller
from services.media.models import Frame
from shared.logging_config import truncate

from .content_model import ContentAnalyzer, MediaPart, extract_text
from .frame_optimizer import optimize_frames
from .models import (
    AudioAnalysis,
    AudioPeak,
    SceneSegment,
    SceneType,
    TranscriptAnalysis,
    VisualFeatures,
)


# =============================================================================
# RESPONSE SCHEMAS (Gemini responseSchema format)
# =============================================================================

def _array_of(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "ARRAY", "items": {"type": "OBJECT", "properties": properties}}


_NUMBER = {"type": "NUMBER"}
_STRING = {"type": "STRING"}
_TIMESTAMPS = {"type": "ARRAY", "items": _NUMBER}

VISUAL_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "dominant_colors": _array_of({"color": _STRING, "percentage": _NUMBER}),
        "brightness_levels": _array_of({"time": _NUMBER, "brightness": _NUMBER}),
        "contrast_levels": _array_of({"time": _NUMBER, "contrast": _NUMBER}),
        "face_detections": _array_of({"time": _NUMBER, "count": _NUMBER, "confidence": _NUMBER}),
        "text_overlays": _array_of({"time": _NUMBER, "text": _STRING, "confidence": _NUMBER}),
    },
}

SCENE_SCHEMA = _array_of({
    "id": _STRING,
    "start_time": _NUMBER,
    "end_time": _NUMBER,
    "duration": _NUMBER,
    "scene_type": {"type": "STRING", "enum": [t.value for t in SceneType]},
    "importance_score": _NUMBER,
    "visual_complexity": _NUMBER,
    "motion_level": _NUMBER,
})

TRANSCRIPT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "sentences": _array_of({
            "text": _STRING, "start_time": _NUMBER, "end_time": _NUMBER, "confidence": _NUMBER,
        }),
        "key_phrases": _array_of({"phrase": _STRING, "importance": _NUMBER, "timestamps": _TIMESTAMPS}),
        "topics": _array_of({"topic": _STRING, "confidence": _NUMBER, "timestamps": _TIMESTAMPS}),
        "sentiment_scores": _array_of({"time": _NUMBER, "sentiment": _NUMBER}),
        "hooks": _array_of({
            "text": _STRING, "start_time": _NUMBER, "end_time": _NUMBER, "hook_score": _NUMBER,
        }),
    },
}

# Wrapper keys a JSON-object-only provider may put around the scene list
SCENE_LIST_KEYS = ("scenes", "scene_segments", "segments", "items")


# =============================================================================
# PROMPTS
# =============================================================================

VISUAL_PROMPT = """
Analyze these video frames extracted from a {duration:.1f}-second video and provide a comprehensive visual analysis.

For each frame (sampled approximately every 2 seconds), analyze:
1. Dominant colors and color palette
2. Brightness and contrast levels
3. Face detection (count and confidence)
4. Text overlays (if any)

Frame timestamps in seconds: {timestamps}

Return a JSON object with this structure:
{{
    "dominant_colors": [{{"color": "#hex", "percentage": 0.0-1.0}}],
    "brightness_levels": [{{"time": seconds, "brightness": 0.0-1.0}}],
    "contrast_levels": [{{"time": seconds, "contrast": 0.0-1.0}}],
    "face_detections": [{{"time": seconds, "count": integer, "confidence": 0.0-1.0}}],
    "text_overlays": [{{"time": seconds, "text": "detected text", "confidence": 0.0-1.0}}]
}}
"""

SCENE_PROMPT = """
Analyze these video frames from a {duration:.1f}-second video and identify distinct scene segments.
The segments must be contiguous and cover the whole video from 0 to {duration:.1f} seconds. Each scene has:
- Clear start and end times in seconds
- A scene type (action, dialogue, transition, hook, climax, conclusion)
- Importance score (0-1) indicating how crucial this scene is
- Visual complexity (0-1)
- Motion level (0-1)

Frame timestamps in seconds: {timestamps}

Return a JSON array of scene segments:
[
    {{
        "id": "scene_1",
        "start_time": seconds,
        "end_time": seconds,
        "duration": seconds,
        "scene_type": "action|dialogue|transition|hook|climax|conclusion",
        "importance_score": 0.0-1.0,
        "visual_complexity": 0.0-1.0,
        "motion_level": 0.0-1.0
    }}
]
"""

TRANSCRIPT_PROMPT = """
Analyze this video transcript and identify:
1. Key phrases and important topics
2. Hook moments (attention-grabbing statements)
3. Sentiment throughout the video
4. Natural sentence boundaries with timestamps

Transcript: "{transcript}"

Video duration: {duration:.1f} seconds

Return JSON:
{{
    "sentences": [{{"text": "sentence", "start_time": seconds, "end_time": seconds, "confidence": 0.0-1.0}}],
    "key_phrases": [{{"phrase": "phrase", "importance": 0.0-1.0, "timestamps": [seconds]}}],
    "topics": [{{"topic": "topic name", "confidence": 0.0-1.0, "timestamps": [seconds]}}],
    "sentiment_scores": [{{"time": seconds, "sentiment": -1.0 to 1.0}}],
    "hooks": [{{"text": "hook text", "start_time": seconds, "end_time": seconds, "hook_score": 0.0-1.0}}]
}}
"""


def _timestamps(frames: Sequence[Frame]) -> str:
    return ", ".join(f"{frame.timestamp:.1f}" for frame in frames)


# =============================================================================
# EXTRACTORS
# =============================================================================

class ModelExtractor:
    """Shared request/parse/recover plumbing for model-backed extractors."""

    name = "extractor"

    def __init__(self, analyzer: ContentAnalyzer, caller: ResilientCaller):
        self.analyzer = analyzer
        self.caller = caller

    async def _request_json(
        self,
        prompt: str,
        parts: Sequence[MediaPart] = (),
        schema: Optional[Dict[str, Any]] = None,
    ) -> Any:
        envelope = await self.caller.run(
            self.name,
            lambda: self.analyzer.generate(prompt, parts, schema),
        )
        text = extract_text(envelope)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise SchemaValidationError(f"{self.name} returned invalid JSON: {e}", raw=text) from e

    def _log_failure(self, error: Exception) -> None:
        raw = getattr(error, "raw", None) or getattr(error, "body", None)
        logger.warning(
            f"[{self.name}] falling back to default: {type(error).__name__}: {error} | "
            f"raw={truncate(raw)}"
        )

    @staticmethod
    def _media_parts(frames: Sequence[Frame]) -> List[MediaPart]:
        return [MediaPart(data=f.data, mime_type=f.mime_type) for f in optimize_frames(frames)]


class VisualAnalyzer(ModelExtractor):
    """Colors, brightness, contrast, faces and text overlays from frames."""

    name = "visual-analysis"

    async def analyze(self, frames: Sequence[Frame], video_duration: float) -> VisualFeatures:
        if not frames:
            logger.info(f"[{self.name}] no frames, using default visual features")
            return VisualFeatures()

        prompt = VISUAL_PROMPT.format(duration=video_duration, timestamps=_timestamps(frames))
        raw: Any = None
        try:
            raw = await self._request_json(prompt, self._media_parts(frames), VISUAL_SCHEMA)
            if not isinstance(raw, dict):
                raise SchemaValidationError("visual analysis is not a JSON object", raw=str(raw))
            features = VisualFeatures.model_validate(raw)
        except ValidationError as e:
            self._log_failure(SchemaValidationError(str(e), raw=json.dumps(raw)))
            return VisualFeatures()
        except (ExternalServiceError, SchemaValidationError) as e:
            self._log_failure(e)
            return VisualFeatures()

        logger.info(
            f"[{self.name}] {len(features.dominant_colors)} colors, "
            f"{len(features.face_detections)} face detections"
        )
        return features


class SceneSegmenter(ModelExtractor):
    """Contiguous scene segments with type, importance and motion."""

    name = "scene-detection"

    @staticmethod
    def default_scenes(video_duration: float) -> List[SceneSegment]:
        return [SceneSegment(
            id="scene_1",
            start_time=0,
            end_time=video_duration,
            duration=video_duration,
            scene_type=SceneType.DIALOGUE,
            importance_score=0.5,
            visual_complexity=0.5,
            motion_level=0.5,
        )]

    @staticmethod
    def parse_scenes(raw: Any) -> List[SceneSegment]:
        """
        Validate a scene list.

        Missing ids become ``scene_{n}``, missing durations ``end - start``,
        and the result is sorted by start time.

        Raises:
            SchemaValidationError: not a list, empty, or any scene invalid
        """
        if isinstance(raw, dict):
            for key in SCENE_LIST_KEYS:
                if isinstance(raw.get(key), list):
                    raw = raw[key]
                    break

        if not isinstance(raw, list):
            raise SchemaValidationError("scene detection did not return a list", raw=json.dumps(raw))
        if not raw:
            raise SchemaValidationError("scene detection returned no scenes", raw="[]")

        scenes = []
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                raise SchemaValidationError(f"scene {index + 1} is not an object", raw=json.dumps(raw))
            data = dict(item)
            if not data.get("id"):
                data["id"] = f"scene_{index + 1}"
            if data.get("duration") is None and "start_time" in data and "end_time" in data:
                try:
                    data["duration"] = float(data["end_time"]) - float(data["start_time"])
                except (TypeError, ValueError):
                    pass
            data.setdefault("keyframes", [])
            try:
                scenes.append(SceneSegment.model_validate(data))
            except ValidationError as e:
                raise SchemaValidationError(f"scene {index + 1} invalid: {e}", raw=json.dumps(raw)) from e

        return sorted(scenes, key=lambda s: s.start_time)

    async def segment(self, frames: Sequence[Frame], video_duration: float) -> List[SceneSegment]:
        if not frames:
            logger.info(f"[{self.name}] no frames, using single default scene")
            return self.default_scenes(video_duration)

        prompt = SCENE_PROMPT.format(duration=video_duration, timestamps=_timestamps(frames))
        try:
            raw = await self._request_json(prompt, self._media_parts(frames), SCENE_SCHEMA)
            scenes = self.parse_scenes(raw)
        except (ExternalServiceError, SchemaValidationError) as e:
            self._log_failure(e)
            return self.default_scenes(video_duration)

        logger.info(f"[{self.name}] detected {len(scenes)} scenes")
        return scenes


class AudioAnalyzer:
    """
    Deterministic audio profile.

    No audio is decoded: every video gets the same volume/speech/music levels
    and peaks at 20%, 50% and 80% of its duration.
    """

    name = "audio-analysis"

    async def analyze(self, video_duration: float) -> AudioAnalysis:
        return AudioAnalysis(
            overall_volume=0.7,
            speech_presence=0.8,
            music_presence=0.2,
            silence_periods=[],
            peak_audio_moments=[
                AudioPeak(time=video_duration * 0.2, intensity=0.9),
                AudioPeak(time=video_duration * 0.5, intensity=0.85),
                AudioPeak(time=video_duration * 0.8, intensity=0.9),
            ],
        )


class TranscriptAnalyzer(ModelExtractor):
    """Sentences, key phrases, topics, sentiment and hooks from transcript text."""

    name = "transcript-analysis"

    async def analyze(self, transcript: str, video_duration: float) -> TranscriptAnalysis:
        default = TranscriptAnalysis(full_transcript=transcript)
        if not transcript or not transcript.strip():
            return default

        prompt = TRANSCRIPT_PROMPT.format(transcript=transcript, duration=video_duration)
        raw: Any = None
        try:
            raw = await self._request_json(prompt, (), TRANSCRIPT_SCHEMA)
            if not isinstance(raw, dict):
                raise SchemaValidationError("transcript analysis is not a JSON object", raw=str(raw))
            analysis = TranscriptAnalysis.model_validate({**raw, "full_transcript": transcript})
        except ValidationError as e:
            self._log_failure(SchemaValidationError(str(e), raw=json.dumps(raw)))
            return default
        except (ExternalServiceError, SchemaValidationError) as e:
            self._log_failure(e)
            return default

        logger.info(f"[{self.name}] {len(analysis.hooks)} hooks, {len(analysis.key_phrases)} key phrases")
        return analysis


@dataclass
class SignalExtractors:
    visual: VisualAnalyzer
    scenes: SceneSegmenter
    audio: AudioAnalyzer
    transcript: TranscriptAnalyzer


def build_extractors(analyzer: ContentAnalyzer, caller: ResilientCaller) -> SignalExtractors:
    """Wire all four extractors to one content model and one caller."""
    return SignalExtractors(
        visual=VisualAnalyzer(analyzer, caller),
        scenes=SceneSegmenter(analyzer, caller),
        audio=AudioAnalyzer(),
        transcript=TranscriptAnalyzer(analyzer, caller),
    )
