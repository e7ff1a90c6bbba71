"""
Signal Models
=============
Structured signals produced by the extractors and the records the estimator
and ranker derive from them. All models are frozen: a signal is created once
per analysis run and never mutated afterwards.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SceneType(str, Enum):
    """Narrative role of a scene segment."""
    ACTION = "action"
    DIALOGUE = "dialogue"
    TRANSITION = "transition"
    HOOK = "hook"
    CLIMAX = "climax"
    CONCLUSION = "conclusion"


class Signal(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# SCENES
# =============================================================================

class SceneSegment(Signal):
    """One contiguous scene of the source video."""
    id: str
    start_time: float = Field(ge=0)
    end_time: float = Field(ge=0)
    duration: float = Field(ge=0)
    scene_type: SceneType
    importance_score: float = Field(ge=0, le=1)
    visual_complexity: float = Field(ge=0, le=1)
    motion_level: float = Field(ge=0, le=1)
    keyframes: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_bounds(self) -> "SceneSegment":
        if self.end_time < self.start_time:
            raise ValueError(f"scene {self.id} ends before it starts")
        return self


# =============================================================================
# VISUAL
# =============================================================================

class ColorShare(Signal):
    color: str
    percentage: float = Field(ge=0, le=1)


class BrightnessSample(Signal):
    time: float
    brightness: float = Field(ge=0, le=1)


class ContrastSample(Signal):
    time: float
    contrast: float = Field(ge=0, le=1)


class FaceDetection(Signal):
    time: float
    count: int = Field(ge=0)
    confidence: float = Field(ge=0, le=1)


class TextOverlay(Signal):
    time: float
    text: str
    confidence: float = Field(ge=0, le=1)


class VisualFeatures(Signal):
    """Best-effort visual summary; every field may be empty."""
    dominant_colors: List[ColorShare] = Field(default_factory=list)
    brightness_levels: List[BrightnessSample] = Field(default_factory=list)
    contrast_levels: List[ContrastSample] = Field(default_factory=list)
    face_detections: List[FaceDetection] = Field(default_factory=list)
    text_overlays: List[TextOverlay] = Field(default_factory=list)


# =============================================================================
# AUDIO
# =============================================================================

class TimeRange(Signal):
    start: float
    end: float


class AudioPeak(Signal):
    time: float
    intensity: float = Field(ge=0, le=1)


class AudioAnalysis(Signal):
    overall_volume: float = Field(ge=0, le=1)
    speech_presence: float = Field(ge=0, le=1)
    music_presence: float = Field(ge=0, le=1)
    silence_periods: List[TimeRange] = Field(default_factory=list)
    peak_audio_moments: List[AudioPeak] = Field(default_factory=list)


# =============================================================================
# TRANSCRIPT
# =============================================================================

class TranscriptSentence(Signal):
    text: str
    start_time: float
    end_time: float
    speaker: Optional[str] = None
    confidence: float = Field(default=1.0, ge=0, le=1)


class KeyPhrase(Signal):
    phrase: str
    importance: float = Field(ge=0, le=1)
    timestamps: List[float] = Field(default_factory=list)


class Topic(Signal):
    topic: str
    confidence: float = Field(ge=0, le=1)
    timestamps: List[float] = Field(default_factory=list)


class SentimentSample(Signal):
    time: float
    sentiment: float = Field(ge=-1, le=1)


class Hook(Signal):
    """An attention-grabbing statement with its time span."""
    text: str
    start_time: float
    end_time: float
    hook_score: float = Field(ge=0, le=1)


class TranscriptAnalysis(Signal):
    full_transcript: Optional[str] = None
    sentences: List[TranscriptSentence] = Field(default_factory=list)
    key_phrases: List[KeyPhrase] = Field(default_factory=list)
    topics: List[Topic] = Field(default_factory=list)
    sentiment_scores: List[SentimentSample] = Field(default_factory=list)
    hooks: List[Hook] = Field(default_factory=list)


# =============================================================================
# ENGAGEMENT + VIRALITY
# =============================================================================

class TimeWindow(Signal):
    start: float
    end: float

    @property
    def span(self) -> float:
        return self.end - self.start


class EngagementFactors(Signal):
    visual_appeal: float
    audio_appeal: float
    content_quality: float
    hook_potential: float


class EngagementWindow(Signal):
    """Fused engagement estimate for one fixed-stride slice of the video."""
    time_window: TimeWindow
    predicted_engagement: float = Field(ge=0, le=1)
    factors: EngagementFactors


class ClipSuggestion(Signal):
    start_time: float = Field(ge=0)
    end_time: float = Field(ge=0)
    optimal_duration: float
    recommended_platforms: List[str] = Field(default_factory=list)


class ViralMoment(Signal):
    id: str
    start_time: float
    end_time: float
    duration: float
    virality_score: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0, le=1)
    reasoning: str
    clip_suggestions: List[ClipSuggestion] = Field(default_factory=list)


class MLAnalysis(Signal):
    """Everything one analysis run learned about a video."""
    id: str
    repurposed_video_id: str
    analysis_version: str = "1.0.0"
    scene_segments: List[SceneSegment]
    audio_analysis: AudioAnalysis
    transcript_analysis: Optional[TranscriptAnalysis] = None
    visual_features: VisualFeatures
    engagement_predictions: List[EngagementWindow]
    viral_moments: List[ViralMoment]
    created_at: datetime = Field(default_factory=datetime.utcnow)
    processing_time_ms: int = Field(ge=0)
