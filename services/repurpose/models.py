"""
Repurpose Models
================
Jobs, repurposed videos, rendered clips and platform render settings.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from services.analysis.models import MLAnalysis
from services.media.models import Resolution

from .options import ClipGenerationOptions


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class Platform(str, Enum):
    YOUTUBE_SHORTS = "youtube_shorts"
    TIKTOK = "tiktok"
    INSTAGRAM_REELS = "instagram_reels"
    TWITTER = "twitter"


class PlatformSettings(BaseModel):
    aspect_ratio: str
    resolution: Resolution


def get_platform_settings(platform: str) -> PlatformSettings:
    """Aspect ratio and output resolution for a target platform."""
    if platform in (Platform.YOUTUBE_SHORTS.value, Platform.TIKTOK.value, Platform.INSTAGRAM_REELS.value):
        return PlatformSettings(aspect_ratio="9:16", resolution=Resolution(width=1080, height=1920))
    if platform == Platform.TWITTER.value:
        return PlatformSettings(aspect_ratio="16:9", resolution=Resolution(width=1280, height=720))
    return PlatformSettings(aspect_ratio="16:9", resolution=Resolution(width=1920, height=1080))


# =============================================================================
# JOBS
# =============================================================================

class RepurposeRequest(BaseModel):
    """What a client submits to the queue."""
    user_id: str = Field(min_length=1)
    video_path: str = Field(min_length=1)
    video_url: Optional[str] = None
    title: Optional[str] = None
    transcript: Optional[str] = None
    options: ClipGenerationOptions = Field(default_factory=ClipGenerationOptions)

    @property
    def source_url(self) -> str:
        return self.video_url or self.video_path


class RepurposeJob(BaseModel):
    id: str
    user_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    error_message: Optional[str] = None
    repurposed_video_id: Optional[str] = None
    request: RepurposeRequest
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# RESULTS
# =============================================================================

class RepurposeMetadata(BaseModel):
    video_format: str
    resolution: str
    file_size: int = 0
    source_platform: str = "direct_upload"
    source_url: Optional[str] = None


class RepurposedVideo(BaseModel):
    id: str
    user_id: str
    original_video_url: str
    original_video_title: Optional[str] = None
    original_video_duration: float
    status: JobStatus = JobStatus.PROCESSING
    ml_analysis_id: Optional[str] = None
    metadata: Optional[RepurposeMetadata] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ClipMetadata(BaseModel):
    frame_count: int
    fps: int
    resolution: str
    file_size: int
    audio_enabled: bool
    captions_enabled: bool = False
    transitions: Optional[List[str]] = None


class ViralClip(BaseModel):
    id: str
    repurposed_video_id: str
    clip_storage_path: str
    thumbnail_path: Optional[str] = None
    start_time: float
    end_time: float
    duration: float
    virality_score: float = Field(ge=0, le=100)
    engagement_score: int = Field(ge=0, le=100)
    title: Optional[str] = None
    description: Optional[str] = None
    transcript_snippet: Optional[str] = None
    platform_format: str
    aspect_ratio: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    metadata: ClipMetadata


class Statistics(BaseModel):
    total_clips_generated: int
    average_virality_score: float
    processing_time_seconds: float
    total_output_size: int


class RepurposeResult(BaseModel):
    repurposed_video: RepurposedVideo
    clips: List[ViralClip]
    ml_analysis: MLAnalysis
    statistics: Statistics
