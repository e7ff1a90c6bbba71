"""
Media Models
============
Values exchanged with the media engine.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, Field


@dataclass
class Frame:
    """A decoded still from the source video."""
    data: bytes
    mime_type: str = "image/jpeg"
    timestamp: float = 0.0


class VideoMetadata(BaseModel):
    """What ffprobe reports about a source video."""
    duration: float
    width: int = 0
    height: int = 0
    fps: Optional[float] = None
    codec: Optional[str] = None
    format_name: Optional[str] = None
    file_size: int = 0

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


class Resolution(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class ClipRenderOptions(BaseModel):
    aspect_ratio: str = "9:16"
    resolution: Resolution = Field(default_factory=lambda: Resolution(width=1080, height=1920))
    fps: int = Field(default=30, ge=1)
    include_audio: bool = True
    output_format: str = "mp4"


class ClipRenderMetadata(BaseModel):
    frame_count: int
    fps: int
    resolution: str
    file_size: int
    audio_enabled: bool


@dataclass
class RenderedClip:
    data: bytes
    metadata: ClipRenderMetadata
    mime_type: str = field(default="video/mp4")
