"""
Media
=====
ffprobe/ffmpeg access for probing, frame sampling and clip rendering.
"""

from .engine import FFmpegMediaEngine, MediaEngine
from .models import ClipRenderMetadata, ClipRenderOptions, Frame, RenderedClip, Resolution, VideoMetadata

__all__ = [
    'FFmpegMediaEngine',
    'MediaEngine',
    'ClipRenderMetadata',
    'ClipRenderOptions',
    'Frame',
    'RenderedClip',
    'Resolution',
    'VideoMetadata',
]
