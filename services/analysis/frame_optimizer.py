"""
Frame Optimizer
===============
Shrinks sampled frames before they are uploaded to the content model.

Frames are downscaled so the longest side is at most ``max_side`` pixels and
re-encoded as JPEG. If the result is still larger than ``max_size_kb`` the
quality is lowered in steps of 10 down to 50.
"""

import io
from dataclasses import dataclass, replace
from typing import List, Sequence

from loguru import logger
from PIL import Image, UnidentifiedImageError

from services.media.models import Frame


@dataclass(frozen=True)
class OptimizeOptions:
    max_side: int = 1024
    quality: int = 80
    min_quality: int = 50
    max_size_kb: int = 300


def _encode(img: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, "JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def optimize_frame(frame: Frame, options: OptimizeOptions = OptimizeOptions()) -> Frame:
    """
    Downscale and re-encode one frame.

    Returns the original frame unchanged when it cannot be decoded.
    """
    try:
        with Image.open(io.BytesIO(frame.data)) as source:
            img = source.convert("RGB") if source.mode != "RGB" else source.copy()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Frame optimization failed at {frame.timestamp:.1f}s, using original: {e}")
        return frame

    longest = max(img.width, img.height)
    if longest > options.max_side:
        ratio = options.max_side / longest
        size = (max(1, int(img.width * ratio)), max(1, int(img.height * ratio)))
        img = img.resize(size, Image.Resampling.LANCZOS)

    quality = options.quality
    data = _encode(img, quality)
    while len(data) / 1024 > options.max_size_kb and quality - 10 >= options.min_quality:
        quality -= 10
        data = _encode(img, quality)

    return replace(frame, data=data, mime_type="image/jpeg")


def optimize_frames(frames: Sequence[Frame], options: OptimizeOptions = OptimizeOptions()) -> List[Frame]:
    """Optimize every frame, keeping order."""
    return [optimize_frame(frame, options) for frame in frames]
