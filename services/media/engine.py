"""
Media Engine
============
ffprobe/ffmpeg wrapper used by the repurpose orchestrator.

- metadata: probe duration, dimensions, fps, codec, container, size
- extract_frames: evenly spaced JPEG stills over a time range
- clip: cut, crop-to-fill and re-encode a segment for one platform
- thumbnail: one JPEG still at a timestamp

All subprocesses run through ``asyncio.create_subprocess_exec`` so a render
never blocks the event loop.
"""

import asyncio
import json
import math
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from config import settings
from services.infrastructure.errors import MediaReadError, PerClipRenderError

from .models import ClipRenderMetadata, ClipRenderOptions, Frame, RenderedClip, VideoMetadata


class MediaEngine(Protocol):
    async def metadata(self, video: str) -> VideoMetadata:
        ...

    async def extract_frames(self, video: str, start: float, end: float, count: int) -> List[Frame]:
        ...

    async def clip(self, video: str, start: float, end: float, options: ClipRenderOptions) -> RenderedClip:
        ...

    async def thumbnail(self, video: str, timestamp: float, width: int, height: int) -> bytes:
        ...


def parse_frame_rate(value: Optional[str]) -> Optional[float]:
    """Parse ffprobe rates like "30/1" or "30000/1001"."""
    if not value:
        return None
    if "/" in value:
        num, den = value.split("/", 1)
        try:
            num_f, den_f = float(num), float(den)
        except ValueError:
            return None
        return num_f / den_f if den_f > 0 else None
    try:
        return float(value)
    except ValueError:
        return None


def parse_probe_output(data: dict) -> VideoMetadata:
    """Build VideoMetadata from ``ffprobe -of json`` output."""
    fmt = data.get("format", {})
    video_stream = next(
        (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
        {},
    )

    duration = float(fmt.get("duration") or video_stream.get("duration") or 0)
    return VideoMetadata(
        duration=duration,
        width=int(video_stream.get("width") or 0),
        height=int(video_stream.get("height") or 0),
        fps=parse_frame_rate(video_stream.get("r_frame_rate")),
        codec=video_stream.get("codec_name"),
        format_name=fmt.get("format_name"),
        file_size=int(fmt.get("size") or 0),
    )


def frame_timestamps(start: float, end: float, count: int) -> List[float]:
    """``count`` timestamps spaced evenly from ``start``, all before ``end``."""
    if count <= 0 or end <= start:
        return []
    step = (end - start) / count
    return [start + i * step for i in range(count)]


def fill_filter(width: int, height: int) -> str:
    """Scale to cover width x height, then center-crop to exactly that size."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=increase,"
        f"crop={width}:{height}"
    )


class FFmpegMediaEngine:
    """
    MediaEngine backed by the ffmpeg and ffprobe binaries.

    Usage:
        engine = FFmpegMediaEngine()
        meta = await engine.metadata("talk.mp4")
        frames = await engine.extract_frames("talk.mp4", 0, meta.duration, 20)
    """

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH

    async def _run(self, cmd: Sequence[str]) -> Tuple[int, bytes, bytes]:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        return process.returncode, stdout, stderr

    async def metadata(self, video: str) -> VideoMetadata:
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-show_entries",
            "format=duration,size,format_name:stream=width,height,r_frame_rate,codec_name,codec_type",
            "-of", "json",
            video,
        ]
        try:
            code, stdout, stderr = await self._run(cmd)
        except OSError as e:
            raise MediaReadError(f"ffprobe could not be started: {e}") from e

        if code != 0:
            raise MediaReadError(f"ffprobe failed for {video}: {stderr.decode(errors='replace')[:200]}")

        try:
            data = json.loads(stdout.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MediaReadError(f"ffprobe JSON parse failed for {video}") from e

        try:
            meta = parse_probe_output(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise MediaReadError(f"Unreadable ffprobe output for {video}: {e}") from e
        if meta.file_size == 0 and os.path.exists(video):
            meta = meta.model_copy(update={"file_size": os.path.getsize(video)})
        return meta

    async def extract_frames(self, video: str, start: float, end: float, count: int) -> List[Frame]:
        frames = []
        for timestamp in frame_timestamps(start, end, count):
            cmd = [
                self.ffmpeg_path,
                "-v", "error",
                "-ss", f"{timestamp:.3f}",
                "-i", video,
                "-frames:v", "1",
                "-q:v", "2",
                "-f", "image2pipe",
                "-vcodec", "mjpeg",
                "pipe:1",
            ]
            try:
                code, stdout, stderr = await self._run(cmd)
            except OSError as e:
                raise MediaReadError(f"ffmpeg could not be started: {e}") from e

            if code != 0 or not stdout:
                raise MediaReadError(
                    f"Frame extraction failed at {timestamp:.2f}s: {stderr.decode(errors='replace')[:200]}"
                )
            frames.append(Frame(data=stdout, mime_type="image/jpeg", timestamp=timestamp))

        logger.debug(f"Extracted {len(frames)} frames from {video}")
        return frames

    async def clip(self, video: str, start: float, end: float, options: ClipRenderOptions) -> RenderedClip:
        duration = end - start
        if duration <= 0:
            raise PerClipRenderError(f"Empty clip range {start:.2f}-{end:.2f}")

        width, height = options.resolution.width, options.resolution.height
        with tempfile.TemporaryDirectory(prefix="clip-") as tmp:
            output_path = Path(tmp) / f"clip.{options.output_format}"
            cmd = [
                self.ffmpeg_path, "-y",
                "-v", "error",
                "-ss", f"{start:.3f}",
                "-i", video,
                "-t", f"{duration:.3f}",
                "-vf", fill_filter(width, height),
                "-r", str(options.fps),
                "-c:v", "libx264",
                "-preset", "medium",
                "-crf", "20",
                "-pix_fmt", "yuv420p",
            ]
            if options.include_audio:
                cmd += ["-c:a", "aac", "-b:a", "128k"]
            else:
                cmd += ["-an"]
            cmd.append(str(output_path))

            try:
                code, _, stderr = await self._run(cmd)
            except OSError as e:
                raise PerClipRenderError(f"ffmpeg could not be started: {e}") from e

            if code != 0 or not output_path.exists():
                raise PerClipRenderError(f"FFmpeg failed: {stderr.decode(errors='replace')[:200]}")

            try:
                data = output_path.read_bytes()
            except OSError as e:
                raise PerClipRenderError(f"Rendered clip could not be read: {e}") from e

        return RenderedClip(
            data=data,
            metadata=ClipRenderMetadata(
                frame_count=math.ceil(duration * options.fps),
                fps=options.fps,
                resolution=str(options.resolution),
                file_size=len(data),
                audio_enabled=options.include_audio,
            ),
        )

    async def thumbnail(self, video: str, timestamp: float, width: int, height: int) -> bytes:
        cmd = [
            self.ffmpeg_path,
            "-v", "error",
            "-ss", f"{max(timestamp, 0):.3f}",
            "-i", video,
            "-frames:v", "1",
            "-vf", fill_filter(width, height),
            "-q:v", "2",
            "-f", "image2pipe",
            "-vcodec", "mjpeg",
            "pipe:1",
        ]
        try:
            code, stdout, stderr = await self._run(cmd)
        except OSError as e:
            raise PerClipRenderError(f"ffmpeg could not be started: {e}") from e

        if code != 0 or not stdout:
            raise PerClipRenderError(f"Thumbnail generation failed: {stderr.decode(errors='replace')[:200]}")
        return stdout
