"""
Repurpose Orchestrator
======================
Runs one repurpose job from source video to stored clips.

Steps (each followed by ``on_progress(step, 11)``):
1. Probe media metadata
2. Sample frames
3. Resolve transcript (supplied, or fetched for YouTube sources)
4. Run the signal extractors
5. Estimate engagement per window
6. Rank viral moments and assemble the MLAnalysis
7. Select moments (threshold, with top-N fallback)
8. Prevent overlapping moments
9. Render every moment x platform pair
10. Aggregate statistics
11. Persist video, analysis and clips

Cancellation is checked between steps only; an external call already in
flight always runs to completion.

Usage:
    orchestrator = RepurposeOrchestrator(media, extractors, storage, assets, fetcher)
    result = await orchestrator.run(job_id, request, on_progress=report)
"""

import inspect
import math
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from loguru import logger

from services.analysis.engagement import EngagementEstimator
from services.analysis.extractors import SignalExtractors
from services.analysis.models import (
    ClipSuggestion,
    MLAnalysis,
    TranscriptAnalysis,
    ViralMoment,
)
from services.analysis.ranker import ViralityRanker
from services.infrastructure.errors import (
    JobCancelledError,
    MediaReadError,
    NoClipsRenderedError,
    PerClipRenderError,
)
from services.media.engine import MediaEngine
from services.media.models import ClipRenderOptions
from services.transcription.transcript_fetcher import (
    TranscriptFetcher,
    detect_source_platform,
    is_transcript_source,
)

from .models import (
    ClipMetadata,
    JobStatus,
    RepurposedVideo,
    RepurposeMetadata,
    RepurposeRequest,
    RepurposeResult,
    Statistics,
    ViralClip,
    get_platform_settings,
)
from .options import ClipGenerationOptions
from .storage import LocalAssetStore, RepurposeStorage

ProgressCallback = Callable[[int, int], Any]
CancelCheck = Callable[[], bool]

TOTAL_STEPS = 11
MAX_FRAMES = 40
LONG_VIDEO_SECONDS = 120
CLIP_FPS = 30
THUMBNAIL_WIDTH = 640
THUMBNAIL_HEIGHT = 360


# =============================================================================
# PURE POLICY
# =============================================================================

def plan_frame_sampling(duration: float) -> Tuple[float, int]:
    """(stride seconds, frame count) for a video of ``duration`` seconds."""
    stride = 3.0 if duration > LONG_VIDEO_SECONDS else 2.0
    return stride, min(math.ceil(duration / stride), MAX_FRAMES)


def select_moments(moments: Sequence[ViralMoment], options: ClipGenerationOptions) -> List[ViralMoment]:
    """
    Moments at or above the threshold, capped at ``target_clip_count``.

    When none qualify, the top ``target_clip_count`` by score are used instead,
    so any non-empty input yields a non-empty selection.
    """
    selected = [m for m in moments if m.virality_score >= options.virality_threshold]
    selected = selected[:options.target_clip_count]
    if not selected:
        ranked = sorted(moments, key=lambda m: m.virality_score, reverse=True)
        selected = ranked[:options.target_clip_count]
    return selected


def prevent_overlaps(moments: Sequence[ViralMoment]) -> List[ViralMoment]:
    """Drop moments whose whole-second ``start-end`` bucket was already used."""
    seen = set()
    kept = []
    for moment in moments:
        bucket = f"{math.floor(moment.start_time)}-{math.floor(moment.end_time)}"
        if bucket in seen:
            continue
        seen.add(bucket)
        kept.append(moment)
    return kept


def pick_suggestion(moment: ViralMoment, platform: str) -> ClipSuggestion:
    """First suggestion recommended for ``platform``, else the first, else the moment itself."""
    for suggestion in moment.clip_suggestions:
        if platform in suggestion.recommended_platforms:
            return suggestion
    if moment.clip_suggestions:
        return moment.clip_suggestions[0]
    return ClipSuggestion(
        start_time=moment.start_time,
        end_time=moment.end_time,
        optimal_duration=moment.duration,
    )


def plan_clip_bounds(
    moment: ViralMoment,
    platform: str,
    options: ClipGenerationOptions,
    video_duration: float,
) -> Tuple[float, float]:
    suggestion = pick_suggestion(moment, platform)
    duration = min(options.max_duration, max(options.min_duration, suggestion.optimal_duration))
    start = suggestion.start_time
    end = min(start + duration, moment.end_time, video_duration)
    return start, end


def transcript_snippet(analysis: Optional[TranscriptAnalysis], start: float, end: float) -> Optional[str]:
    """Text of the transcript sentences overlapping [start, end]."""
    if analysis is None:
        return None
    texts = [s.text for s in analysis.sentences if s.start_time < end and s.end_time > start]
    return " ".join(texts) if texts else None


def build_statistics(clips: Sequence[ViralClip], processing_seconds: float) -> Statistics:
    average = sum(c.virality_score for c in clips) / len(clips) if clips else 0.0
    return Statistics(
        total_clips_generated=len(clips),
        average_virality_score=average,
        processing_time_seconds=processing_seconds,
        total_output_size=sum(c.metadata.file_size for c in clips),
    )


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class RepurposeOrchestrator:
    """Composes media engine, extractors, estimator, ranker and storage into one job run."""

    def __init__(
        self,
        media: MediaEngine,
        extractors: SignalExtractors,
        storage: RepurposeStorage,
        assets: LocalAssetStore,
        transcript_fetcher: Optional[TranscriptFetcher] = None,
        estimator: Optional[EngagementEstimator] = None,
        ranker: Optional[ViralityRanker] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.media = media
        self.extractors = extractors
        self.storage = storage
        self.assets = assets
        self.transcript_fetcher = transcript_fetcher
        self.estimator = estimator or EngagementEstimator()
        self.ranker = ranker or ViralityRanker()
        self._clock = clock

    async def run(
        self,
        job_id: str,
        request: RepurposeRequest,
        on_progress: Optional[ProgressCallback] = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> RepurposeResult:
        """
        Run all eleven steps for one request.

        Raises:
            MediaReadError: the source cannot be probed or sampled
            NoClipsRenderedError: every render failed, or there was nothing to render
            JobCancelledError: cancellation was observed at a step boundary
        """
        started = self._clock()
        options = request.options

        async def step_done(step: int) -> None:
            if on_progress:
                reported = on_progress(step, TOTAL_STEPS)
                if inspect.isawaitable(reported):
                    await reported
            if step < TOTAL_STEPS and is_cancelled and is_cancelled():
                raise JobCancelledError(f"Job {job_id} cancelled after step {step}/{TOTAL_STEPS}")

        if is_cancelled and is_cancelled():
            raise JobCancelledError(f"Job {job_id} cancelled before start")

        # Step 1: metadata
        logger.info(f"Starting repurpose job for {request.video_path}")
        metadata = await self.media.metadata(request.video_path)
        if metadata.duration <= 0:
            raise MediaReadError(f"Invalid duration {metadata.duration} for {request.video_path}")
        duration = metadata.duration
        await step_done(1)

        # Step 2: frames
        stride, frame_count = plan_frame_sampling(duration)
        frames = await self.media.extract_frames(request.video_path, 0, duration, frame_count)
        logger.info(f"Sampled {len(frames)} frames (stride {stride:.0f}s) from {duration:.1f}s video")
        await step_done(2)

        # Step 3: transcript
        transcript = request.transcript
        if not transcript and self.transcript_fetcher and is_transcript_source(request.video_url):
            transcript = await self.transcript_fetcher.fetch(request.video_url)
        await step_done(3)

        # Step 4: signals
        visual = await self.extractors.visual.analyze(frames, duration)
        scenes = await self.extractors.scenes.segment(frames, duration)
        audio = await self.extractors.audio.analyze(duration)
        transcript_analysis = None
        if transcript:
            transcript_analysis = await self.extractors.transcript.analyze(transcript, duration)
        await step_done(4)

        # Step 5: engagement
        windows = self.estimator.estimate(scenes, audio, transcript_analysis)
        await step_done(5)

        # Step 6: ranking
        moments = self.ranker.rank(windows, scenes, transcript_analysis, duration)
        video_id = _new_id("repurpose")
        analysis = MLAnalysis(
            id=_new_id("analysis"),
            repurposed_video_id=video_id,
            scene_segments=scenes,
            audio_analysis=audio,
            transcript_analysis=transcript_analysis,
            visual_features=visual,
            engagement_predictions=windows,
            viral_moments=moments,
            processing_time_ms=int((self._clock() - started) * 1000),
        )
        await step_done(6)

        # Step 7: selection
        selected = select_moments(moments, options)
        if selected and selected[0].virality_score < options.virality_threshold:
            logger.warning(
                f"No moments above threshold {options.virality_threshold}, "
                f"using top {len(selected)} by score"
            )
        await step_done(7)

        # Step 8: overlap prevention
        if options.overlap_prevention:
            selected = prevent_overlaps(selected)
        await step_done(8)

        # Step 9: rendering
        clips: List[ViralClip] = []
        for moment in selected:
            for platform in options.platforms:
                try:
                    clip = await self._render_clip(
                        job_id, request, moment, platform, video_id, duration, transcript_analysis
                    )
                except PerClipRenderError as e:
                    logger.warning(
                        f"render_clip failed: job={job_id} moment={moment.id} platform={platform}: {e}"
                    )
                    continue
                clips.append(clip)
        logger.info(f"Rendered {len(clips)} clips from {len(selected)} moments")
        await step_done(9)

        # Step 10: statistics
        statistics = build_statistics(clips, self._clock() - started)
        await step_done(10)

        # Step 11: persistence
        now = datetime.utcnow()
        video = RepurposedVideo(
            id=video_id,
            user_id=request.user_id,
            original_video_url=request.source_url,
            original_video_title=request.title,
            original_video_duration=duration,
            status=JobStatus.COMPLETED if clips else JobStatus.FAILED,
            ml_analysis_id=analysis.id,
            metadata=RepurposeMetadata(
                video_format=metadata.format_name or Path(request.video_path).suffix.lstrip(".") or "unknown",
                resolution=metadata.resolution,
                file_size=metadata.file_size,
                source_platform=detect_source_platform(request.video_url),
                source_url=request.video_url,
            ),
            created_at=now,
            updated_at=now,
        )
        await self.storage.save_repurposed_video(video)
        await self.storage.save_ml_analysis(analysis)

        if not clips:
            raise NoClipsRenderedError(
                f"No clips rendered from {len(selected)} moments x {len(options.platforms)} platforms"
            )

        await self.storage.save_viral_clips(clips)
        await step_done(11)

        logger.info(
            f"Repurpose complete: {statistics.total_clips_generated} clips, "
            f"avg virality {statistics.average_virality_score:.1f}"
        )
        return RepurposeResult(
            repurposed_video=video,
            clips=clips,
            ml_analysis=analysis,
            statistics=statistics,
        )

    async def _render_clip(
        self,
        job_id: str,
        request: RepurposeRequest,
        moment: ViralMoment,
        platform: str,
        video_id: str,
        video_duration: float,
        transcript_analysis: Optional[TranscriptAnalysis],
    ) -> ViralClip:
        options = request.options
        platform_settings = get_platform_settings(platform)
        start, end = plan_clip_bounds(moment, platform, options, video_duration)
        if end <= start:
            raise PerClipRenderError(f"Empty clip bounds {start:.2f}-{end:.2f}")

        clip_id = _new_id("clip")
        try:
            rendered = await self.media.clip(
                request.video_path,
                start,
                end,
                ClipRenderOptions(
                    aspect_ratio=platform_settings.aspect_ratio,
                    resolution=platform_settings.resolution,
                    fps=CLIP_FPS,
                    include_audio=True,
                ),
            )
            thumbnail = await self.media.thumbnail(
                request.video_path, start + (end - start) / 2, THUMBNAIL_WIDTH, THUMBNAIL_HEIGHT
            )
            clip_path = self.assets.write(f"{video_id}/{clip_id}_{platform}.mp4", rendered.data)
            thumb_path = self.assets.write(f"{video_id}/{clip_id}_{platform}_thumb.jpg", thumbnail)
        except PerClipRenderError:
            raise
        except Exception as e:
            raise PerClipRenderError(f"{type(e).__name__}: {e}") from e
        logger.debug(f"Rendered {platform} clip {start:.1f}-{end:.1f}s for job {job_id}")

        return ViralClip(
            id=clip_id,
            repurposed_video_id=video_id,
            clip_storage_path=clip_path,
            thumbnail_path=thumb_path,
            start_time=start,
            end_time=end,
            duration=end - start,
            virality_score=moment.virality_score,
            engagement_score=round(moment.confidence * 100),
            title=f"Viral Clip - {platform}",
            description=moment.reasoning,
            transcript_snippet=transcript_snippet(transcript_analysis, start, end),
            platform_format=platform,
            aspect_ratio=platform_settings.aspect_ratio,
            metadata=ClipMetadata(
                **rendered.metadata.model_dump(),
                captions_enabled=options.include_captions,
                transitions=["fade"] if options.include_transitions else None,
            ),
        )
