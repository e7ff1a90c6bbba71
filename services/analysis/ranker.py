"""
Virality Ranker
===============
Turns high-engagement windows into scored, explained viral moments with clip
boundary suggestions.
"""

from typing import List, Optional, Sequence

from loguru import logger

from .engagement import overlapping_scenes
from .models import (
    ClipSuggestion,
    EngagementWindow,
    SceneSegment,
    SceneType,
    TranscriptAnalysis,
    ViralMoment,
)

ENGAGEMENT_THRESHOLD = 0.7
MAX_MOMENTS = 15
HOOK_BOOST = 10
ACTION_BOOST = 5
HIGH_FACTOR = 0.7
HIGH_MOTION = 0.7

CONTEXT_PADDING_SECONDS = 2.0
MIN_OPTIMAL_DURATION = 15.0
MAX_OPTIMAL_DURATION = 60.0
SHORT_CLIP_SECONDS = 30.0

SHORTS_PLATFORMS = ["youtube_shorts", "tiktok", "instagram_reels"]
SHORT_CLIP_PLATFORMS = ["tiktok", "instagram_reels"]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def build_reasoning(
    window: EngagementWindow,
    scenes: Sequence[SceneSegment],
    has_hook: bool,
) -> str:
    reasons = []
    factors = window.factors
    if factors.visual_appeal > HIGH_FACTOR:
        reasons.append("high visual appeal")
    if factors.audio_appeal > HIGH_FACTOR:
        reasons.append("strong audio engagement")
    if factors.content_quality > HIGH_FACTOR:
        reasons.append("high-quality content")
    if has_hook:
        reasons.append("contains attention-grabbing hook")
    if any(s.scene_type == SceneType.ACTION for s in scenes):
        reasons.append("action-packed scene")
    if any(s.scene_type == SceneType.CLIMAX for s in scenes):
        reasons.append("climactic moment")

    if not reasons:
        return "Moderate engagement potential"
    return f"Viral potential due to: {', '.join(reasons)}"


def build_clip_suggestions(window: EngagementWindow, video_duration: float) -> List[ClipSuggestion]:
    """
    Primary suggestion pads the window by 2 s on each side. A 30 s clip centered
    on the window is added when the optimal duration exceeds 20 s.
    """
    s, e = window.time_window.start, window.time_window.end
    optimal = _clamp(e - s, MIN_OPTIMAL_DURATION, MAX_OPTIMAL_DURATION)

    suggestions = [ClipSuggestion(
        start_time=_clamp(s - CONTEXT_PADDING_SECONDS, 0, video_duration),
        end_time=_clamp(e + CONTEXT_PADDING_SECONDS, 0, video_duration),
        optimal_duration=optimal,
        recommended_platforms=list(SHORTS_PLATFORMS),
    )]

    if optimal > 20:
        midpoint = (s + e) / 2
        half = SHORT_CLIP_SECONDS / 2
        suggestions.append(ClipSuggestion(
            start_time=_clamp(midpoint - half, 0, video_duration),
            end_time=_clamp(midpoint + half, 0, video_duration),
            optimal_duration=SHORT_CLIP_SECONDS,
            recommended_platforms=list(SHORT_CLIP_PLATFORMS),
        ))

    return suggestions


class ViralityRanker:
    """Selects and scores the top engagement windows. Pure and deterministic."""

    def rank(
        self,
        windows: Sequence[EngagementWindow],
        scenes: Sequence[SceneSegment],
        transcript: Optional[TranscriptAnalysis],
        video_duration: float,
    ) -> List[ViralMoment]:
        hooks = transcript.hooks if transcript else []

        candidates = [w for w in windows if w.predicted_engagement > ENGAGEMENT_THRESHOLD]
        candidates = sorted(candidates, key=lambda w: w.predicted_engagement, reverse=True)[:MAX_MOMENTS]

        moments = []
        for index, window in enumerate(candidates):
            s, e = window.time_window.start, window.time_window.end
            overlapping = overlapping_scenes(scenes, s, e)

            has_hook = any(h.start_time >= s and h.end_time <= e for h in hooks)
            has_action = any(
                x.scene_type == SceneType.ACTION or x.motion_level > HIGH_MOTION for x in overlapping
            )

            score = window.predicted_engagement * 100
            if has_hook:
                score += HOOK_BOOST
            if has_action:
                score += ACTION_BOOST

            moments.append(ViralMoment(
                id=f"viral_{index + 1}",
                start_time=s,
                end_time=e,
                duration=e - s,
                virality_score=_clamp(score, 0, 100),
                confidence=window.predicted_engagement,
                reasoning=build_reasoning(window, overlapping, has_hook),
                clip_suggestions=build_clip_suggestions(window, video_duration),
            ))

        # sorted() is stable, so equal scores keep selection order
        moments = sorted(moments, key=lambda m: m.virality_score, reverse=True)
        logger.info(f"Ranked {len(moments)} viral moments from {len(windows)} windows")
        return moments
