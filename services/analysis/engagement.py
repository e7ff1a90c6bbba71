"""
Engagement Estimator
====================
Fuses scene, audio and transcript signals into one engagement estimate per
fixed 10-second window.

    predicted = 0.30 * visual_appeal + 0.25 * audio_appeal
              + 0.30 * content_quality + 0.15 * hook_potential

Windows tile [0, last_scene_end); the final one is truncated.
"""

import math
from typing import List, Optional, Sequence

from loguru import logger

from .models import (
    AudioAnalysis,
    EngagementFactors,
    EngagementWindow,
    SceneSegment,
    TimeWindow,
    TranscriptAnalysis,
)

WINDOW_STRIDE_SECONDS = 10.0

VISUAL_WEIGHT = 0.30
AUDIO_WEIGHT = 0.25
CONTENT_WEIGHT = 0.30
HOOK_WEIGHT = 0.15

NEUTRAL_FACTOR = 0.5
AUDIO_PEAK_APPEAL = 0.8
HOOK_APPEAL = 0.9


def overlapping_scenes(scenes: Sequence[SceneSegment], start: float, end: float) -> List[SceneSegment]:
    """Scenes sharing a non-empty interval with [start, end)."""
    return [s for s in scenes if s.start_time < end and s.end_time > start]


class EngagementEstimator:
    """Windowed engagement prediction. Pure and deterministic."""

    def __init__(self, stride: float = WINDOW_STRIDE_SECONDS):
        if stride <= 0:
            raise ValueError("stride must be > 0")
        self.stride = stride

    def windows(self, scenes: Sequence[SceneSegment]) -> List[TimeWindow]:
        """The time windows the estimator will score."""
        if not scenes:
            return []
        last_end = max(s.end_time for s in scenes)
        if last_end <= 0:
            return []

        count = math.ceil(last_end / self.stride)
        return [
            TimeWindow(start=i * self.stride, end=min((i + 1) * self.stride, last_end))
            for i in range(count)
        ]

    def estimate(
        self,
        scenes: Sequence[SceneSegment],
        audio: AudioAnalysis,
        transcript: Optional[TranscriptAnalysis] = None,
    ) -> List[EngagementWindow]:
        hooks = transcript.hooks if transcript else []
        results = []

        for window in self.windows(scenes):
            s, e = window.start, window.end
            overlapping = overlapping_scenes(scenes, s, e)

            if overlapping:
                visual_appeal = sum(x.visual_complexity + x.motion_level for x in overlapping) / (2 * len(overlapping))
                content_quality = sum(x.importance_score for x in overlapping) / len(overlapping)
            else:
                visual_appeal = NEUTRAL_FACTOR
                content_quality = NEUTRAL_FACTOR

            if any(s <= p.time <= e for p in audio.peak_audio_moments):
                audio_appeal = AUDIO_PEAK_APPEAL
            else:
                audio_appeal = audio.overall_volume

            if any(h.start_time <= e and h.end_time >= s for h in hooks):
                hook_potential = HOOK_APPEAL
            else:
                hook_potential = NEUTRAL_FACTOR

            predicted = (
                VISUAL_WEIGHT * visual_appeal
                + AUDIO_WEIGHT * audio_appeal
                + CONTENT_WEIGHT * content_quality
                + HOOK_WEIGHT * hook_potential
            )

            results.append(EngagementWindow(
                time_window=window,
                predicted_engagement=min(1.0, max(0.0, predicted)),
                factors=EngagementFactors(
                    visual_appeal=visual_appeal,
                    audio_appeal=audio_appeal,
                    content_quality=content_quality,
                    hook_potential=hook_potential,
                ),
            ))

        logger.debug(f"Estimated engagement for {len(results)} windows")
        return results
