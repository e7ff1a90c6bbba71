"""
Tests for virality ranking, reasoning and clip suggestions.
"""
import pytest

from services.analysis.models import (
    EngagementFactors,
    EngagementWindow,
    Hook,
    SceneSegment,
    SceneType,
    TimeWindow,
    TranscriptAnalysis,
)
from services.analysis.ranker import ViralityRanker, build_clip_suggestions

ranker = ViralityRanker()


def window(start, end, engagement, visual=0.5, audio=0.5, content=0.5, hook=0.5):
    return EngagementWindow(
        time_window=TimeWindow(start=start, end=end),
        predicted_engagement=engagement,
        factors=EngagementFactors(
            visual_appeal=visual, audio_appeal=audio, content_quality=content, hook_potential=hook,
        ),
    )


def scene(start, end, scene_type=SceneType.DIALOGUE, motion=0.3):
    return SceneSegment(
        id=f"s{start}",
        start_time=start,
        end_time=end,
        duration=end - start,
        scene_type=scene_type,
        importance_score=0.5,
        visual_complexity=0.5,
        motion_level=motion,
    )


def transcript(*spans):
    return TranscriptAnalysis(
        hooks=[Hook(text="wait for it", start_time=s, end_time=e, hook_score=0.9) for s, e in spans]
    )


def test_only_windows_above_threshold_become_moments():
    windows = [window(0, 10, 0.70), window(10, 20, 0.71), window(20, 30, 0.5)]
    moments = ranker.rank(windows, [scene(0, 30)], None, 30.0)
    assert [(m.start_time, m.end_time) for m in moments] == [(10, 20)]


def test_at_most_fifteen_moments():
    windows = [window(i * 10, i * 10 + 10, 0.75 + i * 0.001) for i in range(20)]
    moments = ranker.rank(windows, [scene(0, 200)], None, 200.0)
    assert len(moments) == 15
    assert moments[0].start_time == 190


def test_score_capped_at_100_with_hook_and_action_boosts():
    windows = [window(0, 10, 0.95, visual=0.8, audio=0.8, content=0.9)]
    scenes = [scene(0, 10, SceneType.ACTION)]

    [moment] = ranker.rank(windows, scenes, transcript((2, 6)), 60.0)

    assert moment.virality_score == 100
    assert moment.confidence == pytest.approx(0.95)
    assert moment.reasoning == (
        "Viral potential due to: high visual appeal, strong audio engagement, "
        "high-quality content, contains attention-grabbing hook, action-packed scene"
    )


def test_hook_boost_needs_full_containment():
    scenes = [scene(0, 20)]
    contained = ranker.rank([window(0, 10, 0.8)], scenes, transcript((1, 9)), 20.0)
    straddling = ranker.rank([window(0, 10, 0.8)], scenes, transcript((8, 12)), 20.0)

    assert contained[0].virality_score == pytest.approx(90)
    assert straddling[0].virality_score == pytest.approx(80)
    assert "hook" not in straddling[0].reasoning


def test_high_motion_scene_earns_action_boost_without_action_phrase():
    [moment] = ranker.rank([window(0, 10, 0.8)], [scene(0, 10, motion=0.9)], None, 10.0)
    assert moment.virality_score == pytest.approx(85)
    assert moment.reasoning == "Moderate engagement potential"


def test_climax_scene_adds_climactic_moment_reason():
    [moment] = ranker.rank([window(0, 10, 0.8)], [scene(0, 10, SceneType.CLIMAX)], None, 10.0)
    assert moment.reasoning == "Viral potential due to: climactic moment"


def test_output_sorted_by_score_and_ties_keep_selection_order():
    windows = [
        window(0, 10, 0.8),
        window(10, 20, 0.75),
        window(20, 30, 0.8),
    ]
    scenes = [scene(0, 10), scene(10, 20, SceneType.ACTION), scene(20, 30)]

    moments = ranker.rank(windows, scenes, None, 30.0)

    assert [m.virality_score for m in moments] == pytest.approx([80, 80, 80])
    # 0.75 + action boost ties with the two 0.8 windows and stays last
    assert [m.start_time for m in moments] == [0, 20, 10]
    assert [m.id for m in moments] == ["viral_1", "viral_2", "viral_3"]


def test_scores_stay_within_bounds():
    windows = [window(i * 10, i * 10 + 10, 0.71 + i * 0.02) for i in range(15)]
    scenes = [scene(0, 150, SceneType.ACTION, motion=0.9)]
    for moment in ranker.rank(windows, scenes, transcript((0, 150)), 150.0):
        assert 0 <= moment.virality_score <= 100
        assert 0 <= moment.confidence <= 1


def test_primary_suggestion_is_padded_and_clamped():
    [start_of_video] = build_clip_suggestions(window(0, 10, 0.8), 12.0)
    assert (start_of_video.start_time, start_of_video.end_time) == (0, 12.0)
    assert start_of_video.optimal_duration == 15
    assert start_of_video.recommended_platforms == ["youtube_shorts", "tiktok", "instagram_reels"]

    [middle] = build_clip_suggestions(window(20, 30, 0.8), 100.0)
    assert (middle.start_time, middle.end_time) == (18, 32)


def test_long_window_gets_centered_thirty_second_suggestion():
    primary, short = build_clip_suggestions(window(40, 90, 0.8), 80.0)

    assert primary.optimal_duration == 50
    assert (primary.start_time, primary.end_time) == (38, 80.0)
    assert (short.start_time, short.end_time) == (50, 80.0)
    assert short.optimal_duration == 30
    assert short.recommended_platforms == ["tiktok", "instagram_reels"]


def test_suggestions_always_inside_video():
    for start in range(0, 60, 10):
        for suggestion in build_clip_suggestions(window(start, start + 10, 0.8), 55.0):
            assert 0 <= suggestion.start_time <= 55.0
            assert 0 <= suggestion.end_time <= 55.0
