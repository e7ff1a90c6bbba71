"""
Tests for the signal extractors: parsing, defaults and failure recovery.
"""
import io
import json

import pytest
from PIL import Image

from conftest import FakeContentAnalyzer, scene_payload, scripted_responder
from services.analysis.extractors import (
    AudioAnalyzer,
    SceneSegmenter,
    TranscriptAnalyzer,
    VisualAnalyzer,
    build_extractors,
)
from services.analysis.frame_optimizer import OptimizeOptions, optimize_frame
from services.analysis.models import SceneType
from services.infrastructure.errors import (
    ExternalServiceError,
    SchemaValidationError,
    TransientExternalError,
)
from services.media.models import Frame

FRAMES = [Frame(data=b"frame", timestamp=t) for t in (0.0, 2.0, 4.0)]


def gemini(payload) -> dict:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def jpeg(width, height) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buffer, "JPEG")
    return buffer.getvalue()


# =============================================================================
# SCENES
# =============================================================================

class TestSceneSegmenter:

    @pytest.mark.asyncio
    async def test_parses_and_sorts_scenes_filling_missing_fields(self, caller):
        payload = [
            {"start_time": 30, "end_time": 60, "scene_type": "climax",
             "importance_score": 0.9, "visual_complexity": 0.8, "motion_level": 0.7},
            {"id": "intro", "start_time": 0, "end_time": 30, "duration": 30, "scene_type": "hook",
             "importance_score": 0.6, "visual_complexity": 0.5, "motion_level": 0.4},
        ]
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini(payload))

        scenes = await SceneSegmenter(analyzer, caller).segment(FRAMES, 60.0)

        assert [s.id for s in scenes] == ["intro", "scene_1"]
        assert scenes[1].duration == 30
        assert scenes[1].scene_type == SceneType.CLIMAX
        assert scenes[1].keyframes == []
        assert len(analyzer.calls[0]["parts"]) == len(FRAMES)

    @pytest.mark.asyncio
    async def test_accepts_wrapped_scene_list(self, caller):
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini({"scenes": scene_payload(20.0)}))
        scenes = await SceneSegmenter(analyzer, caller).segment(FRAMES, 20.0)
        assert len(scenes) == 1
        assert scenes[0].end_time == 20.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        "not json at all",
        '{"unexpected": true}',
        "[]",
        '[{"id": "s", "start_time": 0, "end_time": 10, "scene_type": "montage",'
        ' "importance_score": 0.5, "visual_complexity": 0.5, "motion_level": 0.5}]',
        '[{"start_time": 0, "end_time": 10, "scene_type": "action",'
        ' "importance_score": 3, "visual_complexity": 0.5, "motion_level": 0.5}]',
    ])
    async def test_malformed_output_returns_single_default_scene(self, caller, raw):
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini(raw))

        scenes = await SceneSegmenter(analyzer, caller).segment(FRAMES, 90.0)

        assert len(scenes) == 1
        scene = scenes[0]
        assert scene.id == "scene_1"
        assert (scene.start_time, scene.end_time, scene.duration) == (0, 90.0, 90.0)
        assert scene.scene_type == SceneType.DIALOGUE
        assert (scene.importance_score, scene.visual_complexity, scene.motion_level) == (0.5, 0.5, 0.5)

    @pytest.mark.asyncio
    async def test_exhausted_transient_failures_return_default(self, caller):
        analyzer = FakeContentAnalyzer(lambda p, parts: TransientExternalError("503", status_code=503))

        scenes = await SceneSegmenter(analyzer, caller).segment(FRAMES, 45.0)

        assert len(analyzer.calls) == 3
        assert scenes == SceneSegmenter.default_scenes(45.0)

    @pytest.mark.asyncio
    async def test_non_retryable_failure_returns_default_after_one_call(self, caller):
        analyzer = FakeContentAnalyzer(lambda p, parts: ExternalServiceError("403", status_code=403))

        scenes = await SceneSegmenter(analyzer, caller).segment(FRAMES, 45.0)

        assert len(analyzer.calls) == 1
        assert scenes[0].scene_type == SceneType.DIALOGUE

    @pytest.mark.asyncio
    async def test_no_frames_skips_the_model(self, caller):
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini(scene_payload(10.0)))
        scenes = await SceneSegmenter(analyzer, caller).segment([], 10.0)
        assert analyzer.calls == []
        assert scenes == SceneSegmenter.default_scenes(10.0)

    def test_parse_rejects_non_list(self):
        with pytest.raises(SchemaValidationError):
            SceneSegmenter.parse_scenes({"foo": 1})


# =============================================================================
# VISUAL
# =============================================================================

class TestVisualAnalyzer:

    @pytest.mark.asyncio
    async def test_parses_visual_features(self, caller):
        payload = {
            "dominant_colors": [{"color": "#ff0000", "percentage": 0.4}],
            "brightness_levels": [{"time": 0, "brightness": 0.6}],
            "face_detections": [{"time": 2, "count": 1, "confidence": 0.9}],
        }
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini(payload))

        features = await VisualAnalyzer(analyzer, caller).analyze(FRAMES, 6.0)

        assert features.dominant_colors[0].color == "#ff0000"
        assert features.face_detections[0].count == 1
        assert features.contrast_levels == []
        assert features.text_overlays == []
        assert analyzer.calls[0]["schema"]["type"] == "OBJECT"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["oops", "[1, 2]", '{"brightness_levels": [{"time": 0, "brightness": 7}]}'])
    async def test_bad_output_returns_empty_features(self, caller, raw):
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini(raw))
        features = await VisualAnalyzer(analyzer, caller).analyze(FRAMES, 6.0)
        assert features.model_dump() == {
            "dominant_colors": [], "brightness_levels": [], "contrast_levels": [],
            "face_detections": [], "text_overlays": [],
        }

    @pytest.mark.asyncio
    async def test_invalid_envelope_returns_empty_features(self, caller):
        analyzer = FakeContentAnalyzer(lambda p, parts: {"candidates": []})
        features = await VisualAnalyzer(analyzer, caller).analyze(FRAMES, 6.0)
        assert features.dominant_colors == []


# =============================================================================
# AUDIO + TRANSCRIPT
# =============================================================================

@pytest.mark.asyncio
async def test_audio_analysis_is_deterministic():
    audio = await AudioAnalyzer().analyze(100.0)

    assert (audio.overall_volume, audio.speech_presence, audio.music_presence) == (0.7, 0.8, 0.2)
    assert audio.silence_periods == []
    assert [(p.time, p.intensity) for p in audio.peak_audio_moments] == [
        (pytest.approx(20.0), 0.9), (pytest.approx(50.0), 0.85), (pytest.approx(80.0), 0.9),
    ]


class TestTranscriptAnalyzer:

    @pytest.mark.asyncio
    async def test_parses_hooks_and_keeps_full_transcript(self, caller):
        payload = {
            "sentences": [{"text": "You won't believe this.", "start_time": 0, "end_time": 3, "confidence": 0.9}],
            "hooks": [{"text": "You won't believe this.", "start_time": 0, "end_time": 3, "hook_score": 0.95}],
            "sentiment_scores": [{"time": 1, "sentiment": 0.4}],
        }
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini(payload))

        analysis = await TranscriptAnalyzer(analyzer, caller).analyze("You won't believe this.", 30.0)

        assert analysis.full_transcript == "You won't believe this."
        assert analysis.hooks[0].hook_score == 0.95
        assert analysis.key_phrases == []
        assert "You won't believe this." in analyzer.calls[0]["prompt"]
        assert analyzer.calls[0]["parts"] == []

    @pytest.mark.asyncio
    async def test_failure_keeps_transcript_with_empty_lists(self, caller):
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini("{broken"))

        analysis = await TranscriptAnalyzer(analyzer, caller).analyze("hello world", 30.0)

        assert analysis.full_transcript == "hello world"
        assert analysis.sentences == analysis.hooks == analysis.topics == []

    @pytest.mark.asyncio
    async def test_blank_transcript_skips_the_model(self, caller):
        analyzer = FakeContentAnalyzer(lambda p, parts: gemini({}))
        analysis = await TranscriptAnalyzer(analyzer, caller).analyze("   ", 30.0)
        assert analyzer.calls == []
        assert analysis.hooks == []


@pytest.mark.asyncio
async def test_extractors_share_one_limiter_key_per_operation(caller):
    analyzer = FakeContentAnalyzer(scripted_responder(scene_payload(10.0)))
    extractors = build_extractors(analyzer, caller)

    await extractors.visual.analyze(FRAMES, 10.0)
    await extractors.scenes.segment(FRAMES, 10.0)
    await extractors.transcript.analyze("text", 10.0)

    limiter = caller.limiter
    assert limiter.get_count("visual-analysis") == 1
    assert limiter.get_count("scene-detection") == 1
    assert limiter.get_count("transcript-analysis") == 1


# =============================================================================
# FRAME OPTIMIZER
# =============================================================================

def test_large_frame_is_downscaled_to_jpeg():
    frame = Frame(data=jpeg(2048, 1024), mime_type="image/jpeg", timestamp=4.0)

    optimized = optimize_frame(frame)

    with Image.open(io.BytesIO(optimized.data)) as img:
        assert img.size == (1024, 512)
        assert img.format == "JPEG"
    assert optimized.timestamp == 4.0


def test_small_frame_keeps_its_size():
    frame = Frame(data=jpeg(320, 240))
    optimized = optimize_frame(frame, OptimizeOptions(max_side=1024))
    with Image.open(io.BytesIO(optimized.data)) as img:
        assert img.size == (320, 240)


def test_undecodable_frame_falls_back_to_original():
    frame = Frame(data=b"not an image", mime_type="image/png", timestamp=1.0)
    assert optimize_frame(frame) is frame
