"""
Video Analysis
==============
Signal extraction, engagement estimation and virality ranking.
"""

from .content_model import (
    ContentAnalyzer,
    GeminiContentAnalyzer,
    OpenAIContentAnalyzer,
    build_content_analyzer,
    extract_text,
)
from .engagement import EngagementEstimator
from .extractors import (
    AudioAnalyzer,
    SceneSegmenter,
    SignalExtractors,
    TranscriptAnalyzer,
    VisualAnalyzer,
    build_extractors,
)
from .ranker import ViralityRanker

__all__ = [
    'ContentAnalyzer',
    'GeminiContentAnalyzer',
    'OpenAIContentAnalyzer',
    'build_content_analyzer',
    'extract_text',
    'EngagementEstimator',
    'AudioAnalyzer',
    'SceneSegmenter',
    'SignalExtractors',
    'TranscriptAnalyzer',
    'VisualAnalyzer',
    'build_extractors',
    'ViralityRanker',
]
