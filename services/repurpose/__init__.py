"""
Content Repurposing Engine
===========================
Transform long-form videos into multiple platform-optimized short clips.

Features:
- Viral moment detection from scene, audio and transcript signals
- Threshold selection with top-N fallback and overlap prevention
- Per-platform rendering (9:16 shorts, 16:9 twitter)
- Queued, cancellable jobs with persisted status
"""

from .job_queue import JobQueue
from .models import (
    JobStatus,
    RepurposedVideo,
    RepurposeJob,
    RepurposeRequest,
    RepurposeResult,
    ViralClip,
    get_platform_settings,
)
from .options import ClipGenerationOptions, merge_options
from .orchestrator import RepurposeOrchestrator
from .storage import LocalAssetStore, SqlRepurposeStorage

__all__ = [
    'JobQueue',
    'JobStatus',
    'RepurposedVideo',
    'RepurposeJob',
    'RepurposeRequest',
    'RepurposeResult',
    'ViralClip',
    'get_platform_settings',
    'ClipGenerationOptions',
    'merge_options',
    'RepurposeOrchestrator',
    'LocalAssetStore',
    'SqlRepurposeStorage',
]
