"""
Repurpose Storage
=================
SQLAlchemy persistence for jobs, repurposed videos, ML analyses and clips,
plus the local asset store that holds rendered clip and thumbnail bytes.

Writes are idempotent upserts (``session.merge``), so re-saving a record after
a status change simply replaces the row.

Usage:
    storage = SqlRepurposeStorage("sqlite:////tmp/repurpose.db")
    await storage.save_repurposed_video(video)
    clips = await storage.get_viral_clips(video.id)
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from loguru import logger
from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from config import settings
from services.analysis.models import MLAnalysis

from .models import (
    ClipMetadata,
    JobStatus,
    RepurposedVideo,
    RepurposeJob,
    RepurposeMetadata,
    RepurposeRequest,
    ViralClip,
)


class Base(DeclarativeBase):
    pass


class RepurposeJobRow(Base):
    __tablename__ = "repurpose_jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    status: Mapped[str] = mapped_column(String(20), default=JobStatus.QUEUED.value)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    repurposed_video_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    request: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class RepurposedVideoRow(Base):
    __tablename__ = "repurposed_videos"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    original_video_url: Mapped[str] = mapped_column(String)
    original_video_title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    original_video_duration: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20))
    ml_analysis_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


class MLAnalysisRow(Base):
    __tablename__ = "ml_analyses"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    repurposed_video_id: Mapped[str] = mapped_column(String, index=True)
    analysis_version: Mapped[str] = mapped_column(String(20))
    processing_time_ms: Mapped[int] = mapped_column(Integer)
    payload: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime)


class ViralClipRow(Base):
    __tablename__ = "viral_clips"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    repurposed_video_id: Mapped[str] = mapped_column(
        String, ForeignKey("repurposed_videos.id"), index=True
    )
    clip_storage_path: Mapped[str] = mapped_column(String)
    thumbnail_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    start_time: Mapped[float] = mapped_column(Float)
    end_time: Mapped[float] = mapped_column(Float)
    duration: Mapped[float] = mapped_column(Float)
    virality_score: Mapped[float] = mapped_column(Float)
    engagement_score: Mapped[int] = mapped_column(Integer)
    title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transcript_snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    platform_format: Mapped[str] = mapped_column(String(30))
    aspect_ratio: Mapped[str] = mapped_column(String(10))
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime)


class RepurposeStorage(Protocol):
    async def create_job(self, job: RepurposeJob) -> None: ...
    async def update_job(self, job: RepurposeJob) -> None: ...
    async def get_job(self, job_id: str) -> Optional[RepurposeJob]: ...
    async def save_repurposed_video(self, video: RepurposedVideo) -> None: ...
    async def save_ml_analysis(self, analysis: MLAnalysis) -> None: ...
    async def save_viral_clips(self, clips: Sequence[ViralClip]) -> None: ...


# =============================================================================
# ROW <-> MODEL
# =============================================================================

def _job_row(job: RepurposeJob) -> RepurposeJobRow:
    return RepurposeJobRow(
        id=job.id,
        user_id=job.user_id,
        status=job.status.value,
        progress=job.progress,
        error_message=job.error_message,
        repurposed_video_id=job.repurposed_video_id,
        request=job.request.model_dump(mode="json"),
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def _job_model(row: RepurposeJobRow) -> RepurposeJob:
    return RepurposeJob(
        id=row.id,
        user_id=row.user_id,
        status=JobStatus(row.status),
        progress=row.progress,
        error_message=row.error_message,
        repurposed_video_id=row.repurposed_video_id,
        request=RepurposeRequest.model_validate(row.request),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _video_row(video: RepurposedVideo) -> RepurposedVideoRow:
    return RepurposedVideoRow(
        id=video.id,
        user_id=video.user_id,
        original_video_url=video.original_video_url,
        original_video_title=video.original_video_title,
        original_video_duration=video.original_video_duration,
        status=video.status.value,
        ml_analysis_id=video.ml_analysis_id,
        metadata_json=video.metadata.model_dump(mode="json") if video.metadata else None,
        created_at=video.created_at,
        updated_at=video.updated_at,
    )


def _video_model(row: RepurposedVideoRow) -> RepurposedVideo:
    return RepurposedVideo(
        id=row.id,
        user_id=row.user_id,
        original_video_url=row.original_video_url,
        original_video_title=row.original_video_title,
        original_video_duration=row.original_video_duration,
        status=JobStatus(row.status),
        ml_analysis_id=row.ml_analysis_id,
        metadata=RepurposeMetadata.model_validate(row.metadata_json) if row.metadata_json else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


_CLIP_COLUMNS = (
    "id", "repurposed_video_id", "clip_storage_path", "thumbnail_path", "start_time",
    "end_time", "duration", "virality_score", "engagement_score", "title", "description",
    "transcript_snippet", "platform_format", "aspect_ratio", "created_at",
)


def _clip_row(clip: ViralClip) -> ViralClipRow:
    values: Dict[str, Any] = {name: getattr(clip, name) for name in _CLIP_COLUMNS}
    return ViralClipRow(metadata_json=clip.metadata.model_dump(mode="json"), **values)


def _clip_model(row: ViralClipRow) -> ViralClip:
    values: Dict[str, Any] = {name: getattr(row, name) for name in _CLIP_COLUMNS}
    return ViralClip(metadata=ClipMetadata.model_validate(row.metadata_json), **values)


# =============================================================================
# STORAGE
# =============================================================================

class SqlRepurposeStorage:
    """RepurposeStorage on any SQLAlchemy database (SQLite by default)."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            url = database_url or settings.DATABASE_URL
            if url.startswith("sqlite:///") and not url.startswith("sqlite:///:memory:"):
                Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(url)
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def _merge(self, *rows: Base) -> None:
        with self.SessionLocal() as session:
            for row in rows:
                session.merge(row)
            session.commit()

    # Jobs

    async def create_job(self, job: RepurposeJob) -> None:
        self._merge(_job_row(job))
        logger.debug(f"Created job {job.id} for user {job.user_id}")

    async def update_job(self, job: RepurposeJob) -> None:
        self._merge(_job_row(job))

    async def get_job(self, job_id: str) -> Optional[RepurposeJob]:
        with self.SessionLocal() as session:
            row = session.get(RepurposeJobRow, job_id)
            return _job_model(row) if row else None

    # Results

    async def save_repurposed_video(self, video: RepurposedVideo) -> None:
        self._merge(_video_row(video))
        logger.debug(f"Saved repurposed video {video.id} ({video.status.value})")

    async def save_ml_analysis(self, analysis: MLAnalysis) -> None:
        self._merge(MLAnalysisRow(
            id=analysis.id,
            repurposed_video_id=analysis.repurposed_video_id,
            analysis_version=analysis.analysis_version,
            processing_time_ms=analysis.processing_time_ms,
            payload=analysis.model_dump(mode="json"),
            created_at=analysis.created_at,
        ))
        logger.debug(f"Saved ML analysis {analysis.id}")

    async def save_viral_clips(self, clips: Sequence[ViralClip]) -> None:
        if not clips:
            return
        self._merge(*[_clip_row(clip) for clip in clips])
        logger.debug(f"Saved {len(clips)} viral clips")

    async def get_repurposed_video(self, video_id: str) -> Optional[RepurposedVideo]:
        with self.SessionLocal() as session:
            row = session.get(RepurposedVideoRow, video_id)
            return _video_model(row) if row else None

    async def get_viral_clips(self, repurposed_video_id: str) -> List[ViralClip]:
        """Clips for a video, best first."""
        with self.SessionLocal() as session:
            rows = session.scalars(
                select(ViralClipRow)
                .where(ViralClipRow.repurposed_video_id == repurposed_video_id)
                .order_by(ViralClipRow.virality_score.desc(), ViralClipRow.created_at)
            ).all()
            return [_clip_model(row) for row in rows]

    async def get_ml_analysis(self, repurposed_video_id: str) -> Optional[MLAnalysis]:
        with self.SessionLocal() as session:
            row = session.scalars(
                select(MLAnalysisRow)
                .where(MLAnalysisRow.repurposed_video_id == repurposed_video_id)
                .order_by(MLAnalysisRow.created_at.desc())
            ).first()
            return MLAnalysis.model_validate(row.payload) if row else None

    async def list_user_videos(self, user_id: str) -> List[RepurposedVideo]:
        """A user's repurposed videos, newest first."""
        with self.SessionLocal() as session:
            rows = session.scalars(
                select(RepurposedVideoRow)
                .where(RepurposedVideoRow.user_id == user_id)
                .order_by(RepurposedVideoRow.created_at.desc())
            ).all()
            return [_video_model(row) for row in rows]


class LocalAssetStore:
    """Writes rendered clip and thumbnail bytes under a root directory."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.OUTPUT_DIR)

    def write(self, relative_path: str, data: bytes) -> str:
        path = self.root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return str(path)
