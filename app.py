"""
Viral Clip Pipeline Service - viral moment detection and multi-platform clip generation.
Port: 6010
"""
import asyncio
import threading
from datetime import datetime
from typing import Any, Coroutine, Optional

from flask import Flask, jsonify, request
from loguru import logger
from pydantic import ValidationError

from config import settings
from services.analysis import build_content_analyzer, build_extractors
from services.infrastructure import ResilientCaller, RetryPolicy, build_rate_limiters
from services.media import FFmpegMediaEngine
from services.repurpose import (
    JobQueue,
    LocalAssetStore,
    RepurposeOrchestrator,
    RepurposeRequest,
    SqlRepurposeStorage,
    merge_options,
)
from services.transcription.transcript_fetcher import TranscriptFetcher
from shared.logging_config import configure_logging

app = Flask(__name__)

SERVICE_NAME = settings.SERVICE_NAME
SERVICE_VERSION = settings.SERVICE_VERSION
SERVICE_PORT = settings.SERVICE_PORT


def build_job_queue() -> JobQueue:
    """Wire the production queue: Gemini/OpenAI, ffmpeg, SQL storage, shared limiters."""
    limiters = build_rate_limiters()
    model_caller = ResilientCaller(limiters.ai, RetryPolicy.for_content_model())
    storage = SqlRepurposeStorage()
    orchestrator = RepurposeOrchestrator(
        media=FFmpegMediaEngine(),
        extractors=build_extractors(build_content_analyzer(), model_caller),
        storage=storage,
        assets=LocalAssetStore(),
        transcript_fetcher=TranscriptFetcher(ResilientCaller(limiters.default)),
    )
    return JobQueue(orchestrator, storage, job_limiter=limiters.jobs)


class QueueRunner:
    """Runs a JobQueue on its own event loop thread for the sync Flask handlers."""

    def __init__(self, queue: JobQueue):
        self.queue = queue
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="repurpose-queue", daemon=True)
        self._thread.start()
        self.call(self.queue.start())

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def call(self, coro: Coroutine[Any, Any, Any], timeout: float = 30.0) -> Any:
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def shutdown(self) -> None:
        self.call(self.queue.stop())
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)


_runner_lock = threading.Lock()


def get_runner() -> QueueRunner:
    """The app's queue runner, created on first use unless one was configured."""
    with _runner_lock:
        runner: Optional[QueueRunner] = app.config.get("QUEUE_RUNNER")
        if runner is None:
            runner = QueueRunner(build_job_queue())
            app.config["QUEUE_RUNNER"] = runner
        return runner


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": datetime.utcnow().isoformat()
    })


@app.route("/api/repurpose/jobs", methods=["POST"])
def submit_job():
    """Queue a video for viral clip generation."""
    data = request.get_json(silent=True) or {}
    if not data.get("user_id") or not data.get("video_path"):
        return jsonify({"error": "user_id and video_path required"}), 400

    try:
        repurpose_request = RepurposeRequest(
            user_id=data["user_id"],
            video_path=data["video_path"],
            video_url=data.get("video_url"),
            title=data.get("title"),
            transcript=data.get("transcript"),
            options=merge_options(data.get("options")),
        )
    except ValidationError as e:
        details = e.errors(include_url=False, include_context=False)
        return jsonify({"error": "invalid request", "details": details}), 400
    except TypeError:
        return jsonify({"error": "options must be an object"}), 400

    runner = get_runner()
    job = runner.call(runner.queue.submit(repurpose_request))
    return jsonify({"job_id": job.id, "status": job.status.value}), 202


@app.route("/api/repurpose/jobs/<job_id>", methods=["GET"])
def job_status(job_id):
    """Status, progress and error of one job."""
    runner = get_runner()
    status = runner.call(runner.queue.get_status(job_id))
    if status is None:
        return jsonify({"error": "job not found"}), 404
    return jsonify({"job_id": job_id, **status})


@app.route("/api/repurpose/jobs/<job_id>/cancel", methods=["POST"])
def cancel_job(job_id):
    """Cancel a queued or running job."""
    runner = get_runner()
    cancelled = runner.call(runner.queue.cancel(job_id))
    return jsonify({"job_id": job_id, "cancelled": cancelled})


@app.route("/api/repurpose/queue", methods=["GET"])
def queue_status():
    """Number of queued and processing jobs."""
    return jsonify(get_runner().queue.get_queue_status())


@app.route("/api/repurpose/videos/<video_id>", methods=["GET"])
def get_video(video_id):
    """A repurposed video with its clips and analysis."""
    runner = get_runner()
    storage = runner.queue.storage
    video = runner.call(storage.get_repurposed_video(video_id))
    if video is None:
        return jsonify({"error": "video not found"}), 404

    clips = runner.call(storage.get_viral_clips(video_id))
    analysis = runner.call(storage.get_ml_analysis(video_id))
    return jsonify({
        "video": video.model_dump(mode="json"),
        "clips": [clip.model_dump(mode="json") for clip in clips],
        "ml_analysis": analysis.model_dump(mode="json") if analysis else None,
    })


@app.route("/api/repurpose/users/<user_id>/videos", methods=["GET"])
def list_videos(user_id):
    """A user's repurposed videos, newest first."""
    runner = get_runner()
    videos = runner.call(runner.queue.storage.list_user_videos(user_id))
    return jsonify({
        "videos": [video.model_dump(mode="json") for video in videos],
        "count": len(videos),
    })


if __name__ == "__main__":
    configure_logging()
    logger.info(f"{SERVICE_NAME} starting on port {SERVICE_PORT}")
    app.run(host="0.0.0.0", port=SERVICE_PORT, debug=False)
