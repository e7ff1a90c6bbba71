"""
Viral clip pipeline service configuration.
"""
import os
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Service settings
SERVICE_NAME = "viral-clip-pipeline"
SERVICE_VERSION = "1.0.0"
SERVICE_PORT = int(os.getenv("PORT", 6010))

# Paths
BASE_DIR = Path(__file__).parent.parent
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "/tmp/viral-clip-pipeline/output"))

# Persistence
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{OUTPUT_DIR / 'repurpose.db'}")

# FFmpeg settings
FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")
SUPPORTED_VIDEO_FORMATS = [".mp4", ".mov", ".avi", ".mkv", ".webm"]

# Content-understanding model
CONTENT_MODEL_PROVIDER = os.getenv("CONTENT_MODEL_PROVIDER", "gemini")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_ENDPOINT = os.getenv("GEMINI_ENDPOINT", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
CONTENT_MODEL_TIMEOUT = float(os.getenv("CONTENT_MODEL_TIMEOUT", 120.0))

# Transcript service (YouTube captions)
TRANSCRIPT_SERVICE_URL = os.getenv("TRANSCRIPT_SERVICE_URL", "https://yt-trans.vercel.app/api/transcript")

# Job queue
MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", 2))

# Rate limits (requests per window, window seconds)
DEFAULT_RATE_LIMIT = int(os.getenv("DEFAULT_RATE_LIMIT", 10))
DEFAULT_RATE_WINDOW_SECONDS = float(os.getenv("DEFAULT_RATE_WINDOW_SECONDS", 1.0))
AI_RATE_LIMIT = int(os.getenv("AI_RATE_LIMIT", 5))
AI_RATE_WINDOW_SECONDS = float(os.getenv("AI_RATE_WINDOW_SECONDS", 10.0))
JOB_RATE_LIMIT = int(os.getenv("JOB_RATE_LIMIT", 2))
JOB_RATE_WINDOW_SECONDS = float(os.getenv("JOB_RATE_WINDOW_SECONDS", 30.0))

# Retry policy for content-model calls
MODEL_MAX_RETRIES = int(os.getenv("MODEL_MAX_RETRIES", 2))
MODEL_RETRY_INITIAL_DELAY = float(os.getenv("MODEL_RETRY_INITIAL_DELAY", 2.0))
MODEL_RETRY_MAX_DELAY = float(os.getenv("MODEL_RETRY_MAX_DELAY", 10.0))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = _env_bool("LOG_JSON", False)
