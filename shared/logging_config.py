"""
Logging configuration shared by the service, workers and CLI entry points.

Every record carries a ``job_id`` extra (``-`` outside a job). Workers bind the
current job with ``logger.contextualize(job_id=...)`` so pipeline logs can be
correlated without threading the id through every call.
"""
import sys

from loguru import logger

from config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "job={extra[job_id]} | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

_configured = False


def configure_logging(level: str = None, json_logs: bool = None, force: bool = False) -> None:
    """
    Replace loguru's default sink with the pipeline sink.

    Args:
        level: Log level (defaults to LOG_LEVEL)
        json_logs: Emit serialized JSON records (defaults to LOG_JSON)
        force: Reconfigure even if already configured
    """
    global _configured
    if _configured and not force:
        return

    level = (level or settings.LOG_LEVEL).upper()
    json_logs = settings.LOG_JSON if json_logs is None else json_logs

    logger.remove()
    logger.configure(extra={"job_id": "-"})
    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    _configured = True


def truncate(text, limit: int = 500) -> str:
    """Shorten raw payloads before they go into a log line."""
    if text is None:
        return ""
    text = str(text)
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [{len(text) - limit} more chars]"
