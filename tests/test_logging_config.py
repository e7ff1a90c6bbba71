"""
Tests for the loguru sink setup and payload truncation.
"""
import json

import pytest
from loguru import logger

from shared.logging_config import configure_logging, truncate


@pytest.fixture
def restore_logger():
    yield
    logger.remove()


def test_records_carry_bound_job_id(capsys, restore_logger):
    configure_logging(level="INFO", json_logs=False, force=True)

    with logger.contextualize(job_id="job_abc"):
        logger.info("inside job")
    logger.info("outside job")
    logger.debug("below level")

    err = capsys.readouterr().err
    assert "job=job_abc" in err
    assert "job=-" in err
    assert "below level" not in err


def test_json_logs_are_serialized(capsys, restore_logger):
    configure_logging(level="DEBUG", json_logs=True, force=True)

    with logger.contextualize(job_id="job_xyz"):
        logger.warning("render_clip failed")

    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert record["record"]["extra"]["job_id"] == "job_xyz"
    assert record["record"]["level"]["name"] == "WARNING"


def test_truncate():
    assert truncate(None) == ""
    assert truncate("short") == "short"
    assert truncate("x" * 510) == "x" * 500 + "... [10 more chars]"
    assert truncate({"a": 1}, limit=3) == "{'a... [5 more chars]"
