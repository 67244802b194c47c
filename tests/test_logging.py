"""Structured log output."""

import json
import logging

import pytest

from guardian.common.logging_setup import (
    ROOT_LOGGER_NAME,
    LogContext,
    get_service_logger,
    setup_logging,
)


@pytest.fixture
def json_logs(capsys):
    setup_logging("DEBUG", json_format=True)

    def read():
        return [json.loads(line) for line in capsys.readouterr().out.splitlines()]

    yield read
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()


def test_service_and_extra_fields(json_logs):
    get_service_logger("jobs").info("Updating job", extra={"status": "running"})

    (record,) = json_logs()
    assert record["service"] == "jobs"
    assert record["logger"] == "guardian.jobs"
    assert record["message"] == "Updating job"
    assert record["status"] == "running"
    assert "lineno" not in record


def test_log_context_applies_only_inside_the_block(json_logs):
    logger = get_service_logger("jobs")
    with LogContext(job_id="j1", job_type="reboot"):
        logger.info("inside")
    logger.info("outside")

    inside, outside = json_logs()
    assert (inside["job_id"], inside["job_type"]) == ("j1", "reboot")
    assert "job_id" not in outside


def test_explicit_extra_wins_over_context(json_logs):
    with LogContext(job_id="j1"):
        get_service_logger("jobs").info("override", extra={"job_id": "j2"})

    (record,) = json_logs()
    assert record["job_id"] == "j2"


def test_level_filtering(capsys):
    setup_logging("WARNING", json_format=False)
    logger = get_service_logger("agent")
    logger.info("hidden")
    logger.warning("shown")
    out = capsys.readouterr().out
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()

    assert "hidden" not in out
    assert "[WARNING] guardian.agent: shown" in out
