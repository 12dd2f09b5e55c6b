"""Tests for loguru configuration and the run correlation id."""

import json

import pytest

from gatedag.kernel import logging as gatedag_logging
from gatedag.kernel.logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    configure_logging(force_reconfigure=True)


class TestConfigureLogging:
    """Test handler setup."""

    def test_same_settings_are_a_no_op(self):
        configure_logging(level="DEBUG", format="console", force_reconfigure=True)
        handlers = list(gatedag_logging._HANDLER_IDS)

        configure_logging(level="DEBUG", format="console")

        assert gatedag_logging._HANDLER_IDS == handlers

    def test_reconfigure_replaces_handlers(self):
        configure_logging(level="DEBUG", format="console", force_reconfigure=True)
        handlers = list(gatedag_logging._HANDLER_IDS)

        configure_logging(level="WARNING", format="console")

        assert len(gatedag_logging._HANDLER_IDS) == 1
        assert gatedag_logging._HANDLER_IDS != handlers

    def test_level_filters_records(self, capsys):
        configure_logging(level="WARNING", format="console", force_reconfigure=True)
        logger = get_logger("tests.logging")

        logger.info("quiet")
        logger.warning("loud")

        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "loud" in err

    def test_output_file_receives_json(self, tmp_path):
        log_file = tmp_path / "logs" / "gatedag.jsonl"
        configure_logging(level="INFO", format="console", output_file=log_file)

        get_logger("tests.logging").info("Stage {stage} started", stage="build")
        configure_logging(force_reconfigure=True)

        record = json.loads(log_file.read_text().splitlines()[-1])["record"]
        assert record["message"] == "Stage build started"
        assert record["extra"]["stage"] == "build"


class TestCorrelationId:
    """Test the run-scoped correlation id."""

    def test_set_and_reset(self):
        assert get_correlation_id() == "-"

        token = set_correlation_id("r42")
        assert get_correlation_id() == "r42"

        reset_correlation_id(token)
        assert get_correlation_id() == "-"

    def test_attached_to_records(self, capsys):
        configure_logging(level="INFO", format="console", force_reconfigure=True)
        logger = get_logger("tests.logging")

        token = set_correlation_id("r42")
        try:
            logger.info("inside run")
        finally:
            reset_correlation_id(token)
        logger.info("outside run")

        lines = capsys.readouterr().err.splitlines()
        assert any("| r42 |" in line and "inside run" in line for line in lines)
        assert any("| - |" in line and "outside run" in line for line in lines)
