"""Tests for logging setup and per-adapter loggers."""

import logging

import pytest

from codeatlas.logging_config import (
    NO_ADAPTER,
    ROOT_LOGGER,
    AdapterField,
    adapter_logger,
    get_logger,
    setup_logging,
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    atlas_level = logging.getLogger(ROOT_LOGGER).level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger(ROOT_LOGGER).setLevel(atlas_level)


class TestGetLogger:
    def test_names_are_rooted(self):
        assert get_logger().name == ROOT_LOGGER
        assert get_logger("cache").name == "codeatlas.cache"
        assert get_logger("codeatlas.state").name == "codeatlas.state"


class TestAdapterLogger:
    def test_prefix_and_record_field(self, caplog):
        caplog.set_level(logging.DEBUG, logger=ROOT_LOGGER)
        adapter_logger("semgrep", "codeatlas.orchestrator").warning("Timed out")
        record = caplog.records[-1]
        assert record.getMessage() == "[semgrep] Timed out"
        assert record.adapter == "semgrep"
        assert record.name == "codeatlas.orchestrator"

    def test_caller_extra_is_kept(self, caplog):
        caplog.set_level(logging.DEBUG, logger=ROOT_LOGGER)
        adapter_logger("a").info("x", extra={"phase": "collect"})
        record = caplog.records[-1]
        assert (record.adapter, record.phase) == ("a", "collect")

    def test_field_filter_fills_missing_adapter(self):
        record = logging.LogRecord("codeatlas", logging.INFO, __file__, 1, "m", None, None)
        assert AdapterField().filter(record)
        assert record.adapter == NO_ADAPTER


class TestSetupLogging:
    def test_levels(self, restore_logging):
        assert setup_logging(verbose=True).level == logging.DEBUG
        assert setup_logging(quiet=True).level == logging.ERROR
        assert setup_logging().level == logging.WARNING

    def test_log_file_has_adapter_column(self, restore_logging, tmp_path):
        log_file = tmp_path / "atlas.log"
        setup_logging(log_file=str(log_file))
        adapter_logger("sonar", "codeatlas.orchestrator").warning("Partial result")
        get_logger("codeatlas.cache").warning("Cache write failed")
        for handler in logging.getLogger().handlers:
            handler.flush()
        lines = log_file.read_text().splitlines()
        assert lines[0].endswith(" - WARNING - sonar - [sonar] Partial result")
        assert lines[1].endswith(f" - WARNING - {NO_ADAPTER} - Cache write failed")
