# tests/test_logging_config.py
"""
Tests for the contextgate.logging_config module.

Covers the display filter, handler installation, file logging and the
runtime level helpers.
"""

import logging

import pytest

from contextgate.logging_config import (
    DEFAULT_LOGGING_CONFIG,
    DisplayFilter,
    LoggingManager,
    configure_logging,
    disable_console_logging,
    enable_console_logging,
    get_log_file_path,
    log_display,
    set_component_level,
)


@pytest.fixture
def reset_logging_manager():
    """Give each test a fresh manager and remove the handlers it installed."""
    LoggingManager._instance = None
    yield
    manager = LoggingManager._instance
    if manager is not None:
        manager._remove_own_handlers(logging.getLogger())
    LoggingManager._instance = None
    logging.getLogger("contextgate").setLevel(logging.NOTSET)


def _record(level=logging.INFO, display=None) -> logging.LogRecord:
    record = logging.LogRecord("contextgate.test", level, __file__, 1, "msg", None, None)
    if display is not None:
        record.display = display
    return record


class TestDefaults:
    def test_quiet_by_default(self):
        assert DEFAULT_LOGGING_CONFIG["console_enabled"] is False
        assert DEFAULT_LOGGING_CONFIG["file_enabled"] is False
        assert DEFAULT_LOGGING_CONFIG["components"]["contextgate"] == "INFO"


class TestDisplayFilter:
    def test_globally_enabled_passes_everything(self):
        assert DisplayFilter(console_globally_enabled=True).filter(_record(logging.DEBUG))

    def test_quiet_blocks_plain_records(self):
        assert not DisplayFilter().filter(_record(logging.ERROR))

    def test_quiet_passes_display_records_above_min(self):
        f = DisplayFilter(display_min_level=logging.INFO)
        assert f.filter(_record(logging.INFO, display=True))
        assert not f.filter(_record(logging.DEBUG, display=True))


class TestConfigureLogging:
    def test_console_handler_installed_once(self, reset_logging_manager):
        configure_logging(config={"file_enabled": False})
        manager = LoggingManager.get_instance()
        handler = manager.console_handler
        assert handler in logging.getLogger().handlers

        configure_logging(config={"file_enabled": False})
        assert manager.console_handler is handler

    def test_force_reconfigure_replaces_handler(self, reset_logging_manager):
        configure_logging()
        first = LoggingManager.get_instance().console_handler
        configure_logging(force_reconfigure=True)
        second = LoggingManager.get_instance().console_handler
        assert first is not second
        assert first not in logging.getLogger().handlers

    def test_file_logging_single_mode(self, reset_logging_manager, tmp_path):
        path = configure_logging(
            app_name="gate",
            config={"file_enabled": True, "file_directory": str(tmp_path), "file_mode": "single"},
        )
        assert path == tmp_path / "gate.log"
        assert get_log_file_path() == path

        logging.getLogger("contextgate.test").warning("written to file")
        LoggingManager.get_instance().file_handler.flush()
        assert "written to file" in path.read_text()

    def test_file_logging_per_run_mode(self, reset_logging_manager, tmp_path):
        path = configure_logging(
            app_name="gate",
            config={"file_enabled": True, "file_directory": str(tmp_path), "file_mode": "per_run"},
        )
        assert path.parent == tmp_path
        assert path.name.startswith("gate_")

    def test_component_levels_applied(self, reset_logging_manager):
        configure_logging(config={"components": {"contextgate": "DEBUG"}})
        assert logging.getLogger("contextgate").level == logging.DEBUG

    def test_enable_and_disable_console(self, reset_logging_manager):
        configure_logging()
        manager = LoggingManager.get_instance()

        enable_console_logging("INFO")
        assert manager.display_filter.console_globally_enabled
        assert manager.console_handler.level == logging.INFO

        disable_console_logging()
        assert not manager.display_filter.console_globally_enabled


class TestHelpers:
    def test_log_display_sets_flag(self, caplog):
        logger = logging.getLogger("contextgate.test")
        with caplog.at_level(logging.INFO, logger="contextgate.test"):
            log_display(logger, logging.INFO, "shown %d", 1, extra={"k": "v"})
        record = caplog.records[-1]
        assert record.display is True
        assert record.k == "v"
        assert record.getMessage() == "shown 1"

    def test_set_component_level(self):
        set_component_level("contextgate.selection", "DEBUG")
        assert logging.getLogger("contextgate.selection").level == logging.DEBUG
        set_component_level("contextgate.selection", logging.NOTSET)
