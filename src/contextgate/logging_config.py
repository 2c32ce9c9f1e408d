# src/contextgate/logging_config.py
"""
Logging setup for applications embedding ContextGate.

The library itself only creates module loggers (``logging.getLogger(__name__)``)
and never installs handlers on import. Applications call
:func:`configure_logging` once at startup, usually with the ``[logging]``
table of the loaded :class:`~contextgate.config.ContextGateConfig`.

Key concepts:

    **Display filter**: With ``console_enabled=False`` (the default) the
    console handler is still installed but only passes records logged with
    ``extra={"display": True}`` (see :func:`log_display`). Admission
    rejections and reaper summaries can therefore reach an operator while
    routine debug output stays in the log file.

    **File logging**: disabled by default. When enabled, ``file_mode="single"``
    writes one rotating file; ``file_mode="per_run"`` writes a new
    timestamped file for every process.

Usage:
    from contextgate.config import load_config
    from contextgate.logging_config import configure_logging, log_display

    config = load_config()
    configure_logging(app_name="contextgate", config=config.logging)
    log_display(logging.getLogger("myapp"), logging.INFO, "Ready")
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "display_min_level": "INFO",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/contextgate/logs",
    "file_mode": "single",
    "file_single_name": "{app}.log",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-36s - %(message)s",
    "rotation_max_bytes": 10 * 1024 * 1024,
    "rotation_backup_count": 5,
    "components": {
        "contextgate": "INFO",
        "asyncio": "WARNING",
    },
}

Level = Union[str, int]


def _level(value: Level, default: int) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).upper())
    return resolved if isinstance(resolved, int) else default


class DisplayFilter(logging.Filter):
    """
    Gate for the console handler.

    When the console is globally enabled every record passes and the
    handler level decides. Otherwise only records flagged ``display=True``
    at or above ``display_min_level`` pass.
    """

    def __init__(self, console_globally_enabled: bool = False, display_min_level: int = logging.INFO) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


class LoggingManager:
    """
    Process-wide owner of the handlers installed by :func:`configure_logging`.

    Only the handlers this manager created are removed on reconfiguration;
    handlers installed by the host application are left alone.
    """

    _instance: Optional["LoggingManager"] = None

    def __init__(self) -> None:
        self.configured = False
        self.log_file_path: Optional[Path] = None
        self.console_handler: Optional[logging.Handler] = None
        self.file_handler: Optional[logging.Handler] = None
        self.display_filter: Optional[DisplayFilter] = None

    @classmethod
    def get_instance(cls) -> "LoggingManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def configure(
        self,
        app_name: str = "contextgate",
        config: Optional[Dict[str, Any]] = None,
        force_reconfigure: bool = False,
    ) -> Optional[Path]:
        """Install console and file handlers. Returns the log file path, if any."""
        if self.configured and not force_reconfigure:
            return self.log_file_path

        settings = {**DEFAULT_LOGGING_CONFIG, **(config or {})}
        root_logger = logging.getLogger()
        self._remove_own_handlers(root_logger)
        root_logger.setLevel(logging.DEBUG)

        console_enabled = bool(settings.get("console_enabled", False))
        self.display_filter = DisplayFilter(
            console_globally_enabled=console_enabled,
            display_min_level=_level(settings.get("display_min_level", "INFO"), logging.INFO),
        )
        self.console_handler = logging.StreamHandler(sys.stderr)
        self.console_handler.setFormatter(logging.Formatter(settings["console_format"]))
        if console_enabled:
            self.console_handler.setLevel(_level(settings.get("console_level", "WARNING"), logging.WARNING))
        else:
            # The filter alone decides what reaches the console.
            self.console_handler.setLevel(logging.DEBUG)
        self.console_handler.addFilter(self.display_filter)
        root_logger.addHandler(self.console_handler)

        self.log_file_path = None
        if settings.get("file_enabled", False):
            self.file_handler, self.log_file_path = self._create_file_handler(settings, app_name)
            if self.file_handler is not None:
                root_logger.addHandler(self.file_handler)

        components = settings.get("components") or DEFAULT_LOGGING_CONFIG["components"]
        for component, level in components.items():
            logging.getLogger(component).setLevel(_level(level, logging.INFO))

        self.configured = True
        logging.getLogger(__name__).debug(f"Logging configured for '{app_name}' (log file: {self.log_file_path})")
        return self.log_file_path

    def _remove_own_handlers(self, root_logger: logging.Logger) -> None:
        for handler in (self.console_handler, self.file_handler):
            if handler is not None:
                root_logger.removeHandler(handler)
                handler.close()
        self.console_handler = None
        self.file_handler = None

    def _create_file_handler(
        self, settings: Dict[str, Any], app_name: str
    ) -> Tuple[Optional[logging.Handler], Optional[Path]]:
        log_dir = Path(os.path.expanduser(settings["file_directory"]))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        try:
            if settings.get("file_mode", "single") == "per_run":
                filename = settings["file_name_pattern"].format(app=app_name, timestamp=datetime.now())
                log_file_path = log_dir / filename
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
            else:
                log_file_path = log_dir / settings["file_single_name"].format(app=app_name)
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=int(settings["rotation_max_bytes"]),
                    backupCount=int(settings["rotation_backup_count"]),
                    encoding="utf-8",
                )
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file in {log_dir}: {e}\n")
            return None, None

        handler.setLevel(_level(settings.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(settings["file_format"]))
        return handler, log_file_path

    def set_console_level(self, level: Level) -> None:
        if self.console_handler is not None:
            self.console_handler.setLevel(_level(level, logging.WARNING))

    def enable_console(self, level: Level = "WARNING") -> None:
        """Pass every record at or above ``level`` to the console."""
        if self.console_handler is None:
            self.configure(force_reconfigure=True, config={"console_enabled": True, "console_level": level})
            return
        if self.display_filter is not None:
            self.display_filter.console_globally_enabled = True
        self.set_console_level(level)

    def disable_console(self) -> None:
        """Return the console to display-only mode."""
        if self.display_filter is not None:
            self.display_filter.console_globally_enabled = False
        if self.console_handler is not None:
            self.console_handler.setLevel(logging.DEBUG)


def configure_logging(
    app_name: str = "contextgate",
    config: Optional[Dict[str, Any]] = None,
    force_reconfigure: bool = False,
) -> Optional[Path]:
    """
    Configure logging for the host application.

    Args:
        app_name: Used in log file names.
        config: The ``[logging]`` table; missing keys fall back to
            :data:`DEFAULT_LOGGING_CONFIG`.
        force_reconfigure: Replace handlers installed by an earlier call.

    Returns:
        The log file path when file logging is enabled, else None.
    """
    return LoggingManager.get_instance().configure(
        app_name=app_name, config=config, force_reconfigure=force_reconfigure
    )


def log_display(logger: logging.Logger, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
    """Log ``msg`` with ``display=True`` so it reaches the console even in quiet mode."""
    extra = kwargs.pop("extra", None) or {}
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def get_log_file_path() -> Optional[Path]:
    return LoggingManager.get_instance().log_file_path


def set_console_level(level: Level) -> None:
    LoggingManager.get_instance().set_console_level(level)


def set_component_level(component: str, level: Level) -> None:
    """Change one logger's level at runtime, e.g. ``("contextgate.selection", "DEBUG")``."""
    logging.getLogger(component).setLevel(_level(level, logging.INFO))


def enable_console_logging(level: Level = "WARNING") -> None:
    LoggingManager.get_instance().enable_console(level)


def disable_console_logging() -> None:
    LoggingManager.get_instance().disable_console()
