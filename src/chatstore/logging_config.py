# src/chatstore/logging_config.py
"""
Logging setup for applications embedding chatstore.

The library itself only creates module loggers (``logging.getLogger(__name__)``);
an application calls :func:`configure_logging` once at startup, usually with
the ``logging`` section of :class:`chatstore.config.settings.AppSettings`.

Two handlers are installed on the root logger:

    **Console** (stderr): always present, but gated by :class:`DisplayFilter`.
    With ``console_enabled=False`` (the default) only records logged with
    ``extra={"display": True}`` (see :func:`log_display`) reach it, so a UI
    can surface "Conversation deleted" style notices while streaming and
    summarization chatter stays in the file.

    **File**: ``file_mode="per_run"`` writes a new timestamped file per
    process; ``file_mode="single"`` appends to one file rotated by size.

Usage:
    from chatstore.logging_config import configure_logging, log_display

    configure_logging(app_name="chatstore", config=settings.logging)
    log_display(logger, logging.INFO, "Restored %d conversations", count)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": True,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/chatstore/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-36s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 5 * 1024 * 1024,
    "rotation_backup_count": 3,
    "display_min_level": "INFO",
    "components": {
        "chatstore": "INFO",
        "chatstore.sessions.ingestion": "INFO",
        "chatstore.memory.summarizer": "INFO",
        "openai": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "asyncio": "WARNING",
    },
}


def _resolve_level(level: Any, default: int) -> int:
    """Turn a level name or number into a logging level, falling back to `default`."""
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if isinstance(resolved, int):
            return resolved
    return default


class DisplayFilter(logging.Filter):
    """
    Gate for the console handler.

    With the console globally enabled every record passes and the handler
    level decides. Otherwise only records carrying ``display=True`` pass, and
    only at or above ``display_min_level``.
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
    Process-wide owner of the chatstore handlers.

    A singleton: configuring twice is a no-op unless ``force_reconfigure``
    is passed, so a library consumer and its host application cannot
    install duplicate handlers.
    """

    _instance: Optional["LoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None

    def __new__(cls) -> "LoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._console_handler = None
            cls._instance._file_handler = None
            cls._instance._display_filter = None
        return cls._instance

    @classmethod
    def get_instance(cls) -> "LoggingManager":
        return cls()

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "chatstore",
        config: dict[str, Any] | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Install the console and file handlers on the root logger.

        Args:
            app_name: Used in the log file name.
            config: Logging settings; missing keys take DEFAULT_LOGGING_CONFIG values.
            force_reconfigure: Replace handlers installed by a previous call.

        Returns:
            Path of the log file, or None when file logging is off or failed.
        """
        if LoggingManager._configured and not force_reconfigure:
            return LoggingManager._log_file_path

        log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        console_enabled = bool(log_config.get("console_enabled", False))
        self._display_filter = DisplayFilter(
            console_globally_enabled=console_enabled,
            display_min_level=_resolve_level(log_config.get("display_min_level"), logging.INFO),
        )
        self._console_handler = self._create_console_handler(log_config)
        if not console_enabled:
            # The filter alone decides what reaches stderr.
            self._console_handler.setLevel(logging.DEBUG)
        self._console_handler.addFilter(self._display_filter)
        root_logger.addHandler(self._console_handler)

        self._file_handler, log_file_path = None, None
        if log_config.get("file_enabled", True):
            self._file_handler, log_file_path = self._create_file_handler(log_config, app_name)
            if self._file_handler is not None:
                root_logger.addHandler(self._file_handler)

        for component, level in (log_config.get("components") or {}).items():
            self.set_component_level(component, level)

        LoggingManager._configured = True
        LoggingManager._log_file_path = log_file_path
        logging.getLogger(__name__).debug(f"chatstore logging configured (file: {log_file_path}).")
        return log_file_path

    def _create_console_handler(self, config: dict[str, Any]) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_resolve_level(config.get("console_level"), logging.WARNING))
        handler.setFormatter(logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"])))
        return handler

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: cannot create log directory {log_dir}: {e}\n")
            return None, None

        if config.get("file_mode", "per_run") == "single":
            try:
                filename = config.get("file_single_name", "{app}.log").format(app=app_name)
            except (KeyError, ValueError):
                filename = f"{app_name}.log"
        else:
            timestamp = datetime.now()
            try:
                filename = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"]).format(
                    app=app_name, timestamp=timestamp
                )
            except (KeyError, ValueError):
                filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
        log_file_path = log_dir / filename

        try:
            if config.get("file_mode", "per_run") == "single":
                handler: logging.Handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=int(config.get("rotation_max_bytes", DEFAULT_LOGGING_CONFIG["rotation_max_bytes"])),
                    backupCount=int(config.get("rotation_backup_count", DEFAULT_LOGGING_CONFIG["rotation_backup_count"])),
                    encoding="utf-8",
                )
            else:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: cannot open log file {log_file_path}: {e}\n")
            return None, None

        handler.setLevel(_resolve_level(config.get("file_level"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
        return handler, log_file_path

    def set_component_level(self, component: str, level: str | int) -> None:
        component_logger = logging.getLogger(component)
        component_logger.setLevel(_resolve_level(level, component_logger.level))


def configure_logging(
    app_name: str = "chatstore",
    config: dict[str, Any] | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging for the process. Call once, early in startup.

    Example:
        configure_logging("chatstore", {"console_enabled": True, "console_level": "DEBUG"})
    """
    return LoggingManager.get_instance().configure(app_name, config, force_reconfigure)


def log_display(logger: logging.Logger, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
    """
    Log a record that also reaches the console in quiet mode.

    Sets ``extra["display"] = True``, merging with any ``extra`` passed by
    the caller. ``display_min_level`` still applies.
    """
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    logger.log(level, msg, *args, extra=extra, **kwargs)
