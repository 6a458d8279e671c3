# src/papershelf/utils/logging_config.py
"""
Centralized logging configuration for papershelf.

Usage:
    from papershelf.utils.logging_config import Logger, LogFiles

    # Log to a routed file with automatic line number
    Logger.info("Fetched 1706.03762.pdf", file=LogFiles.INGEST)
    Logger.error("Migration failed", file=LogFiles.ERROR)

    # Log to default file (<log dir>/papershelf.log)
    Logger.info("General message")

Configuration via environment variables:
    PAPERSHELF_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL (default: INFO)
    PAPERSHELF_LOG_DIR: Base directory for log files (default: .papershelf/logs)
    PAPERSHELF_LOG_MAX_BYTES: Max size per log file in bytes (default: 1MB)
    PAPERSHELF_LOG_BACKUP_COUNT: Number of backup files to keep (default: 3)

The command line entry point points the log directory at the repository it
operates on, see ``Logger.init(base_dir=..., force=True)``.
"""

from __future__ import annotations

import inspect
import os
import uuid
from contextvars import ContextVar
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import yaml

# Context variable for trace_id (one per CLI invocation)
_trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

# Default configuration
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_DIR = os.path.join(".papershelf", "logs")
DEFAULT_LOG_FILE = "papershelf.log"
DEFAULT_MAX_BYTES = 1024 * 1024  # 1 MB
DEFAULT_BACKUP_COUNT = 3
DEFAULT_FORMAT = "{timestamp} [{level}] [{trace_id}] {filename}:{lineno} - {message}"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
# Config file in the same directory as this module
LOG_CONFIG_FILE = Path(__file__).parent / "log_config.yaml"


class _LogFilesMeta(type):
    """Metaclass to allow attribute access like LogFiles.INGEST."""

    def __getattr__(cls, name: str) -> str:
        cls._load()
        if name in cls._files:
            return cls._files[name]
        key = name.lower()
        if key in cls._files:
            return cls._files[key]
        raise AttributeError(f"Log file '{name}' not found in config")


class LogFiles(metaclass=_LogFilesMeta):
    """
    Log file paths loaded from src/papershelf/utils/log_config.yaml.

    Usage:
        Logger.info("Added paper 3", file=LogFiles.STORE)
        Logger.error("Fetch failed", file=LogFiles.ERROR)
    """

    _loaded = False
    _files: dict = {}

    @classmethod
    def _load(cls) -> None:
        if cls._loaded:
            return

        cls._files = {
            "store": "store.log",
            "ingest": "ingest.log",
            "migrate": "migrate.log",
            "cli": "cli.log",
            "error": "error.log",
        }

        if LOG_CONFIG_FILE.exists():
            with open(LOG_CONFIG_FILE, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
            if isinstance(config, dict) and isinstance(config.get("files"), dict):
                cls._files.update(config["files"])

        cls._loaded = True


LOG_LEVELS = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
    "CRITICAL": 50,
}

# Module-level state
_initialized = False
_config: dict = {}
_file_handlers: dict[str, RotatingFileHandler] = {}


def _get_config() -> dict:
    """Get logging configuration from environment variables."""
    return {
        "level": os.environ.get("PAPERSHELF_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        "base_dir": os.environ.get("PAPERSHELF_LOG_DIR", DEFAULT_LOG_DIR),
        "max_bytes": int(os.environ.get("PAPERSHELF_LOG_MAX_BYTES", DEFAULT_MAX_BYTES)),
        "backup_count": int(os.environ.get("PAPERSHELF_LOG_BACKUP_COUNT", DEFAULT_BACKUP_COUNT)),
    }


def _get_file_handler(file_path: str) -> RotatingFileHandler:
    """Get or create a file handler for the given path."""
    if file_path not in _file_handlers:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        handler = RotatingFileHandler(
            filename=str(path),
            maxBytes=_config.get("max_bytes", DEFAULT_MAX_BYTES),
            backupCount=_config.get("backup_count", DEFAULT_BACKUP_COUNT),
            encoding="utf-8",
        )
        _file_handlers[file_path] = handler

    return _file_handlers[file_path]


def _format_message(
    level: str,
    message: str,
    filename: str,
    lineno: int,
    trace_id: Optional[str] = None,
) -> str:
    timestamp = datetime.now().strftime(DEFAULT_DATE_FORMAT)
    tid = trace_id or _trace_id_var.get() or "-"
    return DEFAULT_FORMAT.format(
        timestamp=timestamp,
        level=level,
        trace_id=tid,
        filename=filename,
        lineno=lineno,
        message=message,
    )


def _resolve_file_path(file: Optional[str]) -> str:
    """Resolve the full file path for logging, relative to the log directory."""
    base_dir = _config.get("base_dir", DEFAULT_LOG_DIR)
    return str(Path(base_dir) / (file or DEFAULT_LOG_FILE))


def _should_log(level: str) -> bool:
    current_level = _config.get("level", DEFAULT_LOG_LEVEL)
    return LOG_LEVELS.get(level, 0) >= LOG_LEVELS.get(current_level, 0)


def _write_log(level: str, message: str, file: Optional[str] = None) -> None:
    if not _should_log(level):
        return

    # Skip _write_log and the public method to reach the caller
    frame = inspect.currentframe()
    caller_frame = frame.f_back.f_back if frame and frame.f_back else None

    if caller_frame:
        filename = os.path.basename(caller_frame.f_code.co_filename)
        lineno = caller_frame.f_lineno
    else:
        filename = "unknown"
        lineno = 0

    formatted = _format_message(level, message, filename, lineno)
    handler = _get_file_handler(_resolve_file_path(file))

    handler.acquire()
    try:
        if handler.maxBytes > 0 and handler.stream.tell() + len(formatted) + 1 >= handler.maxBytes:
            handler.doRollover()
        handler.stream.write(formatted + "\n")
        handler.stream.flush()
    finally:
        handler.release()


class Logger:
    """
    Static logger class for logging to routed files.

    Auto-initializes from the environment on first use. Errors logged with
    ``Logger.error`` are also copied to ``LogFiles.ERROR``.
    """

    @staticmethod
    def init(
        level: Optional[str] = None,
        base_dir: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
        *,
        force: bool = False,
    ) -> None:
        """
        Initialize the logging system.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            base_dir: Base directory for all log files
            max_bytes: Maximum size of each log file before rotation
            backup_count: Number of backup files to keep
            force: Re-initialize even if already initialized (closes open files)
        """
        global _initialized, _config

        if _initialized and not force:
            return
        if force:
            Logger.close()

        _config = _get_config()

        if level:
            _config["level"] = level.upper()
        if base_dir:
            _config["base_dir"] = str(base_dir)
        if max_bytes:
            _config["max_bytes"] = max_bytes
        if backup_count:
            _config["backup_count"] = backup_count

        _initialized = True

    @staticmethod
    def _ensure_init() -> None:
        if not _initialized:
            Logger.init()

    @staticmethod
    def debug(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("DEBUG", message, file)

    @staticmethod
    def info(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("INFO", message, file)

    @staticmethod
    def warning(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("WARNING", message, file)

    @staticmethod
    def error(message: str, file: Optional[str] = None) -> None:
        Logger._ensure_init()
        _write_log("ERROR", message, file)
        error_file = LogFiles.ERROR
        if file and file != error_file:
            _write_log("ERROR", message, error_file)

    @staticmethod
    def close() -> None:
        """Close all file handlers."""
        for handler in _file_handlers.values():
            handler.close()
        _file_handlers.clear()


# ============================================================================
# Trace ID Management
# ============================================================================

def generate_trace_id() -> str:
    return f"run-{uuid.uuid4().hex[:12]}"


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """
    Set the trace ID for the current context.

    If no trace_id is provided, generates a new one. Returns the trace_id
    that was set.
    """
    tid = trace_id or generate_trace_id()
    _trace_id_var.set(tid)
    return tid


def clear_trace_id() -> None:
    _trace_id_var.set(None)
