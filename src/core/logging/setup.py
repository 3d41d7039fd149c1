"""Logging setup and configuration."""

import io
import logging
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.filters import RedactionFilter
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiohttp",
    "aiohttp.access",
    "asyncio",
    "urllib3",
]


def get_log_file_path(log_dir: Path, name: str, stage: str | None = None) -> Path:
    """
    Build log file path organized by date.

    Example:
        logs/2026-10-19/provisioning_sync_1019_1430.log
    """
    now = datetime.now()
    parts = [name]
    if stage:
        parts.append(stage)
    parts.append(now.strftime("%m%d_%H%M"))
    return log_dir / now.strftime("%Y-%m-%d") / ("_".join(parts) + ".log")


def setup_logging(
    name: str = "provisioning",
    stage: str | None = None,
    realm: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    log_to_stdout: bool = True,
) -> logging.Logger:
    """
    Configure logging with a console handler and an optional rotating file handler.

    Every handler carries a RedactionFilter so access tokens, refresh tokens,
    code verifiers and passwords never reach a sink.

    Args:
        name: Logger name and log file prefix
        stage: Stage name for context (parse/sync/login)
        realm: Identity realm for context
        log_dir: Directory for log files (default: ./logs)
        json_format: Use JSON format for file logs (default: True)
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        rotation_when: When to rotate logs (default: midnight)
        backup_count: Number of backup files to keep (default: 7)
        suppress_noisy: Quiet down HTTP client loggers
        log_to_stdout: Console only, no file handler (default: True)

    Returns:
        Configured logger instance
    """
    if stage:
        set_log_context(stage=stage)
    if realm:
        set_log_context(realm=realm)

    redaction = RedactionFilter()

    if sys.platform == "win32":
        safe_stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
        console_handler = logging.StreamHandler(safe_stdout)
    else:
        console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ConsoleFormatter())
    console_handler.addFilter(redaction)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if not log_to_stdout:
        log_file = get_log_file_path(log_dir or DEFAULT_LOG_DIR, name, stage)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        if json_format:
            file_formatter = JSONFormatter()
        else:
            file_formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )

        file_handler = TimedRotatingFileHandler(
            log_file,
            when=rotation_when,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(file_formatter)
        file_handler.addFilter(redaction)
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        "Logging initialized",
        extra={"stage": stage or "", "realm": realm or ""},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance. Use module __name__ for consistency."""
    return logging.getLogger(name)
