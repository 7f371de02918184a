"""
Logging utilities for Sticker Sheet.

Provides file-based logging that:
- Writes to logs/sticker_sheet.log in the project root
- Wipes the log on each program restart
- Captures uncaught exceptions
- Logs pipeline stage transitions, API calls and errors

Library callers that never run setup_logging() get the plain "sticker_sheet"
logger with no handlers attached, so nothing is written to disk.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from .config import APP_NAME, APP_VERSION

LOGGER_NAME = "sticker_sheet"

# Project root (parent of src/)
LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"
LOG_FILE = LOG_DIR / "sticker_sheet.log"

_logger: Optional[logging.Logger] = None
_initialized = False


def _ensure_log_dir(log_dir: Path) -> None:
    """Ensure the log directory exists."""
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"[WARN] Could not create log directory: {e}")


def setup_logging(log_file: Optional[Path] = None, console_level: int = logging.INFO) -> logging.Logger:
    """
    Initialize the logging system.

    Call this once at application startup. The log file is wiped on each restart.

    Args:
        log_file: Override for the log file location (defaults to LOG_FILE).
        console_level: Level for the stdout handler.

    Returns:
        The configured logger instance.
    """
    global _logger, _initialized

    if _initialized and _logger:
        return _logger

    log_file = Path(log_file) if log_file else LOG_FILE
    _ensure_log_dir(log_file.parent)

    _logger = logging.getLogger(LOGGER_NAME)
    _logger.setLevel(logging.DEBUG)
    _logger.handlers.clear()

    # File handler - 'w' mode wipes the file on each restart
    try:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        _logger.addHandler(file_handler)
    except OSError as e:
        print(f"[WARN] Could not set up file logging: {e}")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
    _logger.addHandler(console_handler)

    _logger.info("=" * 60)
    _logger.info(f"{APP_NAME} v{APP_VERSION} started")
    _logger.info(f"Log file: {log_file}")
    _logger.info(f"Python version: {sys.version}")
    _logger.info("=" * 60)

    _setup_exception_handler()

    _initialized = True
    return _logger


def _setup_exception_handler() -> None:
    """Set up global exception handler to log uncaught exceptions."""
    original_excepthook = sys.excepthook

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            original_excepthook(exc_type, exc_value, exc_traceback)
            return

        if _logger:
            _logger.critical("Uncaught exception:", exc_info=(exc_type, exc_value, exc_traceback))

        original_excepthook(exc_type, exc_value, exc_traceback)

    sys.excepthook = exception_handler


def get_logger() -> logging.Logger:
    """Get the package logger (configured or not)."""
    if _initialized and _logger:
        return _logger
    return logging.getLogger(LOGGER_NAME)


# Convenience functions for direct logging
def log_debug(message: str) -> None:
    """Log a debug message."""
    get_logger().debug(message)


def log_info(message: str) -> None:
    """Log an info message."""
    get_logger().info(message)


def log_warning(message: str) -> None:
    """Log a warning message."""
    get_logger().warning(message)


def log_error(message: str, detail: str = "", exc_info: bool = False) -> None:
    """
    Log an error message.

    Args:
        message: The error message (or context label if detail is provided)
        detail: Optional detail string appended after ": "
        exc_info: If True, include exception traceback
    """
    if detail:
        message = f"{message}: {detail}"
    get_logger().error(message, exc_info=exc_info)


def log_exception(message: str) -> None:
    """Log an error with full exception traceback."""
    get_logger().exception(message)


def log_api_call(endpoint: str, success: bool, details: str = "") -> None:
    """
    Log an API call for debugging.

    Args:
        endpoint: The API endpoint or operation name
        success: Whether the call succeeded
        details: Additional details (error message, etc.)
    """
    status = "SUCCESS" if success else "FAILED"
    msg = f"API [{status}] {endpoint}"
    if details:
        msg += f" - {details}"

    if success:
        get_logger().info(msg)
    else:
        get_logger().error(msg)


def log_stage(stage: str, detail: str = "") -> None:
    """Log a pipeline stage transition."""
    msg = f"Stage -> {stage}"
    if detail:
        msg += f" ({detail})"
    get_logger().debug(msg)