"""
Logger Utility
==============

Context-tagged, color-coded logging shared by every ClipMind component.

Each module creates its own logger with a component name, so a single
pipeline run reads like a trace through the stages:

    [2026-01-31T10:30:00] [INFO] [Orchestrator] Pipeline start session=...
    [2026-01-31T10:30:00] [INFO] [Intent] Recognized video_analysis (0.92)
    [2026-01-31T10:30:01] [WARN] [ToolSelector] Dropping unknown tool: foo

Levels are filtered by the LOG_LEVEL environment variable (DEBUG, INFO,
WARNING, ERROR). Errors go to stderr, everything else to stdout.

Usage:
    from clipmind.utils.logger import Logger

    logger = Logger("Memory")
    logger.info("Stored memory", {"session": "abc", "tier": "short_term"})

    stage_logger = logger.child("Compressor")
    stage_logger.debug("Compressing 12 entries")
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Numeric log levels; a message is shown when its level >= the minimum."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


_LEVEL_NAMES = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}


def _get_log_level_from_env() -> LogLevel:
    """Read LOG_LEVEL from the environment, defaulting to INFO."""
    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    return _LEVEL_NAMES.get(level_str, LogLevel.INFO)


class Logger:
    """
    A component-scoped logger.

    Example:
        logger = Logger("ToolExecutor")
        logger.info("Executing tool: get_video_info")

        child = logger.child("video_info")
        child.warning("Slow response", {"duration_ms": 8200})
        # -> [ToolExecutor:video_info] Slow response
    """

    def __init__(self, context: str = ""):
        """
        Args:
            context: Component name prefixed to every message
        """
        self.context = context
        self._min_level = _get_log_level_from_env()

    def child(self, child_context: str) -> "Logger":
        """Create a logger whose context is nested under this one."""
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context)

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Check whether a message at `level` would be emitted."""
        return level >= self._min_level

    def _format_message(self, level: str, message: str, color: str) -> str:
        """Format as: [TIMESTAMP] [LEVEL] [context] message"""
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if level < self._min_level:
            return

        formatted = self._format_message(level_name, message, color)

        stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout
        print(formatted, file=stream)

        if data:
            data_str = json.dumps(data, indent=2, default=str, ensure_ascii=False)
            print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log detailed diagnostics (shown only with LOG_LEVEL=DEBUG)."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log normal operational events."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """
        Log a degraded-but-recovered condition.

        Fallback paths (rule-based intent, template synthesis, empty tool
        set) log at this level so they are visible without being errors.
        """
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: Exception | None = None) -> None:
        """
        Log a failure, optionally with the exception that caused it.

        Args:
            message: What failed
            error: The exception; its type and message are included
        """
        data = None
        if error:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


# Default logger for code without a natural component name
logger = Logger("ClipMind")
