"""Console logging, structlog configuration and the activity log.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Core log functions (log, info, warn, error)
3. Domain-specific helpers (source_unavailable, activity_log_failed, etc.)
4. Structlog configuration (configure, get_structlog)
5. ActivityLog, the append-only "[timestamp] message" text log

Console output uses Rich markup. Errors go to stderr. JSON file output via
structlog stays separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.markup import escape

from sysmonitor.procfs import LoggingFailure

if TYPE_CHECKING:
    from sysmonitor.config import Config

_console = Console(highlight=False)
_err_console = Console(stderr=True, highlight=False)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    FAIL = "[bold red]✗[/]"


_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error); errors go to stderr
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.FAIL)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    console = _err_console if level == "error" else _console
    console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def source_unavailable(detail: str) -> None:
    """Log a counter source that could not be read."""
    error(escape(detail), Icon.FAIL)


def activity_log_failed(detail: str) -> None:
    """Log an activity log write failure."""
    error(f"Activity log: {escape(detail)}", Icon.FAIL)


def invalid_interval(low: int, high: int) -> None:
    """Log a rejected --continuous interval."""
    error(f"Invalid interval. Please provide a value between {low} and {high}.")


def memory_reading_degraded(total_kb: int, available_kb: int) -> None:
    """Log MemAvailable exceeding MemTotal."""
    warn(
        f"MemAvailable ({available_kb} kB) exceeds MemTotal ({total_kb} kB); "
        "used memory is negative"
    )


def memtotal_missing() -> None:
    """Log a meminfo source without MemTotal."""
    warn("MemTotal not found in meminfo")


def config_invalid(detail: str) -> None:
    """Log an unreadable config file."""
    error(f"Config error: {escape(detail)}", Icon.FAIL)


def config_created(path: str) -> None:
    """Log config file created."""
    info(f"Created config at [cyan]{escape(path)}[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Activity Log
# ─────────────────────────────────────────────────────────────────────────────


class ActivityLog:
    """Append-only text log, one "[<ctime>] <message>" line per event.

    The file is opened per write. Failures are reported on the error channel
    and never raised to the caller.
    """

    def __init__(
        self,
        path: Path,
        clock: Callable[[], float] = time.time,
        on_failure: Callable[[LoggingFailure], None] | None = None,
    ) -> None:
        self.path = path
        self._clock = clock
        self._on_failure = on_failure or (lambda e: activity_log_failed(str(e)))

    def format_line(self, message: str) -> str:
        """Return the log line for message, newline included."""
        return f"[{time.ctime(self._clock())}] {message}\n"

    def write(self, message: str) -> bool:
        """Append message to the log. Returns False if the write failed."""
        line = self.format_line(message)
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            failure = LoggingFailure(f"Error writing to {self.path}: {e.strerror or e}")
            get_structlog().warning("activity_log_failed", path=str(self.path), error=str(e))
            self._on_failure(failure)
            return False
        get_structlog().info("activity", message=message)
        return True


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config, level: int = logging.INFO) -> None:
    """Configure structlog to write JSON lines to the rotating diagnostic log.

    Console output is handled by Rich (see log functions above); structlog
    only writes to the file.

    Args:
        config: Application config with paths and rotation limits
        level: Minimum level written to the file
    """
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.logging.log_max_bytes,
        backupCount=config.logging.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(level)
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("sysmonitor"),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source("sysmonitor"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_structlog() -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for the JSON diagnostic log."""
    return structlog.get_logger()
