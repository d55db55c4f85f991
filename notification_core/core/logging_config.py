"""Logging configuration.

Provides structured, rotating logs with optional JSON output. Binds lightweight contextvars
(job_name/run_id/user_id) to every record so lines emitted from inside a scheduled task
or a manual trigger can be correlated with the run that produced them.
"""

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Context variables bound by the scheduler invocation wrapper and operator triggers
job_name_ctx: ContextVar[Optional[str]] = ContextVar("job_name", default=None)
run_id_ctx: ContextVar[Optional[str]] = ContextVar("run_id", default=None)
user_id_ctx: ContextVar[Optional[int]] = ContextVar("user_id", default=None)

_CONTEXT_VARS = {
    "job_name": job_name_ctx,
    "run_id": run_id_ctx,
    "user_id": user_id_ctx,
}

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """Emit logs as JSON for aggregation (ELK/Splunk/etc.)."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key in ("job_name", "run_id", "user_id", "notification_id", "token_id"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Add ANSI colors to console output for local readability."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        result = super().format(record)
        record.levelname = levelname
        return result


class ContextEnricher(logging.Filter):
    """Inject contextvars (job_name, run_id, user_id) into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, var in _CONTEXT_VARS.items():
            value = var.get()
            if value is not None and not hasattr(record, key):
                setattr(record, key, value)
        return True


def bind_job_context(
    *,
    job_name: Optional[str] = None,
    run_id: Optional[str] = None,
    user_id: Optional[int] = None,
):
    """Bind job context into contextvars; returns tokens for reset."""
    tokens = []
    if job_name is not None:
        tokens.append(("job_name", job_name_ctx.set(job_name)))
    if run_id is not None:
        tokens.append(("run_id", run_id_ctx.set(run_id)))
    if user_id is not None:
        tokens.append(("user_id", user_id_ctx.set(user_id)))
    return tokens


def reset_job_context(tokens) -> None:
    """Reset bound contextvars using tokens returned by bind_job_context."""
    for key, token in reversed(tokens):
        _CONTEXT_VARS[key].reset(token)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    app_name: str = "notification_core",
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
    use_json: bool = False,
    use_colors: bool = True,
) -> None:
    """Configure root logging.

    Args:
        log_level: Minimum logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory to store log files; if None, logs only to console.
        app_name: Application name used in log filenames.
        max_bytes: Max size per log file before rotation.
        backup_count: Number of rotated files to keep.
        use_json: If True, use JSON for file handlers.
        use_colors: If True, add ANSI colors to console output.
    """
    level = getattr(logging, log_level.upper())

    def _reset_handlers(logger: logging.Logger) -> None:
        """Close and remove any existing handlers to avoid descriptor leaks."""
        for handler in list(logger.handlers):
            try:
                handler.flush()
            finally:
                handler.close()
                logger.removeHandler(handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _reset_handlers(root_logger)
    for existing in list(root_logger.filters):
        if isinstance(existing, ContextEnricher):
            root_logger.removeFilter(existing)
    context_filter = ContextEnricher()
    root_logger.addFilter(context_filter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    formatter_cls = ColoredFormatter if use_colors else logging.Formatter
    console_handler.setFormatter(formatter_cls(_TEXT_FORMAT, datefmt=_DATE_FORMAT))
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        general_handler = logging.handlers.RotatingFileHandler(
            log_path / f"{app_name}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )
        general_handler.setLevel(logging.DEBUG)

        # ERROR and CRITICAL only
        error_handler = logging.handlers.RotatingFileHandler(
            log_path / f"{app_name}_error.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )
        error_handler.setLevel(logging.ERROR)

        for handler in (general_handler, error_handler):
            if use_json:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt=_DATE_FORMAT))
            handler.addFilter(context_filter)
            root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(
        f"Logging configured. Level: {log_level}, Directory: {log_dir or 'console only'}"
    )


__all__ = [
    "ColoredFormatter",
    "ContextEnricher",
    "JSONFormatter",
    "bind_job_context",
    "reset_job_context",
    "setup_logging",
]
