"""Logging configuration for the Backup Relay service.

This module configures the root logger with:
- A custom TRACE level.
- Console output.
- Rotating file output under /app/logs (by default), including separate
  error-only and daily log files for easier triage of failed relay runs.
- A filter that masks configured secrets (SFTP/WebDAV/SMTP passwords, API keys)
  in every record before it reaches a handler.

The configuration is safe to call multiple times.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional


TRACE_LEVEL_NUM = 5
REDACTED = "<redacted>"


def _install_trace_level() -> None:
    """Install the TRACE logging level and `Logger.trace` helper."""

    if logging.getLevelName(TRACE_LEVEL_NUM) != "TRACE":
        logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")

    if not hasattr(logging.Logger, "trace"):

        def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
            if self.isEnabledFor(TRACE_LEVEL_NUM):
                self._log(TRACE_LEVEL_NUM, message, args, **kwargs)

        logging.Logger.trace = trace  # type: ignore[attr-defined]


class SecretRedactingFilter(logging.Filter):
    """Replace known secret values in log messages with a placeholder."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._secrets: List[str] = sorted({s for s in secrets if s and len(s) >= 4}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True

        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            if secret in redacted:
                redacted = redacted.replace(secret, REDACTED)

        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _resolve_level(log_level: str, debug: bool) -> int:
    """Resolve a level name to its numeric value.

    Raises:
        ValueError: When the provided log_level is invalid.
    """

    name = str(log_level or "").strip().upper()
    if not name:
        name = "DEBUG" if debug else "INFO"

    if name == "TRACE":
        return TRACE_LEVEL_NUM

    level = getattr(logging, name, None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


def _attach(root: logging.Logger, handler: logging.Handler, *, level: int, formatter: logging.Formatter,
            redactor: logging.Filter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(redactor)
    handler._backup_relay_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def configure_logging(
    *,
    log_dir: str = "/app/logs",
    log_level: str = "INFO",
    debug: bool = False,
    log_filename: str = "backup-relay.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    secrets: Iterable[str] = (),
) -> None:
    """Configure application-wide logging.

    Args:
        log_dir: Directory where log files are stored.
        log_level: Root log level name (e.g. INFO, DEBUG, TRACE).
        debug: When True, defaults to DEBUG unless log_level explicitly overrides it.
        log_filename: Log file name (within log_dir).
        max_bytes: Rotate the log file after this size.
        backup_count: Number of rotated files to keep.
        secrets: Values that must never appear in log output.

    Raises:
        ValueError: When the provided log_level is invalid.
    """

    _install_trace_level()

    root = logging.getLogger()
    if getattr(root, "_backup_relay_logging_configured", False):
        return

    resolved_level = _resolve_level(log_level, debug)
    root.setLevel(resolved_level)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    redactor = SecretRedactingFilter(secrets)

    _attach(root, logging.StreamHandler(), level=resolved_level, formatter=formatter, redactor=redactor)

    stem = Path(log_filename).stem
    ext = Path(log_filename).suffix or ".log"
    base = Path(log_dir)
    try:
        base.mkdir(parents=True, exist_ok=True)
        _attach(
            root,
            RotatingFileHandler(base / log_filename, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"),
            level=resolved_level,
            formatter=formatter,
            redactor=redactor,
        )
        _attach(
            root,
            RotatingFileHandler(base / f"{stem}.error{ext}", maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"),
            level=logging.ERROR,
            formatter=formatter,
            redactor=redactor,
        )
        for name, level in ((f"{stem}.day{ext}", resolved_level), (f"{stem}.day.error{ext}", logging.ERROR)):
            daily = TimedRotatingFileHandler(
                base / name,
                when="midnight",
                backupCount=backup_count,
                utc=True,
                encoding="utf-8",
            )
            daily.suffix = "%Y-%m-%d"
            _attach(root, daily, level=level, formatter=formatter, redactor=redactor)
    except OSError:
        logging.getLogger(__name__).warning(
            "Failed to configure file logging under %s; continuing with console-only logging",
            log_dir,
        )

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True

    # paramiko logs every channel event at INFO
    logging.getLogger("paramiko").setLevel(max(resolved_level, logging.WARNING))

    logging.captureWarnings(True)
    root._backup_relay_logging_configured = True  # type: ignore[attr-defined]


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger instance."""

    return logging.getLogger(name or __name__)
