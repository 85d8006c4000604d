"""
Runscope Structured Logging

Provides structured logging with context propagation, JSON formatting,
and sensitive data redaction. The interactive terminal owns stdout, so the
TUI only logs when a log file is configured.
"""

import json
import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from urllib.parse import urlsplit, urlunsplit
from typing import Any, Dict, Generator, Optional


STANDARD_FIELDS = ("repo", "run_id", "job_id", "command")

_RESERVED_LOG_RECORD_ATTRS = set(
    logging.LogRecord(
        name="",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="",
        args=(),
        exc_info=None,
    ).__dict__.keys()
)
_RESERVED_LOG_RECORD_ATTRS.update({"asctime", "message"})


def _json_fallback(value: Any) -> str:  # pragma: no cover
    """Best-effort conversion for non-JSON-serializable values (Path, Exception, etc.)."""
    try:
        return str(value)
    except Exception:
        return repr(value)


_REDACTED = "[REDACTED]"
_SECRET_KEY_MARKERS = ("token", "secret", "password", "authorization", "bearer", "credential")


def _looks_sensitive_key(key: str) -> bool:
    lower = (key or "").lower()
    return any(marker in lower for marker in _SECRET_KEY_MARKERS)


def _strip_url_credentials(value: str) -> str:
    """Remove user:pass@ from URLs."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return value
    if not parts.scheme or not parts.netloc:
        return value
    if "@" not in parts.netloc:
        return value
    hostpart = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit((parts.scheme, hostpart, parts.path, parts.query, parts.fragment))


def _sanitize_for_logging(key: str, value: Any) -> Any:
    """Sanitize a value for safe logging (redact secrets, strip credentials)."""
    if _looks_sensitive_key(key):
        return _REDACTED
    if isinstance(value, str):
        return _strip_url_credentials(value)
    if isinstance(value, dict):
        return {k: _sanitize_for_logging(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_for_logging(key, v) for v in value]
    return value


_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("RUNSCOPE_LOG_CONTEXT", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the current log context to avoid accidental mutation."""
    return dict(_LOG_CONTEXT.get() or {})


@contextmanager
def log_context(**fields: Any) -> Generator[None, None, None]:
    """Context manager for temporarily adding fields to the log context."""
    token = _LOG_CONTEXT.set({**get_log_context(), **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


class ContextFilter(logging.Filter):
    """
    Logging filter that ensures all standard context fields exist on every log record.

    Context fields set through ``log_context`` are copied
    onto the record; missing standard fields default to "-".
    """

    def __init__(self, defaults: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self.defaults = {field: "-" for field in STANDARD_FIELDS}
        if defaults:
            self.defaults.update({k: v for k, v in defaults.items() if v is not None})

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_log_context()
        for key, value in ctx.items():
            if value is None or key in _RESERVED_LOG_RECORD_ATTRS:
                continue
            if not hasattr(record, key):
                setattr(record, key, value)
        for key, default in self.defaults.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        return True


class JsonFormatter(logging.Formatter):
    """JSON log formatter that includes all context fields and sanitizes sensitive data."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting
        data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STANDARD_FIELDS:
            data[field] = getattr(record, field, "-")
        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_ATTRS or key in data:
                continue
            data[key] = value
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        sanitized = {k: _sanitize_for_logging(k, v) for k, v in data.items()}
        return json.dumps(sanitized, default=_json_fallback)


TEXT_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(message)s "
    "repo=%(repo)s run=%(run_id)s job=%(job_id)s cmd=%(command)s"
)


def setup_logging(
    level: Optional[str] = None,
    json_output: bool = False,
    log_file: Optional[str] = None,
    silent: bool = False,
) -> logging.Logger:
    """
    Configure the root logger with structured logging support.

    Args:
        level: Log level (default: from RUNSCOPE_LOG_LEVEL or INFO)
        json_output: If True, use JSON formatting; otherwise use text format
        log_file: Write records to this file instead of stderr
        silent: Discard records when no log file is given (full-screen mode)

    Returns:
        The runscope logger instance
    """
    resolved_level = level or os.environ.get("RUNSCOPE_LOG_LEVEL") or "INFO"

    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    elif silent:
        handler = logging.NullHandler()
    else:
        handler = logging.StreamHandler()
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = []
    root.setLevel(getattr(logging, str(resolved_level).upper(), logging.INFO))
    root.addHandler(handler)
    # httpx logs every request at INFO; keep it for debugging only.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("runscope")


def get_logger(name: str = "runscope") -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def init_cli_logging(
    level: Optional[str] = None, json_output: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """Initialize logging for one-shot CLI commands (records go to stderr)."""
    return setup_logging(
        level or os.environ.get("RUNSCOPE_LOG_LEVEL") or "INFO",
        json_output=json_output,
        log_file=log_file or os.environ.get("RUNSCOPE_LOG_FILE") or None,
    )


def init_tui_logging(
    level: Optional[str] = None, json_output: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """Initialize logging for the full-screen UI; records only reach RUNSCOPE_LOG_FILE."""
    return setup_logging(
        level or os.environ.get("RUNSCOPE_LOG_LEVEL") or "INFO",
        json_output=json_output,
        log_file=log_file or os.environ.get("RUNSCOPE_LOG_FILE") or None,
        silent=True,
    )


def log_extra(
    *,
    repo: Optional[str] = None,
    run_id: Optional[int] = None,
    job_id: Optional[int] = None,
    command: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build a consistent extra dict for structured logging.

    Only non-None values are included so defaults from ContextFilter still apply.

    Example:
        log.info("jobs_fetched", extra=log_extra(repo="o/r", run_id=42, count=3))
    """
    payload: Dict[str, Any] = {}
    if repo is not None:
        payload["repo"] = repo
    if run_id is not None:
        payload["run_id"] = run_id
    if job_id is not None:
        payload["job_id"] = job_id
    if command is not None:
        payload["command"] = command
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload


# Process exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_NO_RUN = 2
