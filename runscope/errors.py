"""
Runscope Error Hierarchy

Base error and specific error types for all runscope components.
Errors carry metadata for structured logging; remote-call failures are
additionally classified (auth, not found, rate limit, transient) so the
retry policy and the session controller can react to them.
"""

from enum import Enum
from typing import Any, Dict, Optional


class RunscopeError(RuntimeError):
    """
    Base error for runscope components. Carries metadata for structured logging.

    Attributes:
        category: Error category for classification (e.g., "api", "config")
        retryable: Whether the operation can be retried
        metadata: Additional context for logging and debugging
    """

    category: str = "runtime"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable


class ConfigError(RunscopeError):
    """Raised when configuration (sources, config file, flags) is invalid."""

    category = "config"


class GitHubAPIError(RunscopeError):
    """Raised when the API returns an error response or the transport fails."""

    category = "api"

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class LogArchiveError(RunscopeError):
    """Raised when a downloaded log bundle cannot be decoded."""

    category = "logs"


class NoRunsError(RunscopeError):
    """Raised when no workflow run could be resolved."""

    category = "runs"


class HookError(RunscopeError):
    """Raised when a notification hook is missing or not executable."""

    category = "hook"


# =============================================================================
# Classification
# =============================================================================

class ErrorKind(str, Enum):
    AUTH = "auth"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    OPAQUE = "opaque"


class ClassifiedError(RunscopeError):
    """
    An error tagged with its taxonomy kind.

    The original error stays reachable through ``original`` (and ``__cause__``
    when raised with ``from``).
    """

    kind: ErrorKind = ErrorKind.OPAQUE
    category = "api"

    def __init__(self, message: str, original: BaseException) -> None:
        super().__init__(message, metadata=getattr(original, "metadata", None))
        self.original = original


class AuthError(ClassifiedError):
    kind = ErrorKind.AUTH


class NotFoundError(ClassifiedError):
    kind = ErrorKind.NOT_FOUND


class RateLimitError(ClassifiedError):
    kind = ErrorKind.RATE_LIMIT


class TransientError(ClassifiedError):
    kind = ErrorKind.TRANSIENT
    retryable = True


class RetryExhaustedError(RunscopeError):
    """Raised when every attempt of a retried call failed with a transient error."""

    category = "retry"

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"failed after {attempts} retries: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def classify_error(exc: BaseException) -> BaseException:
    """
    Tag an error with its taxonomy kind by inspecting its text.

    Unmatched errors (and errors that are already classified) are returned
    unchanged.
    """
    if isinstance(exc, (ClassifiedError, RetryExhaustedError)):
        return exc
    text = str(exc)
    lower = text.lower()

    if "401" in text:
        return AuthError(f"authentication failed: {text}", exc)
    if "403" in text:
        if "rate limit" in lower:
            return RateLimitError(f"rate limit exceeded: {text}", exc)
        return AuthError(f"access forbidden: {text}", exc)
    if "404" in text:
        return NotFoundError(f"not found: {text}", exc)
    if "429" in text:
        return RateLimitError(f"rate limit exceeded: {text}", exc)
    if "502" in text or "503" in text or "504" in text:
        return TransientError(f"server error (will retry): {text}", exc)
    if "timeout" in lower or "connection" in lower:
        return TransientError(f"network error (will retry): {text}", exc)
    return exc


def error_kind(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ClassifiedError):
        return exc.kind
    return ErrorKind.OPAQUE


# Ordered (markers, hint) pairs; the first pair with a matching marker wins.
_HINTS = (
    (
        ("401", "authentication", "bad credentials", "unauthorized"),
        "Authentication failed - set GITHUB_TOKEN (or RUNSCOPE_TOKEN) to a token with repo and workflow scopes",
    ),
    (
        ("rate limit", "429", "too many requests"),
        "API rate limit exceeded - wait a few minutes before retrying",
    ),
    (
        ("403", "forbidden"),
        "Check that you have access to this repository and the correct permissions",
    ),
    (
        ("404", "not found"),
        "Verify the repository exists and the branch name is correct",
    ),
    (
        ("timeout", "connection", "network"),
        "Network connectivity issue - check your internet connection and try again",
    ),
    (
        ("500", "502", "503", "504", "server error"),
        "GitHub servers are temporarily unavailable - try again in a moment",
    ),
    (
        ("no workflow runs", "no runs"),
        "No CI runs found - push a commit or check that workflows are configured for this branch",
    ),
    (
        ("detached head",),
        "Currently in detached HEAD state - checkout a branch or use --branch flag",
    ),
)

DEFAULT_HINT = "Press 'r' to retry the operation or check your configuration"


def error_hint(exc: BaseException) -> str:
    """Map a surfaced error to an actionable suggestion for the error screen."""
    lower = str(exc).lower()
    for markers, hint in _HINTS:
        if any(marker in lower for marker in markers):
            return hint
    return DEFAULT_HINT
