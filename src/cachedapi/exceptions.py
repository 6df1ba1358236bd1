"""Exception hierarchy for cachedapi.

All exceptions inherit from :class:`CachedApiError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cachedapi.exit_codes`.
Library callers catch the specific subclasses; the CLI entry point in
:func:`cachedapi.app.main` catches ``CachedApiError`` and exits with the
appropriate code.

Subclass hierarchy::

    CachedApiError (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- NotConfiguredError      (exit 4)
    +-- CooldownExhaustedError  (exit 6)
    +-- NetworkFailureError     (exit 5)
    |   +-- AuthFailureError    (exit 3)
    +-- ConfigError             (exit 1)

Cache Store and registry failures never surface as exceptions; they are
logged and degrade to a cache miss.
"""

from __future__ import annotations

from typing import Optional

from cachedapi.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_COOLDOWN,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_FAILURE,
    EXIT_NOT_CONFIGURED,
)


class CachedApiError(Exception):
    """Base exception for all cachedapi errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CachedApiError):
    """Raised for malformed CLI arguments (bad ``key=value`` pairs, invalid JSON bodies)."""

    exit_code = EXIT_INVALID_USAGE


class NotConfiguredError(CachedApiError):
    """Raised when no API base URL is configured. Never retried."""

    exit_code = EXIT_NOT_CONFIGURED


class CooldownExhaustedError(CachedApiError):
    """Raised when a read is throttled by the cooldown window and no cached value exists.

    Retryable once the cooldown window has elapsed.

    Args:
        key: The request key that was throttled.
        retry_after: Seconds until the cooldown window closes.
    """

    exit_code = EXIT_COOLDOWN

    def __init__(self, key: str, retry_after: float = 0.0):
        super().__init__(
            f"Request in cooldown period and no cache available: {key}"
        )
        self.key = key
        self.retry_after = retry_after


class NetworkFailureError(CachedApiError):
    """Raised on a non-2xx response or a transport-level failure.

    Args:
        message: Human-readable description, e.g. ``"HTTP 500: Internal Server Error"``.
        status_code: HTTP status, or ``None`` when no response was received.
        text: Response body text (truncated), if any.
    """

    exit_code = EXIT_NETWORK_FAILURE

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        text: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.text = text


class AuthFailureError(NetworkFailureError):
    """Raised on HTTP 401 after the stored credential and user cache have been cleared."""

    exit_code = EXIT_AUTH_FAILURE


class ConfigError(CachedApiError):
    """Raised for configuration problems (invalid JSON, schema violations)."""

    exit_code = EXIT_GENERIC_FAILURE
