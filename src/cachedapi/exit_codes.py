"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachedapi.exceptions.CachedApiError` subclass.
Shell scripts driving the ``cachedapi`` CLI can inspect the exit code to
tell a throttled read apart from a rejected credential without parsing
stderr.

Example::

    $ cachedapi get /classes -P instituteId=I1
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the stored token was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The API rejected the stored credential (HTTP 401)."""

EXIT_NOT_CONFIGURED = 4
"""No API base URL is configured."""

EXIT_NETWORK_FAILURE = 5
"""The API returned a non-2xx status or the transport failed."""

EXIT_COOLDOWN = 6
"""The request was throttled and no cached value could be served."""
