"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~tokenward.exceptions.TokenwardError` subclass.
Shell wrappers can inspect the exit code to tell an expired device code
from a network outage without parsing stderr.

Example::

    $ tokenward token get github.com:me
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the refresh token was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authorization, token exchange or token refresh failed."""

EXIT_NOT_FOUND = 4
"""No token or provider exists under the requested name."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORAGE_ERROR = 8
"""The credential store or a refresh lock file could not be read or written."""

EXIT_CANCELLED = 130
"""The user interrupted the command (Ctrl-C)."""
