"""Numeric process exit codes used by the diagnostic CLI.

Each constant maps to one error category and is referenced by the
corresponding :class:`~bamboohr_shim.exceptions.BambooHRError` subclass, so
shell wrappers can tell failure classes apart without parsing stderr.

Example::

    $ bamboohr-shim request GET /employees/999
    $ echo $?
    4   # EXIT_NOT_FOUND -- the employee does not exist
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including configuration problems)."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an undecodable payload."""

EXIT_AUTH_FAILURE = 3
"""The API key was rejected (401) or lacks permission (403)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_API_ERROR = 5
"""The upstream API returned a non-2xx status outside the other categories."""

EXIT_NETWORK_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_RATE_LIMITED = 7
"""The upstream API kept rate limiting after every retry was used."""
