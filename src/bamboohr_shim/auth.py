"""HTTP Basic authentication for the HR platform API.

The platform expects the API key as the Basic-auth username and a literal
``x`` as the password. The header value is rebuilt for every request from
the immutable :class:`~bamboohr_shim.models.Credentials`.
"""

from __future__ import annotations

import base64

from bamboohr_shim.models import Credentials

BASIC_AUTH_PASSWORD = "x"


class AuthResult:
    """Container for the headers an authenticated request must carry.

    Args:
        headers: HTTP headers to add (e.g. ``{"Authorization": "Basic ..."}``).
    """

    def __init__(self, headers: dict[str, str] | None = None):
        self.headers = headers or {}


def basic_auth_header(credentials: Credentials) -> str:
    """Return the ``Authorization`` header value for *credentials*.

    Example::

        >>> basic_auth_header(Credentials(api_key="key", subdomain="acme"))
        'Basic a2V5Ong='
    """
    raw = f"{credentials.api_key}:{BASIC_AUTH_PASSWORD}"
    encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


def authenticate(credentials: Credentials) -> AuthResult:
    """Build the auth artifacts for one outgoing request."""
    return AuthResult(headers={"Authorization": basic_auth_header(credentials)})
