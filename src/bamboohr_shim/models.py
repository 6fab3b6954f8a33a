"""Canonical Pydantic models shared across bamboohr-shim.

The models fall into two groups:

**Configuration models** -- built once per process by
:func:`~bamboohr_shim.config.resolve_settings`:
    :class:`Credentials`, :class:`RequestConfig`, :class:`CacheConfig`, and
    :class:`ClientSettings`.

**Request models** -- short-lived values used by the client:
    :class:`HTTPMethod`, :class:`ReportFormat`, :class:`RequestDescriptor`,
    and :class:`UploadResult`.

Request and response bodies are deliberately left as open
``dict[str, Any]`` mappings; the client does not know the vendor's
resource shapes.
"""

from __future__ import annotations

import enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


QueryValue = Union[str, int, float, bool]
"""Allowed query-parameter value types."""


# --- Configuration ---


class Credentials(BaseModel):
    """API key and account subdomain, fixed for the lifetime of a client.

    The platform authenticates with HTTP Basic auth using the API key as
    the username and a literal ``x`` as the password.

    Example::

        Credentials(api_key="abc123", subdomain="acme")
    """

    model_config = ConfigDict(frozen=True)

    api_key: str = Field(description="API key generated in the HR platform")
    subdomain: str = Field(
        description="Company subdomain, e.g. 'acme' for acme.bamboohr.com"
    )

    @field_validator("api_key", "subdomain")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    def __repr__(self) -> str:
        return f"Credentials(api_key='***', subdomain={self.subdomain!r})"


class RequestConfig(BaseModel):
    """HTTP request and retry settings."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    max_retries: int = Field(default=3, ge=0, description="Max retry attempts")
    backoff_initial: float = Field(
        default=1.0, description="First backoff delay in seconds"
    )
    backoff_max: float = Field(default=8.0, description="Backoff delay cap in seconds")
    backoff_jitter: float = Field(
        default=1.0, description="Upper bound of random jitter added to each delay"
    )


class CacheConfig(BaseModel):
    """GET response cache settings."""

    enabled: bool = Field(default=True, description="Enable response caching")
    ttl_seconds: float = Field(default=300, description="Cache TTL in seconds")


class ClientSettings(BaseModel):
    """Everything a :class:`~bamboohr_shim.client.BambooHRClient` needs.

    ``base_url`` overrides the URL derived from the subdomain; it exists for
    proxies and test servers.
    """

    credentials: Credentials
    base_url: Optional[str] = Field(
        default=None, description="Override the derived API base URL"
    )
    vendor_host: str = "bamboohr.com"
    api_version: str = "v1"
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @property
    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return (
            f"https://{self.credentials.subdomain}.{self.vendor_host}"
            f"/api/{self.api_version}"
        )


# --- Request models ---


class HTTPMethod(str, enum.Enum):
    """HTTP verbs the upstream API is called with."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class ReportFormat(str, enum.Enum):
    """Report output formats and the ``Accept`` header each one sends."""

    JSON = "json"
    XML = "xml"
    CSV = "csv"

    @property
    def accept(self) -> str:
        return {
            ReportFormat.JSON: "application/json",
            ReportFormat.XML: "application/xml",
            ReportFormat.CSV: "text/csv",
        }[self]


class RequestDescriptor(BaseModel):
    """One logical call: verb, path, optional body and query, retry budget."""

    method: HTTPMethod = HTTPMethod.GET
    path: str
    body: Optional[dict[str, Any]] = None
    params: Optional[dict[str, QueryValue]] = None
    max_retries: int = Field(default=3, ge=0)

    @property
    def sends_body(self) -> bool:
        return self.method in (HTTPMethod.POST, HTTPMethod.PUT)


class UploadResult(BaseModel):
    """Outcome of a multipart file upload.

    ``id`` is the last path segment of the ``Location`` response header,
    or ``None`` when the server did not send one.
    """

    id: Optional[str] = None
    location: Optional[str] = None
