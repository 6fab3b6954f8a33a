"""Response decoding and error-record construction.

Two small bridges between :class:`httpx.Response` and the rest of the
client:

* :func:`extract_response_data` turns a successful response into the value
  handed back to callers (parsed JSON, raw text, or an empty mapping).
* :func:`build_error` turns a non-2xx response into the matching
  :mod:`~bamboohr_shim.exceptions` instance without raising it, so the
  retry loop can decide what to do with it.
"""

from __future__ import annotations

from typing import Any

import httpx

from bamboohr_shim.exceptions import (
    ApiError,
    BambooHRError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
)

ERROR_MESSAGE_HEADER = "X-BambooHR-Error-Message"

UNAUTHORIZED_MESSAGE = (
    "Authentication failed. The API key is invalid or has been revoked. "
    "Verify BAMBOOHR_API_KEY and make sure the key is still active in "
    "the API Keys settings."
)
FORBIDDEN_MESSAGE = (
    "Access forbidden. The user associated with this API key lacks "
    "permissions for this resource. Generate a new API key with an admin "
    "or appropriately permissioned user."
)
NOT_FOUND_MESSAGE = (
    "Resource not found. Verify the employee ID or resource identifier is correct."
)
RATE_LIMIT_EXHAUSTED_MESSAGE = (
    "Rate limit exceeded. Maximum retry attempts reached. Please try again later."
)


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from a successful HTTP response.

    Returns:
        ``{}`` for a 204 or a response without a content type, the decoded
        JSON when the content type mentions ``application/json``, and the
        raw text otherwise.

    Raises:
        ApiError: If a JSON-labelled body cannot be decoded.
    """
    content_type = response.headers.get("content-type")
    if response.status_code == 204 or not content_type:
        return {}

    if "application/json" in content_type:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                f"Malformed JSON in response: {exc}", status=response.status_code
            ) from exc

    return response.text


def is_json_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type") or ""
    return response.status_code != 204 and "application/json" in content_type


def extract_error_message(response: httpx.Response) -> str:
    """Return the vendor error header, or ``"HTTP <status>: <reason>"``."""
    vendor_message = response.headers.get(ERROR_MESSAGE_HEADER)
    if vendor_message:
        return vendor_message
    return f"HTTP {response.status_code}: {response.reason_phrase}"


def build_error(response: httpx.Response) -> BambooHRError:
    """Map a non-2xx response to a typed error record.

    401, 403 and 404 get a fixed explanatory message with the upstream
    text kept in ``detail``. Rate-limit statuses return a
    :class:`RateLimitedError` whose message is the upstream text; the
    executor swaps in the exhaustion message when it stops retrying.
    """
    status = response.status_code
    upstream = extract_error_message(response)

    if status in (429, 503):
        return RateLimitedError(upstream, status=status, detail=upstream)
    if status == 401:
        return UnauthorizedError(UNAUTHORIZED_MESSAGE, status=status, detail=upstream)
    if status == 403:
        return ForbiddenError(FORBIDDEN_MESSAGE, status=status, detail=upstream)
    if status == 404:
        return NotFoundError(NOT_FOUND_MESSAGE, status=status, detail=upstream)
    return ApiError(upstream, status=status)
