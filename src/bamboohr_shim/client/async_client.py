"""Asynchronous API client for the HR platform.

This module provides :class:`BambooHRClient`, the single component the
tool layer talks to. It wraps :class:`httpx.AsyncClient` and layers on:

- **Auth injection** -- a Basic-Auth header rebuilt from the immutable
  :class:`~bamboohr_shim.models.Credentials` for every request.
- **Response caching** -- successful GET responses are kept in a
  per-instance :class:`~bamboohr_shim.cache.ResponseCache` for five minutes.
  POST, PUT and DELETE never read or write it.
- **Retry with backoff** -- HTTP 429/503 are retried, honouring
  ``Retry-After`` or falling back to jittered exponential backoff
  (1 s, 2 s, 4 s, ... capped at 8 s).
- **Uploads** -- multipart file upload and raw JPEG photo upload.
- **Reports** -- JSON, XML or CSV report downloads.

All methods are coroutines. The client starts no background tasks;
it only suspends on network I/O and on the backoff sleep.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Union

import httpx

from bamboohr_shim.auth import authenticate
from bamboohr_shim.cache import ResponseCache
from bamboohr_shim.client.multipart import Payload, build_multipart_body, decode_payload
from bamboohr_shim.client.response import (
    RATE_LIMIT_EXHAUSTED_MESSAGE,
    build_error,
    extract_response_data,
    is_json_response,
)
from bamboohr_shim.client.retry import (
    Outcome,
    RetryableFailure,
    Success,
    TerminalFailure,
    backoff_delay,
    is_retryable_status,
    parse_retry_after,
)
from bamboohr_shim.exceptions import (
    ApiError,
    BambooHRError,
    InvalidUsageError,
    NetworkError,
    RateLimitedError,
)
from bamboohr_shim.models import (
    ClientSettings,
    Credentials,
    HTTPMethod,
    QueryValue,
    ReportFormat,
    RequestDescriptor,
    UploadResult,
)
from bamboohr_shim.output import get_output


class BambooHRClient:
    """Asynchronous client for the HR platform REST API.

    One instance is created per set of credentials and handed to every
    consumer; its cache is private to it.

    Args:
        settings: Credentials, base URL, request and cache settings. A bare
            :class:`~bamboohr_shim.models.Credentials` is accepted and
            wrapped with default settings.
        transport: Optional custom :mod:`httpx` transport, mainly
            :class:`httpx.MockTransport` in tests.
        cache: Optional pre-built cache. By default one is created from
            ``settings.cache``.

    Example::

        async with BambooHRClient(Credentials(api_key=key, subdomain="acme")) as client:
            directory = await client.get("/employees/directory")
    """

    def __init__(
        self,
        settings: Union[ClientSettings, Credentials],
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[ResponseCache] = None,
    ) -> None:
        if isinstance(settings, Credentials):
            settings = ClientSettings(credentials=settings)
        self._settings = settings
        self._transport = transport
        self._cache = cache if cache is not None else ResponseCache(settings.cache)
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def base_url(self) -> str:
        return self._settings.resolved_base_url

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> BambooHRClient:
        self._get_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool. The client can be reused afterwards."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._settings.request.timeout,
                transport=self._transport,
            )
        return self._client

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: Union[HTTPMethod, str],
        path: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, QueryValue]] = None,
        max_retries: Optional[int] = None,
    ) -> Any:
        """Execute one logical API call.

        GET requests are answered from the cache while a fresh entry
        exists; otherwise the request goes to the network, and a
        successful JSON response is cached.

        Args:
            method: GET, POST, PUT or DELETE.
            path: Path relative to the API base URL, e.g. ``/employees/0``.
            body: JSON body for POST and PUT; ignored for other verbs.
            params: Query parameters.
            max_retries: Retry budget for rate-limit responses. Defaults to
                ``settings.request.max_retries``.

        Returns:
            Parsed JSON, raw text, or ``{}`` for empty responses.

        Raises:
            RateLimitedError: On 429/503 after all retries.
            UnauthorizedError: On 401.
            ForbiddenError: On 403.
            NotFoundError: On 404.
            ApiError: On any other non-2xx status, or an undecodable body.
            NetworkError: On transport failures.
        """
        try:
            verb = HTTPMethod(method.upper() if isinstance(method, str) else method)
        except ValueError as exc:
            raise InvalidUsageError(f"Unsupported HTTP method: {method}") from exc

        descriptor = RequestDescriptor(
            method=verb,
            path=path,
            body=body,
            params=params,
            max_retries=(
                self._settings.request.max_retries if max_retries is None else max_retries
            ),
        )

        output = get_output()
        if descriptor.method == HTTPMethod.GET:
            entry = self._cache.lookup(descriptor.path, descriptor.params)
            if entry is not None:
                output.debug(f"Cache hit: GET {descriptor.path}")
                return entry.data
            output.debug(f"Cache miss: GET {descriptor.path}")

        return await self._execute_with_retry(descriptor)

    async def get(self, path: str, params: Optional[dict[str, QueryValue]] = None) -> Any:
        """Send a GET request (cached)."""
        return await self.request(HTTPMethod.GET, path, params=params)

    async def post(
        self,
        path: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, QueryValue]] = None,
    ) -> Any:
        """Send a POST request with a JSON body."""
        return await self.request(HTTPMethod.POST, path, body=body, params=params)

    async def put(
        self,
        path: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, QueryValue]] = None,
    ) -> Any:
        """Send a PUT request with a JSON body."""
        return await self.request(HTTPMethod.PUT, path, body=body, params=params)

    async def delete(self, path: str, params: Optional[dict[str, QueryValue]] = None) -> Any:
        """Send a DELETE request."""
        return await self.request(HTTPMethod.DELETE, path, params=params)

    async def get_report(
        self,
        path: str,
        format: Union[ReportFormat, str] = ReportFormat.JSON,
    ) -> Any:
        """Download a report in JSON, XML or CSV.

        Reports bypass the cache and are not retried.

        Returns:
            Parsed JSON for ``json``; the raw text for ``xml`` and ``csv``.
        """
        report_format = ReportFormat(format)
        headers = self._base_headers()
        headers["Accept"] = report_format.accept

        response = await self._send("GET", path, headers=headers)
        if not response.is_success:
            raise build_error(response)
        if report_format == ReportFormat.JSON:
            return extract_response_data(response)
        return response.text

    async def upload_file(
        self,
        path: str,
        file_data: Payload,
        file_name: str,
        category_id: Optional[Union[str, int]] = None,
    ) -> UploadResult:
        """Upload a file as ``multipart/form-data``.

        Uploads are not idempotent and are never retried.

        Args:
            path: Upload endpoint, e.g. ``/employees/42/files``.
            file_data: File bytes, or base64 text.
            file_name: File name; its extension selects the part content type.
            category_id: Optional file category.

        Returns:
            An :class:`~bamboohr_shim.models.UploadResult` whose ``id`` is
            the last segment of the ``Location`` header, or ``None``.
        """
        form = build_multipart_body(file_data, file_name, category_id)
        headers = {**self._auth_headers(), **form.headers}

        response = await self._send("POST", path, headers=headers, content=form.content)
        if not response.is_success:
            raise build_error(response)

        location = response.headers.get("location")
        file_id = location.rstrip("/").rsplit("/", 1)[-1] if location else None
        get_output().debug(f"Uploaded {file_name} to {path} (id={file_id})")
        return UploadResult(id=file_id or None, location=location)

    async def upload_photo(self, path: str, photo_data: Payload) -> None:
        """Upload an image as a raw ``image/jpeg`` request body.

        The content type is always ``image/jpeg``; the server sniffs other
        image types itself. Nothing is read from the response.
        """
        content = decode_payload(photo_data)
        headers = {
            **self._auth_headers(),
            "Content-Type": "image/jpeg",
            "Content-Length": str(len(content)),
        }

        response = await self._send("POST", path, headers=headers, content=content)
        if not response.is_success:
            raise build_error(response)

    def cache_stats(self) -> dict[str, Any]:
        return self._cache.stats()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _auth_headers(self) -> dict[str, str]:
        return authenticate(self._settings.credentials).headers

    def _base_headers(self) -> dict[str, str]:
        headers = self._auth_headers()
        headers["Accept"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: Optional[dict[str, Any]] = None,
        json_body: Any = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        """Send a single request, mapping httpx failures to error records.

        Transport failures (connect, timeout, protocol, proxy) become
        :class:`NetworkError`; any other request error, such as an
        undecodable body, becomes :class:`ApiError`.
        """
        client = self._get_client()
        kwargs: dict[str, Any] = {"method": method, "url": path, "headers": headers}
        if params:
            kwargs["params"] = params
        if json_body is not None:
            kwargs["json"] = json_body
        elif content is not None:
            kwargs["content"] = content

        try:
            return await client.request(**kwargs)
        except httpx.TransportError as exc:
            raise NetworkError(
                f"Failed to connect to BambooHR API: {str(exc) or type(exc).__name__}"
            ) from exc
        except httpx.RequestError as exc:
            raise ApiError(f"Request failed: {str(exc) or type(exc).__name__}") from exc

    async def _attempt(self, descriptor: RequestDescriptor, rate_limited: bool) -> Outcome:
        """Send *descriptor* once and classify the result.

        Args:
            rate_limited: ``True`` when an earlier attempt of this call was
                rate limited; network failures are then retryable too.
        """
        headers = self._base_headers()
        json_body = None
        if descriptor.sends_body:
            headers["Content-Type"] = "application/json"
            json_body = descriptor.body

        try:
            response = await self._send(
                descriptor.method.value,
                descriptor.path,
                headers=headers,
                params=descriptor.params,
                json_body=json_body,
            )
        except NetworkError as exc:
            if rate_limited:
                return RetryableFailure(exc)
            return TerminalFailure(exc)

        if response.is_success:
            try:
                data = extract_response_data(response)
            except ApiError as exc:
                return TerminalFailure(exc)
            return Success(
                data,
                cacheable=(
                    descriptor.method == HTTPMethod.GET and is_json_response(response)
                ),
            )

        error = build_error(response)
        if is_retryable_status(response.status_code):
            return RetryableFailure(
                error, retry_after=parse_retry_after(response.headers.get("retry-after"))
            )
        return TerminalFailure(error)

    async def _execute_with_retry(self, descriptor: RequestDescriptor) -> Any:
        """Run the attempt loop for *descriptor*.

        Makes at most ``max_retries + 1`` attempts. Only
        :class:`~bamboohr_shim.client.retry.RetryableFailure` outcomes lead
        to another attempt, after ``Retry-After`` seconds or the backoff
        delay.
        """
        output = get_output()
        config = self._settings.request
        max_retries = descriptor.max_retries
        last_error: Optional[BambooHRError] = None
        rate_limited = False

        for attempt in range(max_retries + 1):
            output.debug(f"{descriptor.method.value} {descriptor.path} (attempt {attempt + 1})")
            outcome = await self._attempt(descriptor, rate_limited)

            if isinstance(outcome, Success):
                if outcome.cacheable:
                    self._cache.set(descriptor.path, descriptor.params, outcome.data)
                return outcome.data

            if isinstance(outcome, TerminalFailure):
                raise outcome.error

            last_error = outcome.error
            if isinstance(outcome.error, RateLimitedError):
                rate_limited = True
            if attempt >= max_retries:
                break

            wait = outcome.retry_after
            if wait is None:
                wait = backoff_delay(attempt, config)
            if isinstance(outcome.error, RateLimitedError):
                reason = "Rate limit exceeded."
            else:
                reason = f"Network error during rate-limit retry ({outcome.error})."
            output.warning(
                f"{reason} Retrying after {wait:g} seconds... "
                f"(Attempt {attempt + 1}/{max_retries})"
            )
            await asyncio.sleep(wait)

        assert last_error is not None
        if isinstance(last_error, RateLimitedError):
            raise RateLimitedError(
                RATE_LIMIT_EXHAUSTED_MESSAGE,
                status=last_error.status,
                detail=last_error.detail,
                attempts=max_retries + 1,
            ) from last_error
        raise last_error
