"""Tests for the asynchronous request executor."""

from __future__ import annotations

import base64
import json
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from bamboohr_shim.cache import ResponseCache
from bamboohr_shim.client import BambooHRClient
from bamboohr_shim.exceptions import (
    ApiError,
    AuthError,
    ForbiddenError,
    InvalidUsageError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
)
from bamboohr_shim.models import ClientSettings, Credentials, RequestConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _json_response(data: Any, status_code: int = 200, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        json=data,
        headers={"content-type": "application/json", **(headers or {})},
    )


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class Recorder:
    """Transport handler that records requests and replays scripted responses.

    Each scripted item is either an :class:`httpx.Response` or an exception
    instance to raise. The last item repeats once the script runs out.
    """

    def __init__(self, *script: Any) -> None:
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.script) - 1)
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def mock_sleep():
    with patch("bamboohr_shim.client.async_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------


class TestRequestHeaders:
    @pytest.mark.asyncio
    async def test_get_sends_basic_auth_and_accept(self, make_client) -> None:
        recorder = Recorder(_json_response({"employees": []}))
        client = make_client(recorder)

        await client.get("/employees/directory")

        request = recorder.requests[0]
        expected = base64.b64encode(b"test-key:x").decode("ascii")
        assert request.headers["authorization"] == f"Basic {expected}"
        assert request.headers["accept"] == "application/json"
        assert request.method == "GET"
        assert str(request.url) == "https://acme.bamboohr.com/api/v1/employees/directory"
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self, make_client) -> None:
        recorder = Recorder(_json_response({"id": "7"}, status_code=201))
        client = make_client(recorder)

        result = await client.post("/employees", {"firstName": "Ada", "lastName": "Lovelace"})

        request = recorder.requests[0]
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"firstName": "Ada", "lastName": "Lovelace"}
        assert result == {"id": "7"}

    @pytest.mark.asyncio
    async def test_put_sends_json_body(self, make_client) -> None:
        recorder = Recorder(httpx.Response(200))
        client = make_client(recorder)

        await client.put("/employees/4/dependents/2", {"relationship": "child"})

        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"relationship": "child"}

    @pytest.mark.asyncio
    async def test_delete_sends_no_body(self, make_client) -> None:
        recorder = Recorder(httpx.Response(204))
        client = make_client(recorder)

        result = await client.delete("/time_off/requests/3")

        request = recorder.requests[0]
        assert request.method == "DELETE"
        assert request.content == b""
        assert result == {}

    @pytest.mark.asyncio
    async def test_query_params_are_encoded(self, make_client) -> None:
        recorder = Recorder(_json_response([]))
        client = make_client(recorder)

        await client.get("/time_off/requests", {"start": "2024-01-01", "limit": 20, "onlyCurrent": True})

        params = recorder.requests[0].url.params
        assert params["start"] == "2024-01-01"
        assert params["limit"] == "20"
        assert params["onlyCurrent"] == "true"

    @pytest.mark.asyncio
    async def test_lowercase_method_accepted(self, make_client) -> None:
        recorder = Recorder(_json_response({"ok": True}))
        client = make_client(recorder)

        assert await client.request("get", "/meta/fields") == {"ok": True}
        assert recorder.requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_unsupported_method_rejected(self, make_client) -> None:
        recorder = Recorder(_json_response({}))
        client = make_client(recorder)

        with pytest.raises(InvalidUsageError, match="PATCH"):
            await client.request("PATCH", "/employees/4")
        assert recorder.call_count == 0


# ---------------------------------------------------------------------------
# Response handling
# ---------------------------------------------------------------------------


class TestResponseHandling:
    @pytest.mark.asyncio
    async def test_json_is_parsed(self, make_client) -> None:
        client = make_client(Recorder(_json_response([{"id": 1}])))
        assert await client.get("/meta/lists") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_204_returns_empty_mapping(self, make_client) -> None:
        client = make_client(Recorder(httpx.Response(204)))
        assert await client.post("/employees/4", {"firstName": "A"}) == {}

    @pytest.mark.asyncio
    async def test_missing_content_type_returns_empty_mapping(self, make_client) -> None:
        client = make_client(Recorder(httpx.Response(200, content=b"ignored")))
        assert await client.get("/login") == {}

    @pytest.mark.asyncio
    async def test_other_content_type_returns_text(self, make_client) -> None:
        client = make_client(
            Recorder(httpx.Response(200, text="<employee/>", headers={"content-type": "text/xml"}))
        )
        assert await client.get("/employees/4") == "<employee/>"


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestCaching:
    @pytest.mark.asyncio
    async def test_repeated_get_within_ttl_uses_cache(self, make_client) -> None:
        recorder = Recorder(_json_response({"employees": [{"id": "1"}]}))
        client = make_client(recorder)

        first = await client.get("/employees/directory")
        second = await client.get("/employees/directory")

        assert recorder.call_count == 1
        assert first == second

    @pytest.mark.asyncio
    async def test_get_after_ttl_hits_network(self, settings: ClientSettings) -> None:
        clock = FakeClock()
        recorder = Recorder(_json_response({"v": 1}), _json_response({"v": 2}))
        client = BambooHRClient(
            settings,
            transport=httpx.MockTransport(recorder),
            cache=ResponseCache(settings.cache, clock=clock),
        )

        assert await client.get("/employees/directory") == {"v": 1}
        clock.now += 299
        assert await client.get("/employees/directory") == {"v": 1}
        clock.now += 2
        assert await client.get("/employees/directory") == {"v": 2}
        assert recorder.call_count == 2

    @pytest.mark.asyncio
    async def test_different_params_are_separate_entries(self, make_client) -> None:
        recorder = Recorder(_json_response({"ok": True}))
        client = make_client(recorder)

        await client.get("/employees/4", {"fields": "firstName"})
        await client.get("/employees/4", {"fields": "lastName"})
        await client.get("/employees/4", {"fields": "firstName"})

        assert recorder.call_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
    async def test_mutations_do_not_populate_cache(self, make_client, method: str) -> None:
        recorder = Recorder(_json_response({"ok": True}))
        client = make_client(recorder)

        await client.request(method, "/employees/4", body={"a": 1} if method != "DELETE" else None)
        await client.get("/employees/4")

        assert recorder.call_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
    async def test_mutations_do_not_read_cache(self, make_client, method: str) -> None:
        recorder = Recorder(_json_response({"from": "get"}), _json_response({"from": "mutation"}))
        client = make_client(recorder)

        await client.get("/employees/4")
        result = await client.request(method, "/employees/4")

        assert recorder.call_count == 2
        assert result == {"from": "mutation"}

    @pytest.mark.asyncio
    async def test_mutation_does_not_invalidate_cached_get(self, make_client) -> None:
        recorder = Recorder(
            _json_response({"firstName": "Ada"}),
            httpx.Response(200),
            _json_response({"firstName": "Grace"}),
        )
        client = make_client(recorder)

        await client.get("/employees/4")
        await client.post("/employees/4", {"firstName": "Grace"})
        stale = await client.get("/employees/4")

        assert stale == {"firstName": "Ada"}
        assert recorder.call_count == 2

    @pytest.mark.asyncio
    async def test_text_responses_are_not_cached(self, make_client) -> None:
        recorder = Recorder(httpx.Response(200, text="a,b", headers={"content-type": "text/csv"}))
        client = make_client(recorder)

        await client.get("/reports/1")
        await client.get("/reports/1")

        assert recorder.call_count == 2

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self, make_client) -> None:
        recorder = Recorder(httpx.Response(404), _json_response({"id": "4"}))
        client = make_client(recorder)

        with pytest.raises(NotFoundError):
            await client.get("/employees/4")
        assert await client.get("/employees/4") == {"id": "4"}

    @pytest.mark.asyncio
    async def test_cached_value_deep_equals_fresh_response(self, settings: ClientSettings) -> None:
        payload = {"employees": [{"id": "1", "tags": ["a", "b"], "manager": {"id": "9"}}]}
        recorder = Recorder(_json_response(payload))
        clock = FakeClock()
        client = BambooHRClient(
            settings,
            transport=httpx.MockTransport(recorder),
            cache=ResponseCache(settings.cache, clock=clock),
        )

        fresh = await client.get("/employees/directory")
        cached = await client.get("/employees/directory")

        assert cached == fresh == payload
        assert cached is not fresh

    @pytest.mark.asyncio
    async def test_clients_do_not_share_cache(self, make_client) -> None:
        first_recorder = Recorder(_json_response({"tenant": "a"}))
        second_recorder = Recorder(_json_response({"tenant": "b"}))
        first = make_client(first_recorder)
        second = make_client(second_recorder)

        assert await first.get("/meta/users") == {"tenant": "a"}
        assert await second.get("/meta/users") == {"tenant": "b"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [None, [], {}, 0, False, ""], ids=repr)
    async def test_falsy_json_bodies_are_served_from_cache(self, make_client, body) -> None:
        recorder = Recorder(
            httpx.Response(
                200,
                content=json.dumps(body).encode("utf-8"),
                headers={"content-type": "application/json"},
            )
        )
        client = make_client(recorder)

        assert await client.get("/employees/1/photo/meta") == body
        assert await client.get("/employees/1/photo/meta") == body
        assert recorder.call_count == 1

    @pytest.mark.asyncio
    async def test_cache_stats(self, make_client) -> None:
        client = make_client(Recorder(_json_response({})))
        await client.get("/a")
        stats = client.cache_stats()
        assert stats["size"] == 1
        assert stats["ttl_seconds"] == 300


# ---------------------------------------------------------------------------
# Rate-limit retry
# ---------------------------------------------------------------------------


class TestRateLimitRetry:
    @pytest.mark.asyncio
    async def test_retry_after_header_is_honoured(self, make_client, mock_sleep) -> None:
        recorder = Recorder(
            httpx.Response(429, headers={"Retry-After": "2"}),
            _json_response({"ok": True}),
        )
        client = make_client(recorder)

        assert await client.get("/employees/directory") == {"ok": True}
        assert recorder.call_count == 2
        mock_sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_rate_limited(self, make_client, mock_sleep) -> None:
        recorder = Recorder(
            httpx.Response(
                429,
                headers={"Retry-After": "2", "X-BambooHR-Error-Message": "Too many requests"},
            )
        )
        client = make_client(recorder)

        with pytest.raises(RateLimitedError) as exc_info:
            await client.get("/employees/directory")

        assert recorder.call_count == 4  # first attempt + 3 retries
        assert mock_sleep.await_count == 3
        assert all(call.args == (2.0,) for call in mock_sleep.await_args_list)
        exc = exc_info.value
        assert exc.kind == "RATE_LIMITED"
        assert exc.status == 429
        assert exc.detail == "Too many requests"
        assert exc.attempts == 4
        assert "Maximum retry attempts reached" in str(exc)

    @pytest.mark.asyncio
    async def test_503_uses_exponential_backoff(self, make_client, mock_sleep) -> None:
        recorder = Recorder(
            httpx.Response(503),
            httpx.Response(503),
            httpx.Response(503),
            _json_response({"ok": True}),
        )
        client = make_client(recorder)

        assert await client.get("/employees/directory") == {"ok": True}
        assert [call.args[0] for call in mock_sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(429))
        client = make_client(recorder)

        with pytest.raises(RateLimitedError):
            await client.request("GET", "/employees/directory", max_retries=5)

        assert [call.args[0] for call in mock_sleep.await_args_list] == [1.0, 2.0, 4.0, 8.0, 8.0]
        assert recorder.call_count == 6

    @pytest.mark.asyncio
    async def test_backoff_jitter_stays_within_bounds(self, credentials, mock_sleep) -> None:
        settings = ClientSettings(credentials=credentials, request=RequestConfig(max_retries=3))
        recorder = Recorder(httpx.Response(429))
        client = BambooHRClient(settings, transport=httpx.MockTransport(recorder))

        with pytest.raises(RateLimitedError):
            await client.get("/employees/directory")

        delays = [call.args[0] for call in mock_sleep.await_args_list]
        assert 1.0 <= delays[0] <= 2.0
        assert 2.0 <= delays[1] <= 3.0
        assert 4.0 <= delays[2] <= 5.0

    @pytest.mark.asyncio
    async def test_unparseable_retry_after_falls_back_to_backoff(
        self, make_client, mock_sleep
    ) -> None:
        recorder = Recorder(
            httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}),
            _json_response({}),
        )
        client = make_client(recorder)

        await client.get("/employees/directory")
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_zero_retry_budget(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(429, headers={"Retry-After": "2"}))
        client = make_client(recorder)

        with pytest.raises(RateLimitedError):
            await client.request("GET", "/employees/directory", max_retries=0)

        assert recorder.call_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mutations_are_retried_on_rate_limit(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(429), _json_response({"id": "5"}, status_code=201))
        client = make_client(recorder)

        assert await client.post("/employees", {"firstName": "Ada"}) == {"id": "5"}
        assert recorder.call_count == 2
        assert json.loads(recorder.requests[1].content) == {"firstName": "Ada"}

    @pytest.mark.asyncio
    async def test_success_after_retry_is_cached(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(429), _json_response({"ok": True}))
        client = make_client(recorder)

        await client.get("/employees/directory")
        await client.get("/employees/directory")

        assert recorder.call_count == 2

    @pytest.mark.asyncio
    async def test_terminal_error_after_rate_limit_surfaces_immediately(
        self, make_client, mock_sleep
    ) -> None:
        recorder = Recorder(httpx.Response(429), httpx.Response(404))
        client = make_client(recorder)

        with pytest.raises(NotFoundError):
            await client.get("/employees/4")
        assert recorder.call_count == 2


# ---------------------------------------------------------------------------
# Terminal errors
# ---------------------------------------------------------------------------


class TestTerminalErrors:
    @pytest.mark.asyncio
    async def test_401_fails_without_retry(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(401))
        client = make_client(recorder)

        with pytest.raises(UnauthorizedError) as exc_info:
            await client.get("/employees/directory")

        assert recorder.call_count == 1
        mock_sleep.assert_not_awaited()
        assert isinstance(exc_info.value, AuthError)
        assert exc_info.value.kind == "UNAUTHORIZED"
        assert exc_info.value.status == 401
        assert "API key is invalid" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_403_fails_without_retry(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(403, headers={"X-BambooHR-Error-Message": "No access"}))
        client = make_client(recorder)

        with pytest.raises(ForbiddenError) as exc_info:
            await client.get("/employees/4/tables/compensation")

        assert recorder.call_count == 1
        assert exc_info.value.kind == "FORBIDDEN"
        assert exc_info.value.detail == "No access"

    @pytest.mark.asyncio
    async def test_404_fails_without_retry(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(404))
        client = make_client(recorder)

        with pytest.raises(NotFoundError) as exc_info:
            await client.get("/employees/999")

        assert recorder.call_count == 1
        mock_sleep.assert_not_awaited()
        assert exc_info.value.kind == "NOT_FOUND"
        assert exc_info.value.detail == "HTTP 404: Not Found"

    @pytest.mark.asyncio
    async def test_vendor_error_header_becomes_message(self, make_client) -> None:
        recorder = Recorder(
            httpx.Response(400, headers={"X-BambooHR-Error-Message": "Invalid field: foo"})
        )
        client = make_client(recorder)

        with pytest.raises(ApiError, match="Invalid field: foo") as exc_info:
            await client.post("/employees", {"foo": 1})
        assert exc_info.value.status == 400

    @pytest.mark.asyncio
    async def test_status_line_fallback_message(self, make_client) -> None:
        client = make_client(Recorder(httpx.Response(400)))

        with pytest.raises(ApiError, match=r"^HTTP 400: Bad Request$"):
            await client.get("/employees/directory")

    @pytest.mark.asyncio
    async def test_500_is_not_retried(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.Response(500))
        client = make_client(recorder)

        with pytest.raises(ApiError) as exc_info:
            await client.get("/employees/directory")

        assert recorder.call_count == 1
        assert exc_info.value.to_dict() == {
            "error": "API_ERROR",
            "message": "HTTP 500: Internal Server Error",
            "status": 500,
        }


# ---------------------------------------------------------------------------
# Network failures
# ---------------------------------------------------------------------------


class TestNetworkErrors:
    @pytest.mark.asyncio
    async def test_first_attempt_failure_is_not_retried(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.ConnectError("Connection refused"))
        client = make_client(recorder)

        with pytest.raises(NetworkError, match="Connection refused") as exc_info:
            await client.get("/employees/directory")

        assert recorder.call_count == 1
        mock_sleep.assert_not_awaited()
        assert exc_info.value.kind == "NETWORK_ERROR"
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_timeout_is_a_network_error(self, make_client, mock_sleep) -> None:
        client = make_client(Recorder(httpx.ReadTimeout("Read timed out")))

        with pytest.raises(NetworkError):
            await client.get("/employees/directory")

    @pytest.mark.asyncio
    async def test_failure_during_rate_limit_retry_is_retried(
        self, make_client, mock_sleep, capsys
    ) -> None:
        recorder = Recorder(
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.ConnectError("Connection reset"),
            _json_response({"ok": True}),
        )
        client = make_client(recorder)

        assert await client.get("/employees/directory") == {"ok": True}
        assert recorder.call_count == 3
        assert mock_sleep.await_count == 2

        warnings = [line for line in capsys.readouterr().err.splitlines() if "Retrying" in line]
        assert len(warnings) == 2
        assert warnings[0].startswith("Warning: Rate limit exceeded.")
        assert warnings[1].startswith("Warning: Network error during rate-limit retry")
        assert "Connection reset" in warnings[1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure",
        [
            httpx.RemoteProtocolError("Server disconnected without sending a response."),
            httpx.ProxyError("Proxy refused the connection"),
            httpx.ReadError("Connection reset by peer"),
            httpx.UnsupportedProtocol("Request URL has an unsupported protocol"),
        ],
        ids=lambda exc: type(exc).__name__,
    )
    async def test_other_transport_failures_are_network_errors(
        self, make_client, mock_sleep, failure: Exception
    ) -> None:
        recorder = Recorder(failure)
        client = make_client(recorder)

        with pytest.raises(NetworkError) as exc_info:
            await client.get("/employees/1")

        assert exc_info.value.__cause__ is failure
        assert recorder.call_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_protocol_failure_during_rate_limit_retry_is_retried(
        self, make_client, mock_sleep
    ) -> None:
        recorder = Recorder(
            httpx.Response(503),
            httpx.RemoteProtocolError("Server disconnected without sending a response."),
            _json_response({"id": "1"}),
        )
        client = make_client(recorder)

        assert await client.get("/employees/1") == {"id": "1"}
        assert recorder.call_count == 3

    @pytest.mark.asyncio
    async def test_undecodable_body_is_an_api_error(self, make_client, mock_sleep) -> None:
        recorder = Recorder(httpx.DecodingError("Error -3 while decompressing data"))
        client = make_client(recorder)

        with pytest.raises(ApiError, match="decompressing"):
            await client.get("/employees/1")
        assert recorder.call_count == 1

    @pytest.mark.asyncio
    async def test_malformed_json_is_an_api_error(self, make_client, mock_sleep) -> None:
        recorder = Recorder(
            httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"})
        )
        client = make_client(recorder)

        with pytest.raises(ApiError, match="Malformed JSON") as exc_info:
            await client.get("/employees/1")

        assert exc_info.value.status == 200
        assert recorder.call_count == 1
        assert client.cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_last_network_error_surfaces_after_exhaustion(
        self, make_client, mock_sleep
    ) -> None:
        recorder = Recorder(
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.ConnectError("Connection reset"),
        )
        client = make_client(recorder)

        with pytest.raises(NetworkError, match="Connection reset"):
            await client.get("/employees/directory")
        assert recorder.call_count == 4


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self, make_client) -> None:
        client = make_client(Recorder(_json_response({})))
        async with client:
            assert client._client is not None
        assert client._client is None

    @pytest.mark.asyncio
    async def test_client_reopens_after_close(self, make_client) -> None:
        recorder = Recorder(_json_response({"ok": True}))
        client = make_client(recorder)

        await client.post("/a")
        await client.aclose()
        await client.post("/a")

        assert recorder.call_count == 2

    def test_credentials_only_constructor(self) -> None:
        client = BambooHRClient(Credentials(api_key="k", subdomain="initech"))
        assert client.base_url == "https://initech.bamboohr.com/api/v1"
        assert client.settings.request.max_retries == 3

    def test_base_url_override(self, credentials: Credentials) -> None:
        client = BambooHRClient(
            ClientSettings(credentials=credentials, base_url="http://localhost:8080/api/v1/")
        )
        assert client.base_url == "http://localhost:8080/api/v1"
