"""Tests for the upstream relay: routing, fallback retry and normalization."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

import httpx
import pytest
from respx import MockRouter

from music_gateway.core.errors import TransportError, UpstreamError
from music_gateway.infrastructure.upstream_relay import SUCCESS_SENTINEL, UpstreamRelay

BASE_URL = "http://upstream.test"


@pytest.fixture
async def relay() -> AsyncIterator[UpstreamRelay]:
    """Relay backed by a real httpx client for respx mocking."""
    async with httpx.AsyncClient() as http_client:
        yield UpstreamRelay(http_client, f"{BASE_URL}/")


def test_build_url_normalizes_leading_slash() -> None:
    relay = UpstreamRelay(httpx.AsyncClient(), "http://upstream.test/")

    assert relay.build_url("getAllSongs") == "http://upstream.test/getAllSongs"
    assert relay.build_url("/getAllSongs") == "http://upstream.test/getAllSongs"


@pytest.mark.asyncio
async def test_endpoint_without_slash_is_joined(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    route = respx_mock.post(f"{BASE_URL}/registerUser").mock(
        return_value=httpx.Response(200, json={"ok": True})
    )

    result = await relay.call("registerUser", {"email": "a@x.com"})

    assert result == {"ok": True}
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_get_never_sends_body(relay: UpstreamRelay, respx_mock: MockRouter) -> None:
    route = respx_mock.get(f"{BASE_URL}/getAllSongs").mock(
        return_value=httpx.Response(200, json=[{"id": 1}])
    )

    result = await relay.call("/getAllSongs", {"ignored": True}, method="GET")

    assert result == [{"id": 1}]
    request = route.calls.last.request
    assert request.content == b""
    assert request.headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["POST", "PUT"])
async def test_non_get_sends_json_body(
    relay: UpstreamRelay, respx_mock: MockRouter, method: str
) -> None:
    route = respx_mock.route(method=method, url=f"{BASE_URL}/update-profile").mock(
        return_value=httpx.Response(200, json={"updated": True})
    )

    await relay.call("/update-profile", {"email": "a@x.com", "bio": "hi"}, method=method)

    request = route.calls.last.request
    assert json.loads(request.content) == {"email": "a@x.com", "bio": "hi"}
    assert request.headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_post_without_data_sends_empty_object(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    route = respx_mock.post(f"{BASE_URL}/api/admin/login").mock(
        return_value=httpx.Response(200, json={})
    )

    await relay.call("/api/admin/login")

    assert json.loads(route.calls.last.request.content) == {}


@pytest.mark.asyncio
async def test_404_with_fallback_retries_exactly_once(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    primary = respx_mock.post(f"{BASE_URL}/api/addComment").mock(
        return_value=httpx.Response(404, json={"error": "Not found"})
    )
    fallback = respx_mock.post(f"{BASE_URL}/addComment").mock(
        return_value=httpx.Response(200, json={"commentId": 7})
    )
    body = {"songId": "42", "comment": "great"}

    result = await relay.call("/api/addComment", body, fallback_endpoint="/addComment")

    assert result == {"commentId": 7}
    assert primary.call_count == 1
    assert fallback.call_count == 1
    assert json.loads(fallback.calls.last.request.content) == body


@pytest.mark.asyncio
async def test_fallback_retry_keeps_original_method(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.put(f"{BASE_URL}/api/rating").mock(return_value=httpx.Response(404))
    fallback = respx_mock.put(f"{BASE_URL}/rating").mock(
        return_value=httpx.Response(200, json={"ok": True})
    )

    await relay.call("/api/rating", {"stars": 5}, method="PUT", fallback_endpoint="/rating")

    assert fallback.calls.last.request.method == "PUT"


@pytest.mark.asyncio
async def test_404_without_fallback_raises_without_retry(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    route = respx_mock.post(f"{BASE_URL}/api/addComment").mock(
        return_value=httpx.Response(404, json={"message": "No such route"})
    )

    with pytest.raises(UpstreamError) as exc_info:
        await relay.call("/api/addComment", {"comment": "hi"})

    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "No such route"
    assert route.call_count == 1
    assert len(respx_mock.calls) == 1


@pytest.mark.asyncio
async def test_fallback_failure_surfaces_fallback_error(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.post(f"{BASE_URL}/api/addComment").mock(return_value=httpx.Response(404))
    fallback = respx_mock.post(f"{BASE_URL}/addComment").mock(
        return_value=httpx.Response(404, json={"error": "Song not found"})
    )

    with pytest.raises(UpstreamError) as exc_info:
        await relay.call("/api/addComment", {}, fallback_endpoint="/addComment")

    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Song not found"
    assert fallback.call_count == 1
    assert len(respx_mock.calls) == 2


@pytest.mark.asyncio
@pytest.mark.respx(assert_all_called=False)
async def test_non_404_error_does_not_use_fallback(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.post(f"{BASE_URL}/api/addComment").mock(
        return_value=httpx.Response(500, json={"error": "Database unavailable"})
    )
    fallback = respx_mock.post(f"{BASE_URL}/addComment").mock(
        return_value=httpx.Response(200, json={})
    )

    with pytest.raises(UpstreamError) as exc_info:
        await relay.call("/api/addComment", {}, fallback_endpoint="/addComment")

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Database unavailable"
    assert not fallback.called


@pytest.mark.asyncio
async def test_error_prefers_error_field_over_message(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.post(f"{BASE_URL}/registerUser").mock(
        return_value=httpx.Response(409, json={"error": "Email taken", "message": "ignored"})
    )

    with pytest.raises(UpstreamError) as exc_info:
        await relay.call("/registerUser", {})

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Email taken"


@pytest.mark.asyncio
async def test_error_with_plain_text_body_uses_raw_text(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.post(f"{BASE_URL}/registerUser").mock(
        return_value=httpx.Response(400, text="Bad payload")
    )

    with pytest.raises(UpstreamError) as exc_info:
        await relay.call("/registerUser", {})

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Bad payload"


@pytest.mark.asyncio
async def test_error_with_empty_body_uses_reason_phrase(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.get(f"{BASE_URL}/getAllSongs").mock(return_value=httpx.Response(503))

    with pytest.raises(UpstreamError) as exc_info:
        await relay.call("/getAllSongs", method="GET")

    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "Service Unavailable"


@pytest.mark.asyncio
async def test_redirect_becomes_bad_gateway(relay: UpstreamRelay, respx_mock: MockRouter) -> None:
    respx_mock.get(f"{BASE_URL}/getAllSongs").mock(
        return_value=httpx.Response(302, headers={"Location": "/login"})
    )

    with pytest.raises(UpstreamError) as exc_info:
        await relay.call("/getAllSongs", method="GET")

    assert exc_info.value.status_code == 502
    assert exc_info.value.message == "Found"


@pytest.mark.asyncio
async def test_non_json_success_returns_sentinel(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.post(f"{BASE_URL}/toggle-2fa").mock(
        return_value=httpx.Response(200, text="OK")
    )

    result = await relay.call("/toggle-2fa", {"email": "a@x.com"})

    assert result == SUCCESS_SENTINEL


@pytest.mark.asyncio
async def test_invalid_json_success_returns_sentinel(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.post(f"{BASE_URL}/toggle-2fa").mock(
        return_value=httpx.Response(
            200, content=b"{not json", headers={"Content-Type": "application/json"}
        )
    )

    result = await relay.call("/toggle-2fa", {"email": "a@x.com"})

    assert result == SUCCESS_SENTINEL


@pytest.mark.asyncio
async def test_connection_failure_raises_transport_error(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    route = respx_mock.get(f"{BASE_URL}/getAllSongs").mock(
        side_effect=httpx.ConnectError("Connection refused")
    )

    with pytest.raises(TransportError) as exc_info:
        await relay.call("/getAllSongs", method="GET")

    assert exc_info.value.status_code == 502
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_timeout_raises_transport_error(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    respx_mock.get(f"{BASE_URL}/getAllSongs").mock(
        side_effect=httpx.ReadTimeout("timed out")
    )

    with pytest.raises(TransportError):
        await relay.call("/getAllSongs", method="GET")


@pytest.mark.asyncio
async def test_extra_headers_are_forwarded(
    relay: UpstreamRelay, respx_mock: MockRouter
) -> None:
    route = respx_mock.get(f"{BASE_URL}/api/admin/verify").mock(
        return_value=httpx.Response(200, json={"valid": True})
    )

    await relay.call(
        "/api/admin/verify", method="GET", headers={"Authorization": "Bearer admin-token"}
    )

    assert route.calls.last.request.headers["Authorization"] == "Bearer admin-token"
