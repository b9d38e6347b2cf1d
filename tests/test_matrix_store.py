"""Tests for the httpx Matrix state store."""

import json

import httpx
import pytest

from modpolicy.store.matrix_store import MatrixPolicyStore
from modpolicy.store.policy_store import PolicyStoreError, StateEventNotFound

HOMESERVER = "https://matrix.example.org"


def make_store(handler) -> MatrixPolicyStore:
    client = httpx.AsyncClient(base_url=HOMESERVER, transport=httpx.MockTransport(handler))
    return MatrixPolicyStore(HOMESERVER, "secret-token", client=client)


@pytest.mark.asyncio
async def test_get_room_state_requests_encoded_room():
    seen: list[httpx.Request] = []
    events = [
        {"type": "m.policy.rule.user", "state_key": "rule:@a:x", "content": {}, "event_id": "$1", "sender": "@m:x"},
        "not-an-event",
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=events)

    async with make_store(handler) as store:
        state = await store.get_room_state("!room:example.org")

    assert state == [events[0]]
    assert seen[0].method == "GET"
    assert seen[0].url.raw_path == b"/_matrix/client/v3/rooms/%21room%3Aexample.org/state"
    assert seen[0].headers["Authorization"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_get_state_event_returns_content():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"entity": "@a:x", "recommendation": "m.ban"})

    store = make_store(handler)
    content = await store.get_state_event("!room:x", "m.policy.rule.user", "rule:@a/b:x")

    assert content == {"entity": "@a:x", "recommendation": "m.ban"}
    assert seen[0].url.raw_path == (
        b"/_matrix/client/v3/rooms/%21room%3Ax/state/m.policy.rule.user/rule%3A%40a%2Fb%3Ax"
    )
    await store.aclose()


@pytest.mark.asyncio
async def test_get_state_event_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"errcode": "M_NOT_FOUND", "error": "Event not found."})

    store = make_store(handler)

    with pytest.raises(StateEventNotFound) as excinfo:
        await store.get_state_event("!room:x", "m.policy.rule.user", "rule:@a:x")

    assert excinfo.value.status_code == 404
    assert excinfo.value.errcode == "M_NOT_FOUND"
    await store.aclose()


@pytest.mark.asyncio
async def test_error_response_raises_store_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"errcode": "M_FORBIDDEN", "error": "You are not in this room."})

    store = make_store(handler)

    with pytest.raises(PolicyStoreError) as excinfo:
        await store.get_room_state("!room:x")

    assert not isinstance(excinfo.value, StateEventNotFound)
    assert excinfo.value.status_code == 403
    assert excinfo.value.errcode == "M_FORBIDDEN"
    assert "not in this room" in str(excinfo.value)
    await store.aclose()


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    store = make_store(handler)

    with pytest.raises(PolicyStoreError) as excinfo:
        await store.get_room_state("!room:x")

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    await store.aclose()


@pytest.mark.asyncio
async def test_send_state_event_puts_content():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"event_id": "$new"})

    store = make_store(handler)
    event_id = await store.send_state_event("!room:x", "org.matrix.mjolnir.shortcode", "", {"shortcode": "coc"})

    assert event_id == "$new"
    assert seen[0].method == "PUT"
    assert seen[0].url.raw_path == b"/_matrix/client/v3/rooms/%21room%3Ax/state/org.matrix.mjolnir.shortcode/"
    assert json.loads(seen[0].content) == {"shortcode": "coc"}
    await store.aclose()


@pytest.mark.asyncio
async def test_send_state_event_without_event_id():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    store = make_store(handler)

    with pytest.raises(PolicyStoreError):
        await store.send_state_event("!room:x", "m.policy.rule.user", "rule:@a:x", {})
    await store.aclose()


@pytest.mark.asyncio
async def test_invalid_json_raises_store_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>gateway</html>")

    store = make_store(handler)

    with pytest.raises(PolicyStoreError):
        await store.get_room_state("!room:x")
    await store.aclose()
