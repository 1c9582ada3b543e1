import json

import httpx
import pytest

from rpcquery.foundation.config import QueryConfig, TransportConfig, UnifiedConfig, WebSocketConfig
from rpcquery.runtime.client import RpcClient, create_client
from rpcquery.runtime.configuration import runtime_config_override
from rpcquery.runtime.errors import UnsupportedOperationError
from rpcquery.runtime.http import HttpxCapability
from rpcquery.runtime.operation import ProcedureKind
from rpcquery.runtime.transport import TransportAdapter
from rpcquery.runtime.ws_link import WebSocketLink


def _capability(handler) -> HttpxCapability:
    return HttpxCapability(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_create_client_from_explicit_config():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"result": {"data": "pong"}})

    config = UnifiedConfig(
        transport=TransportConfig(url="http://api.test/trpc", headers={"X-Team": "core"}, propagate_trace_context=False),
        query=QueryConfig(abort_on_unmount=True),
    )
    http = _capability(handler)
    client = create_client(config, http=http)

    assert isinstance(client.transport, TransportAdapter)
    assert client.subscription_link is None
    assert client.abort_on_unmount is True
    assert await client.query("health.ping") == "pong"
    assert seen[0].url.path == "/trpc/health/ping"
    assert seen[0].headers["X-Team"] == "core"
    await http.client.aclose()


@pytest.mark.asyncio
async def test_create_client_overrides_transport_fields():
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.content)
        assert request.method == "POST"
        return httpx.Response(200, json={"result": {"data": 1}})

    config = UnifiedConfig(transport=TransportConfig(url="http://ignored"))
    http = _capability(handler)
    client = create_client(config, http=http, url="http://api.test", method_override="POST")

    assert client.transport.url == "http://api.test"
    assert await client.query("count", {"n": 1}) == 1
    assert json.loads(bodies[0]) == {"n": 1}
    await http.client.aclose()


def test_create_client_reads_runtime_config(configure_rpcquery):
    configure_rpcquery(
        {
            "transport": {"url": "http://from-file/trpc"},
            "websocket": {"url": "ws://from-file/trpc", "max_retries": 2},
        }
    )
    client = create_client()

    assert client.transport.url == "http://from-file/trpc"
    assert isinstance(client.subscription_link, WebSocketLink)
    assert client.subscription_link.max_retries == 2


def test_create_client_prefers_runtime_override(configure_rpcquery):
    configure_rpcquery({"transport": {"url": "http://from-file"}})
    override = UnifiedConfig(
        transport=TransportConfig(url="http://override"),
        websocket=WebSocketConfig(url=None),
    )
    with runtime_config_override(override):
        assert create_client().transport.url == "http://override"
    assert create_client().transport.url == "http://from-file"


def test_create_client_requires_a_url():
    with pytest.raises(ValueError, match="transport.url"):
        create_client(UnifiedConfig())


def test_subscription_without_link_is_rejected():
    client = create_client(UnifiedConfig(transport=TransportConfig(url="http://api.test")))
    with pytest.raises(UnsupportedOperationError):
        client.subscription("chat.onMessage", {"room": 1}, {"on_data": print})


def test_subscription_without_link_never_reaches_the_transport():
    class PermissiveTransport:
        def __init__(self) -> None:
            self.calls = 0

        def execute(self, op):
            self.calls += 1
            raise AssertionError("subscriptions must not be executed")

    transport = PermissiveTransport()
    with pytest.raises(UnsupportedOperationError, match="PermissiveTransport"):
        RpcClient(transport).subscription("chat.onMessage")
    assert transport.calls == 0


def test_operations_get_distinct_ids():
    class Sink:
        def execute(self, op):
            raise AssertionError("not called")

    client = RpcClient(Sink())
    first = client._operation(ProcedureKind.QUERY, "a.b", None, None, None)
    second = client._operation(ProcedureKind.QUERY, ["a", "b"], None, None, {"k": 1})
    assert first.path == second.path == "a.b"
    assert first.id != second.id
    assert second.context == {"k": 1}


@pytest.mark.asyncio
async def test_client_is_an_async_context_manager():
    closed: list[str] = []

    class Closable:
        def __init__(self, name: str) -> None:
            self.name = name

        def execute(self, op):
            raise AssertionError("not called")

        def subscribe(self, op, handlers):
            raise AssertionError("not called")

        async def aclose(self) -> None:
            closed.append(self.name)

    async with RpcClient(Closable("transport"), subscription_link=Closable("link")):
        pass
    assert closed == ["link", "transport"]
