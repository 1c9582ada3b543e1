"""Test configuration and shared fixtures."""

from typing import Callable

import httpx
import pytest
import pytest_asyncio
import yaml

from rpcquery.runtime import configuration as rq_configuration
from rpcquery.runtime import metrics as rq_metrics
from rpcquery.runtime.http import HttpxCapability
from rpcquery.runtime.transport import TransportAdapter


@pytest.fixture(autouse=True)
def _reset_metrics():
    rq_metrics.reset_metrics()
    yield
    rq_metrics.reset_metrics()


@pytest.fixture
def configure_rpcquery(tmp_path, monkeypatch):
    def _apply(data: dict, *, filename: str = "rpcquery.yml") -> str:
        cfg_path = tmp_path / filename
        cfg_path.write_text(yaml.safe_dump(data))
        monkeypatch.chdir(tmp_path)
        rq_configuration.reset_runtime_config_cache()
        return str(cfg_path)

    try:
        yield _apply
    finally:
        rq_configuration.reset_runtime_config_cache()


@pytest_asyncio.fixture
async def make_transport():
    """Build a :class:`TransportAdapter` whose requests hit ``handler``."""

    clients: list[httpx.AsyncClient] = []

    def _make(handler: Callable, *, url: str = "http://api.test/trpc", **kwargs) -> TransportAdapter:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        kwargs.setdefault("propagate_trace_context", False)
        return TransportAdapter(HttpxCapability(client), url=url, **kwargs)

    try:
        yield _make
    finally:
        for client in clients:
            await client.aclose()
