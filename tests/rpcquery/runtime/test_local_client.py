import asyncio
import datetime as dt
import logging

import pytest
from pydantic import BaseModel

from rpcquery.foundation.common.cancellation import CancellationToken
from rpcquery.runtime.errors import AbortError, HttpEnvelopeError, UnsupportedOperationError
from rpcquery.runtime.local import LocalClient, LocalTransport
from rpcquery.runtime.operation import Operation, ProcedureKind
from rpcquery.runtime.proxy import create_options_proxy
from rpcquery.runtime.router import ProcedureError, Router, mutation, query, subscription
from rpcquery.runtime.transformer import TaggedJsonTransformer


class CreateUser(BaseModel):
    name: str


USERS = {1: {"id": 1, "name": "Ada"}}


def get_user(input, ctx):
    user = USERS.get(input["id"])
    if user is None:
        raise ProcedureError("NOT_FOUND", f"user {input['id']} not found", data={"id": input["id"]})
    return user


async def create_user(input: CreateUser, ctx):
    return {"id": 2, "name": input.name, "by": ctx.get("viewer")}


async def ticks(input, ctx):
    for n in range(input["count"]):
        yield {"tick": n}


def _router() -> Router:
    return Router(
        {
            "user": {
                "get": query(get_user),
                "create": mutation(create_user, input=CreateUser),
                "whoami": query(lambda input, ctx: ctx),
            },
            "clock": {
                "ticks": subscription(ticks),
                "broken": subscription(lambda input, ctx: [1, 2]),
                "forever": subscription(_forever),
            },
            "explode": query(lambda input, ctx: 1 / 0),
            "echo": query(lambda input, ctx: input),
        }
    )


async def _forever(input, ctx):
    while True:
        await asyncio.sleep(0.01)
        yield "tick"


class Collector:
    def __init__(self) -> None:
        self.events: list = []
        self.done = asyncio.Event()

    def handlers(self) -> dict:
        return {
            "on_started": lambda: self.events.append("started"),
            "on_data": self.events.append,
            "on_error": self._finish,
            "on_complete": lambda: self._finish("complete"),
        }

    def _finish(self, event) -> None:
        self.events.append(event)
        self.done.set()


@pytest.mark.asyncio
async def test_query_and_mutation_run_in_process():
    client = LocalClient(_router(), context={"viewer": "root"})
    assert await client.query("user.get", {"id": 1}) == {"id": 1, "name": "Ada"}
    assert await client.mutation("user.create", {"name": "Grace"}) == {"id": 2, "name": "Grace", "by": "root"}


@pytest.mark.asyncio
async def test_context_factory_receives_the_operation():
    seen: list[Operation] = []

    async def make_context(op: Operation):
        seen.append(op)
        return {"path": op.path}

    client = LocalClient(_router(), context=make_context)
    assert await client.query(["user", "whoami"]) == {"path": "user.whoami"}
    assert seen[0].type is ProcedureKind.QUERY


@pytest.mark.asyncio
async def test_procedure_error_becomes_envelope_error():
    client = LocalClient(_router())
    with pytest.raises(HttpEnvelopeError) as excinfo:
        await client.query("user.get", {"id": 99})
    err = excinfo.value
    assert err.data_code == "NOT_FOUND"
    assert err.http_status == 404
    assert err.code == -32004
    assert err.path == "user.get"
    assert err.data["id"] == 99
    assert err.meta == {"local": True}
    assert isinstance(err.__cause__, ProcedureError)


@pytest.mark.asyncio
async def test_procedure_error_data_cannot_replace_reserved_keys():
    def gone(input, ctx):
        raise ProcedureError(
            "NOT_FOUND",
            "gone",
            data={"path": "other", "code": "CONFLICT", "httpStatus": 409, "http_status": 409, "hint": "retry"},
        )

    client = LocalClient(Router({"thing": query(gone)}))
    with pytest.raises(HttpEnvelopeError) as excinfo:
        await client.query("thing")
    err = excinfo.value
    assert err.message == "gone"
    assert err.data_code == "NOT_FOUND"
    assert err.http_status == 404
    assert err.path == "thing"
    assert err.data["hint"] == "retry"
    assert err.data["http_status"] == 409


@pytest.mark.asyncio
async def test_unknown_path_and_wrong_kind():
    client = LocalClient(_router())
    with pytest.raises(HttpEnvelopeError) as missing:
        await client.query("user.delete")
    assert missing.value.data_code == "NOT_FOUND"

    with pytest.raises(HttpEnvelopeError) as wrong_kind:
        await client.query("user.create", {"name": "x"})
    assert wrong_kind.value.data_code == "METHOD_NOT_SUPPORTED"
    assert wrong_kind.value.http_status == 405


@pytest.mark.asyncio
async def test_input_validation_is_a_bad_request():
    client = LocalClient(_router())
    with pytest.raises(HttpEnvelopeError) as excinfo:
        await client.mutation("user.create", {"nom": "Grace"})
    assert excinfo.value.data_code == "BAD_REQUEST"
    assert excinfo.value.http_status == 400


@pytest.mark.asyncio
async def test_unexpected_exceptions_are_internal_errors(caplog):
    client = LocalClient(_router())
    with caplog.at_level(logging.ERROR):
        with pytest.raises(HttpEnvelopeError) as excinfo:
            await client.query("explode")
    assert excinfo.value.data_code == "INTERNAL_SERVER_ERROR"
    assert isinstance(excinfo.value.__cause__, ZeroDivisionError)
    assert "explode" in caplog.text


@pytest.mark.asyncio
async def test_values_cross_the_transformer():
    when = dt.datetime(2024, 5, 1, 12, 30)
    tagged = LocalClient(_router(), transformer=TaggedJsonTransformer())
    result = await tagged.query("echo", {"at": when, "pair": (1, 2)})
    assert result == {"at": when, "pair": (1, 2)}

    plain = LocalClient(_router())
    payload = {"a": [1, 2]}
    assert await plain.query("echo", payload) is payload


@pytest.mark.asyncio
async def test_unserializable_values_are_rejected():
    client = LocalClient(_router(), transformer=TaggedJsonTransformer())
    with pytest.raises(HttpEnvelopeError) as excinfo:
        await client.query("echo", {"obj": object()})
    assert isinstance(excinfo.value.__cause__, TypeError)


@pytest.mark.asyncio
async def test_aborted_signal_short_circuits():
    token = CancellationToken()
    token.abort("unmounted")
    client = LocalClient(_router())
    with pytest.raises(AbortError) as excinfo:
        await client.query("user.get", {"id": 1}, signal=token)
    assert excinfo.value.reason == "unmounted"


def test_execute_rejects_subscriptions_synchronously():
    transport = LocalTransport(_router())
    op = Operation(path="clock.ticks", input=None, type=ProcedureKind.SUBSCRIPTION)
    with pytest.raises(UnsupportedOperationError):
        transport.execute(op)


@pytest.mark.asyncio
async def test_subscription_streams_items():
    collector = Collector()
    client = LocalClient(_router())

    client.subscription("clock.ticks", {"count": 2}, collector.handlers())
    await asyncio.wait_for(collector.done.wait(), timeout=1)

    assert collector.events == ["started", {"tick": 0}, {"tick": 1}, "complete"]


@pytest.mark.asyncio
async def test_subscription_resolver_must_return_async_iterator():
    collector = Collector()
    LocalClient(_router()).subscription("clock.broken", None, collector.handlers())
    await asyncio.wait_for(collector.done.wait(), timeout=1)

    err = collector.events[-1]
    assert isinstance(err, HttpEnvelopeError)
    assert err.data_code == "INTERNAL_SERVER_ERROR"


@pytest.mark.asyncio
async def test_unsubscribe_stops_the_stream():
    collector = Collector()
    handle = LocalClient(_router()).subscription("clock.forever", None, collector.handlers())
    await asyncio.sleep(0.05)
    handle.unsubscribe()
    handle.unsubscribe()
    await asyncio.sleep(0.03)
    count = len(collector.events)
    await asyncio.sleep(0.03)

    assert handle.closed is True
    assert len(collector.events) == count
    assert "complete" not in collector.events


@pytest.mark.asyncio
async def test_options_proxy_over_local_client():
    client = LocalClient(_router())
    rq = create_options_proxy(client, router=client.router)

    options = rq.user.get.query_options({"id": 1})
    assert options["query_key"] == (("user", "get"), {"input": {"id": 1}, "type": "query"})
    assert await options["query_fn"]() == {"id": 1, "name": "Ada"}

    create = rq.user.create.mutation_options()
    assert await create["mutation_fn"]({"name": "Lin"}) == {"id": 2, "name": "Lin", "by": None}
