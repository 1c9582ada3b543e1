import pytest

from rpcquery.runtime.client import RpcClient
from rpcquery.runtime.errors import InvalidPathError, UnsupportedOperationError
from rpcquery.runtime.keys import SKIP_TOKEN, query_key
from rpcquery.runtime.operation import OperationResult
from rpcquery.runtime.proxy import TERMINALS, OptionsProxy, create_options_proxy, path_of, resolve
from rpcquery.runtime.router import Router, mutation, query, subscription


class EchoTransport:
    def __init__(self) -> None:
        self.ops = []

    def execute(self, op):
        self.ops.append(op)

        async def run():
            return OperationResult(data={"path": op.path, "input": op.input})

        return run()


@pytest.fixture
def proxy():
    return create_options_proxy(RpcClient(EchoTransport()))


@pytest.fixture
def strict_proxy():
    router = Router(
        {
            "user": {
                "get": query(lambda input, ctx: input),
                "create": mutation(lambda input, ctx: input),
                "onChange": subscription(lambda input, ctx: None),
            },
        }
    )
    return create_options_proxy(RpcClient(EchoTransport()), router=router)


def test_path_depth_one(proxy) -> None:
    assert proxy.ping.query_key() == (("ping",), {"type": "query"})
    assert proxy.ping.mutation_key() == (("ping",),)


def test_path_accumulates_at_depth(proxy) -> None:
    options = proxy.a.b.c.d.e.f.query_options({"x": 1})
    assert options["query_key"] == (("a", "b", "c", "d", "e", "f"), {"input": {"x": 1}, "type": "query"})
    assert options["trpc"] == {"path": "a.b.c.d.e.f"}


@pytest.mark.asyncio
async def test_query_options_fetch_through_the_client(proxy) -> None:
    options = proxy.user.get.query_options({"id": 7})
    assert await options["query_fn"]() == {"path": "user.get", "input": {"id": 7}}


def test_item_access_reaches_terminal_named_segments(proxy) -> None:
    node = proxy["user"]["query_options"]
    assert path_of(node) == ("user", "query_options")
    assert node.query_key() == (("user", "query_options"), {"type": "query"})
    with pytest.raises(TypeError):
        proxy[0]  # type: ignore[index]


def test_dunder_lookups_do_not_extend_the_path(proxy) -> None:
    assert not hasattr(proxy, "__iter__")
    assert not hasattr(proxy.user, "__len__")
    assert repr(proxy.user.get) == "<OptionsProxy user.get>"
    assert repr(proxy) == "<OptionsProxy <root>>"


@pytest.mark.parametrize("terminal", sorted(TERMINALS))
def test_terminals_require_a_path(proxy, terminal) -> None:
    with pytest.raises(InvalidPathError):
        getattr(proxy, terminal)()


def test_filters_and_path_keys(proxy) -> None:
    assert proxy.user.path_key() == (("user",),)
    assert proxy.user.path_filter(exact=False) == {"exact": False, "query_key": (("user",),)}
    assert proxy.user.get.query_filter({"id": 1}, stale=True) == {
        "stale": True,
        "query_key": (("user", "get"), {"input": {"id": 1}, "type": "query"}),
    }
    assert proxy.post.list.infinite_query_filter({"limit": 5, "cursor": 3}) == {
        "query_key": (("post", "list"), {"input": {"limit": 5}, "type": "infinite"}),
    }
    assert proxy.post.list.infinite_query_key({"limit": 5}) == query_key("post.list", {"limit": 5}, "infinite")


def test_skip_token_is_idempotent(proxy) -> None:
    first = proxy.user.get.query_options(SKIP_TOKEN)
    second = proxy.user.get.query_options(SKIP_TOKEN)
    assert first["query_fn"] is SKIP_TOKEN and second["query_fn"] is SKIP_TOKEN
    assert first["query_key"] == second["query_key"]


def test_resolve_matches_attribute_access(proxy) -> None:
    client = RpcClient(EchoTransport())
    assert resolve(client, "user.get", "query_key", {"id": 1}) == proxy.user.get.query_key({"id": 1})
    assert resolve(client, ["user", "get"], "mutation_key") == (("user", "get"),)
    with pytest.raises(ValueError):
        resolve(client, "user.get", "fetch")
    with pytest.raises(InvalidPathError):
        resolve(client, (), "path_key")


def test_router_validates_kinds(strict_proxy) -> None:
    assert strict_proxy.user.get.query_key() == (("user", "get"), {"type": "query"})
    assert strict_proxy.user.create.mutation_options()["mutation_key"] == (("user", "create"),)
    assert strict_proxy.user.onChange.subscription_options()["enabled"] is True
    assert strict_proxy.user.path_key() == (("user",),)

    with pytest.raises(UnsupportedOperationError):
        strict_proxy.user.get.mutation_options()
    with pytest.raises(UnsupportedOperationError):
        strict_proxy.user.create.query_options()
    with pytest.raises(InvalidPathError):
        strict_proxy.user.missing.query_key()
    with pytest.raises(InvalidPathError):
        strict_proxy.nope.path_filter()


def test_dir_lists_router_children(strict_proxy) -> None:
    names = dir(strict_proxy.user)
    assert {"get", "create", "onChange"} <= set(names)
    assert "query_options" in names
    assert "user" in dir(strict_proxy)


def test_proxy_is_reusable_as_a_value() -> None:
    client = RpcClient(EchoTransport())
    node = OptionsProxy(client, ("a", "b"))
    assert node.c.query_key() == (("a", "b", "c"), {"type": "query"})
    assert node.query_key() == (("a", "b"), {"type": "query"})
