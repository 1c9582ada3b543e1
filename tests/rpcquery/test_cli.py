from __future__ import annotations

import json

import httpx
import pytest

from rpcquery import cli


@pytest.fixture
def mock_http(monkeypatch):
    """Route every ``httpx.AsyncClient`` created by the CLI to ``handler``."""

    real_client = httpx.AsyncClient
    requests: list[httpx.Request] = []
    state: dict = {"response": httpx.Response(200, json={"result": {"data": None}})}

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return state["response"]

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)

    def respond(status: int, payload: dict) -> list[httpx.Request]:
        state["response"] = httpx.Response(status, json=payload)
        return requests

    return respond


def test_key_prints_key_and_hash(capsys) -> None:
    assert cli.main(["key", "user.get", "--input", '{"id": 1}']) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["key"] == [["user", "get"], {"input": {"id": 1}, "type": "query"}]
    assert out["hash"] == '[["user","get"],{"input":{"id":1},"type":"query"}]'


def test_key_for_path_level(capsys) -> None:
    assert cli.main(["key", "user", "--kind", "any"]) == 0
    assert json.loads(capsys.readouterr().out)["key"] == [["user"]]


def test_key_rejects_empty_segments(capsys) -> None:
    assert cli.main(["key", "user..get"]) == 1
    assert "empty segment" in json.loads(capsys.readouterr().out)["error"]["message"]


def test_invalid_json_input_exits() -> None:
    with pytest.raises(SystemExit, match="not valid JSON"):
        cli.main(["key", "user.get", "--input", "{nope"])


def test_unknown_command_is_rejected(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["fetch"])
    assert excinfo.value.code == 2
    assert "invalid choice" in capsys.readouterr().err


def test_call_query_prints_result(mock_http, capsys) -> None:
    requests = mock_http(200, {"result": {"data": {"id": 1, "name": "Ada"}}})

    code = cli.main(["call", "user.get", "--url", "http://api.test/trpc", "--input", '{"id": 1}'])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"result": {"id": 1, "name": "Ada"}}
    assert requests[0].method == "GET"
    assert requests[0].url.path == "/trpc/user/get"
    assert json.loads(requests[0].url.params["input"]) == {"id": 1}


def test_call_mutation_posts_body(mock_http, capsys) -> None:
    requests = mock_http(200, {"result": {"data": {"id": 2}}})

    code = cli.main(["call", "user.create", "--mutation", "--url", "http://api.test", "--input", '{"name": "Lin"}'])

    assert code == 0
    assert requests[0].method == "POST"
    assert json.loads(requests[0].content) == {"name": "Lin"}


def test_call_reports_rpc_errors(mock_http, capsys) -> None:
    mock_http(
        404,
        {"error": {"message": "no such user", "code": -32004, "data": {"code": "NOT_FOUND", "httpStatus": 404}}},
    )

    assert cli.main(["call", "user.get", "--url", "http://api.test"]) == 1
    error = json.loads(capsys.readouterr().out)["error"]
    assert error["message"] == "no such user"
    assert error["code"] == -32004
    assert error["data"]["code"] == "NOT_FOUND"
    assert error["data"]["path"] == "user.get"


def test_call_uses_config_file(mock_http, capsys, tmp_path) -> None:
    requests = mock_http(200, {"result": {"data": "pong"}})
    cfg = tmp_path / "rpcquery.yml"
    cfg.write_text("transport:\n  url: http://from-config/rpc\n  method_override: POST\n")

    assert cli.main(["call", "health.ping", "--config", str(cfg)]) == 0
    assert json.loads(capsys.readouterr().out) == {"result": "pong"}
    assert requests[0].method == "POST"
    assert str(requests[0].url) == "http://from-config/rpc/health/ping"


def test_call_without_url_fails(capsys, configure_rpcquery) -> None:
    configure_rpcquery({"query": {"abort_on_unmount": False}})

    assert cli.main(["call", "health.ping"]) == 1
    assert "transport.url" in json.loads(capsys.readouterr().out)["error"]["message"]


def test_config_reports_discovered_file(capsys, configure_rpcquery) -> None:
    configure_rpcquery({"transport": {"url": "http://from-file/trpc", "headers": {"X-Team": "core"}}})

    assert cli.main(["config"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["source"].endswith("rpcquery.yml")
    assert out["transport"]["url"] == "http://from-file/trpc"
    assert out["transport"]["headers"] == {"X-Team": "core"}
    assert out["websocket"]["max_retries"] == 5
    assert out["query"] == {"abort_on_unmount": False}


def test_config_without_file_reports_defaults(capsys, configure_rpcquery, monkeypatch, tmp_path) -> None:
    configure_rpcquery({})
    (tmp_path / "rpcquery.yml").unlink()
    monkeypatch.setenv("RPCQUERY_URL", "http://from-env")

    assert cli.main(["config"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["source"] is None
    assert out["transport"]["url"] == "http://from-env"


def test_config_reports_unreadable_file(capsys, tmp_path) -> None:
    bad = tmp_path / "bad.yml"
    bad.write_text("- just\n- a list\n")

    assert cli.main(["config", "--config", str(bad)]) == 1
    assert "mapping" in json.loads(capsys.readouterr().out)["error"]["message"]
