from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, List

from .runtime.client import create_client
from .runtime.configuration import resolve_runtime_config
from .runtime.errors import RpcClientError, RpcQueryError
from .runtime.keys import hash_key, query_key
from .runtime.transformer import TaggedJsonTransformer

logger = logging.getLogger(__name__)

_TRANSFORMERS = {
    "identity": None,
    "tagged": TaggedJsonTransformer,
}


def _parse_input(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"--input is not valid JSON: {exc}") from exc


def _print(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, default=str, indent=2) + "\n")


def _cmd_config(args: argparse.Namespace) -> int:
    try:
        resolved = resolve_runtime_config(args.config)
    except (OSError, TypeError, ValueError) as exc:
        _print({"error": {"message": str(exc)}})
        return 1
    config = resolved.config
    _print(
        {
            "source": resolved.source,
            "transport": dataclasses.asdict(config.transport),
            "websocket": dataclasses.asdict(config.websocket),
            "query": dataclasses.asdict(config.query),
        }
    )
    return 0


def _cmd_key(args: argparse.Namespace) -> int:
    try:
        key = query_key(args.path, _parse_input(args.input), args.kind)
    except RpcQueryError as exc:
        _print({"error": {"message": str(exc)}})
        return 1
    _print({"key": key, "hash": hash_key(key)})
    return 0


async def _cmd_call(args: argparse.Namespace) -> int:
    try:
        resolved = resolve_runtime_config(args.config)
    except (OSError, TypeError, ValueError) as exc:
        _print({"error": {"message": str(exc)}})
        return 1
    logger.debug("using configuration from %s", resolved.source or "defaults")
    config = resolved.config
    overrides: dict[str, Any] = {}
    if args.url:
        overrides["url"] = args.url
    if args.method_override:
        overrides["method_override"] = args.method_override
    factory = _TRANSFORMERS[args.transformer]
    try:
        client = create_client(
            config,
            transformer=factory() if factory is not None else None,
            **overrides,
        )
    except ValueError as exc:
        _print({"error": {"message": str(exc)}})
        return 1

    payload = _parse_input(args.input)
    try:
        async with client:
            if args.mutation:
                result = await client.mutation(args.path, payload)
            else:
                result = await client.query(args.path, payload)
    except RpcClientError as exc:
        logger.debug("call failed: %r", exc)
        _print({"error": exc.shape})
        return 1
    except RpcQueryError as exc:
        _print({"error": {"message": str(exc)}})
        return 1
    _print({"result": result})
    return 0


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="rpcquery")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_key = sub.add_parser("key", help="Print the cache key for a procedure path")
    p_key.add_argument("path", help="Dotted procedure path, e.g. user.get")
    p_key.add_argument("--input", help="Procedure input as JSON")
    p_key.add_argument("--kind", default="query", choices=["query", "infinite", "any"])

    p_config = sub.add_parser("config", help="Print the resolved configuration and its source")
    p_config.add_argument("--config", help="Path to rpcquery.yml")

    p_call = sub.add_parser("call", help="Call a procedure over HTTP")
    p_call.add_argument("path", help="Dotted procedure path, e.g. user.get")
    p_call.add_argument("--input", help="Procedure input as JSON")
    p_call.add_argument("--mutation", action="store_true", help="Send as a mutation (POST)")
    p_call.add_argument("--url", help="Base URL; overrides transport.url")
    p_call.add_argument("--config", help="Path to rpcquery.yml")
    p_call.add_argument("--method-override", choices=["POST"], help="Send queries as POST")
    p_call.add_argument(
        "--transformer",
        default="identity",
        choices=sorted(_TRANSFORMERS),
        help="Payload transformer",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))

    if args.cmd == "key":
        return _cmd_key(args)
    if args.cmd == "config":
        return _cmd_config(args)
    return asyncio.run(_cmd_call(args))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
