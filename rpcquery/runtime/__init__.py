"""Client runtime: keys, transports, descriptors and subscriptions."""

from __future__ import annotations

from .client import RpcClient, create_client
from .errors import (
    AbortError,
    HttpEnvelopeError,
    InvalidPathError,
    MalformedResponseError,
    RpcClientError,
    RpcQueryError,
    TransportError,
    UnsupportedOperationError,
    is_abort_error,
)
from .http import HttpCapability, HttpResponse, HttpResponseError, HttpxCapability
from .keys import SKIP_TOKEN, hash_key, mutation_key, partial_match_key, query_key
from .local import LocalClient, LocalTransport
from .operation import Operation, OperationResult, ProcedureKind, SubscriptionHandlers
from .options import QueryFunctionContext
from .proxy import OptionsProxy, create_options_proxy, resolve
from .router import Procedure, ProcedureError, Router, mutation, query, subscription
from .bridge import SubscriptionBridge, SubscriptionState
from .transformer import CombinedTransformer, IdentityTransformer, TaggedJsonTransformer
from .transport import TransportAdapter
from .ws_link import WebSocketLink

__all__ = [
    "AbortError",
    "CombinedTransformer",
    "HttpCapability",
    "HttpEnvelopeError",
    "HttpResponse",
    "HttpResponseError",
    "HttpxCapability",
    "IdentityTransformer",
    "InvalidPathError",
    "LocalClient",
    "LocalTransport",
    "MalformedResponseError",
    "Operation",
    "OperationResult",
    "OptionsProxy",
    "Procedure",
    "ProcedureError",
    "ProcedureKind",
    "QueryFunctionContext",
    "Router",
    "RpcClient",
    "RpcClientError",
    "RpcQueryError",
    "SKIP_TOKEN",
    "SubscriptionBridge",
    "SubscriptionHandlers",
    "SubscriptionState",
    "TaggedJsonTransformer",
    "TransportAdapter",
    "TransportError",
    "UnsupportedOperationError",
    "WebSocketLink",
    "create_client",
    "create_options_proxy",
    "hash_key",
    "is_abort_error",
    "mutation",
    "mutation_key",
    "partial_match_key",
    "query",
    "query_key",
    "resolve",
    "subscription",
]
