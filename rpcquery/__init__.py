"""Public API surface for the rpcquery package."""

from __future__ import annotations

import importlib

from .foundation.common.cancellation import CancellationToken
from .runtime import *  # noqa: F401,F403
from .runtime import __all__ as _runtime_all

__version__ = "0.1.0"

__all__ = ["CancellationToken", "cli", "foundation", "runtime", *_runtime_all]

_MODULES = {
    "cli": "rpcquery.cli",
    "foundation": "rpcquery.foundation",
    "runtime": "rpcquery.runtime",
}


def __getattr__(name: str):
    module_path = _MODULES.get(name)
    if module_path is None:
        raise AttributeError(name)
    module = importlib.import_module(module_path)
    globals()[name] = module
    return module


def __dir__():
    return sorted(set(__all__))
