"""Process-wide access to the active rpcquery configuration.

Lookup order: an explicit path, then an override installed with
:func:`runtime_config_override`, then ``rpcquery.yml`` discovered in the
working directory. With no file the defaults are used, still subject to
``RPCQUERY_*`` environment overrides. The discovered result is cached until
:func:`reset_runtime_config_cache`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from rpcquery.foundation.config import (
    UnifiedConfig,
    apply_env_overrides,
    find_config_file,
    load_config,
)

logger = logging.getLogger(__name__)

OVERRIDE_SOURCE = "<override>"


@dataclass(frozen=True)
class ResolvedConfig:
    """A configuration and where it came from.

    ``source`` is the file path, :data:`OVERRIDE_SOURCE`, or ``None`` when
    only defaults and environment variables apply.
    """

    config: UnifiedConfig
    source: str | None = None


@dataclass
class _ConfigState:
    override: UnifiedConfig | None = None
    discovered: ResolvedConfig | None = None


_state = _ConfigState()


def set_runtime_config_override(config: UnifiedConfig | None) -> None:
    _state.override = config


def reset_runtime_config_cache() -> None:
    _state.discovered = None


@contextmanager
def runtime_config_override(config: UnifiedConfig | None) -> Iterator[None]:
    """Use ``config`` for every lookup inside the ``with`` block."""

    previous = _state.override
    _state.override = config
    try:
        yield
    finally:
        _state.override = previous


def _discover() -> ResolvedConfig:
    found = find_config_file()
    if found is None:
        logger.debug("no rpcquery.yml in %s; using defaults", Path.cwd())
        return ResolvedConfig(apply_env_overrides(UnifiedConfig()))
    logger.debug("loading rpcquery config from %s", found)
    return ResolvedConfig(load_config(found), found)


def resolve_runtime_config(path: str | Path | None = None) -> ResolvedConfig:
    if path is not None:
        return ResolvedConfig(load_config(str(path)), str(path))
    if _state.override is not None:
        return ResolvedConfig(_state.override, OVERRIDE_SOURCE)
    if _state.discovered is None:
        _state.discovered = _discover()
    return _state.discovered


def get_runtime_config(path: str | Path | None = None) -> UnifiedConfig:
    return resolve_runtime_config(path).config


__all__ = [
    "OVERRIDE_SOURCE",
    "ResolvedConfig",
    "get_runtime_config",
    "reset_runtime_config_cache",
    "resolve_runtime_config",
    "runtime_config_override",
    "set_runtime_config_override",
]
