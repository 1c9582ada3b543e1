from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)


_TRANSPORT_ALIASES: dict[str, str] = {
    "base_url": "url",
    "endpoint": "url",
    "timeout": "timeout_seconds",
    "http_timeout_seconds": "timeout_seconds",
}

_WEBSOCKET_ALIASES: dict[str, str] = {
    "ws_url": "url",
    "retries": "max_retries",
}

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


@dataclass
class TransportConfig:
    """HTTP transport settings consumed by :class:`TransportAdapter`."""

    url: str | None = field(default=None, metadata={"env": "RPCQUERY_URL"})
    method_override: str | None = field(
        default=None, metadata={"env": "RPCQUERY_METHOD_OVERRIDE"}
    )
    timeout_seconds: float = field(
        default=10.0, metadata={"env": "RPCQUERY_HTTP_TIMEOUT"}
    )
    headers: Dict[str, str] = field(default_factory=dict)
    propagate_trace_context: bool = field(
        default=True, metadata={"env": "RPCQUERY_PROPAGATE_TRACE"}
    )
    raise_for_status: bool = field(
        default=False, metadata={"env": "RPCQUERY_RAISE_FOR_STATUS"}
    )

    def __post_init__(self) -> None:
        if self.method_override is not None:
            method = str(self.method_override).upper()
            if method != "POST":
                raise ValueError(
                    f"method_override only supports 'POST', got {self.method_override!r}"
                )
            self.method_override = method


@dataclass
class WebSocketConfig:
    """Websocket subscription link settings."""

    url: str | None = field(default=None, metadata={"env": "RPCQUERY_WS_URL"})
    max_retries: int | None = field(
        default=5, metadata={"env": "RPCQUERY_WS_MAX_RETRIES"}
    )
    base_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 8.0


@dataclass
class QueryConfig:
    """Defaults applied to descriptors built by the options proxy."""

    abort_on_unmount: bool = field(
        default=False, metadata={"env": "RPCQUERY_ABORT_ON_UNMOUNT"}
    )


CONFIG_SECTION_NAMES: tuple[str, ...] = (
    "transport",
    "websocket",
    "query",
)


@dataclass
class UnifiedConfig:
    """Configuration aggregating transport, subscription and descriptor settings."""

    transport: TransportConfig = field(default_factory=TransportConfig)
    websocket: WebSocketConfig = field(default_factory=WebSocketConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    present_sections: FrozenSet[str] = field(default_factory=frozenset)


def find_config_file(cwd: Path | None = None) -> str | None:
    """Return the first discoverable configuration file in ``cwd``."""

    base = Path.cwd() if cwd is None else cwd

    for name in ("rpcquery.yml", "rpcquery.yaml"):
        candidate = base / name
        if candidate.is_file():
            return str(candidate)
    return None


def _read_config_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                logger.error("Failed to parse configuration file %s: %s", path, exc)
                raise ValueError(f"Failed to parse configuration file {path}") from exc
    except (FileNotFoundError, OSError) as exc:
        logger.error("Unable to open configuration file %s: %s", path, exc)
        raise

    if not isinstance(data, dict):
        raise TypeError("Unified config must be a mapping")
    return data


def _extract_sections(data: Mapping[str, Any]) -> tuple[dict[str, dict[str, Any]], FrozenSet[str]]:
    present_sections: FrozenSet[str] = frozenset(
        section
        for section in CONFIG_SECTION_NAMES
        if section in data and isinstance(data.get(section), dict)
    )

    sections: dict[str, dict[str, Any]] = {}
    for section_name in CONFIG_SECTION_NAMES:
        raw_section = data.get(section_name, {})
        if raw_section is None:
            raw_section = {}
        if not isinstance(raw_section, dict):
            raise TypeError(f"{section_name} section must be a mapping")
        sections[section_name] = dict(raw_section)
    return sections, present_sections


def _apply_aliases(section: Mapping[str, Any], aliases: Mapping[str, str], *, logger_prefix: str) -> dict[str, Any]:
    normalized = dict(section)
    for alias, canonical in aliases.items():
        if canonical in normalized:
            continue
        if alias in normalized:
            logger.warning(
                "%s: key '%s' is deprecated; use '%s' instead",
                logger_prefix,
                alias,
                canonical,
            )
            normalized[canonical] = normalized.pop(alias)
    return normalized


def _coerce_env(raw: str, type_hint: str) -> Any:
    hint = type_hint.replace(" ", "")
    value = raw.strip()
    if "None" in hint and value.lower() in {"", "none", "null"}:
        return None
    if hint.startswith("bool"):
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"invalid boolean value {raw!r}")
    if hint.startswith("int"):
        return int(value)
    if hint.startswith("float"):
        return float(value)
    return value


def _env_overrides(section_cls: type, environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for f in fields(section_cls):
        env_name = f.metadata.get("env")
        if not env_name or env_name not in environ:
            continue
        hint = f.type if isinstance(f.type, str) else getattr(f.type, "__name__", "str")
        try:
            overrides[f.name] = _coerce_env(environ[env_name], hint)
        except ValueError as exc:
            raise ValueError(f"{env_name}: {exc}") from exc
    return overrides


def apply_env_overrides(
    config: UnifiedConfig, environ: Mapping[str, str] | None = None
) -> UnifiedConfig:
    """Return a copy of ``config`` with ``RPCQUERY_*`` environment overrides applied."""

    env = os.environ if environ is None else environ
    transport = replace(config.transport, **_env_overrides(TransportConfig, env))
    websocket = replace(config.websocket, **_env_overrides(WebSocketConfig, env))
    query = replace(config.query, **_env_overrides(QueryConfig, env))
    return replace(config, transport=transport, websocket=websocket, query=query)


def load_config(path: str, *, environ: Mapping[str, str] | None = None) -> UnifiedConfig:
    """Parse YAML/JSON and populate :class:`UnifiedConfig`."""
    data = _read_config_mapping(path)
    sections, present_sections = _extract_sections(data)

    transport_data = _apply_aliases(
        sections["transport"], _TRANSPORT_ALIASES, logger_prefix="transport"
    )
    websocket_data = _apply_aliases(
        sections["websocket"], _WEBSOCKET_ALIASES, logger_prefix="websocket"
    )

    unified = UnifiedConfig(
        transport=TransportConfig(**transport_data),
        websocket=WebSocketConfig(**websocket_data),
        query=QueryConfig(**sections["query"]),
        present_sections=present_sections,
    )
    return apply_env_overrides(unified, environ)


__all__ = [
    "CONFIG_SECTION_NAMES",
    "QueryConfig",
    "TransportConfig",
    "UnifiedConfig",
    "WebSocketConfig",
    "apply_env_overrides",
    "find_config_file",
    "load_config",
]
