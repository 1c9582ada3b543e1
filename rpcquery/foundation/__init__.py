"""Foundation layer for shared infrastructure modules."""

from . import common, config
from .config import UnifiedConfig, load_config

__all__ = [
    "common",
    "config",
    "UnifiedConfig",
    "load_config",
]
