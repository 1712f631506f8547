"""
Map Localization Engine

- LocalizationCache: single-slot homography cache, invalidated explicitly
- NodeResolver: cached/predicted homography -> validated on-screen node region,
  with view resets, scroll corrections and a bounded retry budget
- ViewActuator: jittered zoom-out and scroll gestures
- MapSession: explicit per-map context joining asset and model loading

Entry point:
    python -m localization.cli --config config/params.yaml --map 0-2 --node 2
"""
from .actuator import ViewActuator
from .cache import LocalizationCache
from .registry import MAP_DEFINITIONS, MapDefinition, get_map_definition, register_map
from .resolver import NodeResolver, overscroll, validate_estimate
from .session import MapSession

__all__ = [
    "ViewActuator",
    "LocalizationCache",
    "MAP_DEFINITIONS",
    "MapDefinition",
    "get_map_definition",
    "register_map",
    "NodeResolver",
    "overscroll",
    "validate_estimate",
    "MapSession",
]
