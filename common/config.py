"""
YAML configuration for the localization engine.

Every section is optional; missing keys fall back to the defaults below, which
match the values the engine was tuned with on a 1080p device. Example:

    resolver:
      max_attempts: 5
      max_map_diff: 80
    actuator:
      min_scroll: 75
      delay_coefficient: 1.2
    predictor:
      backend: superglue
    maps:
      "0-2": {max_side_diff: 8}
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from common.errors import ConfigError
from common.types import Rect


@dataclass(frozen=True)
class ResolverConfig:
    max_attempts: int = 5
    # Distance between estimated and reference node size
    max_map_diff: float = 80.0
    # Estimated nodes should be roughly square
    max_side_diff: float = 5.0
    # Upper bound on scroll corrections within one top-level resolve()
    max_corrections: int = 10
    scroll_settle_ms: int = 200
    predict_timeout_s: Optional[float] = None


@dataclass(frozen=True)
class ActuatorConfig:
    # Smaller swipes are sometimes ignored by the game
    min_scroll: int = 75
    anchor_jitter: int = 50
    swipe_duration_ms: int = 400
    pinch_start_radius: Tuple[int, int] = (500, 700)
    pinch_end_radius: Tuple[int, int] = (300, 400)
    pinch_duration_ms: int = 500
    reset_settle_ms: int = 900
    delay_coefficient: float = 1.0


@dataclass(frozen=True)
class PredictorConfig:
    backend: str = "orb"
    # None feeds full-resolution images to the model
    input_size: Optional[Tuple[int, int]] = (480, 360)
    # CLAHE contrast equalisation on both model inputs, None disables
    clahe_clip: Optional[float] = None
    models_dir: str = "assets/models"
    torch_device: str = "cpu"
    min_matches: int = 12
    min_inliers: int = 8
    ransac_px: float = 4.0
    orb_nfeatures: int = 2000
    orb_fast_threshold: int = 12
    ratio: float = 0.8
    match_threshold: float = 0.2


@dataclass(frozen=True)
class DeviceConfig:
    kind: str = "adb"
    serial: Optional[str] = None
    adb_path: str = "adb"
    minitouch_path: str = "/data/local/tmp/minitouch"
    command_timeout_s: float = 10.0
    # Map widget area on the device screen, None for the whole screen
    view_window: Optional[Rect] = None
    # Simulated device only
    sim_screen_size: Tuple[int, int] = (1920, 1080)
    sim_start_zoom: float = 1.0
    sim_start_offset: Tuple[int, int] = (0, 0)
    sim_noise_std: float = 0.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    metrics_file: Optional[str] = None


@dataclass(frozen=True)
class EngineConfig:
    assets_root: str = "assets/maps"
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    actuator: ActuatorConfig = field(default_factory=ActuatorConfig)
    predictor: PredictorConfig = field(default_factory=PredictorConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    maps: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def resolver_for(self, map_id: str, base: Optional[ResolverConfig] = None) -> ResolverConfig:
        """Resolver settings with the per-map overrides from the `maps:` section applied."""
        base = base or self.resolver
        overrides = self.maps.get(str(map_id)) or {}
        if not overrides:
            return base
        return _build(ResolverConfig, overrides, base=base, section=f"maps.{map_id}")


def _pair(v: Any, cast=int) -> Tuple[Any, Any]:
    if isinstance(v, str):
        v = v.lower().replace("x", ",").split(",")
    a, b = v
    return (cast(a), cast(b))


_CASTS = {
    "pinch_start_radius": _pair,
    "pinch_end_radius": _pair,
    "input_size": _pair,
    "sim_screen_size": _pair,
    "sim_start_offset": _pair,
    "view_window": lambda v: Rect.from_dict(v) if isinstance(v, dict) else Rect(*[int(x) for x in v]),
}


def _build(cls, raw: Optional[Dict[str, Any]], *, base=None, section: str = ""):
    base = base if base is not None else cls()
    if raw is None:
        return base
    if not isinstance(raw, dict):
        raise ConfigError(f"Section '{section}' must be a mapping")
    updates: Dict[str, Any] = {}
    for name in base.__dataclass_fields__:
        if name not in raw:
            continue
        value = raw[name]
        current = getattr(base, name)
        try:
            if value is None:
                updates[name] = None
            elif name in _CASTS:
                updates[name] = _CASTS[name](value)
            elif isinstance(current, bool):
                updates[name] = bool(value)
            elif isinstance(current, int):
                updates[name] = int(value)
            elif isinstance(current, float) or name in ("predict_timeout_s", "clahe_clip"):
                updates[name] = float(value)
            else:
                updates[name] = str(value) if current is not None or isinstance(value, str) else value
        except (TypeError, ValueError, KeyError) as e:
            raise ConfigError(f"Invalid value for {section}.{name}: {value!r}") from e
    return replace(base, **updates)


def load_config(path: Optional[str] = None) -> EngineConfig:
    """
    Load EngineConfig from a YAML file. A missing path or file yields defaults.
    """
    if not path or not Path(path).exists():
        return EngineConfig()
    try:
        with open(path, "r") as f:
            P = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    return config_from_dict(P)


def config_from_dict(P: Dict[str, Any]) -> EngineConfig:
    if not isinstance(P, dict):
        raise ConfigError("Top-level config must be a mapping")
    maps = P.get("maps") or {}
    if not isinstance(maps, dict):
        raise ConfigError("Section 'maps' must be a mapping")
    cfg = EngineConfig(
        assets_root=str((P.get("assets") or {}).get("root", "assets/maps")),
        resolver=_build(ResolverConfig, P.get("resolver"), section="resolver"),
        actuator=_build(ActuatorConfig, P.get("actuator"), section="actuator"),
        predictor=_build(PredictorConfig, P.get("predictor"), section="predictor"),
        device=_build(DeviceConfig, P.get("device"), section="device"),
        logging=_build(LoggingConfig, P.get("logging"), section="logging"),
        maps={str(k): dict(v or {}) for k, v in maps.items()},
    )
    if cfg.resolver.max_attempts < 1:
        raise ConfigError("resolver.max_attempts must be >= 1")
    if cfg.actuator.min_scroll <= 0:
        raise ConfigError("actuator.min_scroll must be > 0")
    for name in ("pinch_start_radius", "pinch_end_radius"):
        lo, hi = getattr(cfg.actuator, name)
        if lo >= hi:
            raise ConfigError(f"actuator.{name} must be an increasing [lo, hi) pair")
    # validate overrides eagerly so typos fail at startup
    for map_id in cfg.maps:
        cfg.resolver_for(map_id)
    return cfg
