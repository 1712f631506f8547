from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional

from common.config import EngineConfig, ResolverConfig


@dataclass(frozen=True)
class MapDefinition:
    """
    Per-map tuning. Thresholds left as None use the resolver defaults;
    YAML `maps:` overrides win over the values registered here.
    """
    map_id: str
    description: str = ""
    max_map_diff: Optional[float] = None
    max_side_diff: Optional[float] = None


MAP_DEFINITIONS: Dict[str, MapDefinition] = {}


def register_map(definition: MapDefinition) -> MapDefinition:
    if definition.map_id in MAP_DEFINITIONS:
        raise ValueError(f"Map {definition.map_id!r} already registered")
    MAP_DEFINITIONS[definition.map_id] = definition
    return definition


def get_map_definition(map_id: str) -> MapDefinition:
    return MAP_DEFINITIONS.get(str(map_id)) or MapDefinition(str(map_id))


def resolver_config_for(map_id: str, config: EngineConfig) -> ResolverConfig:
    d = get_map_definition(map_id)
    base = config.resolver
    if d.max_map_diff is not None:
        base = replace(base, max_map_diff=float(d.max_map_diff))
    if d.max_side_diff is not None:
        base = replace(base, max_side_diff=float(d.max_side_diff))
    return config.resolver_for(map_id, base=base)


register_map(MapDefinition("0-2", description="Chapter 0-2, corpse dragging map"))
register_map(MapDefinition("demo", description="Synthetic map from scripts/make_demo_map.py"))
