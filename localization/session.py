from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Dict, Optional

from common.config import EngineConfig
from common.logging_setup import get_logger
from common.types import MapNode, NodeId, Rect, ResolvedRegion
from device.base import DeviceChannel
from localization.actuator import Sleep, ViewActuator
from localization.cache import LocalizationCache
from localization.registry import resolver_config_for
from localization.resolver import NodeResolver, Predictor
from map_assets.store import MapAssets, MapAssetStore
from matching.predictor import CorrespondencePredictor

log = get_logger("localization.session")


class MapSession:
    """
    Everything needed to locate nodes on one map, passed around explicitly:
    assets, predictor, device, ViewWindow accessor, cache, actuator, resolver.

    Usage:
        async with await MapSession.open("0-2", device, config) as session:
            region = await session.resolve(14)
            await session.tap(2)
    """

    def __init__(
        self,
        assets: MapAssets,
        predictor: Predictor,
        device: DeviceChannel,
        config: EngineConfig,
        *,
        view_window: Optional[Callable[[], Awaitable[Rect]]] = None,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.assets = assets
        self.predictor = predictor
        self.device = device
        self.config = config
        # read on every attempt, the map widget can move between calls
        self.view_window = view_window or device.view_window
        self.cache = LocalizationCache()
        self.lock = asyncio.Lock()
        self.actuator = ViewActuator(device, self.cache, config.actuator, rng=rng, sleep=sleep)
        self.resolver = NodeResolver(
            reference=assets.reference_image,
            predictor=predictor,
            cache=self.cache,
            actuator=self.actuator,
            device=device,
            view_window=self.view_window,
            cfg=resolver_config_for(assets.map_id, config),
            lock=self.lock,
        )

    @classmethod
    async def open(
        cls,
        map_id: str,
        device: DeviceChannel,
        config: EngineConfig,
        *,
        store: Optional[MapAssetStore] = None,
        assets: Optional[MapAssets] = None,
        predictor: Optional[Predictor] = None,
        **kwargs,
    ) -> "MapSession":
        """
        Load the map assets and the matching model concurrently, then build the session.
        AssetMissing / ConfigError from either task propagate.
        """
        store = store or MapAssetStore(config.assets_root)

        async def _assets() -> MapAssets:
            if assets is not None:
                return assets
            return await asyncio.to_thread(store.load, map_id)

        async def _predictor() -> Predictor:
            if predictor is not None:
                return predictor
            return await CorrespondencePredictor.load(config.predictor, metrics_file=config.logging.metrics_file)

        a, p = await asyncio.gather(_assets(), _predictor())
        log.info("Map session ready", extra={"extra": {"map": map_id, "nodes": len(a.nodes)}})
        return cls(a, p, device, config, **kwargs)

    @property
    def map_id(self) -> str:
        return self.assets.map_id

    @property
    def nodes(self) -> Dict[NodeId, MapNode]:
        return self.assets.nodes

    async def resolve(self, node_id: NodeId) -> ResolvedRegion:
        """Region of `node_id` in device-screen coordinates. Raises NodeNotFound / UnknownNode."""
        node = self.assets.node(node_id)
        region = await self.resolver.resolve(node)
        log.info(f"Resolved {node}", extra={"extra": region.to_meta()})
        return region

    async def tap(self, node_id: NodeId) -> ResolvedRegion:
        region = await self.resolve(node_id)
        async with self.lock:
            await self.device.tap(region.center)
        return region

    def invalidate_cache(self) -> None:
        """For callers that know the view changed, e.g. after a screen transition."""
        self.cache.invalidate("external")

    async def cleanup(self) -> None:
        self.cache.invalidate("session end")

    async def __aenter__(self) -> "MapSession":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.cleanup()
