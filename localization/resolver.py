from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Protocol, Tuple, Union

import numpy as np

from common.config import ResolverConfig
from common.errors import InferenceError, NodeNotFound, ValidationFailed
from common.logging_setup import get_logger
from common.types import MapNode, Rect, ResolvedRegion, ScrollDirection
from device.base import DeviceChannel
from localization.actuator import ViewActuator
from localization.cache import LocalizationCache
from matching.homography import Homography

log = get_logger("localization.resolver")

Scroll = Tuple[ScrollDirection, int]


class Predictor(Protocol):
    async def predict(self, reference: np.ndarray, live: np.ndarray) -> Homography:
        ...


def overscroll(roi: Rect, window: Rect, min_scroll: int) -> List[Scroll]:
    """
    Scrolls needed to bring `roi` inside `window`, both in screen coordinates.

    The vertical and horizontal checks are independent; each yields at most
    one move, floored at `min_scroll`.
    """
    moves: List[Scroll] = []
    if roi.y < window.y:
        moves.append((ScrollDirection.UP, max(window.y - roi.y, min_scroll)))
    elif roi.bottom > window.bottom:
        moves.append((ScrollDirection.DOWN, max(roi.bottom - window.bottom, min_scroll)))
    if roi.x < window.x:
        moves.append((ScrollDirection.LEFT, max(window.x - roi.x, min_scroll)))
    elif roi.right > window.right:
        moves.append((ScrollDirection.RIGHT, max(roi.right - window.right, min_scroll)))
    return moves


def validate_estimate(node: MapNode, rect: Rect, max_map_diff: float, max_side_diff: float) -> None:
    """Raise ValidationFailed unless `rect` is a plausible live-view estimate of `node`."""
    if rect.width <= 0 or rect.height <= 0:
        raise ValidationFailed("basic dimension", f"{rect.width}x{rect.height}")
    map_diff = (rect.width - node.width) ** 2 + (rect.height - node.height) ** 2
    if map_diff > max_map_diff ** 2:
        raise ValidationFailed("map difference", f"diff={map_diff}, max={max_map_diff ** 2}")
    side_diff = (rect.width - rect.height) ** 2
    if side_diff > max_side_diff ** 2:
        raise ValidationFailed("side difference", f"diff={side_diff}, max={max_side_diff ** 2}")


class NodeResolver:
    """
    Finds the on-screen region of a map node.

    The first call predicts the homography between the reference map and the
    live view and caches it; later calls reuse the cache, which is nearly
    free. Bad estimates reset the view (zoom out) and retry, off-screen nodes
    are scrolled into view and retried with a fresh attempt budget. Gives up
    with NodeNotFound after `max_attempts` failed attempts in a row, or after
    `max_corrections` scrolls within one call.
    """

    def __init__(
        self,
        *,
        reference: np.ndarray,
        predictor: Predictor,
        cache: LocalizationCache,
        actuator: ViewActuator,
        device: DeviceChannel,
        cfg: ResolverConfig,
        view_window: Optional[Callable[[], Awaitable[Rect]]] = None,
        lock: Optional[asyncio.Lock] = None,
    ):
        self.reference = reference
        self.predictor = predictor
        self.cache = cache
        self.actuator = actuator
        self.device = device
        self.view_window = view_window or device.view_window
        self.cfg = cfg
        self.lock = lock or asyncio.Lock()

    async def resolve(self, node: MapNode) -> ResolvedRegion:
        corrections = 0
        attempts = 0
        while True:
            for _ in range(self.cfg.max_attempts):
                attempts += 1
                # one attempt owns the device channel
                async with self.lock:
                    try:
                        outcome = await self._attempt(node)
                    except (InferenceError, ValidationFailed) as e:
                        log.info(f"Estimate for {node} rejected, will retry | {e}")
                        await self.actuator.reset_view()
                        continue
                    if isinstance(outcome, ResolvedRegion):
                        return outcome
                    if corrections >= self.cfg.max_corrections:
                        raise NodeNotFound(node, attempts, f"still off-screen after {corrections} scroll corrections")
                    corrections += 1
                    await self._scroll_into_view(outcome)
                break
            else:
                raise NodeNotFound(node, attempts, f"{self.cfg.max_attempts} consecutive attempts failed")

    async def _attempt(self, node: MapNode) -> Union[ResolvedRegion, List[Scroll]]:
        window = await self.view_window()
        h = self.cache.get()
        fresh = h is None
        if h is None:
            log.info("Finding map transformation")
            capture = await self.device.capture(window)
            h = await self._predict(capture)

        # Rect relative to the window
        rect = h.transform_rect(node.rect)
        log.debug(f"{node} estimated to be at {rect}")
        validate_estimate(node, rect, self.cfg.max_map_diff, self.cfg.max_side_diff)

        roi = rect.translate(window.x, window.y)
        if not window.contains(roi):
            log.info(f"Node {node} not in map window")
            self.cache.invalidate("node off-screen")
            return overscroll(roi, window, self.actuator.min_scroll)

        if fresh:
            self.cache.set(h)
        return ResolvedRegion(node.id, roi)

    async def _predict(self, capture: np.ndarray) -> Homography:
        timeout = self.cfg.predict_timeout_s
        try:
            if timeout:
                return await asyncio.wait_for(self.predictor.predict(self.reference, capture), timeout)
            return await self.predictor.predict(self.reference, capture)
        except asyncio.TimeoutError as e:
            raise InferenceError(f"prediction timed out after {timeout}s") from e

    async def _scroll_into_view(self, moves: List[Scroll]) -> None:
        for direction, dist in moves:
            await self.actuator.scroll(direction, dist)
        self.cache.invalidate("view moved")
        await self.actuator.settle(self.cfg.scroll_settle_ms)
