from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional

from common.config import ActuatorConfig
from common.logging_setup import get_logger
from common.types import Point, ScrollDirection
from device.base import DeviceChannel
from localization.cache import LocalizationCache

log = get_logger("localization.actuator")

Sleep = Callable[[float], Awaitable[None]]


class ViewActuator:
    """
    Zoom-out and scroll gestures used to bring a target back into a
    well-conditioned view.

    Anchor points and pinch sizes are jittered within the configured bounds.
    Every gesture invalidates the homography cache since the view has moved.
    """

    def __init__(
        self,
        device: DeviceChannel,
        cache: LocalizationCache,
        cfg: ActuatorConfig,
        *,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.device = device
        self.cache = cache
        self.cfg = cfg
        self.rng = rng or random.Random()
        self._sleep = sleep

    @property
    def min_scroll(self) -> int:
        return self.cfg.min_scroll

    async def reset_view(self) -> None:
        """Pinch fully out, wait for the map to settle and drop the cached homography."""
        log.info("Zoom out")
        center = await self._screen_center()
        r0 = self.rng.randrange(*self.cfg.pinch_start_radius)
        r1 = self.rng.randrange(*self.cfg.pinch_end_radius)
        await self.device.pinch(center, r0, r1, self.cfg.pinch_duration_ms)
        await self.settle(self.cfg.reset_settle_ms * self.cfg.delay_coefficient)
        self.cache.invalidate("view reset")

    async def scroll(self, direction: ScrollDirection, distance: int) -> int:
        """
        Swipe so that content lying `distance` px beyond the window edge on the
        `direction` side moves into view. The finger travels 2 * distance,
        centred on a jittered point near the screen centre. Returns the
        distance actually used (never below min_scroll).
        """
        dist = max(int(distance), self.min_scroll)
        cx, cy = await self._screen_center()
        j = self.cfg.anchor_jitter
        if j > 0:
            cx += self.rng.randrange(-j, j)
            cy += self.rng.randrange(-j, j)
        vx, vy = direction.drag_vector
        start = await self._on_screen((cx - vx * dist, cy - vy * dist))
        end = await self._on_screen((cx + vx * dist, cy + vy * dist))
        log.info(f"Scroll {direction.value} {dist} px")
        await self.device.swipe(start, end, self.cfg.swipe_duration_ms)
        self.cache.invalidate(f"scroll {direction.value}")
        return dist

    async def settle(self, ms: float) -> None:
        if ms > 0:
            await self._sleep(ms / 1000.0)

    async def _screen_center(self) -> Point:
        w, h = await self.device.screen_size()
        return (w // 2, h // 2)

    async def _on_screen(self, p: Point) -> Point:
        w, h = await self.device.screen_size()
        return (min(max(0, int(p[0])), w - 1), min(max(0, int(p[1])), h - 1))
