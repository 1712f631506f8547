from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import cv2
import numpy as np

from common.config import DeviceConfig
from common.types import Point, Rect
from device.base import crop
from matching.homography import Homography


@dataclass
class SimulatedDevice:
    """
    Pan/zoom viewport over a map image, reacting to gestures like the game does.

    The map widget occupies `window` on a `screen` sized screen. A map
    pixel m appears on screen at  window.xy + zoom * (m - offset).

    Args:
        map_image: BGR full-map image
        screen: (width, height) of the device screen
        window: map widget rectangle on the screen (the ViewWindow)
        zoom: current zoom factor (1.0 = reference scale)
        offset: map pixel shown at the window's top-left corner
        zoom_range: (min, max) zoom clamp
        min_swipe_px: swipes shorter than this are ignored
        noise_std: additive Gaussian noise std on captures (0 disables)
    """
    map_image: np.ndarray
    screen: Tuple[int, int] = (1280, 720)
    window: Rect = Rect(0, 0, 1280, 720)
    zoom: float = 1.0
    offset: Tuple[float, float] = (0.0, 0.0)
    zoom_range: Tuple[float, float] = (0.5, 2.0)
    min_swipe_px: int = 40
    noise_std: float = 0.0
    seed: Optional[int] = None
    gestures: List[tuple] = field(default_factory=list)
    captures: int = 0

    def __post_init__(self) -> None:
        self._rng = np.random.default_rng(self.seed)
        self._clamp_offset()

    @classmethod
    def from_config(cls, map_image: np.ndarray, cfg: DeviceConfig) -> "SimulatedDevice":
        return cls(
            map_image=map_image,
            screen=cfg.sim_screen_size,
            window=cfg.view_window or Rect(0, 0, *cfg.sim_screen_size),
            zoom=cfg.sim_start_zoom,
            offset=(float(cfg.sim_start_offset[0]), float(cfg.sim_start_offset[1])),
            noise_std=cfg.sim_noise_std,
        )

    # -------- ground truth --------

    def true_homography(self) -> Homography:
        """Reference -> window-relative live pixels for the current view."""
        z = self.zoom
        ox, oy = self.offset
        return Homography(np.array([[z, 0.0, -z * ox], [0.0, z, -z * oy], [0.0, 0.0, 1.0]]))

    def map_to_screen(self, p: Tuple[float, float]) -> Tuple[float, float]:
        return (
            self.window.x + self.zoom * (p[0] - self.offset[0]),
            self.window.y + self.zoom * (p[1] - self.offset[1]),
        )

    # -------- rendering --------

    def render(self) -> np.ndarray:
        W, H = self.screen
        screen = np.full((H, W, 3), 40, dtype=np.uint8)
        win = self.window
        M = self.true_homography().matrix[:2]
        view = cv2.warpAffine(
            self.map_image, M, (win.width, win.height),
            flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0),
        )
        screen[win.y:win.bottom, win.x:win.right] = view
        if self.noise_std and self.noise_std > 0:
            noise = self._rng.normal(0, self.noise_std, size=screen.shape).astype(np.float32)
            screen = np.clip(screen.astype(np.float32) + noise, 0, 255).astype(np.uint8)
        return screen

    # -------- DeviceChannel --------

    async def screen_size(self) -> Tuple[int, int]:
        return self.screen

    async def view_window(self) -> Rect:
        return self.window

    async def capture(self, window: Rect) -> np.ndarray:
        self.captures += 1
        return crop(self.render(), window)

    async def swipe(self, start: Point, end: Point, duration_ms: int) -> None:
        self.gestures.append(("swipe", start, end, duration_ms))
        dx, dy = end[0] - start[0], end[1] - start[1]
        if not self.window.contains_point(start):
            return
        if (dx * dx + dy * dy) ** 0.5 < self.min_swipe_px:
            return
        # content follows the finger
        ox, oy = self.offset
        self.offset = (ox - dx / self.zoom, oy - dy / self.zoom)
        self._clamp_offset()

    async def pinch(self, origin: Point, start_radius: int, end_radius: int, duration_ms: int) -> None:
        self.gestures.append(("pinch", origin, start_radius, end_radius, duration_ms))
        if start_radius <= 0:
            return
        lo, hi = self.zoom_range
        new_zoom = float(np.clip(self.zoom * end_radius / float(start_radius), lo, hi))
        # keep the map point under the pinch origin fixed
        u = origin[0] - self.window.x
        v = origin[1] - self.window.y
        mx = self.offset[0] + u / self.zoom
        my = self.offset[1] + v / self.zoom
        self.zoom = new_zoom
        self.offset = (mx - u / new_zoom, my - v / new_zoom)
        self._clamp_offset()

    async def tap(self, point: Point) -> None:
        self.gestures.append(("tap", point))

    # -------- internals --------

    def _clamp_offset(self) -> None:
        mh, mw = self.map_image.shape[:2]
        vw = self.window.width / self.zoom
        vh = self.window.height / self.zoom
        ox = float(np.clip(self.offset[0], min(0.0, mw - vw), max(0.0, mw - vw)))
        oy = float(np.clip(self.offset[1], min(0.0, mh - vh), max(0.0, mh - vh)))
        self.offset = (ox, oy)
