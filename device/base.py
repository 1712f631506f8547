from __future__ import annotations

from typing import Protocol, Tuple, runtime_checkable

import numpy as np

from common.types import Point, Rect


@runtime_checkable
class DeviceChannel(Protocol):
    """
    Capture/gesture capability consumed by the localization engine.

    The channel is exclusive: callers must not overlap gestures or captures,
    the map session serialises access with a lock.
    """

    async def screen_size(self) -> Tuple[int, int]:
        ...

    async def view_window(self) -> Rect:
        """Map widget rect on the screen; may change between calls."""
        ...

    async def capture(self, window: Rect) -> np.ndarray:
        """BGR screenshot cropped to `window` (device-screen coordinates)."""
        ...

    async def swipe(self, start: Point, end: Point, duration_ms: int) -> None:
        ...

    async def pinch(self, origin: Point, start_radius: int, end_radius: int, duration_ms: int) -> None:
        """Two-finger pinch centred on `origin`; end < start zooms out."""
        ...

    async def tap(self, point: Point) -> None:
        ...


def crop(img: np.ndarray, window: Rect) -> np.ndarray:
    """Crop a full-screen image to `window`, clipped to the image bounds."""
    H, W = img.shape[:2]
    x0, y0 = max(0, window.x), max(0, window.y)
    x1, y1 = min(W, window.right), min(H, window.bottom)
    if x1 <= x0 or y1 <= y0:
        raise ValueError(f"window {window} outside screen {W}x{H}")
    return img[y0:y1, x0:x1].copy()
