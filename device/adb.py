from __future__ import annotations

"""
Android device over adb.

Screenshots come from `screencap -p`, single-finger gestures from `input`,
and the two-finger pinch from minitouch, which has to be pushed to the device
beforehand (see DeviceConfig.minitouch_path).
"""

import asyncio
import math
import re
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from common.config import DeviceConfig
from common.errors import DeviceError
from common.logging_setup import get_logger
from common.types import Point, Rect
from device.base import crop

log = get_logger("device.adb")

PINCH_STEPS = 10


class AdbDevice:
    def __init__(
        self,
        serial: Optional[str] = None,
        *,
        adb_path: str = "adb",
        minitouch_path: str = "/data/local/tmp/minitouch",
        command_timeout_s: float = 10.0,
        view_window: Optional[Rect] = None,
    ):
        self.serial = serial
        self.adb_path = adb_path
        self.minitouch_path = minitouch_path
        self.command_timeout_s = command_timeout_s
        self.window = view_window
        self._screen_size: Optional[Tuple[int, int]] = None

    @classmethod
    def from_config(cls, cfg: DeviceConfig) -> "AdbDevice":
        return cls(
            cfg.serial,
            adb_path=cfg.adb_path,
            minitouch_path=cfg.minitouch_path,
            command_timeout_s=cfg.command_timeout_s,
            view_window=cfg.view_window,
        )

    # -------- low level --------

    def _argv(self, args: Sequence[str]) -> List[str]:
        argv = [self.adb_path]
        if self.serial:
            argv += ["-s", self.serial]
        return argv + [str(a) for a in args]

    async def _run(self, *args: str, stdin: Optional[bytes] = None) -> bytes:
        argv = self._argv(args)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DeviceError(f"cannot run {argv[0]}: {e}") from e
        try:
            out, err = await asyncio.wait_for(proc.communicate(stdin), timeout=self.command_timeout_s)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise DeviceError(f"adb command timed out: {' '.join(argv[1:])}") from e
        except asyncio.CancelledError:
            proc.kill()
            raise
        if proc.returncode != 0:
            raise DeviceError(f"adb {' '.join(argv[1:])} failed ({proc.returncode}): {err.decode(errors='replace')[:200]}")
        return out

    async def shell(self, *args: str, stdin: Optional[bytes] = None) -> str:
        out = await self._run("shell", *args, stdin=stdin)
        return out.decode(errors="replace")

    # -------- DeviceChannel --------

    async def screen_size(self) -> Tuple[int, int]:
        if self._screen_size is None:
            out = await self.shell("wm", "size")
            # "Override size" wins over "Physical size" when present
            sizes = re.findall(r"(\d+)x(\d+)", out)
            if not sizes:
                raise DeviceError(f"cannot parse screen size from {out!r}")
            w, h = sizes[-1]
            self._screen_size = (int(w), int(h))
        return self._screen_size

    async def view_window(self) -> Rect:
        """Configured map widget rect, or the whole screen when none is configured."""
        if self.window is not None:
            return self.window
        w, h = await self.screen_size()
        return Rect(0, 0, w, h)

    async def capture(self, window: Rect) -> np.ndarray:
        png = await self._run("exec-out", "screencap", "-p")
        img = cv2.imdecode(np.frombuffer(png, dtype=np.uint8), cv2.IMREAD_COLOR)
        if img is None:
            raise DeviceError("failed to decode screencap output")
        try:
            return crop(img, window)
        except ValueError as e:
            raise DeviceError(str(e)) from e

    async def swipe(self, start: Point, end: Point, duration_ms: int) -> None:
        log.debug("swipe", extra={"extra": {"from": start, "to": end, "ms": duration_ms}})
        await self.shell("input", "swipe", str(start[0]), str(start[1]), str(end[0]), str(end[1]), str(int(duration_ms)))

    async def tap(self, point: Point) -> None:
        await self.shell("input", "tap", str(point[0]), str(point[1]))

    async def pinch(self, origin: Point, start_radius: int, end_radius: int, duration_ms: int) -> None:
        script = minitouch_pinch_script(origin, start_radius, end_radius, duration_ms)
        log.debug("pinch", extra={"extra": {"origin": origin, "r0": start_radius, "r1": end_radius, "ms": duration_ms}})
        await self.shell(self.minitouch_path, "-i", stdin=script.encode())


def minitouch_pinch_script(
    origin: Point,
    start_radius: int,
    end_radius: int,
    duration_ms: int,
    *,
    angle_deg: float = 0.0,
    steps: int = PINCH_STEPS,
    pressure: int = 50,
) -> str:
    """
    minitouch commands for a two-contact pinch along `angle_deg`:
    both contacts go down at origin ± start_radius and move linearly to
    origin ± end_radius over `duration_ms`.
    """
    cx, cy = origin
    ux, uy = math.cos(math.radians(angle_deg)), math.sin(math.radians(angle_deg))
    wait = max(1, int(duration_ms / max(1, steps)))

    def pts(r: float):
        return (
            (int(round(cx - ux * r)), int(round(cy - uy * r))),
            (int(round(cx + ux * r)), int(round(cy + uy * r))),
        )

    (ax, ay), (bx, by) = pts(start_radius)
    lines = [f"d 0 {ax} {ay} {pressure}", f"d 1 {bx} {by} {pressure}", "c"]
    for i in range(1, steps + 1):
        r = start_radius + (end_radius - start_radius) * i / steps
        (ax, ay), (bx, by) = pts(r)
        lines += [f"w {wait}", f"m 0 {ax} {ay} {pressure}", f"m 1 {bx} {by} {pressure}", "c"]
    lines += ["u 0", "u 1", "c"]
    return "\n".join(lines) + "\n"
