"""
Device capability — screen capture and touch gestures

- DeviceChannel protocol consumed by the localization engine
- AdbDevice: real Android device/emulator over adb (+ minitouch for pinch)
- SimulatedDevice: pan/zoom viewport over a map image for tests and demos
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from common.config import DeviceConfig
from common.errors import ConfigError

from .adb import AdbDevice
from .base import DeviceChannel
from .simulated import SimulatedDevice


def open_device(cfg: DeviceConfig, map_image: Optional[np.ndarray] = None) -> DeviceChannel:
    kind = cfg.kind.lower()
    if kind == "adb":
        return AdbDevice.from_config(cfg)
    if kind == "simulated":
        if map_image is None:
            raise ConfigError("simulated device needs the map reference image")
        return SimulatedDevice.from_config(map_image, cfg)
    raise ConfigError(f"Unknown device kind {cfg.kind!r} (adb|simulated)")


__all__ = ["AdbDevice", "DeviceChannel", "SimulatedDevice", "open_device"]
