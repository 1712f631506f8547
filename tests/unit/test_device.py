"""
Unit tests for the device layer (adb command construction, minitouch script,
simulated pan/zoom viewport)
"""

import asyncio
import os
import sys

import cv2
import numpy as np
import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.config import DeviceConfig
from common.errors import ConfigError, DeviceError
from common.types import Rect
from device import AdbDevice, DeviceChannel, SimulatedDevice, open_device
from device.adb import minitouch_pinch_script
from device.base import crop


class RecordingAdb(AdbDevice):
    """AdbDevice with the subprocess layer replaced by canned outputs."""

    def __init__(self, outputs=None, **kw):
        super().__init__("emulator-5554", **kw)
        self.outputs = outputs or {}
        self.calls = []

    async def _run(self, *args, stdin=None):
        self.calls.append((args, stdin))
        for key, out in self.outputs.items():
            if key in args:
                return out
        return b""


class TestCrop:
    def test_crop_window(self):
        img = np.arange(100 * 80 * 3, dtype=np.uint32).reshape(80, 100, 3).astype(np.uint8)
        out = crop(img, Rect(10, 20, 30, 40))
        assert out.shape == (40, 30, 3)
        np.testing.assert_array_equal(out, img[20:60, 10:40])

    def test_window_outside_screen(self):
        with pytest.raises(ValueError):
            crop(np.zeros((10, 10, 3), np.uint8), Rect(20, 20, 5, 5))


class TestMinitouchScript:
    def test_contacts_start_and_end_on_radius(self):
        script = minitouch_pinch_script((500, 400), 600, 300, 500)
        lines = script.strip().splitlines()
        assert lines[:3] == ["d 0 -100 400 50", "d 1 1100 400 50", "c"]
        assert lines[-3:] == ["u 0", "u 1", "c"]
        moves = [l for l in lines if l.startswith("m ")]
        assert moves[-2:] == ["m 0 200 400 50", "m 1 800 400 50"]

    def test_waits_sum_to_duration(self):
        script = minitouch_pinch_script((0, 0), 600, 300, 500, steps=10)
        waits = [int(l.split()[1]) for l in script.splitlines() if l.startswith("w ")]
        assert sum(waits) == 500


class TestAdbDevice:
    def test_argv_includes_serial(self):
        dev = AdbDevice("abc", adb_path="/opt/adb")
        assert dev._argv(["shell", "ls"]) == ["/opt/adb", "-s", "abc", "shell", "ls"]
        assert AdbDevice()._argv(["devices"]) == ["adb", "devices"]

    def test_screen_size_prefers_override(self):
        dev = RecordingAdb({"wm": b"Physical size: 1080x2340\nOverride size: 720x1560\n"})
        assert asyncio.run(dev.screen_size()) == (720, 1560)

    def test_view_window_configured_or_whole_screen(self):
        configured = RecordingAdb(view_window=Rect(0, 100, 1080, 1800))
        assert asyncio.run(configured.view_window()) == Rect(0, 100, 1080, 1800)
        assert configured.calls == []
        whole = RecordingAdb({"wm": b"Physical size: 1080x2340\n"})
        assert asyncio.run(whole.view_window()) == Rect(0, 0, 1080, 2340)

    def test_screen_size_unparseable(self):
        dev = RecordingAdb({"wm": b"error: no devices"})
        with pytest.raises(DeviceError):
            asyncio.run(dev.screen_size())

    def test_capture_decodes_and_crops(self):
        img = np.random.default_rng(0).integers(0, 255, size=(80, 100, 3), dtype=np.uint8)
        ok, png = cv2.imencode(".png", img)
        assert ok
        dev = RecordingAdb({"screencap": png.tobytes()})
        out = asyncio.run(dev.capture(Rect(10, 10, 20, 30)))
        np.testing.assert_array_equal(out, img[10:40, 10:30])
        assert dev.calls[0][0] == ("exec-out", "screencap", "-p")

    def test_capture_garbage(self):
        dev = RecordingAdb({"screencap": b"not an image"})
        with pytest.raises(DeviceError):
            asyncio.run(dev.capture(Rect(0, 0, 10, 10)))

    def test_swipe_and_tap_commands(self):
        dev = RecordingAdb()

        async def gestures():
            await dev.swipe((600, 300), (400, 300), 400)
            await dev.tap((10, 20))

        asyncio.run(gestures())
        assert dev.calls[0][0] == ("shell", "input", "swipe", "600", "300", "400", "300", "400")
        assert dev.calls[1][0] == ("shell", "input", "tap", "10", "20")

    def test_pinch_feeds_minitouch(self):
        dev = RecordingAdb(minitouch_path="/data/local/tmp/minitouch")
        asyncio.run(dev.pinch((540, 960), 600, 350, 500))
        args, stdin = dev.calls[0]
        assert args == ("shell", "/data/local/tmp/minitouch", "-i")
        assert stdin.decode() == minitouch_pinch_script((540, 960), 600, 350, 500)

    def test_missing_adb_binary(self, tmp_path):
        dev = AdbDevice(adb_path=str(tmp_path / "no-adb"))
        with pytest.raises(DeviceError):
            asyncio.run(dev.shell("true"))


class TestSimulatedDevice:
    def test_is_a_device_channel(self):
        assert isinstance(SimulatedDevice(np.zeros((100, 100, 3), np.uint8)), DeviceChannel)

    def test_capture_matches_ground_truth(self):
        rng = np.random.default_rng(1)
        img = rng.integers(0, 255, size=(400, 600, 3), dtype=np.uint8)
        dev = SimulatedDevice(img, screen=(320, 240), window=Rect(0, 0, 320, 240), offset=(100, 50))
        cap = asyncio.run(dev.capture(Rect(0, 0, 320, 240)))
        np.testing.assert_array_equal(cap, img[50:290, 100:420])
        assert dev.map_to_screen((100, 50)) == (0, 0)

    def test_swipe_moves_content_with_finger(self):
        dev = SimulatedDevice(np.zeros((1400, 2000, 3), np.uint8))
        asyncio.run(dev.swipe((700, 400), (500, 400), 400))
        assert dev.offset == (200.0, 0.0)

    def test_short_or_outside_swipes_ignored(self):
        dev = SimulatedDevice(np.zeros((1400, 2000, 3), np.uint8), offset=(100, 100))

        async def swipes():
            await dev.swipe((700, 400), (690, 400), 400)
            await dev.swipe((-5, 400), (-300, 400), 400)

        asyncio.run(swipes())
        assert dev.offset == (100.0, 100.0)
        assert len(dev.gestures) == 2

    def test_offset_clamped_to_map(self):
        dev = SimulatedDevice(np.zeros((1400, 2000, 3), np.uint8))
        asyncio.run(dev.swipe((1200, 400), (100, 400), 400))
        asyncio.run(dev.swipe((1200, 400), (100, 400), 400))
        assert dev.offset[0] == 2000 - 1280

    def test_pinch_zooms_around_origin(self):
        dev = SimulatedDevice(
            np.zeros((1500, 2000, 3), np.uint8),
            screen=(640, 360), window=Rect(0, 0, 640, 360), offset=(500, 500),
        )
        asyncio.run(dev.pinch((320, 180), 600, 300, 500))
        assert dev.zoom == pytest.approx(0.5)
        x, y = dev.map_to_screen((820, 680))
        assert x == pytest.approx(320)
        assert y == pytest.approx(180)

    def test_zoom_is_clamped(self):
        dev = SimulatedDevice(np.zeros((1400, 2000, 3), np.uint8), zoom_range=(0.5, 2.0))
        asyncio.run(dev.pinch((640, 360), 600, 100, 500))
        assert dev.zoom == pytest.approx(0.5)

    def test_true_homography(self):
        dev = SimulatedDevice(np.zeros((1400, 2000, 3), np.uint8), zoom=2.0, offset=(100, 50))
        assert dev.true_homography().transform_rect(Rect(110, 60, 10, 10)) == Rect(20, 20, 20, 20)


class TestOpenDevice:
    def test_adb(self):
        dev = open_device(DeviceConfig(kind="adb", serial="xyz"))
        assert isinstance(dev, AdbDevice)
        assert dev.serial == "xyz"

    def test_adb_window_from_config(self):
        dev = open_device(DeviceConfig(kind="adb", view_window=Rect(10, 20, 300, 400)))
        assert asyncio.run(dev.view_window()) == Rect(10, 20, 300, 400)

    def test_simulated_needs_image(self):
        with pytest.raises(ConfigError):
            open_device(DeviceConfig(kind="simulated"))

    def test_simulated(self):
        cfg = DeviceConfig(kind="simulated", sim_screen_size=(800, 600), view_window=Rect(0, 0, 800, 600))
        dev = open_device(cfg, np.zeros((1000, 1000, 3), np.uint8))
        assert isinstance(dev, SimulatedDevice)
        assert asyncio.run(dev.screen_size()) == (800, 600)
        assert asyncio.run(dev.view_window()) == Rect(0, 0, 800, 600)

    def test_simulated_window_defaults_to_screen(self):
        cfg = DeviceConfig(kind="simulated", sim_screen_size=(640, 480))
        dev = open_device(cfg, np.zeros((1000, 1000, 3), np.uint8))
        assert asyncio.run(dev.view_window()) == Rect(0, 0, 640, 480)

    def test_simulated_noise_from_config(self):
        img = np.full((600, 800, 3), 100, np.uint8)
        quiet = open_device(DeviceConfig(kind="simulated", sim_screen_size=(400, 300)), img)
        noisy = open_device(DeviceConfig(kind="simulated", sim_screen_size=(400, 300), sim_noise_std=8.0), img)
        window = Rect(0, 0, 400, 300)
        assert (asyncio.run(quiet.capture(window)) == 100).all()
        assert noisy.noise_std == 8.0
        assert not (asyncio.run(noisy.capture(window)) == 100).all()

    def test_unknown_kind(self):
        with pytest.raises(ConfigError):
            open_device(DeviceConfig(kind="usb"))
