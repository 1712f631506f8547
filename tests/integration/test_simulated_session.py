#!/usr/bin/env python3
"""
End-to-end localization on the simulated device: real ORB matching against a
synthetic map, real view corrections, ground truth from the simulator.
"""

import asyncio
import os
import random
import sys

import pytest

# Add the project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.config import DeviceConfig, EngineConfig
from common.types import Rect
from device import SimulatedDevice
from localization.cli import main
from localization.session import MapSession
from map_assets.demo import write_demo_map
from map_assets.store import MapAssetStore
from matching.models import OrbMatchingModel
from matching.predictor import CorrespondencePredictor

WINDOW = Rect(0, 0, 1280, 720)
# configured window disagrees with the device; the device wins
STALE_CONFIG_WINDOW = Rect(0, 0, 1920, 1080)


@pytest.fixture(scope="module")
def maps_root(tmp_path_factory):
    root = tmp_path_factory.mktemp("maps")
    write_demo_map(root, "demo", size=(2000, 1400), seed=1234)
    return root


def _expected(device, node):
    x0, y0 = device.map_to_screen((node.rect.x, node.rect.y))
    x1, y1 = device.map_to_screen((node.rect.right, node.rect.bottom))
    return x0, y0, x1 - x0, y1 - y0


async def _open(maps_root):
    assets = MapAssetStore(str(maps_root)).load("demo")
    device = SimulatedDevice(assets.reference_image, screen=(1280, 720), window=WINDOW)
    predictor = CorrespondencePredictor(OrbMatchingModel(nfeatures=4000), None)

    async def no_sleep(s):
        return None

    session = await MapSession.open(
        "demo", device,
        EngineConfig(assets_root=str(maps_root), device=DeviceConfig(view_window=STALE_CONFIG_WINDOW)),
        assets=assets, predictor=predictor, rng=random.Random(7), sleep=no_sleep,
    )
    return session, device


def _assert_close(region, expected, tol=4):
    r = region.rect
    assert abs(r.x - expected[0]) <= tol
    assert abs(r.y - expected[1]) <= tol
    assert abs(r.width - expected[2]) <= tol
    assert abs(r.height - expected[3]) <= tol


def test_visible_node_without_gestures(maps_root):
    async def flow():
        session, device = await _open(maps_root)
        async with session:
            region = await session.resolve(0)
            return session, device, region

    session, device, region = asyncio.run(flow())
    assert WINDOW.contains(region.rect)
    _assert_close(region, _expected(device, session.assets.node(0)))
    assert device.gestures == []
    assert device.captures == 1


def test_offscreen_node_is_scrolled_into_view(maps_root):
    async def flow():
        session, device = await _open(maps_root)
        async with session:
            # node 4 sits at x=1476, past the right edge of the 1280 px window
            region = await session.resolve(4)
            return session, device, region

    session, device, region = asyncio.run(flow())
    swipes = [g for g in device.gestures if g[0] == "swipe"]
    assert swipes
    assert device.offset[0] > 0
    assert WINDOW.contains(region.rect)
    _assert_close(region, _expected(device, session.assets.node(4)))


def test_second_node_reuses_homography(maps_root):
    async def flow():
        session, device = await _open(maps_root)
        async with session:
            await session.resolve(0)
            region = await session.tap(1)
            return session, device, region

    session, device, region = asyncio.run(flow())
    assert device.captures == 1
    assert session.predictor.metrics.predictions == 1
    taps = [g for g in device.gestures if g[0] == "tap"]
    assert taps == [("tap", region.center)]


def test_cli_simulated_run(maps_root, tmp_path, capsys):
    cfg = tmp_path / "params.yaml"
    cfg.write_text(
        f"assets:\n  root: {maps_root}\n"
        "predictor:\n  backend: orb\n  input_size: null\n  orb_nfeatures: 4000\n"
        "device:\n  view_window: [0, 0, 1280, 720]\n  sim_screen_size: [1280, 720]\n"
    )
    code = main(["--config", str(cfg), "--map", "demo", "--node", "0", "--node", "missing", "--simulate"])
    out = capsys.readouterr().out.splitlines()
    rows = [line.split("\t") for line in out if line.startswith("0\t")]
    assert code == 1  # "missing" is not a node
    assert len(rows) == 1
    x, y, w, h = (int(v) for v in rows[0][1:])
    assert abs(x - 120) <= 4 and abs(y - 120) <= 4
    assert abs(w - 64) <= 4 and abs(h - 64) <= 4


def test_cli_missing_map(tmp_path):
    cfg = tmp_path / "params.yaml"
    cfg.write_text(f"assets:\n  root: {tmp_path}\npredictor:\n  backend: orb\n")
    assert main(["--config", str(cfg), "--map", "nowhere", "--node", "0", "--simulate"]) == 2
