"""
Unit tests for the localization cache and the view correction actuator
"""

import asyncio
import os
import random
import sys

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.config import ActuatorConfig
from common.types import ScrollDirection
from localization.actuator import ViewActuator
from localization.cache import LocalizationCache
from matching.homography import Homography
from tests.fakes import FakeDevice


def _actuator(cfg=None, size=(800, 600), seed=0):
    device = FakeDevice(size)
    cache = LocalizationCache()
    cache.set(Homography.identity())
    sleeps = []

    async def fake_sleep(s):
        sleeps.append(s)

    act = ViewActuator(device, cache, cfg or ActuatorConfig(), rng=random.Random(seed), sleep=fake_sleep)
    return act, device, cache, sleeps


class TestLocalizationCache:
    def test_empty_until_set(self):
        cache = LocalizationCache()
        assert cache.get() is None
        cache.set(Homography.identity())
        assert cache.get() == Homography.identity()
        assert (cache.hits, cache.misses) == (1, 1)

    def test_invalidate_always_counts(self):
        cache = LocalizationCache()
        cache.invalidate("nothing cached")
        cache.set(Homography.identity())
        cache.invalidate("view moved")
        assert cache.invalidations == 2
        assert not cache.is_valid

    def test_set_replaces(self):
        cache = LocalizationCache()
        cache.set(Homography.identity())
        cache.set(Homography.from_translation_scale(5, 5))
        assert cache.get() == Homography.from_translation_scale(5, 5)


class TestResetView:
    def test_pinch_out_at_center_then_settle(self):
        act, device, cache, sleeps = _actuator()
        asyncio.run(act.reset_view())
        (_, origin, r0, r1, ms), = device.of_kind("pinch")
        assert origin == (400, 300)
        assert 500 <= r0 < 700
        assert 300 <= r1 < 400
        assert r1 < r0
        assert ms == 500
        assert sleeps == [pytest.approx(0.9)]
        assert not cache.is_valid

    def test_delay_coefficient_scales_settle(self):
        act, _, _, sleeps = _actuator(ActuatorConfig(delay_coefficient=2.0))
        asyncio.run(act.reset_view())
        assert sleeps == [pytest.approx(1.8)]

    def test_radii_are_jittered(self):
        act, device, _, _ = _actuator(seed=1)

        async def many():
            for _ in range(20):
                await act.reset_view()

        asyncio.run(many())
        assert len({g[2] for g in device.of_kind("pinch")}) > 1


class TestScroll:
    @pytest.mark.parametrize("direction,axis,sign", [
        (ScrollDirection.RIGHT, 0, -1),
        (ScrollDirection.LEFT, 0, 1),
        (ScrollDirection.DOWN, 1, -1),
        (ScrollDirection.UP, 1, 1),
    ])
    def test_drag_direction(self, direction, axis, sign):
        act, device, cache, _ = _actuator()
        dist = asyncio.run(act.scroll(direction, 120))
        assert dist == 120
        (_, start, end, ms), = device.of_kind("swipe")
        assert (end[axis] - start[axis]) == sign * 240
        assert start[1 - axis] == end[1 - axis]
        assert ms == 400
        assert not cache.is_valid

    def test_anchor_near_center(self):
        act, device, _, _ = _actuator()
        asyncio.run(act.scroll(ScrollDirection.RIGHT, 100))
        (_, start, end, _), = device.of_kind("swipe")
        mid = ((start[0] + end[0]) / 2, (start[1] + end[1]) / 2)
        assert abs(mid[0] - 400) <= 50
        assert abs(mid[1] - 300) <= 50

    def test_short_scroll_floored(self):
        act, device, _, _ = _actuator()
        assert asyncio.run(act.scroll(ScrollDirection.LEFT, 10)) == 75
        (_, start, end, _), = device.of_kind("swipe")
        assert end[0] - start[0] == 150

    def test_swipe_clamped_to_screen(self):
        act, device, _, _ = _actuator(size=(200, 200))
        asyncio.run(act.scroll(ScrollDirection.DOWN, 500))
        (_, start, end, _), = device.of_kind("swipe")
        for x, y in (start, end):
            assert 0 <= x < 200 and 0 <= y < 200

    def test_no_jitter(self):
        act, device, _, _ = _actuator(ActuatorConfig(anchor_jitter=0))
        asyncio.run(act.scroll(ScrollDirection.UP, 80))
        (_, start, end, _), = device.of_kind("swipe")
        assert start == (400, 220)
        assert end == (400, 380)
