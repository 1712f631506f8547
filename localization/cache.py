from __future__ import annotations

from typing import Optional

from common.logging_setup import get_logger
from matching.homography import Homography

log = get_logger("localization.cache")


class LocalizationCache:
    """
    Single-slot store for the last accepted map homography.

    There is no expiry: the homography stays valid until the view moves, and
    the only evidence of that is a failed validation or a gesture we issued,
    both of which call invalidate().
    """

    def __init__(self) -> None:
        self._h: Optional[Homography] = None
        self.hits = 0
        self.misses = 0
        self.invalidations = 0

    def get(self) -> Optional[Homography]:
        if self._h is None:
            self.misses += 1
        else:
            self.hits += 1
        return self._h

    def set(self, h: Homography) -> None:
        self._h = h

    def invalidate(self, reason: str = "") -> None:
        if self._h is not None:
            log.debug("Map homography invalidated", extra={"extra": {"reason": reason}})
        self._h = None
        self.invalidations += 1

    @property
    def is_valid(self) -> bool:
        return self._h is not None
