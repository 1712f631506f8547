from __future__ import annotations

from typing import Sequence, Tuple

import cv2
import numpy as np

from common.types import Rect
from common.utils import to_numpy_3x3


class Homography:
    """
    3x3 projective transform mapping reference-image pixels to live-view pixels.

    The matrix is normalised so that H[2, 2] == 1 when possible.
    """
    __slots__ = ("_H",)

    def __init__(self, H) -> None:
        H = to_numpy_3x3(H)
        if not np.all(np.isfinite(H)):
            raise ValueError("Homography has non-finite entries")
        if abs(H[2, 2]) > 1e-12:
            H = H / H[2, 2]
        self._H = H

    @classmethod
    def identity(cls) -> "Homography":
        return cls(np.eye(3))

    @classmethod
    def from_translation_scale(cls, dx: float, dy: float, scale: float = 1.0) -> "Homography":
        return cls(np.array([[scale, 0.0, dx], [0.0, scale, dy], [0.0, 0.0, 1.0]]))

    @property
    def matrix(self) -> np.ndarray:
        return self._H.copy()

    def inverse(self) -> "Homography":
        return Homography(np.linalg.inv(self._H))

    def transform_points(self, pts: Sequence[Tuple[float, float]]) -> np.ndarray:
        """Project (N,2) points; returns (N,2) float64."""
        a = np.asarray(pts, dtype=np.float64).reshape(-1, 1, 2)
        if a.size == 0:
            return np.zeros((0, 2), dtype=np.float64)
        return cv2.perspectiveTransform(a, self._H).reshape(-1, 2)

    def transform_rect(self, rect: Rect) -> Rect:
        """
        Project the four corners of `rect` and return their bounding box.

        Corners that land behind the projection plane (w <= 0) make the
        estimate meaningless; an empty Rect is returned so callers reject it.
        A mirrored projection keeps its sign: width (or height) comes back
        negative when the rect's right edge lands left of its left edge.
        """
        corners = np.array(
            [
                [rect.x, rect.y, 1.0],
                [rect.right, rect.y, 1.0],
                [rect.right, rect.bottom, 1.0],
                [rect.x, rect.bottom, 1.0],
            ],
            dtype=np.float64,
        )
        proj = corners @ self._H.T
        w = proj[:, 2]
        if np.any(w <= 1e-9):
            return Rect(0, 0, 0, 0)
        xy = proj[:, :2] / w[:, None]
        x0, y0 = np.floor(xy.min(axis=0))
        x1, y1 = np.ceil(xy.max(axis=0))
        if not np.all(np.isfinite([x0, y0, x1, y1])):
            return Rect(0, 0, 0, 0)
        width = int(round(x1 - x0))
        height = int(round(y1 - y0))
        # corners: 0=tl 1=tr 2=br 3=bl
        if xy[[1, 2], 0].mean() < xy[[0, 3], 0].mean():
            width = -width
        if xy[[2, 3], 1].mean() < xy[[0, 1], 1].mean():
            height = -height
        return Rect(int(round(x0)), int(round(y0)), width, height)

    def is_well_conditioned(self, max_cond: float = 1e8) -> bool:
        try:
            return bool(np.linalg.cond(self._H) < max_cond)
        except np.linalg.LinAlgError:
            return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Homography):
            return NotImplemented
        return bool(np.allclose(self._H, other._H))

    # equality is approximate, so there is no consistent hash
    __hash__ = None

    def __repr__(self) -> str:
        rows = "; ".join(" ".join(f"{v:.4g}" for v in row) for row in self._H)
        return f"Homography([{rows}])"
