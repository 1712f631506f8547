from __future__ import annotations
"""
Classical matching primitives used by the ORB backend and, for the final
RANSAC fit, by the SuperGlue backend.

- OrbDetector: ORB keypoints + binary descriptors on a gray model input
- ratio_matches: reference -> live Hamming KNN with Lowe ratio, one live
  keypoint claimed at most once
- fit_homography: RANSAC homography reference -> live with inlier RMSE
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import cv2
import numpy as np

# ORB descriptor width in bytes
ORB_DESCRIPTOR_BYTES = 32


# -----------------------------
# Keypoints
# -----------------------------

@dataclass
class Keypoints:
    """Keypoint coordinates (N, 2) float32 with their binary descriptors (N, 32) uint8."""
    pts: np.ndarray
    des: np.ndarray

    def __len__(self) -> int:
        return len(self.pts)


@dataclass
class OrbDetector:
    nfeatures: int = 2000
    fast_threshold: int = 12
    nlevels: int = 8
    scale_factor: float = 1.2
    _orb: cv2.ORB = field(init=False, repr=False)

    def __post_init__(self):
        self._orb = cv2.ORB_create(
            nfeatures=int(self.nfeatures),
            scaleFactor=float(self.scale_factor),
            nlevels=int(self.nlevels),
            edgeThreshold=19,
            firstLevel=0,
            WTA_K=2,
            scoreType=cv2.ORB_HARRIS_SCORE,
            patchSize=31,
            fastThreshold=int(self.fast_threshold),
        )

    def detect(self, gray_u8: np.ndarray, mask: Optional[np.ndarray] = None) -> Keypoints:
        kps, des = self._orb.detectAndCompute(gray_u8, mask)
        if des is None or not kps:
            return Keypoints(np.zeros((0, 2), np.float32), np.zeros((0, ORB_DESCRIPTOR_BYTES), np.uint8))
        pts = np.float32([k.pt for k in kps]).reshape(-1, 2)
        return Keypoints(pts, des)


# -----------------------------
# Matching
# -----------------------------

def ratio_matches(ref: Keypoints, live: Keypoints, *, ratio: float = 0.8) -> Tuple[np.ndarray, np.ndarray]:
    """
    Matched coordinates (pts_ref, pts_live), each (M, 2) float32.

    A match is kept when its Hamming distance beats `ratio` times the second
    best candidate and its live keypoint has not been claimed by a stronger
    reference keypoint already.
    """
    empty = (np.zeros((0, 2), np.float32), np.zeros((0, 2), np.float32))
    # knnMatch needs two candidates on each side
    if len(ref) < 2 or len(live) < 2:
        return empty
    bf = cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=False)
    candidates = []
    for pair in bf.knnMatch(ref.des, live.des, k=2):
        if len(pair) == 2 and pair[0].distance < ratio * pair[1].distance:
            candidates.append(pair[0])
    candidates.sort(key=lambda m: m.distance)

    claimed = set()
    keep: List[cv2.DMatch] = []
    for m in candidates:
        if m.trainIdx in claimed:
            continue
        claimed.add(m.trainIdx)
        keep.append(m)
    if not keep:
        return empty
    qi = np.array([m.queryIdx for m in keep])
    ti = np.array([m.trainIdx for m in keep])
    return ref.pts[qi], live.pts[ti]


# -----------------------------
# Geometry
# -----------------------------

@dataclass
class HomographyResult:
    H: Optional[np.ndarray]
    inlier_mask: np.ndarray
    rmse_px: float
    inliers: int
    total: int


def fit_homography(
    pts_ref: np.ndarray,
    pts_live: np.ndarray,
    ransac_px: float = 3.0,
    max_iters: int = 2000,
    confidence: float = 0.999,
) -> HomographyResult:
    """
    RANSAC homography mapping reference points onto live points.
    H is None when there are fewer than four correspondences or no consensus.
    """
    n = len(pts_ref)
    if n < 4:
        return HomographyResult(None, np.zeros((0, 1), np.uint8), float("inf"), 0, n)

    src = np.float32(pts_ref).reshape(-1, 1, 2)
    dst = np.float32(pts_live).reshape(-1, 1, 2)
    H, mask = cv2.findHomography(
        src, dst, cv2.RANSAC,
        ransacReprojThreshold=float(ransac_px),
        maxIters=int(max_iters),
        confidence=float(confidence),
    )
    if H is None or mask is None:
        return HomographyResult(None, np.zeros((n, 1), np.uint8), float("inf"), 0, n)

    inl = mask.ravel().astype(bool)
    if not inl.any():
        return HomographyResult(None, mask, float("inf"), 0, n)
    residual = cv2.perspectiveTransform(src[inl], H).reshape(-1, 2) - dst[inl].reshape(-1, 2)
    rmse = float(np.sqrt(np.mean(np.sum(residual ** 2, axis=1))))
    return HomographyResult(H, mask, rmse, int(inl.sum()), n)
