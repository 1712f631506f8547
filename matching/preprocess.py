from __future__ import annotations
"""
Preprocessing for the matching models:
- Grayscale / contrast helpers
- Resize to model input size, keeping the scale factors needed to map a
  homography estimated on the small images back to full resolution
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np


# -----------------------------
# Basic image ops
# -----------------------------

def to_gray_u8(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        g = img
    elif img.shape[2] == 4:
        g = cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    else:
        g = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    if g.dtype != np.uint8:
        g = np.clip(g, 0, 255).astype(np.uint8)
    return g


def clahe(gray_u8: np.ndarray, clip_limit: float = 3.0, tile_grid: Tuple[int, int] = (8, 8)) -> np.ndarray:
    cl = cv2.createCLAHE(clipLimit=float(clip_limit), tileGridSize=tile_grid)
    return cl.apply(gray_u8)


def resize_keep(img: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    w, h = int(size[0]), int(size[1])
    interp = cv2.INTER_AREA if w < img.shape[1] else cv2.INTER_LINEAR
    return cv2.resize(img, (w, h), interpolation=interp)


def scale_matrix(sx: float, sy: float) -> np.ndarray:
    return np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]], dtype=np.float64)


# -----------------------------
# Model input
# -----------------------------

@dataclass
class ModelInput:
    """
    A grayscale image resized for a matching model.

    S maps full-resolution pixels into model-input pixels:
        p_small = S @ p_full
    """
    gray: np.ndarray
    S: np.ndarray
    original_size: Tuple[int, int]


def fit_size(size: Tuple[int, int], box: Tuple[int, int]) -> Tuple[int, int]:
    """Largest (w, h) with the aspect ratio of `size` that fits inside `box`."""
    W, H = size
    s = min(box[0] / float(W), box[1] / float(H))
    return (max(1, int(round(W * s))), max(1, int(round(H * s))))


def prepare_input(
    bgr: np.ndarray,
    size: Optional[Tuple[int, int]],
    *,
    keep_aspect: bool = True,
    clahe_clip: Optional[float] = None,
) -> ModelInput:
    """
    Convert to gray, resize to `size` (w, h) and optionally equalise contrast.
    With keep_aspect the image is fitted inside `size` instead of stretched,
    so both images of a pair keep the same pixel aspect.
    """
    if bgr is None or bgr.size == 0:
        raise ValueError("empty image")
    H, W = bgr.shape[:2]
    gray = to_gray_u8(bgr)
    target = None
    if size is not None:
        target = fit_size((W, H), size) if keep_aspect else (int(size[0]), int(size[1]))
    if target is not None and (W, H) != target:
        gray = resize_keep(gray, target)
        S = scale_matrix(target[0] / float(W), target[1] / float(H))
    else:
        S = np.eye(3, dtype=np.float64)
    if clahe_clip and clahe_clip > 0:
        gray = clahe(gray, clip_limit=float(clahe_clip))
    return ModelInput(gray=gray, S=S, original_size=(W, H))


def rescale_homography(H_small: np.ndarray, ref: ModelInput, live: ModelInput) -> np.ndarray:
    """
    Lift a homography estimated between model inputs to full resolution:
        H_full = inv(S_live) @ H_small @ S_ref
    """
    return np.linalg.inv(live.S) @ H_small @ ref.S
