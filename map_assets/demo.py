from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Tuple

import cv2
import numpy as np

from map_assets.store import MANIFEST, REFERENCE_IMAGE


def synthesize_map(size: Tuple[int, int] = (2000, 1400), seed: int = 1234) -> np.ndarray:
    """Generate a feature-rich synthetic map image (edges, corners, textures)."""
    w, h = size
    rng = np.random.default_rng(seed)
    base = (rng.normal(128, 12, size=(h, w, 3))).clip(0, 255).astype(np.uint8)

    # Grid
    for x in range(0, w, w // 16 or 1):
        cv2.line(base, (x, 0), (x, h - 1), (60, 60, 60), 2)
    for y in range(0, h, h // 16 or 1):
        cv2.line(base, (0, y), (w - 1, y), (60, 60, 60), 2)

    # Random filled / outlined rectangles, circles and polylines
    for _ in range(160):
        x1, y1 = int(rng.integers(0, w)), int(rng.integers(0, h))
        x2 = int(np.clip(x1 + rng.integers(-120, 120), 0, w - 1))
        y2 = int(np.clip(y1 + rng.integers(-120, 120), 0, h - 1))
        color = tuple(int(c) for c in rng.integers(20, 235, size=3))
        thickness = -1 if rng.random() < 0.5 else 2
        cv2.rectangle(base, (min(x1, x2), min(y1, y2)), (max(x1, x2), max(y1, y2)), color, thickness)
    for _ in range(120):
        c = (int(rng.integers(0, w)), int(rng.integers(0, h)))
        r = int(rng.integers(6, 40))
        color = tuple(int(v) for v in rng.integers(20, 235, size=3))
        cv2.circle(base, c, r, color, -1 if rng.random() < 0.5 else 2)
    for _ in range(40):
        pts = rng.integers(0, [w, h], size=(4, 2)).astype(np.int32)
        cv2.polylines(base, [pts], isClosed=False, color=(250, 250, 250), thickness=2)

    cv2.putText(base, "DEMO MAP", (20, h - 30), cv2.FONT_HERSHEY_SIMPLEX, 1.2, (240, 240, 240), 3, cv2.LINE_AA)
    return base


def node_grid(
    size: Tuple[int, int],
    *,
    cols: int = 6,
    rows: int = 4,
    node_size: int = 64,
    margin: int = 120,
) -> List[Dict[str, int]]:
    """Evenly spaced square nodes, manifest-ready (no ids: list index is the id)."""
    w, h = size
    xs = np.linspace(margin, w - margin - node_size, cols).astype(int)
    ys = np.linspace(margin, h - margin - node_size, rows).astype(int)
    return [
        {"x": int(x), "y": int(y), "width": node_size, "height": node_size}
        for y in ys for x in xs
    ]


def draw_nodes(img: np.ndarray, entries: List[Dict[str, int]]) -> np.ndarray:
    """Paint each node as a distinct marker so it is visible in the map itself."""
    out = img.copy()
    for i, e in enumerate(entries):
        x, y, s = e["x"], e["y"], e["width"]
        cv2.rectangle(out, (x, y), (x + s, y + e["height"]), (30, 30, 200), -1)
        cv2.rectangle(out, (x, y), (x + s, y + e["height"]), (255, 255, 255), 3)
        cv2.putText(out, str(i), (x + 8, y + s - 18), cv2.FONT_HERSHEY_SIMPLEX, 0.9, (255, 255, 255), 2, cv2.LINE_AA)
    return out


def write_demo_map(
    root: Path,
    map_id: str = "demo",
    *,
    size: Tuple[int, int] = (2000, 1400),
    seed: int = 1234,
    node_size: int = 64,
) -> Path:
    """Write {root}/{map_id}/map.png and map.json; returns the map directory."""
    map_dir = Path(root) / map_id
    map_dir.mkdir(parents=True, exist_ok=True)
    entries = node_grid(size, node_size=node_size)
    img = draw_nodes(synthesize_map(size, seed), entries)
    if not cv2.imwrite(str(map_dir / REFERENCE_IMAGE), img):
        raise OSError(f"cannot write {map_dir / REFERENCE_IMAGE}")
    (map_dir / MANIFEST).write_text(json.dumps(entries, indent=2))
    return map_dir
