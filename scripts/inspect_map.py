#!/usr/bin/env python3
"""
Check a map's node manifest against its reference image and draw an overview.

Reports nodes that fall outside the image, overlap each other, or are not
roughly square (the resolver's side-difference test would reject them at
1:1 zoom). Writes {map_dir}/map_nodes.png with every node outlined.

Examples:
  python scripts/inspect_map.py --map 0-2
  python scripts/inspect_map.py --root assets/maps --map demo --max-side-diff 5
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List

import cv2

# Add the project root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.errors import AssetMissing
from common.types import MapNode
from map_assets.store import MapAssetStore


def manifest_problems(nodes: List[MapNode], size, max_side_diff: float) -> List[str]:
    w, h = size
    problems: List[str] = []
    for n in nodes:
        r = n.rect
        if r.is_empty:
            problems.append(f"{n}: empty rect {r}")
        if r.x < 0 or r.y < 0 or r.right > w or r.bottom > h:
            problems.append(f"{n}: outside image {w}x{h}")
        if abs(r.width - r.height) > max_side_diff:
            problems.append(f"{n}: not square ({r.width}x{r.height})")
    for i, a in enumerate(nodes):
        for b in nodes[i + 1:]:
            ra, rb = a.rect, b.rect
            if ra.x < rb.right and rb.x < ra.right and ra.y < rb.bottom and rb.y < ra.bottom:
                problems.append(f"{a} overlaps {b}")
    return problems


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--root", default="assets/maps", help="Map assets root directory")
    ap.add_argument("--map", dest="map_id", required=True)
    ap.add_argument("--max-side-diff", type=float, default=5.0)
    args = ap.parse_args()

    try:
        assets = MapAssetStore(args.root).load(args.map_id)
    except AssetMissing as e:
        print(f"[error] {e}")
        sys.exit(2)

    nodes = list(assets.nodes.values())
    problems = manifest_problems(nodes, assets.size, args.max_side_diff)
    for p in problems:
        print(f"[warn] {p}")

    out = assets.reference_image.copy()
    for n in nodes:
        r = n.rect
        cv2.rectangle(out, (r.x, r.y), (r.right, r.bottom), (0, 255, 255), 2)
        cv2.putText(out, str(n.id), (r.x, max(12, r.y - 6)), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 255), 2, cv2.LINE_AA)
    out_path = Path(args.root) / args.map_id / "map_nodes.png"
    cv2.imwrite(str(out_path), out)
    print(f"[ok] {len(nodes)} nodes, {len(problems)} problems; overview at {out_path}")
    sys.exit(1 if problems else 0)


if __name__ == "__main__":
    main()
