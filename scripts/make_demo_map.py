#!/usr/bin/env python3
"""
Create a synthetic map for offline runs of the localization engine.

Writes {root}/{map_id}/map.png (feature-rich image with numbered square
nodes painted on it) and map.json (node rectangles, list index = node id).

Examples:
  python scripts/make_demo_map.py
  python scripts/make_demo_map.py --root assets/maps --map demo --size 2400x1600
  python -m localization.cli --map demo --node 0 --node 23 --simulate
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add the project root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from map_assets.demo import write_demo_map


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--root", default="assets/maps", help="Map assets root directory")
    ap.add_argument("--map", dest="map_id", default="demo", help="Map id to create")
    ap.add_argument("--size", default="2000x1400", help="Map image WxH")
    ap.add_argument("--node-size", type=int, default=64, help="Square node side in pixels")
    ap.add_argument("--seed", type=int, default=1234, help="Seed for synthetic map generator")
    args = ap.parse_args()

    w, h = [int(v) for v in args.size.lower().split("x")]
    map_dir = write_demo_map(Path(args.root), args.map_id, size=(w, h), seed=args.seed, node_size=args.node_size)
    print(f"[ok] wrote {map_dir / 'map.png'} and {map_dir / 'map.json'}")


if __name__ == "__main__":
    main()
