from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import cv2
import numpy as np

from common.errors import AssetMissing, UnknownNode
from common.logging_setup import get_logger
from common.types import MapNode, NodeId, Rect

log = get_logger("map_assets")

REFERENCE_IMAGE = "map.png"
MANIFEST = "map.json"


@dataclass(frozen=True)
class MapAssets:
    """Reference image plus node table for one map; read-only after loading."""
    map_id: str
    reference_image: np.ndarray
    nodes: Dict[NodeId, MapNode]

    @property
    def size(self) -> tuple:
        h, w = self.reference_image.shape[:2]
        return (w, h)

    def node(self, node_id: NodeId) -> MapNode:
        n = self.nodes.get(node_id)
        if n is None and isinstance(node_id, str) and node_id.isdigit():
            # CLI passes ids as strings; index-keyed manifests use ints
            n = self.nodes.get(int(node_id))
        if n is None:
            raise UnknownNode(self.map_id, node_id)
        return n


def parse_manifest(map_id: str, entries: Iterable) -> Dict[NodeId, MapNode]:
    """
    Build the node table from manifest entries.

    Each entry is {"x", "y", "width", "height"} plus an optional "id"; entries
    without an id are keyed by their position in the list. Any other keys are
    kept in MapNode.meta.
    """
    nodes: Dict[NodeId, MapNode] = {}
    for idx, e in enumerate(entries):
        if not isinstance(e, dict):
            raise AssetMissing(map_id, f"manifest entry {idx} is not an object")
        try:
            rect = Rect.from_dict(e)
        except (KeyError, TypeError, ValueError) as ex:
            raise AssetMissing(map_id, f"manifest entry {idx} malformed: {ex!r}") from ex
        node_id = e.get("id", idx)
        if isinstance(node_id, bool) or not isinstance(node_id, (str, int)):
            raise AssetMissing(map_id, f"manifest entry {idx} has invalid id {node_id!r}")
        if node_id in nodes:
            raise AssetMissing(map_id, f"duplicate node id {node_id!r}")
        meta = {k: v for k, v in e.items() if k not in ("id", "x", "y", "width", "height")}
        nodes[node_id] = MapNode(id=node_id, rect=rect, meta=meta)
    return nodes


class MapAssetStore:
    """
    Loads map reference assets from a directory tree:

        root/
          └─ {map_id}/
              ├─ map.png   (reference image of the whole map)
              └─ map.json  (list of node rectangles in map.png pixel space)
    """
    def __init__(self, root: str = "assets/maps"):
        self.root = Path(root)

    # -------- public API --------

    def load(self, map_id: str) -> MapAssets:
        """
        Load reference image and node table for `map_id`.

        Raises AssetMissing if the reference image is absent or unreadable.
        A missing manifest yields an empty node table.
        """
        map_dir = self.root / str(map_id)
        img = self._read_image(map_id, map_dir / REFERENCE_IMAGE)
        nodes = self._read_manifest(map_id, map_dir / MANIFEST)
        log.info(
            "Loaded map assets",
            extra={"extra": {"map": map_id, "nodes": len(nodes), "size": [img.shape[1], img.shape[0]]}},
        )
        return MapAssets(map_id=str(map_id), reference_image=img, nodes=nodes)

    def available_maps(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.parent.name for p in self.root.glob(f"*/{REFERENCE_IMAGE}"))

    # -------- internals --------

    def _read_image(self, map_id: str, path: Path) -> np.ndarray:
        if not path.is_file():
            raise AssetMissing(map_id, f"reference image not found: {path}")
        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None:
            raise AssetMissing(map_id, f"reference image unreadable: {path}")
        return img

    def _read_manifest(self, map_id: str, path: Path) -> Dict[NodeId, MapNode]:
        if not path.exists():
            log.warning("No node manifest, map has no nodes", extra={"extra": {"map": map_id, "path": str(path)}})
            return {}
        try:
            raw: Optional[list] = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise AssetMissing(map_id, f"manifest is not valid JSON: {e}") from e
        if raw is None:
            return {}
        if not isinstance(raw, list):
            raise AssetMissing(map_id, "manifest must be a JSON list")
        return parse_manifest(map_id, raw)
