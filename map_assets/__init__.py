"""
Reference Asset Store

Loads, once per map session, the full-map reference image and the manifest of
node rectangles defined in that image's pixel space.
"""
from .store import MapAssets, MapAssetStore, parse_manifest

__all__ = ["MapAssets", "MapAssetStore", "parse_manifest"]
