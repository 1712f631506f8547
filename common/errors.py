"""
Error taxonomy shared by every package.

Only NodeNotFound, AssetMissing, DeviceError and ConfigError are expected to
reach mission-level callers; InferenceError and ValidationFailed are absorbed
by the resolver's retry loop.
"""
from __future__ import annotations

from typing import Any, Optional


class LocalizationError(Exception):
    """Base class for all errors raised by the engine."""


class ConfigError(LocalizationError):
    pass


class AssetMissing(LocalizationError):
    """Reference image or manifest for a map could not be loaded."""

    def __init__(self, map_id: str, detail: str):
        super().__init__(f"Assets for map {map_id!r} unavailable: {detail}")
        self.map_id = map_id
        self.detail = detail


class UnknownNode(LocalizationError, KeyError):
    def __init__(self, map_id: str, node_id: Any):
        super().__init__(f"Map {map_id!r} has no node {node_id!r}")
        self.map_id = map_id
        self.node_id = node_id

    def __str__(self) -> str:
        return str(self.args[0])


class InferenceError(LocalizationError):
    """The matching model rejected the (reference, live) image pair."""


class ValidationFailed(LocalizationError):
    """A candidate rectangle failed one of the resolver's geometric tests."""

    def __init__(self, test: str, detail: str = ""):
        super().__init__(f"{test} test failed{': ' + detail if detail else ''}")
        self.test = test
        self.detail = detail


class NodeNotFound(LocalizationError):
    """Terminal failure: the node could not be located within the retry budget."""

    def __init__(self, node: Any, attempts: int, reason: Optional[str] = None):
        msg = f"Node {node} not found after {attempts} attempts"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.node = node
        self.attempts = attempts
        self.reason = reason


class DeviceError(LocalizationError):
    """Capture or gesture command failed at the device layer."""
