from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple, Union

NodeId = Union[str, int]
Point = Tuple[int, int]


@dataclass(frozen=True, slots=True)
class Rect:
    """
    Axis-aligned integer rectangle in pixel space.

    Attributes:
        x, y: top-left corner.
        width, height: size in pixels (may be <= 0 for degenerate estimates).
    """
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Rect":
        return cls(int(d["x"]), int(d["y"]), int(d["width"]), int(d["height"]))

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return (self.x + self.width // 2, self.y + self.height // 2)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def translate(self, dx: int, dy: int) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    def contains(self, other: "Rect") -> bool:
        """True if `other` lies fully inside this rect (edges inclusive)."""
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )

    def contains_point(self, p: Point) -> bool:
        return self.x <= p[0] <= self.right and self.y <= p[1] <= self.bottom

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class MapNode:
    """
    A named location on a map, defined in reference-image coordinates.

    Attributes:
        id: identifier from the manifest (list index when the manifest has none).
        rect: rectangle in reference-image pixel space.
        meta: any extra manifest keys (type, label, ...), passed through untouched.
    """
    id: NodeId
    rect: Rect
    meta: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def width(self) -> int:
        return self.rect.width

    @property
    def height(self) -> int:
        return self.rect.height

    def __str__(self) -> str:
        return f"MapNode(id={self.id!r})"


@dataclass(frozen=True, slots=True)
class ResolvedRegion:
    """Node location in absolute device-screen coordinates, valid at computation time."""
    node_id: NodeId
    rect: Rect

    @property
    def center(self) -> Point:
        return self.rect.center

    def to_meta(self) -> Dict[str, Any]:
        return {"node": self.node_id, **self.rect.to_dict()}


class ScrollDirection(str, Enum):
    """Direction the view has to move to reveal an off-screen target."""
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @property
    def drag_vector(self) -> Tuple[int, int]:
        """
        Unit vector of the finger movement that brings content on this side into view.
        Revealing content to the right means dragging the map to the left.
        """
        return {
            ScrollDirection.UP: (0, 1),
            ScrollDirection.DOWN: (0, -1),
            ScrollDirection.LEFT: (1, 0),
            ScrollDirection.RIGHT: (-1, 0),
        }[self]
