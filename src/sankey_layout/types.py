"""Layout types shared by the pipeline phases, the engine and host code."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from sankey_layout.errors import InvalidArgumentError

# Defaults in pixel-equivalent units.
NODE_WIDTH: float = 24.0
NODE_PADDING: float = 8.0
LINK_OPACITY: float = 0.3


def _check_size(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise InvalidArgumentError(f"{name} must be finite and non-negative, got {value!r}")


@dataclass(frozen=True)
class Frame:
    """The rectangle a layout pass fills: top-left corner plus size."""

    top: float
    left: float
    width: float
    height: float

    def __post_init__(self) -> None:
        _check_size("frame width", self.width)
        _check_size("frame height", self.height)


@dataclass(frozen=True)
class LayoutConfig:
    """Constants of a layout pass.

    Attributes:
        node_width: Width of every node rectangle.
        node_padding: Vertical gap between stacked nodes of one column.
        link_opacity: Opacity handed to the renderer for link strokes.
        max_rounds: Layering round bound; ``None`` means node count + 1.
    """

    node_width: float = NODE_WIDTH
    node_padding: float = NODE_PADDING
    link_opacity: float = LINK_OPACITY
    max_rounds: int | None = None

    def __post_init__(self) -> None:
        _check_size("node_width", self.node_width)
        _check_size("node_padding", self.node_padding)
        if not 0.0 <= self.link_opacity <= 1.0:
            raise InvalidArgumentError(f"link_opacity must be within [0, 1], got {self.link_opacity!r}")
        if self.max_rounds is not None and self.max_rounds < 1:
            raise InvalidArgumentError(f"max_rounds must be positive, got {self.max_rounds!r}")


class LayoutStage(Enum):
    """Where a layout pass currently is. A pass always ends back at IDLE."""

    IDLE = "idle"
    VALUES_COMPUTED = "values_computed"
    LAYERED = "layered"
    ORDERED = "ordered"
    COORDINATED = "coordinated"
    ROUTED = "routed"


@dataclass(frozen=True)
class LayoutNode:
    """A positioned node."""

    id: str
    name: str
    value: float
    column: int
    row: int
    x: float
    y: float
    width: float
    height: float
    fill: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "value": self.value,
            "column": self.column,
            "row": self.row,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class RoutedLink:
    """A link routed as a horizontal cubic curve.

    The curve runs from (start_x, start_y) on the source's right edge to
    (end_x, end_y) on the target's left edge through the two control points.
    ``color`` is the source node's fill and ``opacity`` the configured link
    opacity; both are left to the renderer to apply.
    """

    id: str
    source_id: str
    target_id: str
    value: float
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    control_x1: float
    control_y1: float
    control_x2: float
    control_y2: float
    stroke_width: float
    color: str | None = None
    opacity: float = LINK_OPACITY

    def to_dict(self) -> dict[str, object]:
        return {
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "value": self.value,
            "startX": self.start_x,
            "startY": self.start_y,
            "endX": self.end_x,
            "endY": self.end_y,
            "controlX1": self.control_x1,
            "controlY1": self.control_y1,
            "controlX2": self.control_x2,
            "controlY2": self.control_y2,
            "strokeWidth": self.stroke_width,
        }


@dataclass(frozen=True)
class LayoutResult:
    """Self-contained output of one layout pass, keyed by node and link id.

    ``nodes`` and ``links`` are read-only views over private copies of the
    mappings passed in.
    """

    nodes: Mapping[str, LayoutNode]
    links: Mapping[str, RoutedLink]
    frame: Frame
    ratio: float = 0.0
    spacing: float = 0.0
    config: LayoutConfig = field(default_factory=LayoutConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, "links", MappingProxyType(dict(self.links)))

    def columns(self) -> list[list[str]]:
        """Node ids per column, each column in row order."""
        if not self.nodes:
            return []
        column_count = max(n.column for n in self.nodes.values()) + 1
        grouped: list[list[LayoutNode]] = [[] for _ in range(column_count)]
        for node in self.nodes.values():
            grouped[node.column].append(node)
        return [[n.id for n in sorted(col, key=lambda n: n.row)] for col in grouped]

    def to_dict(self) -> dict[str, object]:
        return {
            "nodes": [self.nodes[k].to_dict() for k in sorted(self.nodes)],
            "links": [self.links[k].to_dict() for k in sorted(self.links)],
        }
