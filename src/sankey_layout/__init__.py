"""Sankey diagram layout: flow graph in, node and link geometry out."""

from __future__ import annotations

from sankey_layout.engine import SankeyLayout
from sankey_layout.errors import CyclicGraphError, InvalidArgumentError, SankeyError
from sankey_layout.graph import FlowGraph, GraphEvent, GraphEventKind, GraphObserver, Link, Node
from sankey_layout.layout import (
    assign_columns,
    assign_coordinates,
    assign_rows,
    column_spacing,
    compute_layout,
    compute_node_values,
    control_points,
    route_links,
    value_to_height_ratio,
)
from sankey_layout.logging_config import setup_logging
from sankey_layout.types import (
    LINK_OPACITY,
    NODE_PADDING,
    NODE_WIDTH,
    Frame,
    LayoutConfig,
    LayoutNode,
    LayoutResult,
    LayoutStage,
    RoutedLink,
)

__all__ = [
    "LINK_OPACITY",
    "NODE_PADDING",
    "NODE_WIDTH",
    "CyclicGraphError",
    "FlowGraph",
    "Frame",
    "GraphEvent",
    "GraphEventKind",
    "GraphObserver",
    "InvalidArgumentError",
    "LayoutConfig",
    "LayoutNode",
    "LayoutResult",
    "LayoutStage",
    "Link",
    "Node",
    "RoutedLink",
    "SankeyError",
    "SankeyLayout",
    "assign_columns",
    "assign_coordinates",
    "assign_rows",
    "column_spacing",
    "compute_layout",
    "compute_node_values",
    "control_points",
    "route_links",
    "setup_logging",
    "value_to_height_ratio",
]
