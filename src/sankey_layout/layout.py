"""Layout module: Sankey layout pipeline.

Phases:
  1. Value propagation   (node value from its incident link values)
  2. Column assignment   (iterative frontier relaxation)
  3. Row assignment      (ascending value within each column)
  4. Coordinate mapping  (pixel geometry inside a frame)
  5. Link routing        (anchor packing + cubic control points)

Every phase is a plain function over a ``FlowGraph`` and the outputs of the
phases before it. ``compute_layout`` chains them into one pass and returns an
immutable ``LayoutResult``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

import networkx as nx

from sankey_layout.errors import CyclicGraphError
from sankey_layout.graph import FlowGraph
from sankey_layout.types import Frame, LayoutConfig, LayoutNode, LayoutResult, LayoutStage, RoutedLink

logger = logging.getLogger(__name__)

# ─── Value Propagation ────────────────────────────────────────────────────────


def compute_node_values(graph: FlowGraph) -> dict[str, float]:
    """Value of every node: the larger of its total inflow and total outflow.

    A node must be tall enough to host both its incoming and its outgoing
    links, so pure sources and sinks end up with their one non-zero side.
    Isolated nodes get 0.0.
    """
    return {
        node_id: max(graph.sum_of_links_targeting(node_id), graph.sum_of_links_from(node_id))
        for node_id in graph.node_ids()
    }


# ─── Column Assignment ────────────────────────────────────────────────────────


def assign_columns(graph: FlowGraph, max_rounds: int | None = None) -> dict[str, int]:
    """Assign every node a column by frontier relaxation.

    Algorithm: all columns start at 0 and the frontier holds every node. In
    each round, a frontier node with a direct predecessor that is also in the
    frontier, and whose column is not greater than its own, moves one column
    right and stays in the next frontier. The loop ends when no node moves.

    Membership and columns are read from the round's starting state, so the
    outcome does not depend on iteration order; every node ends up on the
    column equal to its longest incoming path.

    A cycle keeps its nodes in the frontier forever. After ``max_rounds``
    rounds (default: node count + 1) ``CyclicGraphError`` is raised.
    """
    digraph = graph.digraph
    node_ids = graph.node_ids()
    bound = max_rounds if max_rounds is not None else len(node_ids) + 1

    columns: dict[str, int] = {node_id: 0 for node_id in node_ids}
    frontier: set[str] = set(node_ids)
    rounds = 0

    while frontier:
        if rounds >= bound:
            raise _cycle_error(digraph, frontier, rounds)
        rounds += 1

        advancing = [
            node_id
            for node_id in sorted(frontier)
            if any(
                pred in frontier and columns[pred] <= columns[node_id] for pred in digraph.predecessors(node_id)
            )
        ]
        for node_id in advancing:
            columns[node_id] += 1
        logger.debug("layering round %d: %d node(s) advanced", rounds, len(advancing))
        frontier = set(advancing)

    return columns


def _cycle_error(digraph: nx.MultiDiGraph, frontier: set[str], rounds: int) -> CyclicGraphError:
    try:
        edges = nx.find_cycle(digraph.subgraph(frontier))
    except nx.NetworkXNoCycle:
        edges = []
    cycle = [(edge[0], edge[1]) for edge in edges]
    logger.warning("layering aborted after %d rounds; %d node(s) on or behind a cycle", rounds, len(frontier))
    return CyclicGraphError(frontier=sorted(frontier), cycle=cycle, rounds=rounds)


# ─── Row Assignment ───────────────────────────────────────────────────────────


def group_by_column(columns: Mapping[str, int]) -> dict[int, list[str]]:
    """Column index → node ids in that column (sorted by id)."""
    grouped: dict[int, list[str]] = {}
    for node_id in sorted(columns):
        grouped.setdefault(columns[node_id], []).append(node_id)
    return grouped


def assign_rows(columns: Mapping[str, int], values: Mapping[str, float]) -> dict[str, int]:
    """Rank the nodes of each column by ascending value; equal values by id."""
    rows: dict[str, int] = {}
    for members in group_by_column(columns).values():
        for row, node_id in enumerate(sorted(members, key=lambda n: (values[n], n))):
            rows[node_id] = row
    return rows


# ─── Coordinate Mapping ───────────────────────────────────────────────────────


def value_to_height_ratio(columns: Mapping[str, int], values: Mapping[str, float], height: float) -> float:
    """Pixels per unit of flow, chosen so the fullest column fits ``height``.

    Returns 0.0 for an empty graph or when every column sums to zero.
    """
    totals = [sum(values[n] for n in members) for members in group_by_column(columns).values()]
    biggest = max(totals, default=0.0)
    if biggest <= 0:
        return 0.0
    return height / biggest


def column_spacing(column_count: int, width: float, node_width: float) -> float:
    """Horizontal step between the left edges of consecutive columns.

    Zero for a single column, and clamped at zero when the nodes alone are
    wider than the frame.
    """
    if column_count <= 1:
        return 0.0
    return max(0.0, (width - column_count * node_width) / (column_count - 1))


def assign_coordinates(
    graph: FlowGraph,
    values: Mapping[str, float],
    columns: Mapping[str, int],
    rows: Mapping[str, int],
    frame: Frame,
    config: LayoutConfig,
    keep_positions: Mapping[str, tuple[float, float]] | None = None,
) -> tuple[dict[str, LayoutNode], float, float]:
    """Map (column, row, value) of every node to pixel geometry.

    Heights use one shared ratio so a unit of flow has the same height
    everywhere in the diagram. Within a column, nodes are stacked from
    ``frame.top`` in row order with ``config.node_padding`` between them.

    ``keep_positions`` maps node id → (x, y) for nodes whose position must
    not move; their width and height are still recomputed. The other nodes of
    a column are stacked below the lowest kept node of that column.

    Returns:
        (positioned nodes keyed by id, value-to-height ratio, column spacing)
    """
    keep = keep_positions or {}
    grouped = group_by_column(columns)
    ratio = value_to_height_ratio(columns, values, frame.height)
    spacing = column_spacing(len(grouped), frame.width, config.node_width)

    nodes: dict[str, LayoutNode] = {}
    for column in sorted(grouped):
        x = frame.left + column * spacing
        current_y = max(
            (keep[n][1] + values[n] * ratio + config.node_padding for n in grouped[column] if n in keep),
            default=frame.top,
        )
        for node_id in sorted(grouped[column], key=lambda n: rows[n]):
            height = values[node_id] * ratio
            if node_id in keep:
                node_x, node_y = keep[node_id]
            else:
                node_x, node_y = x, current_y
                current_y += height + config.node_padding
            record = graph.node(node_id)
            nodes[node_id] = LayoutNode(
                id=node_id,
                name=record.name,
                value=values[node_id],
                column=column,
                row=rows[node_id],
                x=node_x,
                y=node_y,
                width=config.node_width,
                height=height,
                fill=record.fill,
            )

    return nodes, ratio, spacing


# ─── Link Routing ─────────────────────────────────────────────────────────────


def control_points(
    start_x: float,
    start_y: float,
    end_x: float,
    end_y: float,
) -> tuple[float, float, float, float]:
    """Control points of a horizontal S-curve: (cx1, cy1, cx2, cy2).

    The controls sit at one and two thirds of the horizontal distance, level
    with the start and end points respectively.
    """
    third = (end_x - start_x) / 3
    return (start_x + third, start_y, start_x + 2 * third, end_y)


def route_links(
    graph: FlowGraph,
    nodes: Mapping[str, LayoutNode],
    ratio: float,
    config: LayoutConfig,
) -> dict[str, RoutedLink]:
    """Route every link of ``graph`` between its positioned endpoints.

    Each node packs its outgoing links down its right edge and its incoming
    links down its left edge, starting at the node's top. Siblings are ordered
    by the neighbour node's y (then x, then link id), and each takes up
    ``value * ratio`` pixels, the same scale as node heights.
    """
    starts: dict[str, tuple[float, float]] = {}
    ends: dict[str, tuple[float, float]] = {}

    def by_position(neighbour_id: str) -> tuple[float, float]:
        neighbour = nodes[neighbour_id]
        return (neighbour.y, neighbour.x)

    for node_id in sorted(nodes):
        node = nodes[node_id]

        outgoing = sorted(graph.outgoing_links(node_id), key=lambda lk: (*by_position(lk.target_id), lk.id))
        offset = node.y
        for link in outgoing:
            thickness = link.value * ratio
            starts[link.id] = (node.x + node.width, offset + thickness / 2)
            offset += thickness

        incoming = sorted(graph.incoming_links(node_id), key=lambda lk: (*by_position(lk.source_id), lk.id))
        offset = node.y
        for link in incoming:
            thickness = link.value * ratio
            ends[link.id] = (node.x, offset + thickness / 2)
            offset += thickness

    routed: dict[str, RoutedLink] = {}
    for link in graph.links:
        start_x, start_y = starts[link.id]
        end_x, end_y = ends[link.id]
        cx1, cy1, cx2, cy2 = control_points(start_x, start_y, end_x, end_y)
        routed[link.id] = RoutedLink(
            id=link.id,
            source_id=link.source_id,
            target_id=link.target_id,
            value=link.value,
            start_x=start_x,
            start_y=start_y,
            end_x=end_x,
            end_y=end_y,
            control_x1=cx1,
            control_y1=cy1,
            control_x2=cx2,
            control_y2=cy2,
            stroke_width=link.value * ratio,
            color=nodes[link.source_id].fill,
            opacity=config.link_opacity,
        )
    return routed


# ─── Full Layout Pipeline ─────────────────────────────────────────────────────


def compute_layout(
    graph: FlowGraph,
    frame: Frame,
    config: LayoutConfig | None = None,
    *,
    keep_positions: Mapping[str, tuple[float, float]] | None = None,
    on_stage: Callable[[LayoutStage], None] | None = None,
) -> LayoutResult:
    """Run the full pipeline over ``graph`` and return positioned nodes + routed links.

    ``on_stage`` is called after each phase with the stage just reached.
    Raises ``CyclicGraphError`` from column assignment; nothing is produced
    in that case.
    """
    config = config or LayoutConfig()

    def reached(stage: LayoutStage) -> None:
        logger.debug("layout stage: %s", stage.value)
        if on_stage is not None:
            on_stage(stage)

    values = compute_node_values(graph)
    reached(LayoutStage.VALUES_COMPUTED)
    columns = assign_columns(graph, config.max_rounds)
    reached(LayoutStage.LAYERED)
    rows = assign_rows(columns, values)
    reached(LayoutStage.ORDERED)
    nodes, ratio, spacing = assign_coordinates(graph, values, columns, rows, frame, config, keep_positions)
    reached(LayoutStage.COORDINATED)
    links = route_links(graph, nodes, ratio, config)
    reached(LayoutStage.ROUTED)

    logger.info(
        "laid out %d node(s) and %d link(s) in %d column(s), ratio=%g",
        len(nodes),
        len(links),
        len(set(columns.values())),
        ratio,
    )
    return LayoutResult(nodes=nodes, links=links, frame=frame, ratio=ratio, spacing=spacing, config=config)
