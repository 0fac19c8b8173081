"""Layout engine: stateful driver around the layout pipeline.

``SankeyLayout`` owns the last ``LayoutResult`` for one ``FlowGraph``. It
observes the graph to know when a new pass is needed and, in incremental mode,
which nodes were added since the previous pass.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from sankey_layout.errors import InvalidArgumentError, SankeyError
from sankey_layout.graph import FlowGraph, GraphEvent, GraphEventKind
from sankey_layout.layout import compute_layout, route_links
from sankey_layout.types import Frame, LayoutConfig, LayoutResult, LayoutStage

logger = logging.getLogger(__name__)


class SankeyLayout:
    """Runs layout passes over a flow graph and keeps the latest result.

    A pass holds ``graph.lock`` from value propagation to link routing, so
    graph mutations and ``move_node`` from other threads wait for it to end.

    In incremental mode, a pass over the same frame as the previous one only
    assigns x/y to nodes added since then; every other node keeps its
    previous position. Values, columns and rows are always recomputed for the
    whole graph. A pass over a different frame is always a full one.
    """

    def __init__(self, graph: FlowGraph, config: LayoutConfig | None = None, incremental: bool = False) -> None:
        self.graph = graph
        self.config = config or LayoutConfig()
        self.incremental = incremental
        self.result: LayoutResult | None = None
        self.stage = LayoutStage.IDLE
        self._new_node_ids: set[str] = set()
        self._dirty = True
        graph.add_observer(self)

    # ── graph observer ──

    def graph_changed(self, event: GraphEvent) -> None:
        self._dirty = True
        if event.kind is GraphEventKind.NODE_ADDED:
            self._new_node_ids.add(event.node_id)
        elif event.kind is GraphEventKind.NODE_REMOVED:
            self._new_node_ids.discard(event.node_id)

    @property
    def new_node_ids(self) -> frozenset[str]:
        """Nodes added since the last successful pass."""
        with self.graph.lock:
            return frozenset(self._new_node_ids)

    def request_layout(self) -> None:
        """Mark the current result stale (frame resized, explicit relayout...)."""
        self._dirty = True

    @property
    def needs_layout(self) -> bool:
        return self._dirty or self.result is None

    # ── passes ──

    def _enter(self, stage: LayoutStage) -> None:
        self.stage = stage

    def _kept_positions(self, frame: Frame) -> dict[str, tuple[float, float]] | None:
        previous = self.result
        if not self.incremental or previous is None or previous.frame != frame:
            return None
        return {
            node_id: (node.x, node.y)
            for node_id, node in previous.nodes.items()
            if node_id not in self._new_node_ids and node_id in self.graph
        }

    def layout(self, frame: Frame) -> LayoutResult:
        """Run a full pass and store its result.

        On ``CyclicGraphError`` the previous result is left untouched and the
        error propagates.
        """
        with self.graph.lock:
            keep = self._kept_positions(frame)
            if keep is not None:
                logger.debug("incremental pass: placing %d new node(s)", len(self.graph) - len(keep))
            try:
                result = compute_layout(self.graph, frame, self.config, keep_positions=keep, on_stage=self._enter)
            finally:
                self.stage = LayoutStage.IDLE
            self.result = result
            self._new_node_ids.clear()
            self._dirty = False
        return result

    def move_node(self, node_id: str, x: float, y: float) -> LayoutResult:
        """Place one node at (x, y) in the current result and re-route all links."""
        with self.graph.lock:
            if self.result is None or self._dirty:
                raise SankeyError("layout is stale; run layout() before moving nodes")
            node = self.result.nodes.get(node_id)
            if node is None:
                raise InvalidArgumentError(f"unknown node id {node_id!r}")
            nodes = dict(self.result.nodes)
            nodes[node_id] = replace(node, x=x, y=y)
            links = route_links(self.graph, nodes, self.result.ratio, self.config)
            self.result = replace(self.result, nodes=nodes, links=links)
        return self.result

    def close(self) -> None:
        """Stop observing the graph."""
        self.graph.remove_observer(self)
