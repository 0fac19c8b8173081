"""Flow graph: nodes and weighted links of a Sankey diagram.

Nodes and links are plain frozen records keyed by caller-visible ids. Links
reference their endpoints by id and are resolved through the graph's node
index, so there are no back-references between records and the owning graph.

The graph is stored in a ``networkx.MultiDiGraph``: node keys are node ids,
edge keys are link ids, and the records ride along as the ``data`` attribute.
Several links between the same ordered pair are allowed; self-loops are not.

Every mutation is validated before it is applied and fails fast with
``InvalidArgumentError``, so the invariant "every link endpoint exists in the
node set" holds at all times.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Protocol

import networkx as nx

from sankey_layout.errors import InvalidArgumentError

logger = logging.getLogger(__name__)


# ─── Records ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Node:
    """A Sankey node.

    Equality and hashing use ``id`` only; ``name`` is a display label and two
    distinct nodes may share it. ``fill`` is the node's base colour, handed
    through to its outgoing links' stroke.
    """

    id: str
    name: str = field(compare=False)
    fill: str | None = field(default=None, compare=False)


@dataclass(frozen=True)
class Link:
    """A weighted link from ``source_id`` to ``target_id``."""

    id: str
    source_id: str
    target_id: str
    value: float


# ─── Change Notification ──────────────────────────────────────────────────────


class GraphEventKind(Enum):
    NODE_ADDED = "node_added"
    NODE_REMOVED = "node_removed"
    NODE_RENAMED = "node_renamed"
    LINK_ADDED = "link_added"
    LINK_REMOVED = "link_removed"
    LINK_VALUE_CHANGED = "link_value_changed"


@dataclass(frozen=True)
class GraphEvent:
    """A single applied mutation."""

    kind: GraphEventKind
    node_id: str | None = None
    link_id: str | None = None


class GraphObserver(Protocol):
    """Receives every mutation after it has been applied to the graph.

    Called with ``FlowGraph.lock`` held, so an observer must not block.
    """

    def graph_changed(self, event: GraphEvent) -> None: ...


# ─── FlowGraph ────────────────────────────────────────────────────────────────


def _check_value(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"link value must be a number, got {value!r}")
    if not math.isfinite(value) or value < 0:
        raise InvalidArgumentError(f"link value must be finite and non-negative, got {value!r}")
    return float(value)


class FlowGraph:
    """The node set and link set of one Sankey diagram.

    Attributes:
        lock: Re-entrant lock held by every mutation and by a layout pass for
            its whole duration.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._digraph: nx.MultiDiGraph = nx.MultiDiGraph()
        # link id → (source id, target id)
        self._link_ends: dict[str, tuple[str, str]] = {}
        self._observers: list[GraphObserver] = []

    # ── observers ──

    def add_observer(self, observer: GraphObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: GraphObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, kind: GraphEventKind, node_id: str | None = None, link_id: str | None = None) -> None:
        event = GraphEvent(kind=kind, node_id=node_id, link_id=link_id)
        for observer in list(self._observers):
            observer.graph_changed(event)

    # ── mutation ──

    def add_node(self, node: Node) -> Node:
        """Add ``node``; its id must be a non-empty string not already present."""
        if not isinstance(node, Node):
            raise InvalidArgumentError(f"expected a Node, got {node!r}")
        if not isinstance(node.id, str) or not node.id:
            raise InvalidArgumentError(f"node id must be a non-empty string, got {node.id!r}")
        with self.lock:
            if node.id in self._digraph:
                raise InvalidArgumentError(f"duplicate node id {node.id!r}")
            self._digraph.add_node(node.id, data=node)
            logger.debug("added node %r", node.id)
            self._notify(GraphEventKind.NODE_ADDED, node_id=node.id)
        return node

    def add_nodes(self, nodes: Iterable[Node]) -> None:
        for node in nodes:
            self.add_node(node)

    def add_link(
        self,
        source_id: str,
        target_id: str,
        value: float,
        link_id: str | None = None,
    ) -> Link:
        """Add a link between two existing nodes and return its record.

        When ``link_id`` is omitted the id is ``"{source}->{target}#{k}"`` with
        ``k`` the lowest free index for that ordered pair.
        """
        if source_id is None or target_id is None:
            raise InvalidArgumentError("link endpoints cannot be None")
        checked = _check_value(value)
        with self.lock:
            for end in (source_id, target_id):
                if end not in self._digraph:
                    raise InvalidArgumentError(f"link endpoint {end!r} is not a node of this graph")
            if source_id == target_id:
                raise InvalidArgumentError(f"self-loop on {source_id!r} is not supported")
            if link_id is None:
                k = self._digraph.number_of_edges(source_id, target_id)
                link_id = f"{source_id}->{target_id}#{k}"
                while link_id in self._link_ends:
                    k += 1
                    link_id = f"{source_id}->{target_id}#{k}"
            elif link_id in self._link_ends:
                raise InvalidArgumentError(f"duplicate link id {link_id!r}")
            link = Link(id=link_id, source_id=source_id, target_id=target_id, value=checked)
            self._digraph.add_edge(source_id, target_id, key=link_id, data=link)
            self._link_ends[link_id] = (source_id, target_id)
            logger.debug("added link %r (%s)", link_id, checked)
            self._notify(GraphEventKind.LINK_ADDED, link_id=link_id)
        return link

    def remove_node(self, node_id: str) -> None:
        """Remove a node together with every link touching it."""
        with self.lock:
            self._require_node(node_id)
            touching = [key for _, _, key in self._digraph.in_edges(node_id, keys=True)]
            touching += [key for _, _, key in self._digraph.out_edges(node_id, keys=True)]
            for link_id in touching:
                self.remove_link(link_id)
            self._digraph.remove_node(node_id)
            self._notify(GraphEventKind.NODE_REMOVED, node_id=node_id)

    def remove_link(self, link_id: str) -> None:
        with self.lock:
            source_id, target_id = self._require_link(link_id)
            self._digraph.remove_edge(source_id, target_id, key=link_id)
            del self._link_ends[link_id]
            self._notify(GraphEventKind.LINK_REMOVED, link_id=link_id)

    def rename_node(self, node_id: str, name: str) -> Node:
        with self.lock:
            node = replace(self._require_node(node_id), name=name)
            self._digraph.nodes[node_id]["data"] = node
            self._notify(GraphEventKind.NODE_RENAMED, node_id=node_id)
        return node

    def set_link_value(self, link_id: str, value: float) -> Link:
        checked = _check_value(value)
        with self.lock:
            source_id, target_id = self._require_link(link_id)
            attrs = self._digraph.edges[source_id, target_id, link_id]
            link = replace(attrs["data"], value=checked)
            attrs["data"] = link
            self._notify(GraphEventKind.LINK_VALUE_CHANGED, link_id=link_id)
        return link

    # ── queries ──

    def _require_node(self, node_id: str) -> Node:
        if node_id not in self._digraph:
            raise InvalidArgumentError(f"unknown node id {node_id!r}")
        return self._digraph.nodes[node_id]["data"]

    def _require_link(self, link_id: str) -> tuple[str, str]:
        ends = self._link_ends.get(link_id)
        if ends is None:
            raise InvalidArgumentError(f"unknown link id {link_id!r}")
        return ends

    def node(self, node_id: str) -> Node:
        return self._require_node(node_id)

    def link(self, link_id: str) -> Link:
        source_id, target_id = self._require_link(link_id)
        return self._digraph.edges[source_id, target_id, link_id]["data"]

    @property
    def digraph(self) -> nx.MultiDiGraph:
        """The backing networkx graph. Treat as read-only."""
        return self._digraph

    @property
    def nodes(self) -> list[Node]:
        """All nodes, sorted by id."""
        return [self._digraph.nodes[n]["data"] for n in sorted(self._digraph.nodes)]

    @property
    def links(self) -> list[Link]:
        """All links, sorted by id."""
        return [self.link(link_id) for link_id in sorted(self._link_ends)]

    def node_ids(self) -> list[str]:
        return sorted(self._digraph.nodes)

    def incoming_links(self, node_id: str) -> list[Link]:
        """Links targeting ``node_id``, sorted by link id."""
        self._require_node(node_id)
        found = [data for _, _, data in self._digraph.in_edges(node_id, data="data")]
        return sorted(found, key=lambda link: link.id)

    def outgoing_links(self, node_id: str) -> list[Link]:
        """Links leaving ``node_id``, sorted by link id."""
        self._require_node(node_id)
        found = [data for _, _, data in self._digraph.out_edges(node_id, data="data")]
        return sorted(found, key=lambda link: link.id)

    def incoming_nodes_of(self, node_id: str) -> list[str]:
        """Distinct ids of the direct predecessors of ``node_id``."""
        self._require_node(node_id)
        return sorted(self._digraph.predecessors(node_id))

    def outgoing_nodes_of(self, node_id: str) -> list[str]:
        """Distinct ids of the direct successors of ``node_id``."""
        self._require_node(node_id)
        return sorted(self._digraph.successors(node_id))

    def sum_of_links_from(self, node_id: str) -> float:
        return sum((link.value for link in self.outgoing_links(node_id)), 0.0)

    def sum_of_links_targeting(self, node_id: str) -> float:
        return sum((link.value for link in self.incoming_links(node_id)), 0.0)

    def copy(self) -> FlowGraph:
        """Snapshot of the node and link sets. Observers are not copied."""
        with self.lock:
            snapshot = FlowGraph()
            snapshot._digraph = self._digraph.copy()
            snapshot._link_ends = dict(self._link_ends)
        return snapshot

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._digraph

    def __len__(self) -> int:
        return self._digraph.number_of_nodes()

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def __repr__(self) -> str:
        return f"FlowGraph(nodes={len(self)}, links={len(self._link_ends)})"
