"""
Node registry of the graph unfolding machine.

GUMGraph owns every node record and edge record of one run. Nodes live in an
index-based arena: a list in creation order (the traversal order of the
engine) plus an id -> node index. Edges only hold node ids, never node
references, so there are no ownership cycles.

Lifecycle of a node:
    add_node()            -> live
    mark_for_deletion()   -> live, flagged (still visible until compaction)
    compact()             -> gone, together with every edge touching it

Invariant (checked by gum.core.property.ConnectionsMatchEdges):
    node.connections_count == number of live edges incident to node

Example:
    graph = GUMGraph()
    a = graph.add_node(NodeState.A)
    b = graph.add_node(NodeState.B, parents_count=1)
    graph.add_edge(a.id, b.id)
    graph.mark_for_deletion(b.id)
    graph.compact()            # b and edge (a, b) removed, a.connections_count == 0
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import CapacityExceededError, InvalidReferenceError
from .snapshot import EdgeRecord, GraphSnapshot, NodeRecord
from .states import NodeState

logger = logging.getLogger(__name__)

NodeId = int


@dataclass(eq=False)
class GUMNode:
    """
    A node of the unfolding graph.

    Mutated only by the engine during an iteration. Identity matters (eq=False):
    two nodes with equal fields are still different nodes.
    """
    id: NodeId
    state: NodeState = NodeState.Unknown
    prior_state: NodeState = NodeState.Unknown
    connections_count: int = 0
    parents_count: int = 0
    marked_as_deleted: bool = False
    # Iteration that created the node (-1 for seeds and nodes added outside an iteration)
    born_at_iteration: int = -1

    def to_record(self) -> NodeRecord:
        return NodeRecord(
            id=self.id,
            state=self.state,
            prior_state=self.prior_state,
            connections_count=self.connections_count,
            parents_count=self.parents_count,
        )

    def __repr__(self):
        flag = " deleted" if self.marked_as_deleted else ""
        return (f"<GUMNode id={self.id} state={self.state.name} prior={self.prior_state.name} "
                f"conn={self.connections_count} parents={self.parents_count}{flag}>")


@dataclass(frozen=True)
class GUMEdge:
    """Undirected edge; source/target record who gave birth to whom."""
    source_id: NodeId
    target_id: NodeId

    def touches(self, node_id: NodeId) -> bool:
        return self.source_id == node_id or self.target_id == node_id

    def other(self, node_id: NodeId) -> NodeId:
        return self.target_id if self.source_id == node_id else self.source_id


class GUMGraph:
    """
    Authoritative set of live nodes and edges.

    Args:
        capacity: Maximum number of nodes held at once (None = unbounded)
    """

    def __init__(self, capacity: Optional[int] = None):
        if capacity is not None and capacity < 1:
            raise ValueError(f"capacity must be positive or None, got {capacity}")
        self.capacity = capacity
        self._nodes: List[GUMNode] = []
        self._index: Dict[NodeId, GUMNode] = {}
        self._edges: List[GUMEdge] = []
        # Ids are never reused, not even after clear()
        self._next_id: NodeId = 1

    # --- queries ---

    @property
    def nodes(self) -> List[GUMNode]:
        """
        The live node list, in creation order.

        This is the registry's own list, not a copy: nodes appended while a
        caller iterates over it by index become visible to that caller. Only
        the engine may mutate it.
        """
        return self._nodes

    @property
    def edges(self) -> Tuple[GUMEdge, ...]:
        return tuple(self._edges)

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    @property
    def num_unmarked_nodes(self) -> int:
        """Nodes that survive the next compaction."""
        return sum(1 for node in self._nodes if not node.marked_as_deleted)

    @property
    def num_edges(self) -> int:
        return len(self._edges)

    @property
    def next_id(self) -> NodeId:
        return self._next_id

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[GUMNode]:
        return iter(list(self._nodes))

    def __contains__(self, node_id: NodeId) -> bool:
        return node_id in self._index

    def contains(self, node_id: NodeId) -> bool:
        return node_id in self._index

    def get(self, node_id: NodeId) -> GUMNode:
        """
        Look up a node by id.

        Raises:
            InvalidReferenceError: If no node has this id
        """
        try:
            return self._index[node_id]
        except KeyError:
            raise InvalidReferenceError(f"Unknown node id: {node_id}") from None

    def has_capacity(self) -> bool:
        return self.capacity is None or len(self._nodes) < self.capacity

    def neighbors(self, node_id: NodeId) -> List[NodeId]:
        """Ids of nodes sharing an edge with node_id, in edge order (one entry per edge)."""
        self.get(node_id)
        return [edge.other(node_id) for edge in self._edges if edge.touches(node_id)]

    def are_connected(self, a: NodeId, b: NodeId) -> bool:
        return any(
            (edge.source_id == a and edge.target_id == b) or (edge.source_id == b and edge.target_id == a)
            for edge in self._edges
        )

    def incident_edge_count(self, node_id: NodeId) -> int:
        return sum(1 for edge in self._edges if edge.touches(node_id))

    # --- mutation ---

    def add_node(
        self,
        state: NodeState = NodeState.Unknown,
        parents_count: int = 0,
        born_at_iteration: int = -1,
    ) -> GUMNode:
        """
        Create a node with a fresh id.

        Args:
            state: Initial state
            parents_count: Birth depth inherited from the parent (0 for seeds)
            born_at_iteration: Iteration index that created the node

        Returns:
            The new node (prior_state Unknown, no connections)

        Raises:
            CapacityExceededError: If the registry is full
        """
        if not self.has_capacity():
            raise CapacityExceededError(
                f"Cannot add node: registry capacity {self.capacity} reached"
            )
        if parents_count < 0:
            raise ValueError(f"parents_count must be >= 0, got {parents_count}")

        node = GUMNode(
            id=self._next_id,
            state=NodeState(state),
            parents_count=parents_count,
            born_at_iteration=born_at_iteration,
        )
        self._next_id += 1
        self._nodes.append(node)
        self._index[node.id] = node
        logger.debug("add_node: %r", node)
        return node

    def _require_live(self, node_id: NodeId) -> GUMNode:
        node = self.get(node_id)
        if node.marked_as_deleted:
            raise InvalidReferenceError(f"Node {node_id} is marked for deletion")
        return node

    def add_edge(self, source_id: NodeId, target_id: NodeId) -> GUMEdge:
        """
        Connect two live nodes and bump both connection counters.

        Raises:
            InvalidReferenceError: If either id is unknown or marked for
                deletion, or if both ids are the same node. The registry is
                left unchanged.
        """
        source = self._require_live(source_id)
        target = self._require_live(target_id)
        if source is target:
            raise InvalidReferenceError(f"Cannot connect node {source_id} to itself")

        edge = GUMEdge(source_id, target_id)
        self._edges.append(edge)
        source.connections_count += 1
        target.connections_count += 1
        return edge

    def remove_edge(self, a: NodeId, b: NodeId) -> bool:
        """
        Remove one edge between a and b (either direction).

        Returns:
            True if an edge was removed, False if the nodes were not connected
        """
        node_a = self.get(a)
        node_b = self.get(b)
        for i, edge in enumerate(self._edges):
            if (edge.source_id == a and edge.target_id == b) or (edge.source_id == b and edge.target_id == a):
                del self._edges[i]
                node_a.connections_count -= 1
                node_b.connections_count -= 1
                return True
        return False

    def mark_for_deletion(self, node_id: NodeId) -> None:
        """Flag a node for removal at the next compaction. Idempotent."""
        self.get(node_id).marked_as_deleted = True

    def compact(self) -> Tuple[int, int]:
        """
        Purge flagged nodes and every edge touching one of them.

        Surviving endpoints of purged edges lose one connection per edge.
        The live node list is filtered in place, so references obtained from
        `nodes` stay valid.

        Returns:
            (removed_nodes, removed_edges)
        """
        removed_nodes = sum(1 for node in self._nodes if node.marked_as_deleted)
        if removed_nodes == 0:
            return 0, 0

        kept_edges = []
        for edge in self._edges:
            source = self._index[edge.source_id]
            target = self._index[edge.target_id]
            if source.marked_as_deleted or target.marked_as_deleted:
                if not source.marked_as_deleted:
                    source.connections_count -= 1
                if not target.marked_as_deleted:
                    target.connections_count -= 1
            else:
                kept_edges.append(edge)
        removed_edges = len(self._edges) - len(kept_edges)

        for node in self._nodes:
            if node.marked_as_deleted:
                del self._index[node.id]
        self._nodes[:] = [node for node in self._nodes if not node.marked_as_deleted]
        self._edges[:] = kept_edges

        logger.debug("compact: removed %d nodes, %d edges", removed_nodes, removed_edges)
        return removed_nodes, removed_edges

    def clear(self) -> None:
        """Remove every node and edge. Ids keep counting up."""
        for node in self._nodes:
            node.marked_as_deleted = True
        self.compact()

    def snapshot(self, iteration: int = 0) -> GraphSnapshot:
        """Read-only copy of the current nodes and edges."""
        return GraphSnapshot(
            iteration=iteration,
            nodes=tuple(node.to_record() for node in self._nodes),
            edges=tuple(EdgeRecord(edge.source_id, edge.target_id) for edge in self._edges),
        )

    def __repr__(self):
        return f"<GUMGraph nodes={len(self._nodes)} edges={len(self._edges)} next_id={self._next_id}>"
