"""
Operation dispatch for the graph unfolding machine.

Each operation kind maps to a handler `handler(ctx, node, operand) -> bool`
that mutates the registry and returns True if the graph changed. Two tables
exist, selected by EngineConfig.operation_semantics:

REFERENCE (default):
    TurnToState(s)          node.state = s
    GiveBirthConnected(s)   new node in state s, parents + 1, edge parent -> child
    DisconnectFrom          marks the firing node for deletion
    other kinds             no effect

EXTENDED (every kind defined from its name):
    TurnToState, GiveBirthConnected as above
    GiveBirth(s)                  new unconnected node in state s, parents + 1
    Die                           marks the firing node for deletion
    DisconnectFrom(s)             drops edges to neighbors in state s
    TryToConnectWith(s)           connects to every eligible node in state s
    TryToConnectWithNearest(s)    connects to the closest eligible node(s) in state s

A node is an eligible connection target if it is live, not the firing node,
not already adjacent, and was not born in the current iteration. An Ignored
operand on a connect/disconnect operation matches any state. Nodes never
take a sentinel state from an operation: TurnToState ignores a sentinel
operand and births with one create Unknown nodes.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from gum.core.config import EngineConfig, OperationSemantics
from gum.core.graph import GUMGraph, GUMNode
from gum.core.rules import Operation
from gum.core.states import NodeState, OperationKind, is_sentinel

logger = logging.getLogger(__name__)


@dataclass
class IterationContext:
    """Mutable per-iteration state shared by the handlers."""
    graph: GUMGraph
    config: EngineConfig
    iteration: int
    births: int = 0
    deletions: int = 0
    edges_added: int = 0
    edges_removed: int = 0
    skipped_births: int = 0

    def can_give_birth(self) -> bool:
        # Nodes marked for deletion this iteration no longer count against max_nodes
        if self.config.max_nodes is not None and self.graph.num_unmarked_nodes >= self.config.max_nodes:
            return False
        return self.graph.has_capacity()


Handler = Callable[[IterationContext, GUMNode, NodeState], bool]


def _state_matches(operand: NodeState, state: NodeState) -> bool:
    return operand == NodeState.Ignored or operand == state


def _is_eligible_target(ctx: IterationContext, node: GUMNode, other: GUMNode, operand: NodeState) -> bool:
    if other is node or other.marked_as_deleted:
        return False
    if other.born_at_iteration == ctx.iteration:
        return False
    if not _state_matches(operand, other.state):
        return False
    return not ctx.graph.are_connected(node.id, other.id)


# --- handlers ---

def turn_to_state(ctx: IterationContext, node: GUMNode, operand: NodeState) -> bool:
    # A node never turns into a sentinel
    if is_sentinel(operand):
        logger.warning("TurnToState(%s) on node %d ignored: sentinel operand", operand.name, node.id)
        return False
    changed = node.state != operand
    node.state = operand
    return changed


def _give_birth(ctx: IterationContext, node: GUMNode, operand: NodeState, connected: bool) -> bool:
    if not ctx.can_give_birth():
        ctx.skipped_births += 1
        logger.debug("Birth from node %d skipped: node limit reached (%d nodes)", node.id, ctx.graph.num_nodes)
        return False

    child = ctx.graph.add_node(
        NodeState.Unknown if is_sentinel(operand) else operand,
        parents_count=node.parents_count + 1,
        born_at_iteration=ctx.iteration,
    )
    ctx.births += 1
    if connected:
        ctx.graph.add_edge(node.id, child.id)
        ctx.edges_added += 1
    return True


def give_birth_connected(ctx: IterationContext, node: GUMNode, operand: NodeState) -> bool:
    return _give_birth(ctx, node, operand, connected=True)


def give_birth(ctx: IterationContext, node: GUMNode, operand: NodeState) -> bool:
    return _give_birth(ctx, node, operand, connected=False)


def die(ctx: IterationContext, node: GUMNode, operand: NodeState) -> bool:
    if node.marked_as_deleted:
        return False
    ctx.graph.mark_for_deletion(node.id)
    ctx.deletions += 1
    return True


def disconnect_from(ctx: IterationContext, node: GUMNode, operand: NodeState) -> bool:
    removed = 0
    # dict.fromkeys keeps edge order and drops parallel duplicates
    for other_id in dict.fromkeys(ctx.graph.neighbors(node.id)):
        other = ctx.graph.get(other_id)
        if other.born_at_iteration == ctx.iteration or not _state_matches(operand, other.state):
            continue
        while ctx.graph.remove_edge(node.id, other_id):
            removed += 1
    ctx.edges_removed += removed
    return removed > 0


def try_to_connect_with(ctx: IterationContext, node: GUMNode, operand: NodeState) -> bool:
    targets = [other for other in ctx.graph.nodes if _is_eligible_target(ctx, node, other, operand)]
    for other in targets:
        ctx.graph.add_edge(node.id, other.id)
    ctx.edges_added += len(targets)
    return bool(targets)


def _nearest_candidates(ctx: IterationContext, node: GUMNode, operand: NodeState) -> List[GUMNode]:
    """Eligible nodes at the smallest hop distance (<= nearest_max_depth) that has any."""
    adjacency: Dict[int, Set[int]] = {}
    for edge in ctx.graph.edges:
        adjacency.setdefault(edge.source_id, set()).add(edge.target_id)
        adjacency.setdefault(edge.target_id, set()).add(edge.source_id)

    max_depth = ctx.config.nearest_max_depth
    visited = {node.id}
    frontier = deque([(node.id, 0)])
    found: List[GUMNode] = []
    found_depth: Optional[int] = None

    while frontier:
        current_id, depth = frontier.popleft()
        if found_depth is not None and depth > found_depth:
            break
        if depth > 0:
            current = ctx.graph.get(current_id)
            if _is_eligible_target(ctx, node, current, operand):
                found_depth = depth
                found.append(current)
                continue
        if depth < max_depth:
            for neighbor_id in sorted(adjacency.get(current_id, ())):
                if neighbor_id not in visited:
                    visited.add(neighbor_id)
                    frontier.append((neighbor_id, depth + 1))

    return sorted(found, key=lambda candidate: candidate.id)


def try_to_connect_with_nearest(ctx: IterationContext, node: GUMNode, operand: NodeState) -> bool:
    candidates = _nearest_candidates(ctx, node, operand)
    if not candidates:
        return False
    if not ctx.config.nearest_connect_all:
        candidates = candidates[:1]
    for other in candidates:
        ctx.graph.add_edge(node.id, other.id)
    ctx.edges_added += len(candidates)
    return True


REFERENCE_OPERATIONS: Dict[OperationKind, Handler] = {
    OperationKind.TurnToState: turn_to_state,
    OperationKind.GiveBirthConnected: give_birth_connected,
    # Under reference semantics DisconnectFrom deletes the firing node
    OperationKind.DisconnectFrom: die,
}

EXTENDED_OPERATIONS: Dict[OperationKind, Handler] = {
    OperationKind.TurnToState: turn_to_state,
    OperationKind.TryToConnectWithNearest: try_to_connect_with_nearest,
    OperationKind.GiveBirthConnected: give_birth_connected,
    OperationKind.DisconnectFrom: disconnect_from,
    OperationKind.Die: die,
    OperationKind.TryToConnectWith: try_to_connect_with,
    OperationKind.GiveBirth: give_birth,
}

OPERATION_TABLES = {
    OperationSemantics.REFERENCE: REFERENCE_OPERATIONS,
    OperationSemantics.EXTENDED: EXTENDED_OPERATIONS,
}


def apply_operation(ctx: IterationContext, node: GUMNode, operation: Operation) -> bool:
    """
    Apply one operation to the firing node.

    Returns:
        True if the graph changed
    """
    handler = OPERATION_TABLES[ctx.config.operation_semantics].get(operation.kind)
    if handler is None:
        logger.debug("%s has no effect under %s semantics (node %d)",
                     operation.kind.name, ctx.config.operation_semantics.value, node.id)
        return False
    changed = handler(ctx, node, operation.operand)
    logger.debug("node %d: %s(%s) changed=%s", node.id, operation.kind.name, operation.operand.name, changed)
    return changed
