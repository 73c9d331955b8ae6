"""
Change table: ordered condition -> operation rules and first-match lookup.

A rule (ChangeTableItem) pairs an OperationCondition with an Operation.
The change table is scanned in insertion order and the FIRST rule whose
condition holds for a node is returned, so rule order matters:

    table.add(ChangeTableItem(OperationCondition(NodeState.A), Operation(OperationKind.Die)))
    table.add(ChangeTableItem(OperationCondition(NodeState.A), Operation(OperationKind.TurnToState, NodeState.B)))
    table.find(node_in_state_A).operation.kind   # OperationKind.Die

Matching predicate (all six must hold):
    current_state  == node.state            or current_state is Ignored
    prior_state    == node.prior_state      or prior_state is Ignored
    connections_ge <= node.connections_count or connections_ge == -1
    connections_le >= node.connections_count or connections_le == -1
    parents_ge     <= node.parents_count     or parents_ge == -1
    parents_le     >= node.parents_count     or parents_le == -1
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

from .states import NodeState, OperationKind

# Bound value meaning "unbounded on that side"
UNBOUNDED = -1


class MatchableNode(Protocol):
    state: NodeState
    prior_state: NodeState
    connections_count: int
    parents_count: int


@dataclass
class Operation:
    kind: OperationKind
    operand: NodeState = NodeState.Ignored

    def __post_init__(self):
        self.kind = OperationKind(self.kind)
        self.operand = NodeState(self.operand)

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.name, "operandNodeState": self.operand.name}


def _bound_holds(value: int, ge: int, le: int) -> bool:
    if ge != UNBOUNDED and value < ge:
        return False
    if le != UNBOUNDED and value > le:
        return False
    return True


@dataclass
class OperationCondition:
    """
    Predicate over a node's state, prior state and counters.

    Bounds are inclusive; -1 disables a bound.
    """
    current_state: NodeState
    prior_state: NodeState = NodeState.Ignored
    connections_ge: int = UNBOUNDED
    connections_le: int = UNBOUNDED
    parents_ge: int = UNBOUNDED
    parents_le: int = UNBOUNDED

    def __post_init__(self):
        self.current_state = NodeState(self.current_state)
        self.prior_state = NodeState(self.prior_state)
        for name in ("connections_ge", "connections_le", "parents_ge", "parents_le"):
            value = getattr(self, name)
            if value < UNBOUNDED:
                raise ValueError(f"{name} must be -1 (unbounded) or >= 0, got {value}")

    def matches(self, node: MatchableNode) -> bool:
        if self.current_state != NodeState.Ignored and self.current_state != node.state:
            return False
        if self.prior_state != NodeState.Ignored and self.prior_state != node.prior_state:
            return False
        return (
            _bound_holds(node.connections_count, self.connections_ge, self.connections_le)
            and _bound_holds(node.parents_count, self.parents_ge, self.parents_le)
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "currentState": self.current_state.name,
            "priorState": self.prior_state.name,
            "allConnectionsCount_GE": self.connections_ge,
            "allConnectionsCount_LE": self.connections_le,
            "parentsCount_GE": self.parents_ge,
            "parentsCount_LE": self.parents_le,
        }


@dataclass(eq=False)
class ChangeTableItem:
    """
    One rule of the change table.

    The bookkeeping fields are for inspection only; matching ignores them.
    is_enabled gates application: a disabled rule still matches (and so
    still shadows the rules after it) but its operation is not applied.
    """
    condition: OperationCondition
    operation: Operation
    is_enabled: bool = True
    # Set once the rule has fired at least once
    is_active: bool = False
    # Starts at -1 and is incremented every time the rule fires
    last_activation_iteration_index: int = -1

    @property
    def enabled(self) -> bool:
        return self.is_enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self.is_enabled = bool(value)

    @property
    def ever_fired(self) -> bool:
        return self.is_active

    @property
    def last_fired_iteration(self) -> int:
        return self.last_activation_iteration_index

    def record_firing(self) -> None:
        self.is_active = True
        self.last_activation_iteration_index += 1

    def reset_bookkeeping(self) -> None:
        self.is_active = False
        self.last_activation_iteration_index = -1

    def as_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition.as_dict(),
            "operation": self.operation.as_dict(),
            "isEnabled": self.is_enabled,
            "isActive": self.is_active,
            "lastActivationIterationIndex": self.last_activation_iteration_index,
        }


class ChangeTable:
    """Ordered rule storage with first-match lookup."""

    def __init__(self, items: Optional[Iterable[ChangeTableItem]] = None):
        self._items: List[ChangeTableItem] = []
        for item in items or ():
            self.add(item)

    def add(self, item: ChangeTableItem) -> None:
        if not isinstance(item, ChangeTableItem):
            raise TypeError(f"Expected ChangeTableItem, got {type(item).__name__}")
        self._items.append(item)

    append = add

    def find(self, node: MatchableNode) -> Optional[ChangeTableItem]:
        """First rule in table order whose condition holds for node, or None."""
        for item in self._items:
            if item.condition.matches(node):
                return item
        return None

    def index_of(self, item: ChangeTableItem) -> int:
        for i, candidate in enumerate(self._items):
            if candidate is item:
                return i
        raise ValueError("Rule is not in this change table")

    def clear(self) -> None:
        self._items.clear()

    @property
    def items(self) -> List[ChangeTableItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ChangeTableItem]:
        return iter(list(self._items))

    def __getitem__(self, index: int) -> ChangeTableItem:
        return self._items[index]

    def describe(self) -> List[Dict[str, Any]]:
        """JSON-friendly listing of the rules and their bookkeeping."""
        return [item.as_dict() for item in self._items]
