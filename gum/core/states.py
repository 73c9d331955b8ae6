"""
Node states and operation kinds of the graph unfolding machine.

NodeState is a small integer tag (0..255):
- Ignored (0): wildcard in conditions ("match any state")
- A..Z (1..26): named application states
- s27..s253: numbered application states
- Unknown (254): state of a node no rule has touched yet
- Max (255): upper bound of the range

Ignored and Unknown are sentinels, not ordinary states.

Example:
    state = parse_node_state("B")        # NodeState.B
    state = parse_node_state("s42")      # NodeState.s42
    kind = OperationKind.parse("Die")    # OperationKind.Die
"""
from enum import IntEnum
from typing import List, Tuple, Union

from .errors import RuleSetLoadError


def _node_state_members() -> List[Tuple[str, int]]:
    members = [("Ignored", 0), ("Min", 0)]
    members += [(chr(ord("A") + i), i + 1) for i in range(26)]
    members += [(f"s{value}", value) for value in range(27, 254)]
    members += [("Unknown", 254), ("Max", 255)]
    return members


# Min is an alias of Ignored (same value), so NodeState(0) is Ignored.
NodeState = IntEnum("NodeState", _node_state_members(), module=__name__)

SENTINEL_STATES = frozenset({NodeState.Ignored, NodeState.Unknown})


def is_sentinel(state: "NodeState") -> bool:
    """True for Ignored and Unknown."""
    return state in SENTINEL_STATES


def parse_node_state(value: Union[str, int, "NodeState"]) -> "NodeState":
    """
    Convert a state name (or raw integer) into a NodeState.

    Args:
        value: "A", "s27", "Ignored", "Unknown", ... or an int in 0..255

    Returns:
        The matching NodeState

    Raises:
        RuleSetLoadError: If the name or value is not a known state
    """
    if isinstance(value, NodeState):
        return value
    if isinstance(value, bool):
        raise RuleSetLoadError(f"Invalid node state: {value!r}")
    if isinstance(value, int):
        try:
            return NodeState(value)
        except ValueError:
            raise RuleSetLoadError(f"Node state out of range: {value}") from None
    if isinstance(value, str):
        try:
            return NodeState[value.strip()]
        except KeyError:
            raise RuleSetLoadError(f"Unknown node state: {value!r}") from None
    raise RuleSetLoadError(f"Invalid node state: {value!r}")


class OperationKind(IntEnum):
    """Operation kinds a rule can fire."""
    TurnToState = 0x0
    TryToConnectWithNearest = 0x1
    GiveBirthConnected = 0x2
    DisconnectFrom = 0x3
    Die = 0x4
    TryToConnectWith = 0x5
    GiveBirth = 0x6

    @classmethod
    def parse(cls, value: Union[str, int, "OperationKind"]) -> "OperationKind":
        """
        Convert a kind name into an OperationKind.

        Accepts the legacy spelling "DisconectFrom" found in older gene files.

        Raises:
            RuleSetLoadError: If the kind is not one of the seven known kinds
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip()
            if name in _KIND_ALIASES:
                name = _KIND_ALIASES[name]
            try:
                return cls[name]
            except KeyError:
                raise RuleSetLoadError(f"Unknown operation kind: {value!r}") from None
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise RuleSetLoadError(f"Unknown operation kind: {value!r}") from None
        raise RuleSetLoadError(f"Invalid operation kind: {value!r}")


_KIND_ALIASES = {"DisconectFrom": "DisconnectFrom"}

# Kinds that create a node
BIRTH_KINDS = frozenset({OperationKind.GiveBirthConnected, OperationKind.GiveBirth})
