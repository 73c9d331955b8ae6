"""
Property system for the unfolding graph.

Properties are predicates over graph snapshots. The engine uses them to
verify its structural invariants after an iteration, and tests use them to
state what every reachable graph must satisfy.

Example:
    invariants = ConnectionsMatchEdges() & NoDanglingEdges()
    assert invariants.check(machine.snapshot())

    failed = invariants.failing(snapshot)   # names of the violated leaves
"""
from collections import Counter
from typing import List

from .snapshot import GraphSnapshot


class Property:
    """
    A property is a predicate over graph snapshots that can be checked.

    Properties compose with & (and), | (or) and ~ (not).
    """
    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description

    def check(self, snapshot: GraphSnapshot) -> bool:
        """
        Check if the snapshot satisfies this property.

        Returns:
            bool: True if the property holds, False otherwise
        """
        raise NotImplementedError

    def failing(self, snapshot: GraphSnapshot) -> List[str]:
        """Names of the properties that do not hold (empty if this one holds)."""
        return [] if self.check(snapshot) else [self.name]

    def __and__(self, other: 'Property') -> 'Property':
        return ConjunctiveProperty(f"{self.name} AND {other.name}", [self, other])

    def __or__(self, other: 'Property') -> 'Property':
        return DisjunctiveProperty(f"{self.name} OR {other.name}", [self, other])

    def __invert__(self) -> 'Property':
        return NegatedProperty(f"NOT {self.name}", self)

    def __repr__(self):
        return f"<Property {self.name}>"


class ConnectionsMatchEdges(Property):
    """
    Every node's connections_count equals the number of edges touching it.

    An edge counts once for each endpoint, so no edge is double-counted or
    omitted.
    """
    def __init__(self):
        super().__init__("ConnectionsMatchEdges", "connections_count == incident live edges")

    def check(self, snapshot: GraphSnapshot) -> bool:
        incident = Counter()
        for edge in snapshot.edges:
            incident[edge.source_id] += 1
            incident[edge.target_id] += 1
        return all(record.connections_count == incident[record.id] for record in snapshot.nodes)


class NoDanglingEdges(Property):
    """No edge references a node that is not in the snapshot."""
    def __init__(self):
        super().__init__("NoDanglingEdges", "edge endpoints are live nodes")

    def check(self, snapshot: GraphSnapshot) -> bool:
        ids = set(snapshot.node_ids())
        return all(edge.source_id in ids and edge.target_id in ids for edge in snapshot.edges)


class UniqueNodeIds(Property):
    def __init__(self):
        super().__init__("UniqueNodeIds", "node ids are unique and positive")

    def check(self, snapshot: GraphSnapshot) -> bool:
        ids = snapshot.node_ids()
        return len(ids) == len(set(ids)) and all(node_id > 0 for node_id in ids)


class NoSelfLoops(Property):
    def __init__(self):
        super().__init__("NoSelfLoops", "no edge connects a node to itself")

    def check(self, snapshot: GraphSnapshot) -> bool:
        return all(edge.source_id != edge.target_id for edge in snapshot.edges)


class CountersNonNegative(Property):
    def __init__(self):
        super().__init__("CountersNonNegative", "connections_count and parents_count are >= 0")

    def check(self, snapshot: GraphSnapshot) -> bool:
        return all(
            record.connections_count >= 0 and record.parents_count >= 0
            for record in snapshot.nodes
        )


class ConjunctiveProperty(Property):
    """A property that is the conjunction of multiple properties."""

    def __init__(self, name: str, properties: list[Property]):
        super().__init__(name)
        self.properties = properties

    def check(self, snapshot: GraphSnapshot) -> bool:
        return all(prop.check(snapshot) for prop in self.properties)

    def failing(self, snapshot: GraphSnapshot) -> List[str]:
        failed = []
        for prop in self.properties:
            failed.extend(prop.failing(snapshot))
        return failed


class DisjunctiveProperty(Property):
    """A property that is the disjunction of multiple properties."""

    def __init__(self, name: str, properties: list[Property]):
        super().__init__(name)
        self.properties = properties

    def check(self, snapshot: GraphSnapshot) -> bool:
        return any(prop.check(snapshot) for prop in self.properties)


class NegatedProperty(Property):
    """A property that is the negation of another property."""

    def __init__(self, name: str, property: Property):
        super().__init__(name)
        self.property = property

    def check(self, snapshot: GraphSnapshot) -> bool:
        return not self.property.check(snapshot)


# Structural invariants every snapshot produced by the engine satisfies
GRAPH_INVARIANTS = (
    ConnectionsMatchEdges()
    & NoDanglingEdges()
    & UniqueNodeIds()
    & NoSelfLoops()
    & CountersNonNegative()
)
