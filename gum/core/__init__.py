"""
Core module of the graph unfolding machine.

This module provides the fundamental building blocks:
- NodeState / OperationKind: state tags and operation kinds
- GUMGraph: node registry (nodes, edges, compaction)
- ChangeTable: ordered rules with first-match lookup
- GraphSnapshot / GraphState: read-only views handed to collaborators
- Property system: structural invariants and verification
- Configuration and errors
"""

from .states import NodeState, OperationKind, parse_node_state, is_sentinel
from .errors import (
    GUMError,
    RuleSetLoadError,
    InvalidReferenceError,
    CapacityExceededError,
    ReentrantIterationError,
    RunnerStateError,
    InvariantViolationError,
)
from .graph import GUMGraph, GUMNode, GUMEdge
from .rules import ChangeTable, ChangeTableItem, Operation, OperationCondition, UNBOUNDED
from .snapshot import GraphSnapshot, NodeRecord, EdgeRecord
from .graph_state import GraphState
from .property import (
    Property,
    ConnectionsMatchEdges,
    NoDanglingEdges,
    UniqueNodeIds,
    NoSelfLoops,
    CountersNonNegative,
    GRAPH_INVARIANTS,
)
from .config import EngineConfig, RunnerConfig, GUMConfig, PriorStatePolicy, OperationSemantics, default_config

__all__ = [
    # States
    'NodeState',
    'OperationKind',
    'parse_node_state',
    'is_sentinel',

    # Errors
    'GUMError',
    'RuleSetLoadError',
    'InvalidReferenceError',
    'CapacityExceededError',
    'ReentrantIterationError',
    'RunnerStateError',
    'InvariantViolationError',

    # Registry
    'GUMGraph',
    'GUMNode',
    'GUMEdge',

    # Rules
    'ChangeTable',
    'ChangeTableItem',
    'Operation',
    'OperationCondition',
    'UNBOUNDED',

    # Snapshots
    'GraphSnapshot',
    'NodeRecord',
    'EdgeRecord',
    'GraphState',

    # Properties
    'Property',
    'ConnectionsMatchEdges',
    'NoDanglingEdges',
    'UniqueNodeIds',
    'NoSelfLoops',
    'CountersNonNegative',
    'GRAPH_INVARIANTS',

    # Configuration
    'EngineConfig',
    'RunnerConfig',
    'GUMConfig',
    'PriorStatePolicy',
    'OperationSemantics',
    'default_config',
]
