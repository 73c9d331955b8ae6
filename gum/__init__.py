"""
GUM: a rule-driven graph unfolding machine.

A graph grows from a single seed node. Every iteration, each node looks up
the first rule of the change table whose condition matches it and applies
that rule's operation (change state, give birth, connect, die...).
"""

from .core.states import NodeState, OperationKind
from .core.graph import GUMGraph
from .core.rules import ChangeTable, ChangeTableItem, Operation, OperationCondition
from .core.snapshot import GraphSnapshot
from .core.config import EngineConfig, RunnerConfig, GUMConfig
from .engine.machine import GraphUnfoldingMachine, IterationReport
from .engine.runner import UnfoldingRunner
from .lib.genes import GeneLibrary

__version__ = "0.1.0"


def make_machine(gene: str, config: EngineConfig = None) -> GraphUnfoldingMachine:
    """Create a machine seeded with one node and loaded with a bundled gene."""
    machine = GraphUnfoldingMachine(config=config)
    machine.load_rule_set(GeneLibrary.bundled().rules(gene))
    return machine


def list_genes() -> list:
    """Names of the bundled demo genes."""
    return GeneLibrary.bundled().names()


__all__ = [
    # Core
    'NodeState', 'OperationKind', 'GUMGraph', 'ChangeTable', 'ChangeTableItem',
    'Operation', 'OperationCondition', 'GraphSnapshot',
    'EngineConfig', 'RunnerConfig', 'GUMConfig',
    # Engine
    'GraphUnfoldingMachine', 'IterationReport', 'UnfoldingRunner', 'GeneLibrary',
    # Convenience
    'make_machine', 'list_genes',
]
