"""
Execution layer: the unfolding machine, its operations and the run loop.
"""

from .machine import GraphUnfoldingMachine, IterationReport
from .operations import IterationContext, apply_operation
from .runner import UnfoldingRunner

__all__ = [
    'GraphUnfoldingMachine',
    'IterationReport',
    'IterationContext',
    'apply_operation',
    'UnfoldingRunner',
]
