"""
Exceptions raised by the graph unfolding machine.

All errors surface synchronously to the caller; nothing is retried.
"""


class GUMError(Exception):
    """Base class for graph unfolding machine errors."""
    pass


class RuleSetLoadError(GUMError, ValueError):
    """Raised when a rule record cannot be turned into a rule (unknown kind, bad state...)."""
    pass


class InvalidReferenceError(GUMError, KeyError):
    """Raised when a node id is unknown or already marked for deletion."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep it readable
        return str(self.args[0]) if self.args else ""


class CapacityExceededError(GUMError):
    """Raised when adding a node beyond the registry capacity."""
    pass


class ReentrantIterationError(GUMError, RuntimeError):
    """Raised when an iteration is started while another one is in flight."""
    pass


class RunnerStateError(GUMError, RuntimeError):
    """Raised when the continuous runner is started twice."""
    pass


class InvariantViolationError(GUMError, AssertionError):
    """Raised when a graph invariant does not hold after an iteration."""
    pass
