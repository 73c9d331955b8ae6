"""
Centralized configuration for the graph unfolding machine.

Collects the behavioral switches of the engine (traversal policy, prior-state
policy, operation semantics, growth limits) and the runner cadence into
dataclasses with a module-level default instance.

Usage:
    from gum.core.config import default_config
    config = dataclasses.replace(default_config.engine, same_generation_visibility=False)
    machine = GraphUnfoldingMachine(config=config)
"""
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .states import NodeState, parse_node_state


class PriorStatePolicy(str, Enum):
    """Which state a node remembers as prior_state at the end of its visit."""
    PRE_OPERATION = "pre_operation"    # state the condition was evaluated against
    POST_OPERATION = "post_operation"  # state after this iteration's operation


class OperationSemantics(str, Enum):
    """How the operation kinds mutate the graph."""
    REFERENCE = "reference"  # TurnToState, GiveBirthConnected, DisconnectFrom(=delete); rest no-ops
    EXTENDED = "extended"    # all seven kinds defined from their names


@dataclass
class EngineConfig:
    """Behavior of GraphUnfoldingMachine.run_one_iteration()."""
    # Nodes born during a traversal are visited later in the same traversal
    same_generation_visibility: bool = True
    prior_state_policy: PriorStatePolicy = PriorStatePolicy.PRE_OPERATION
    operation_semantics: OperationSemantics = OperationSemantics.REFERENCE

    # State of the single node created by reset_graph()
    seed_state: NodeState = NodeState.A

    # Births are skipped once this many nodes exist (None = unbounded)
    max_nodes: Optional[int] = 1000

    # TryToConnectWithNearest (extended semantics only)
    nearest_max_depth: int = 2
    nearest_connect_all: bool = False

    # Check graph invariants after every iteration
    verify_invariants: bool = False

    def __post_init__(self):
        self.prior_state_policy = PriorStatePolicy(self.prior_state_policy)
        self.operation_semantics = OperationSemantics(self.operation_semantics)
        self.seed_state = parse_node_state(self.seed_state)
        if self.max_nodes is not None and self.max_nodes < 1:
            raise ValueError(f"max_nodes must be positive or None, got {self.max_nodes}")
        if self.nearest_max_depth < 1:
            raise ValueError(f"nearest_max_depth must be >= 1, got {self.nearest_max_depth}")


@dataclass
class RunnerConfig:
    """Continuous run loop settings."""
    cadence_ms: int = 500
    # run() stops early after an iteration that fired no rule
    stop_when_stable: bool = False
    # Oldest execution log entries are dropped beyond this (None = keep all)
    max_log_entries: Optional[int] = None

    def __post_init__(self):
        if self.cadence_ms < 0:
            raise ValueError(f"cadence_ms must be >= 0, got {self.cadence_ms}")
        if self.max_log_entries is not None and self.max_log_entries < 1:
            raise ValueError(f"max_log_entries must be >= 1 or None, got {self.max_log_entries}")


@dataclass
class GUMConfig:
    """
    Master configuration.

    Usage:
        from gum.core.config import GUMConfig
        config = GUMConfig.from_dict({"engine": {"max_nodes": 200}, "log_level": "DEBUG"})
    """
    engine: EngineConfig = field(default_factory=EngineConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GUMConfig":
        """Build a config from nested dicts. Unknown top-level keys raise ValueError."""
        unknown = set(data) - {f.name for f in dataclasses.fields(cls)}
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(
            engine=EngineConfig(**data.get("engine", {})),
            runner=RunnerConfig(**data.get("runner", {})),
            log_level=data.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        engine = data["engine"]
        engine["prior_state_policy"] = self.engine.prior_state_policy.value
        engine["operation_semantics"] = self.engine.operation_semantics.value
        engine["seed_state"] = self.engine.seed_state.name
        return data


# Global default instance
default_config = GUMConfig()
