"""
The graph unfolding machine.

One iteration ("generation") visits every node of the registry in order,
looks up the first matching rule of the change table, applies its operation
if the rule is enabled, records the node's prior state, and finally compacts
the registry once. The engine owns its registry and change table; outside
code only reads snapshots or replaces the whole rule set between iterations.

Traversal policy (EngineConfig.same_generation_visibility):
    True  - the registry's live node list is walked by index, so a node born
            earlier in the traversal is visited later in the same iteration
            and can fire its own rule (cascades within one iteration).
    False - a copy of the node list taken at iteration start is walked;
            newborns wait for the next iteration.

Prior-state policy (EngineConfig.prior_state_policy):
    PRE_OPERATION  - prior_state = state the node was visited with
    POST_OPERATION - prior_state = state after this iteration's operation

Example:
    machine = GraphUnfoldingMachine()                  # one seed node in state A
    machine.load_rule_set([
        ChangeTableItem(OperationCondition(NodeState.A),
                        Operation(OperationKind.GiveBirthConnected, NodeState.B)),
    ])
    report = machine.run_one_iteration()
    machine.status()                                   # "Nodes: 2 | Edges: 1 | Iterations: 1"
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from gum.core.config import EngineConfig, PriorStatePolicy
from gum.core.errors import InvariantViolationError, ReentrantIterationError
from gum.core.graph import GUMGraph
from gum.core.property import GRAPH_INVARIANTS
from gum.core.rules import ChangeTable, ChangeTableItem
from gum.core.snapshot import GraphSnapshot
from gum.core.states import NodeState, parse_node_state
from gum.lib.genes import parse_rule_set
from .operations import IterationContext, apply_operation

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[GraphSnapshot], None]
RuleLike = Union[ChangeTableItem, Dict[str, Any]]


@dataclass
class IterationReport:
    """What happened during one completed iteration."""
    iteration: int
    visited: int
    fired: int
    births: int
    deletions: int
    edges_added: int
    edges_removed: int
    skipped_births: int
    num_nodes: int
    num_edges: int
    fired_rules: List[int] = field(default_factory=list)
    duration_s: float = 0.0

    @property
    def is_stable(self) -> bool:
        """True if no rule fired."""
        return self.fired == 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GraphUnfoldingMachine:
    """
    Drives iterations of a change table over a node registry.

    Args:
        graph: Registry to unfold. If omitted, a new registry with a single
            seed node in config.seed_state is created.
        config: Engine behavior switches (defaults to EngineConfig())
        change_table: Initial rules (defaults to an empty table)

    Not reentrant: calling run_one_iteration() while an iteration is in
    flight (from a listener, or another thread) raises ReentrantIterationError.
    Callers that drive the machine from several threads must serialize
    access themselves (see UnfoldingRunner).
    """

    def __init__(
        self,
        graph: Optional[GUMGraph] = None,
        config: Optional[EngineConfig] = None,
        change_table: Optional[ChangeTable] = None,
    ):
        self.config = config if config is not None else EngineConfig()
        self.change_table = change_table if change_table is not None else ChangeTable()
        if graph is None:
            graph = GUMGraph()
            graph.add_node(self.config.seed_state)
        self.graph = graph

        self._iterations = 0
        self._in_iteration = False
        self._listeners: List[SnapshotListener] = []
        self._snapshot = self.graph.snapshot(self._iterations)

    # --- rule set management ---

    def add_change_table_item(self, item: ChangeTableItem) -> None:
        self.change_table.add(item)

    def clear_change_table(self) -> None:
        self.change_table.clear()

    def get_change_table_items(self) -> List[ChangeTableItem]:
        return self.change_table.items

    def load_rule_set(self, rules: Iterable[RuleLike]) -> int:
        """
        Replace the whole change table.

        Args:
            rules: ChangeTableItems and/or raw rule records (dicts, see
                gum.lib.genes.parse_rule_record), in table order

        Returns:
            Number of rules loaded

        Raises:
            RuleSetLoadError: If any record is malformed. The previous table
                is kept untouched in that case.
        """
        items = parse_rule_set(rules)
        self.change_table.clear()
        for item in items:
            self.change_table.add(item)
        logger.info("Loaded rule set with %d rules", len(items))
        return len(items)

    # --- graph lifecycle ---

    def reset_graph(self, seed_state: Optional[Union[NodeState, str]] = None) -> GraphSnapshot:
        """
        Drop every node and edge and start again from one seed node.

        The change table is not touched. Node ids keep counting up.
        """
        if self._in_iteration:
            raise ReentrantIterationError("reset_graph() called during an iteration")
        state = self.config.seed_state if seed_state is None else parse_node_state(seed_state)
        self.graph.clear()
        self.graph.add_node(state)
        self._iterations = 0
        self._refresh_snapshot()
        logger.info("Graph reset to a single %s seed", state.name)
        self._notify(self._snapshot)
        return self._snapshot

    # --- iterations ---

    @property
    def iterations(self) -> int:
        """Number of completed iterations since construction or the last reset."""
        return self._iterations

    def get_iterations(self) -> int:
        return self._iterations

    @property
    def is_running_iteration(self) -> bool:
        return self._in_iteration

    def run_one_iteration(self, notify: bool = True) -> IterationReport:
        """
        Execute one generation over the registry.

        Args:
            notify: Call the snapshot listeners before returning. Callers
                that pass False call publish() themselves.

        Returns:
            IterationReport for the completed iteration

        Raises:
            ReentrantIterationError: If an iteration is already in flight
            InvariantViolationError: If config.verify_invariants is set and
                the resulting graph breaks an invariant
        """
        if self._in_iteration:
            raise ReentrantIterationError("run_one_iteration() is not reentrant")
        self._in_iteration = True
        try:
            report = self._run_iteration()
        finally:
            self._in_iteration = False

        if self.config.verify_invariants:
            self.check_invariants()
        if notify:
            self.publish()
        return report

    def _run_iteration(self) -> IterationReport:
        started = time.perf_counter()
        ctx = IterationContext(graph=self.graph, config=self.config, iteration=self._iterations)
        post_operation = self.config.prior_state_policy == PriorStatePolicy.POST_OPERATION

        live_nodes = self.graph.nodes
        nodes = live_nodes if self.config.same_generation_visibility else list(live_nodes)

        visited = 0
        fired_rules: List[int] = []
        # Index loop: len(nodes) is re-read so births appended to the live list are reached
        position = 0
        while position < len(nodes):
            node = nodes[position]
            position += 1
            visited += 1

            visited_state = node.state
            item = self.change_table.find(node)
            if item is not None and item.is_enabled:
                apply_operation(ctx, node, item.operation)
                item.record_firing()
                fired_rules.append(self.change_table.index_of(item))

            node.prior_state = node.state if post_operation else visited_state

        removed_nodes, removed_edges = self.graph.compact()
        self._iterations += 1
        self._refresh_snapshot()

        report = IterationReport(
            iteration=self._iterations,
            visited=visited,
            fired=len(fired_rules),
            births=ctx.births,
            deletions=removed_nodes,
            edges_added=ctx.edges_added,
            edges_removed=ctx.edges_removed + removed_edges,
            skipped_births=ctx.skipped_births,
            num_nodes=self.graph.num_nodes,
            num_edges=self.graph.num_edges,
            fired_rules=fired_rules,
            duration_s=time.perf_counter() - started,
        )
        logger.debug("Iteration %d: visited=%d fired=%d births=%d deletions=%d",
                     report.iteration, visited, report.fired, report.births, report.deletions)
        if ctx.skipped_births:
            logger.warning("Iteration %d: %d births skipped at the node limit (%s)",
                           report.iteration, ctx.skipped_births, self.config.max_nodes)
        return report

    def run(self, num_iterations: int) -> List[IterationReport]:
        """Run several iterations back to back."""
        return [self.run_one_iteration() for _ in range(num_iterations)]

    # --- inspection ---

    def snapshot(self) -> GraphSnapshot:
        """Latest snapshot, regenerated after every completed iteration and reset."""
        return self._snapshot

    def _refresh_snapshot(self) -> None:
        self._snapshot = self.graph.snapshot(self._iterations)

    def status(self) -> str:
        return (f"Nodes: {self.graph.num_nodes} | Edges: {self.graph.num_edges} "
                f"| Iterations: {self._iterations}")

    def check_invariants(self) -> None:
        """
        Verify the structural invariants of the current graph.

        Raises:
            InvariantViolationError: Naming every property that does not hold
        """
        failed = GRAPH_INVARIANTS.failing(self.graph.snapshot(self._iterations))
        if failed:
            raise InvariantViolationError(f"Graph invariants violated: {', '.join(failed)}")

    # --- listeners ---

    def subscribe(self, listener: SnapshotListener) -> None:
        """Call listener(snapshot) after every completed iteration and reset."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        self._listeners.remove(listener)

    def publish(self) -> None:
        """Hand the latest snapshot to every listener."""
        self._notify(self._snapshot)

    def _notify(self, snapshot: GraphSnapshot) -> None:
        for listener in list(self._listeners):
            listener(snapshot)

    def __repr__(self):
        return f"<GraphUnfoldingMachine {self.status()} rules={len(self.change_table)}>"
