"""
Tests for gum.engine.machine.GraphUnfoldingMachine

End-to-end iterations, traversal and prior-state policies, rule set
replacement, reset, reentrancy and listeners.
"""
import pytest

from gum.core.config import EngineConfig, PriorStatePolicy
from gum.core.errors import InvariantViolationError, ReentrantIterationError, RuleSetLoadError
from gum.core.graph import GUMGraph
from gum.core.property import GRAPH_INVARIANTS
from gum.core.rules import ChangeTable, ChangeTableItem, Operation, OperationCondition
from gum.core.states import NodeState, OperationKind
from gum.engine.machine import GraphUnfoldingMachine


def rule(state, kind, operand=NodeState.Ignored, **condition) -> ChangeTableItem:
    return ChangeTableItem(OperationCondition(state, **condition), Operation(kind, operand))


def birth_machine(operand=NodeState.B, **config) -> GraphUnfoldingMachine:
    """Seed A with the single rule A -> GiveBirthConnected(operand)."""
    machine = GraphUnfoldingMachine(config=EngineConfig(**config))
    machine.add_change_table_item(rule(NodeState.A, OperationKind.GiveBirthConnected, operand))
    return machine


class TestConstruction:

    def test_default_seed(self):
        machine = GraphUnfoldingMachine()
        snapshot = machine.snapshot()

        assert snapshot.num_nodes == 1
        assert snapshot.nodes[0].state == NodeState.A
        assert snapshot.nodes[0].prior_state == NodeState.Unknown
        assert machine.iterations == 0
        assert machine.status() == "Nodes: 1 | Edges: 0 | Iterations: 0"

    def test_seed_state_from_config(self):
        machine = GraphUnfoldingMachine(config=EngineConfig(seed_state="C"))
        assert machine.snapshot().states() == (NodeState.C,)

    def test_existing_graph_is_used(self):
        graph = GUMGraph()
        graph.add_node(NodeState.B)
        graph.add_node(NodeState.C)
        machine = GraphUnfoldingMachine(graph=graph)
        assert machine.snapshot().num_nodes == 2


class TestEndToEnd:
    """Seed A with A -> GiveBirthConnected(B)."""

    @pytest.mark.parametrize("live", [True, False])
    def test_first_iteration(self, live):
        machine = birth_machine(same_generation_visibility=live)

        report = machine.run_one_iteration()
        snapshot = machine.snapshot()

        assert report.iteration == 1
        assert report.fired == 1
        assert report.births == 1
        assert snapshot.num_nodes == 2
        assert snapshot.num_edges == 1
        parent, child = snapshot.nodes
        assert parent.connections_count == 1
        assert child.state == NodeState.B
        assert child.parents_count == 1
        assert child.connections_count == 1

    @pytest.mark.parametrize("live", [True, False])
    def test_two_iterations(self, live):
        """Both traversal policies agree when newborns match no rule."""
        machine = birth_machine(same_generation_visibility=live)
        machine.run(2)
        snapshot = machine.snapshot()

        assert snapshot.num_nodes == 3
        assert snapshot.num_edges == 2
        assert snapshot.states() == (NodeState.A, NodeState.B, NodeState.B)
        assert snapshot.nodes[0].connections_count == 2
        assert machine.status() == "Nodes: 3 | Edges: 2 | Iterations: 2"

    def test_invariants_hold(self):
        machine = birth_machine()
        machine.run(5)
        assert GRAPH_INVARIANTS.check(machine.snapshot())

    def test_empty_table_changes_nothing(self):
        """With no rules only prior states move."""
        machine = GraphUnfoldingMachine()
        report = machine.run_one_iteration()

        assert report.fired == 0
        assert report.is_stable
        assert machine.snapshot().num_nodes == 1
        assert machine.snapshot().nodes[0].prior_state == NodeState.A

    def test_iteration_is_deterministic(self):
        first = birth_machine()
        second = birth_machine()
        first.run(4)
        second.run(4)
        assert first.snapshot().as_dict() == second.snapshot().as_dict()


class TestTraversalPolicy:
    """Seed A with A -> GiveBirthConnected(A): newborns match the rule too."""

    def test_live_traversal_cascades_until_node_limit(self):
        machine = birth_machine(NodeState.A, max_nodes=10)

        report = machine.run_one_iteration()

        assert machine.snapshot().num_nodes == 10
        assert machine.snapshot().num_edges == 9
        assert report.births == 9
        assert report.skipped_births == 1
        assert report.visited == 10

    def test_live_traversal_default_limit(self):
        machine = birth_machine(NodeState.A)
        machine.run_one_iteration()
        assert machine.snapshot().num_nodes == 1000

    def test_frozen_traversal_doubles(self):
        machine = birth_machine(NodeState.A, same_generation_visibility=False)

        sizes = [machine.run_one_iteration().num_nodes for _ in range(4)]

        assert sizes == [2, 4, 8, 16]

    def test_newborns_skipped_in_frozen_mode(self):
        machine = birth_machine(NodeState.A, same_generation_visibility=False)
        report = machine.run_one_iteration()
        assert report.visited == 1

    def test_chain_gene_diverges(self):
        """The two-rule chain unfolds completely in one live iteration."""
        def chain_rules():
            return [
                rule(NodeState.A, OperationKind.GiveBirthConnected, NodeState.A,
                     connections_le=0, parents_le=0),
                rule(NodeState.A, OperationKind.GiveBirthConnected, NodeState.A,
                     connections_le=1, parents_ge=1, parents_le=19),
            ]
        live = GraphUnfoldingMachine(config=EngineConfig(same_generation_visibility=True))
        frozen = GraphUnfoldingMachine(config=EngineConfig(same_generation_visibility=False))
        live.load_rule_set(chain_rules())
        frozen.load_rule_set(chain_rules())

        live.run_one_iteration()
        frozen.run_one_iteration()

        assert live.snapshot().num_nodes == 21
        assert live.snapshot().nodes[-1].parents_count == 20
        assert frozen.snapshot().num_nodes == 2

        # Nothing matches any more
        assert live.run_one_iteration().is_stable


class TestPriorStatePolicy:
    """Seed A with A -> TurnToState(B)."""

    def make(self, policy) -> GraphUnfoldingMachine:
        machine = GraphUnfoldingMachine(config=EngineConfig(prior_state_policy=policy))
        machine.add_change_table_item(rule(NodeState.A, OperationKind.TurnToState, NodeState.B))
        return machine

    def test_pre_operation(self):
        machine = self.make(PriorStatePolicy.PRE_OPERATION)
        machine.run_one_iteration()
        node = machine.snapshot().nodes[0]
        assert node.state == NodeState.B
        assert node.prior_state == NodeState.A

    def test_post_operation(self):
        machine = self.make("post_operation")
        machine.run_one_iteration()
        node = machine.snapshot().nodes[0]
        assert node.state == NodeState.B
        assert node.prior_state == NodeState.B

    def test_prior_state_condition(self):
        """A rule on prior state fires only from the following iteration."""
        machine = GraphUnfoldingMachine()
        machine.load_rule_set([
            rule(NodeState.A, OperationKind.TurnToState, NodeState.C, prior_state=NodeState.A),
        ])

        machine.run_one_iteration()
        assert machine.snapshot().states() == (NodeState.A,)

        machine.run_one_iteration()
        assert machine.snapshot().states() == (NodeState.C,)

    def test_blinker(self):
        machine = GraphUnfoldingMachine()
        machine.load_rule_set([
            rule(NodeState.A, OperationKind.TurnToState, NodeState.B),
            rule(NodeState.B, OperationKind.TurnToState, NodeState.A),
        ])
        states = []
        for _ in range(4):
            machine.run_one_iteration()
            states.append(machine.snapshot().states()[0])
        assert states == [NodeState.B, NodeState.A, NodeState.B, NodeState.A]


class TestRuleApplication:

    def test_disabled_rule_shadows_and_does_not_fire(self):
        disabled = rule(NodeState.A, OperationKind.TurnToState, NodeState.C)
        disabled.enabled = False
        machine = GraphUnfoldingMachine()
        machine.load_rule_set([disabled, rule(NodeState.A, OperationKind.TurnToState, NodeState.B)])

        report = machine.run_one_iteration()

        assert report.fired == 0
        assert machine.snapshot().states() == (NodeState.A,)
        assert not disabled.ever_fired

    def test_bookkeeping_after_firing(self):
        machine = birth_machine()
        machine.run(3)
        item = machine.get_change_table_items()[0]
        assert item.ever_fired
        assert item.last_fired_iteration == 2

    def test_fired_rules_report_indices(self):
        machine = GraphUnfoldingMachine()
        machine.load_rule_set([
            rule(NodeState.B, OperationKind.Die),
            rule(NodeState.A, OperationKind.TurnToState, NodeState.B),
        ])
        assert machine.run_one_iteration().fired_rules == [1]

    def test_disconnect_from_deletes_node(self):
        """DisconnectFrom removes the firing node and its edges."""
        graph = GUMGraph()
        a = graph.add_node(NodeState.A)
        b = graph.add_node(NodeState.B)
        graph.add_edge(a.id, b.id)
        machine = GraphUnfoldingMachine(graph=graph)
        machine.load_rule_set([rule(NodeState.B, OperationKind.DisconnectFrom)])

        report = machine.run_one_iteration()
        snapshot = machine.snapshot()

        assert report.deletions == 1
        assert report.edges_removed == 1
        assert snapshot.node_ids() == (a.id,)
        assert snapshot.num_edges == 0
        assert snapshot.nodes[0].connections_count == 0

    def test_deleted_node_still_visited_in_same_iteration(self):
        """A newborn is visited in the same pass and can delete itself."""
        machine = GraphUnfoldingMachine()
        machine.load_rule_set([
            rule(NodeState.A, OperationKind.GiveBirthConnected, NodeState.B),
            rule(NodeState.B, OperationKind.DisconnectFrom),
        ])

        machine.run_one_iteration()
        snapshot = machine.snapshot()

        # A gave birth to B, B was visited in the same pass and deleted itself
        assert snapshot.states() == (NodeState.A,)
        assert snapshot.nodes[0].connections_count == 0

    def test_sentinel_turn_to_state_ignored(self):
        machine = GraphUnfoldingMachine()
        machine.load_rule_set([rule(NodeState.A, OperationKind.TurnToState, NodeState.Unknown)])
        machine.run_one_iteration()
        assert machine.snapshot().states() == (NodeState.A,)

    def test_sentinel_birth_creates_unknown_node(self):
        machine = birth_machine(NodeState.Ignored)
        machine.run_one_iteration()
        assert machine.snapshot().states() == (NodeState.A, NodeState.Unknown)

    def test_registry_capacity_skips_births(self):
        graph = GUMGraph(capacity=2)
        graph.add_node(NodeState.A)
        machine = GraphUnfoldingMachine(graph=graph)
        machine.load_rule_set([rule(NodeState.A, OperationKind.GiveBirthConnected, NodeState.A)])

        report = machine.run_one_iteration()

        assert machine.snapshot().num_nodes == 2
        assert report.skipped_births == 1

    def test_deleted_nodes_free_node_limit(self):
        """A node deleted earlier in the iteration makes room for a birth."""
        graph = GUMGraph()
        graph.add_node(NodeState.B)
        graph.add_node(NodeState.A)
        machine = GraphUnfoldingMachine(graph=graph, config=EngineConfig(max_nodes=2))
        machine.load_rule_set([
            rule(NodeState.B, OperationKind.DisconnectFrom),
            rule(NodeState.A, OperationKind.GiveBirthConnected, NodeState.C),
        ])

        report = machine.run_one_iteration()

        assert report.skipped_births == 0
        assert machine.snapshot().states() == (NodeState.A, NodeState.C)

    def test_undefined_kinds_are_noops(self):
        machine = GraphUnfoldingMachine()
        machine.load_rule_set([rule(NodeState.A, OperationKind.Die)])

        report = machine.run_one_iteration()

        assert report.fired == 1
        assert machine.snapshot().num_nodes == 1


class TestRuleSetManagement:

    def test_load_rule_records(self):
        machine = GraphUnfoldingMachine()
        count = machine.load_rule_set([
            {"condition": {"currentState": "A"},
             "operation": {"kind": "GiveBirthConnected", "operandNodeState": "B"}},
        ])
        assert count == 1
        machine.run_one_iteration()
        assert machine.snapshot().num_nodes == 2

    def test_load_replaces_table(self):
        machine = birth_machine()
        machine.load_rule_set([rule(NodeState.A, OperationKind.TurnToState, NodeState.C)])
        assert len(machine.get_change_table_items()) == 1
        assert machine.get_change_table_items()[0].operation.kind == OperationKind.TurnToState

    def test_failed_load_keeps_previous_table(self):
        machine = birth_machine()
        bad = [
            {"condition": {"currentState": "A"}, "operation": {"kind": "TurnToState", "operandNodeState": "B"}},
            {"condition": {"currentState": "A"}, "operation": {"kind": "Explode"}},
        ]

        with pytest.raises(RuleSetLoadError, match="Rule 1"):
            machine.load_rule_set(bad)

        items = machine.get_change_table_items()
        assert len(items) == 1
        assert items[0].operation.kind == OperationKind.GiveBirthConnected

    def test_clear_change_table(self):
        machine = birth_machine()
        machine.clear_change_table()
        assert machine.run_one_iteration().is_stable

    def test_change_table_injected(self):
        table = ChangeTable([rule(NodeState.A, OperationKind.TurnToState, NodeState.D)])
        machine = GraphUnfoldingMachine(change_table=table)
        machine.run_one_iteration()
        assert machine.snapshot().states() == (NodeState.D,)


class TestReset:

    def test_reset_graph(self):
        machine = birth_machine()
        machine.run(3)
        old_ids = set(machine.snapshot().node_ids())

        snapshot = machine.reset_graph()

        assert snapshot.num_nodes == 1
        assert snapshot.num_edges == 0
        assert machine.iterations == 0
        assert snapshot.node_ids()[0] not in old_ids
        assert snapshot.node_ids()[0] > max(old_ids)

    def test_reset_keeps_rules(self):
        machine = birth_machine()
        machine.run(2)
        machine.reset_graph()
        machine.run_one_iteration()
        assert machine.snapshot().num_nodes == 2

    def test_reset_with_seed_state(self):
        machine = GraphUnfoldingMachine()
        assert machine.reset_graph("B").states() == (NodeState.B,)


class TestSnapshotsAndListeners:

    def test_old_snapshot_unchanged(self):
        machine = birth_machine()
        before = machine.snapshot()
        machine.run(2)
        assert before.num_nodes == 1
        assert machine.snapshot().num_nodes == 3

    def test_listener_called_after_each_iteration(self):
        machine = birth_machine()
        seen = []
        machine.subscribe(lambda snapshot: seen.append(snapshot.iteration))

        machine.run(3)
        machine.reset_graph()

        assert seen == [1, 2, 3, 0]

    def test_unsubscribe(self):
        machine = birth_machine()
        seen = []
        listener = seen.append
        machine.subscribe(listener)
        machine.run_one_iteration()
        machine.unsubscribe(listener)
        machine.run_one_iteration()
        assert len(seen) == 1


class ReentrantTable(ChangeTable):
    """Change table that calls back into the machine during lookup."""

    def __init__(self, callback):
        super().__init__()
        self.callback = callback

    def find(self, node):
        self.callback()
        return None


class TestReentrancy:

    def test_run_during_iteration_raises(self):
        holder = {}
        table = ReentrantTable(lambda: holder["machine"].run_one_iteration())
        machine = GraphUnfoldingMachine(change_table=table)
        holder["machine"] = machine

        with pytest.raises(ReentrantIterationError):
            machine.run_one_iteration()

        assert not machine.is_running_iteration

    def test_reset_during_iteration_raises(self):
        holder = {}
        table = ReentrantTable(lambda: holder["machine"].reset_graph())
        machine = GraphUnfoldingMachine(change_table=table)
        holder["machine"] = machine

        with pytest.raises(ReentrantIterationError):
            machine.run_one_iteration()


class TestInvariantChecking:

    def test_verify_invariants_passes(self):
        machine = birth_machine(verify_invariants=True)
        machine.run(5)
        machine.check_invariants()

    def test_verify_invariants_detects_corruption(self):
        machine = GraphUnfoldingMachine(config=EngineConfig(verify_invariants=True))
        machine.graph.nodes[0].connections_count = 3

        with pytest.raises(InvariantViolationError, match="ConnectionsMatchEdges"):
            machine.run_one_iteration()
