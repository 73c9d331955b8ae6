"""
Matrix view of an unfolding graph as an immutable JAX-compatible structure.

GraphState is what matrix-oriented collaborators (layout, analysis, plots)
consume instead of node/edge records. It is produced from a GraphSnapshot by
GraphSnapshot.to_graph_state() and never mutated afterwards.

Matrix Structure:
- node_types [N]: NodeState value of each node (row i = i-th node of the snapshot)
- node_attrs {attr: [N]}: "id", "prior_state", "connections_count", "parents_count"
- adj_matrices {rel: [N, N]}: "edges" holds symmetric edge multiplicities
- global_attrs: {"iteration": k, ...}

Example:
    state = snapshot.to_graph_state()
    degrees = state.adj_matrices["edges"].sum(axis=1)
    assert (degrees == state.node_attrs["connections_count"]).all()

    # Node-level access
    state.get_node_state(0)
    # {"type": 1, "attrs": {"id": 1.0, ...}, "edges": {"edges": {1: 1.0}}}
"""
import dataclasses
from dataclasses import field
from typing import Any, Dict

import jax.numpy as jnp


@dataclasses.dataclass(frozen=True)
class GraphState:
    """
    Immutable matrix representation of one snapshot.

    Structure:
        node_types: [N] - NodeState value of each node
        node_attrs: {attr_name: [N]} - per-node counters
        adj_matrices: {rel_name: [N, N]} - edge multiplicities between rows
        global_attrs: {key: value} - snapshot-level metadata
    """
    node_types: jnp.ndarray

    node_attrs: Dict[str, jnp.ndarray]
    adj_matrices: Dict[str, jnp.ndarray]
    global_attrs: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.global_attrs is None:
            object.__setattr__(self, 'global_attrs', {})

    @property
    def num_nodes(self) -> int:
        return int(self.node_types.shape[0])

    def row_of(self, node_id: int) -> int:
        """
        Row index of the node with the given id.

        Raises:
            ValueError: If no row carries this id
        """
        matches = jnp.where(self.node_attrs["id"] == node_id)[0]
        if matches.shape[0] == 0:
            raise ValueError(f"Invalid node_id: {node_id}")
        return int(matches[0])

    def get_node_state(self, row: int) -> Dict[str, Any]:
        """
        Get all attributes for the node at a given row.

        Args:
            row: Row index (0 <= row < num_nodes)

        Returns:
            {
                "type": node_state_value,
                "attrs": {attr_name: value, ...},
                "edges": {rel_name: {other_row: multiplicity, ...}, ...}
            }
        """
        if row < 0 or row >= self.num_nodes:
            raise ValueError(f"Invalid row: {row}")

        attrs = {name: float(values[row]) for name, values in self.node_attrs.items()}

        edges = {}
        for rel_name, matrix in self.adj_matrices.items():
            matrix_row = matrix[row]
            edges[rel_name] = {
                j: float(matrix_row[j])
                for j in range(self.num_nodes)
                if matrix_row[j] != 0
            }

        return {
            "type": int(self.node_types[row]),
            "attrs": attrs,
            "edges": edges,
        }
