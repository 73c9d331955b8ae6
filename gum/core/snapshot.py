"""
Read-only snapshots of the unfolding graph.

A snapshot is what rendering and analysis collaborators receive after every
completed iteration. It holds plain immutable records, never the engine's
node objects, so nothing handed out can mutate the registry.

Exports:
- as_dict(): records with state names, camelCase keys (JSON friendly)
- to_dataframe() / edges_dataframe(): pandas tables
- to_graph_state(): immutable matrix GraphState (JAX arrays)
- to_networkx(): networkx MultiGraph for layout algorithms
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import jax.numpy as jnp
import networkx as nx
import numpy as np
import pandas as pd

from .graph_state import GraphState
from .states import NodeState


@dataclass(frozen=True)
class NodeRecord:
    id: int
    state: NodeState
    prior_state: NodeState
    connections_count: int
    parents_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.name,
            "priorState": self.prior_state.name,
            "connectionsCount": self.connections_count,
            "parentsCount": self.parents_count,
        }


@dataclass(frozen=True)
class EdgeRecord:
    source_id: int
    target_id: int

    def as_dict(self) -> Dict[str, Any]:
        return {"sourceId": self.source_id, "targetId": self.target_id}


@dataclass(frozen=True)
class GraphSnapshot:
    """
    Immutable view of nodes and edges after an iteration.

    Nodes keep registry order (creation order); edges keep creation order.
    """
    iteration: int
    nodes: Tuple[NodeRecord, ...]
    edges: Tuple[EdgeRecord, ...]

    @property
    def num_nodes(self) -> int:
        return len(self.nodes)

    @property
    def num_edges(self) -> int:
        return len(self.edges)

    def node(self, node_id: int) -> Optional[NodeRecord]:
        for record in self.nodes:
            if record.id == node_id:
                return record
        return None

    def node_ids(self) -> Tuple[int, ...]:
        return tuple(record.id for record in self.nodes)

    def states(self) -> Tuple[NodeState, ...]:
        return tuple(record.state for record in self.nodes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "nodes": [record.as_dict() for record in self.nodes],
            "edges": [record.as_dict() for record in self.edges],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per node: id, state, prior_state, connections_count, parents_count."""
        columns = ["id", "state", "prior_state", "connections_count", "parents_count"]
        if not self.nodes:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(
            [
                {
                    "id": record.id,
                    "state": record.state.name,
                    "prior_state": record.prior_state.name,
                    "connections_count": record.connections_count,
                    "parents_count": record.parents_count,
                }
                for record in self.nodes
            ],
            columns=columns,
        )

    def edges_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(edge.source_id, edge.target_id) for edge in self.edges],
            columns=["source_id", "target_id"],
        )

    def to_graph_state(self) -> GraphState:
        """
        Matrix form of the snapshot.

        Row i describes the i-th node record; adj_matrices["edges"][i, j]
        counts the edges between rows i and j (symmetric).
        """
        n = len(self.nodes)
        row_of = {record.id: i for i, record in enumerate(self.nodes)}

        adjacency = np.zeros((n, n), dtype=np.int32)
        for edge in self.edges:
            i, j = row_of[edge.source_id], row_of[edge.target_id]
            adjacency[i, j] += 1
            adjacency[j, i] += 1

        def column(attr: str) -> jnp.ndarray:
            return jnp.array([int(getattr(record, attr)) for record in self.nodes], dtype=jnp.int32)

        return GraphState(
            node_types=column("state"),
            node_attrs={
                "id": column("id"),
                "prior_state": column("prior_state"),
                "connections_count": column("connections_count"),
                "parents_count": column("parents_count"),
            },
            adj_matrices={"edges": jnp.asarray(adjacency)},
            global_attrs={"iteration": self.iteration},
        )

    def to_networkx(self) -> nx.MultiGraph:
        """Undirected multigraph keyed by node id, states stored as names."""
        graph = nx.MultiGraph(iteration=self.iteration)
        for record in self.nodes:
            graph.add_node(
                record.id,
                state=record.state.name,
                prior_state=record.prior_state.name,
                connections_count=record.connections_count,
                parents_count=record.parents_count,
            )
        for edge in self.edges:
            graph.add_edge(edge.source_id, edge.target_id, source=edge.source_id)
        return graph
