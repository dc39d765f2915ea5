# methods/network.py
import numpy as np
from scipy.sparse import csr_matrix

from utils.states import SimulationState, TopologyError


class FlowNetwork:
    """
    Node/connection incidence of the flow network: column k holds -1 at the
    `from` node and +1 at the `to` node of connection k, so
    `incidence @ flux` turns signed per-connection fluxes into per-node rates
    whose sum is zero for every connection.
    """

    name = "FlowNetwork"

    def __init__(self, node_ids, connections):
        self.node_ids = list(node_ids)
        self.index = {node_id: i for i, node_id in enumerate(self.node_ids)}
        self.connection_ids = [conn.id for conn in connections]
        self.from_index = np.array(
            [self._lookup(conn.id, conn.from_node_id) for conn in connections], dtype=int
        )
        self.to_index = np.array(
            [self._lookup(conn.id, conn.to_node_id) for conn in connections], dtype=int
        )
        self.mass_flow_rate = np.array(
            [conn.mass_flow_rate for conn in connections], dtype=float
        )
        self.incidence = self.build_incidence()

    @classmethod
    def from_state(cls, state: SimulationState) -> "FlowNetwork":
        return cls(state.flow_nodes.keys(), state.flow_connections)

    @property
    def n_nodes(self) -> int:
        return len(self.node_ids)

    @property
    def n_connections(self) -> int:
        return len(self.connection_ids)

    def _lookup(self, connection_id, node_id) -> int:
        if node_id not in self.index:
            raise TopologyError(
                f"Flow connection {connection_id} references unknown flow node {node_id}"
            )
        return self.index[node_id]

    def build_incidence(self) -> csr_matrix:
        n_conn = self.n_connections
        columns = np.arange(n_conn)
        rows = np.concatenate([self.from_index, self.to_index])
        data = np.concatenate([-np.ones(n_conn), np.ones(n_conn)])
        return csr_matrix(
            (data, (rows, np.concatenate([columns, columns]))),
            shape=(self.n_nodes, n_conn),
        )

    def donor_index(self) -> np.ndarray:
        """Upstream node of each connection given the sign of its flow."""
        return np.where(self.mass_flow_rate >= 0.0, self.from_index, self.to_index)

    def node_rates(self, flux: np.ndarray) -> np.ndarray:
        """
        Per-node rates from signed per-connection fluxes (positive along
        from -> to). Works column-wise on (n_connections, k) arrays.
        """
        return self.incidence @ flux

    def outflow(self) -> np.ndarray:
        """Total mass leaving each node [kg/s]."""
        out = np.zeros(self.n_nodes)
        np.add.at(out, self.donor_index(), np.abs(self.mass_flow_rate))
        return out
