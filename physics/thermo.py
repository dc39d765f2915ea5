# physics/thermo.py
# heat transfer between thermal nodes (conduction), from thermal nodes to the
# coolant (convection) and heat generation in the fuel

from dataclasses import dataclass
import logging
from methods.operator import Operator
from utils.states import FlowNode, Phase, SimulationState, TopologyError

logger = logging.getLogger(__name__)

# MAGIC CONSTANTS
H_NATURAL = 500.0  # Natural-convection floor [W/m^2-K]
RE_LAMINAR = 2300.0
NU_LAMINAR = 3.66
MIN_STABLE_DT = 1e-4  # [s]


@dataclass
class FluidTransportProperties:
    viscosity: float  # [Pa-s]
    conductivity: float  # [W/m-K]
    prandtl: float  # [-]


LIQUID_PROPERTIES = FluidTransportProperties(viscosity=3e-4, conductivity=0.6, prandtl=2.0)
VAPOR_PROPERTIES = FluidTransportProperties(viscosity=2e-5, conductivity=0.03, prandtl=1.0)


def node_throughflow(state: SimulationState, node_id: str) -> float:
    """Mass flow passing through a flow node, half the sum of |mdot| on its connections [kg/s]."""
    total = sum(
        abs(conn.mass_flow_rate)
        for conn in state.flow_connections
        if node_id in (conn.from_node_id, conn.to_node_id)
    )
    return 0.5 * total


def reynolds_number(mass_flow_rate, flow_area, hydraulic_diameter, viscosity) -> float:
    """
    Re = rho V D / mu, written with the mass flux G = mdot / A.
    """
    if flow_area <= 0.0 or viscosity <= 0.0:
        return 0.0
    return abs(mass_flow_rate) / flow_area * hydraulic_diameter / viscosity


def heat_transfer_coefficient(node: FlowNode, mass_flow_rate: float) -> float:
    """Dittus-Boelter in turbulent flow, floored by natural convection [W/m^2-K]."""
    props = VAPOR_PROPERTIES if node.fluid.phase == Phase.VAPOR else LIQUID_PROPERTIES
    D = node.hydraulic_diameter
    if D <= 0.0:
        return H_NATURAL
    Re = reynolds_number(mass_flow_rate, node.flow_area, D, props.viscosity)
    if Re < RE_LAMINAR:
        Nu = NU_LAMINAR
    else:
        Nu = 0.023 * Re**0.8 * props.prandtl**0.4
    return max(H_NATURAL, Nu * props.conductivity / D)


class HeatTransferOperator(Operator):
    """
    Explicit heat balance of the thermal nodes. Heat convected into the coolant
    is added to the flow node internal energy.
    """

    name = "heat_transfer"
    modifies_fluid = True

    def compute_heat_flows(self, state: SimulationState):
        """Net heat into each thermal node and each flow node [W]."""
        thermal_q = {node_id: 0.0 for node_id in state.thermal_nodes}
        fluid_q = {node_id: 0.0 for node_id in state.flow_nodes}

        for conn in state.thermal_connections:
            if conn.from_node_id not in thermal_q or conn.to_node_id not in thermal_q:
                raise TopologyError(f"Thermal connection {conn.id} references an unknown node")
            T1 = state.thermal_nodes[conn.from_node_id].temperature
            T2 = state.thermal_nodes[conn.to_node_id].temperature
            q = conn.conductance * (T1 - T2)
            thermal_q[conn.from_node_id] -= q
            thermal_q[conn.to_node_id] += q

        for conn in state.convection_connections:
            if conn.thermal_node_id not in thermal_q or conn.flow_node_id not in fluid_q:
                raise TopologyError(f"Convection connection {conn.id} references an unknown node")
            solid = state.thermal_nodes[conn.thermal_node_id]
            coolant = state.flow_nodes[conn.flow_node_id]
            h = heat_transfer_coefficient(coolant, node_throughflow(state, coolant.id))
            q = h * conn.surface_area * (solid.temperature - coolant.fluid.temperature)
            thermal_q[conn.thermal_node_id] -= q
            fluid_q[conn.flow_node_id] += q

        n = state.neutronics
        for node_id, node in state.thermal_nodes.items():
            if node_id == n.fuel_node_id and n.core_id:
                thermal_q[node_id] += n.power
            else:
                thermal_q[node_id] += node.heat_generation

        return thermal_q, fluid_q

    def apply(self, state: SimulationState, dt: float) -> SimulationState:
        thermal_q, fluid_q = self.compute_heat_flows(state)
        new_state = state.copy()
        for node_id, q in thermal_q.items():
            node = new_state.thermal_nodes[node_id]
            node.temperature += q * dt / (node.mass * node.specific_heat)
        for node_id, q in fluid_q.items():
            new_state.flow_nodes[node_id].fluid.internal_energy += q * dt
        logger.debug(f"Heat transfer step: {sum(fluid_q.values()) / 1e6:.3f} MW into the coolant")
        return new_state

    def affected_flow_nodes(self, state: SimulationState):
        return sorted({conn.flow_node_id for conn in state.convection_connections})

    def get_max_stable_dt(self, state: SimulationState) -> float:
        """min over thermal nodes of m cp / (2 sum(G + hA))."""
        coupling = {node_id: 0.0 for node_id in state.thermal_nodes}
        for conn in state.thermal_connections:
            coupling[conn.from_node_id] += conn.conductance
            coupling[conn.to_node_id] += conn.conductance
        for conn in state.convection_connections:
            coolant = state.flow_nodes[conn.flow_node_id]
            h = heat_transfer_coefficient(coolant, node_throughflow(state, coolant.id))
            coupling[conn.thermal_node_id] += h * conn.surface_area

        limits = [
            state.thermal_nodes[node_id].mass * state.thermal_nodes[node_id].specific_heat / (2.0 * g)
            for node_id, g in coupling.items()
            if g > 0.0
        ]
        if not limits:
            return float("inf")
        return max(min(limits), MIN_STABLE_DT)
