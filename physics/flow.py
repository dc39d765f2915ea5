# physics/flow.py

from typing import Optional
import numpy as np
import logging
from methods.operator import Operator
from methods.network import FlowNetwork
from physics.water import WaterEOS, DEFAULT_TEMPERATURE, saturated_liquid_energy
from utils.states import (
    FlowNodeRates,
    GasSpecies,
    Phase,
    RateSet,
    SimulationState,
    TopologyError,
)

logger = logging.getLogger(__name__)

# MAGIC CONSTANTS
STABILITY_FACTOR = 0.5  # Fraction of the shortest residence time
MIN_STABLE_DT = 1e-4  # [s]
MASS_FLOOR = 1e-6  # [kg]
SPECIES = list(GasSpecies)
MOBILE_PHASES = (Phase.VAPOR, Phase.TWO_PHASE)


class FlowNetworkOperator(Operator):
    """
    Donor-cell transport of mass, energy and non-condensible gas along the flow
    connections. Connection mass flow rates are inputs.
    """

    name = "flow"
    modifies_fluid = True

    def compute_rates(self, state: SimulationState) -> RateSet:
        network = FlowNetwork.from_state(state)
        nodes = [state.flow_nodes[node_id] for node_id in network.node_ids]

        mass = np.array([node.fluid.mass for node in nodes])
        energy = np.array([node.fluid.internal_energy for node in nodes])
        pressure = np.array([node.fluid.pressure for node in nodes])
        volume = np.array([node.volume for node in nodes])
        moles = np.array(
            [[node.fluid.ncg.get(species, 0.0) for species in SPECIES] for node in nodes]
        ).reshape(len(nodes), len(SPECIES))
        mobile = np.array([node.fluid.phase in MOBILE_PHASES for node in nodes], dtype=bool)

        # bulk specific enthalpy h = u + P v of each node
        has_mass = mass > MASS_FLOOR
        safe_mass = np.where(has_mass, mass, 1.0)
        enthalpy = np.where(has_mass, (energy + pressure * volume) / safe_mass, 0.0)

        mdot = network.mass_flow_rate
        donor = network.donor_index()

        energy_flux = mdot * enthalpy[donor]
        # gas follows the carrier only out of vapor or two-phase donors
        gas_fraction = np.where(
            has_mass[donor] & mobile[donor], mdot / safe_mass[donor], 0.0
        )
        gas_flux = gas_fraction[:, None] * moles[donor, :]

        d_mass = network.node_rates(mdot)
        d_energy = network.node_rates(energy_flux)
        d_ncg = np.asarray(network.node_rates(gas_flux)).reshape(len(nodes), len(SPECIES))

        rates = RateSet()
        for i, node_id in enumerate(network.node_ids):
            rates.flow_nodes[node_id] = FlowNodeRates(
                d_mass=float(d_mass[i]),
                d_energy=float(d_energy[i]),
                d_ncg={species: float(d_ncg[i, j]) for j, species in enumerate(SPECIES)},
            )
        return rates

    def affected_flow_nodes(self, state: SimulationState):
        nodes = set()
        for conn in state.flow_connections:
            if conn.mass_flow_rate != 0.0:
                nodes.update((conn.from_node_id, conn.to_node_id))
        return sorted(nodes)

    def apply(self, state: SimulationState, dt: float) -> SimulationState:
        return apply_rates_to_state(state, self.compute_rates(state), dt)

    def get_max_stable_dt(self, state: SimulationState) -> float:
        """Half of the shortest node residence time, mass / outflow."""
        network = FlowNetwork.from_state(state)
        outflow = network.outflow()
        mass = np.array([state.flow_nodes[node_id].fluid.mass for node_id in network.node_ids])
        draining = outflow > 0.0
        if not np.any(draining):
            return float("inf")
        residence = np.min(mass[draining] / outflow[draining])
        return max(STABILITY_FACTOR * residence, MIN_STABLE_DT)


def apply_rates_to_state(state: SimulationState, rates: RateSet, dt: float) -> SimulationState:
    """
    Integrate the rates over dt with forward Euler. Out-of-range results are
    clamped and logged.
    """
    new_state = state.copy()
    for node_id, node_rates in rates.flow_nodes.items():
        if node_id not in new_state.flow_nodes:
            raise TopologyError(f"Rates given for unknown flow node {node_id}")
        fluid = new_state.flow_nodes[node_id].fluid
        fluid.mass += node_rates.d_mass * dt
        fluid.internal_energy += node_rates.d_energy * dt
        for species, rate in node_rates.d_ncg.items():
            if rate != 0.0 or species in fluid.ncg:
                fluid.ncg[species] = fluid.ncg.get(species, 0.0) + rate * dt

        if fluid.mass < MASS_FLOOR:
            logger.warning(
                f"Node {node_id}: mass {fluid.mass:.4g} kg below floor, clamped to {MASS_FLOOR} kg"
            )
            fluid.mass = MASS_FLOOR
        if not np.isfinite(fluid.internal_energy):
            logger.warning(f"Node {node_id}: non-finite internal energy, reset to ambient liquid")
            fluid.internal_energy = fluid.mass * saturated_liquid_energy(DEFAULT_TEMPERATURE)
        for species, moles in fluid.ncg.items():
            if moles < 0.0:
                logger.warning(
                    f"Node {node_id}: negative {species.value} inventory {moles:.4g} mol, clamped to 0"
                )
                fluid.ncg[species] = 0.0
    return new_state


def close_fluid_states(
    state: SimulationState, eos: WaterEOS, node_ids: Optional[list] = None
) -> SimulationState:
    """Re-derive temperature, pressure, phase and quality from mass, energy and volume."""
    new_state = state.copy()
    targets = new_state.flow_nodes.keys() if node_ids is None else node_ids
    for node_id in targets:
        node = new_state.flow_nodes[node_id]
        water = eos.calculate_state(node.fluid.mass, node.fluid.internal_energy, node.volume)
        node.fluid.temperature = water.temperature
        node.fluid.pressure = water.pressure
        node.fluid.phase = water.phase
        node.fluid.quality = water.quality
    return new_state
