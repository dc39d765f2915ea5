# physics/neutronics.py

from dataclasses import dataclass
from typing import Optional
import numpy as np
import logging
from methods.operator import Operator
from utils.states import (
    NeutronicsDiagnostics,
    ReactivityBreakdown,
    SimulationState,
)

logger = logging.getLogger(__name__)

# MAGIC CONSTANTS
MAX_NEUTRONICS_DT = 0.05  # [s]
STABILITY_FACTOR = 0.5
POPULATION_FLOOR = 1e-10  # Floor on normalised power and precursors
MAX_POWER_RATE = 4.0  # Fraction of nominal per second
DECAY_HEAT_OPERATING = 0.07
DECAY_HEAT_FLOOR = 0.01
DECAY_HEAT_RELAXATION_TIME = 100.0  # [s]
RESTART_ROD_POSITION = 0.2

HIGH_POWER_TRIP = 1.25  # Fraction of nominal
LOW_POWER_TRIP = 0.12
FUEL_TEMPERATURE_TRIP = 0.95  # Fraction of the rated maximum
LOW_FLOW_TRIP = 10.0  # Core flow [kg/s]
LOW_FLOW_MIN_POWER = 0.1  # Low-flow trip only armed above this power fraction


@dataclass
class ScramDecision:
    should_scram: bool
    reason: str = ""


def average_fuel_temperature(state: SimulationState) -> Optional[float]:
    """Mean temperature of the thermal nodes labelled as fuel."""
    temps = [
        node.temperature
        for node in state.thermal_nodes.values()
        if "fuel" in node.label.lower() or "fuel" in node.id.lower()
    ]
    return float(np.mean(temps)) if temps else None


def _is_core_coolant(node_id: str, label: str, coolant_node_id: Optional[str]) -> bool:
    text = f"{node_id} {label}".lower()
    return node_id == coolant_node_id or "coolant" in text or "core" in text


def average_coolant_state(state: SimulationState):
    """Mean coolant temperature and density over the core/coolant flow nodes."""
    n = state.neutronics
    nodes = [
        node
        for node in state.flow_nodes.values()
        if _is_core_coolant(node.id, node.label, n.coolant_node_id)
    ]
    if not nodes:
        return None, None
    temperature = float(np.mean([node.fluid.temperature for node in nodes]))
    density = float(np.mean([node.density for node in nodes]))
    return temperature, density


def compute_decay_heat_fraction(
    scrammed: bool,
    scram_time: float,
    time: float,
    power_fraction: float,
    dt: float,
) -> float:
    """
    Decay-heat fraction of nominal power. After a scram it follows a short
    exponential transient, then t^-0.2; in operation it sits at 7% and relaxes
    toward 0.07 * power_fraction when the supplied power calls for more.
    """
    if scrammed and scram_time >= 0.0:
        t = max(time - scram_time, 0.0)
        if t < 0.1:
            fraction = 0.07 + 0.03 * np.exp(-t / 0.01)
        elif t < 1.0:
            fraction = 0.07 * t**-0.2
        else:
            fraction = 0.066 * t**-0.2
        fraction = max(fraction, DECAY_HEAT_FLOOR)
    else:
        fraction = DECAY_HEAT_OPERATING

    if power_fraction * DECAY_HEAT_OPERATING > 1.0 / fraction:
        relax = dt / DECAY_HEAT_RELAXATION_TIME
        fraction = (1.0 - relax) * fraction + relax * DECAY_HEAT_OPERATING * power_fraction
    return float(fraction)


class NeutronicsOperator(Operator):
    """
    One-group point kinetics with rod, Doppler, coolant-temperature and
    coolant-density feedback, integrated with forward Euler.
    """

    name = "neutronics"

    def compute_reactivity(self, state: SimulationState):
        n = state.neutronics
        fuel_temperature = average_fuel_temperature(state)
        if fuel_temperature is None:
            fuel_temperature = n.ref_fuel_temp
        coolant_temperature, coolant_density = average_coolant_state(state)
        if coolant_temperature is None:
            coolant_temperature = n.ref_coolant_temp
            coolant_density = n.ref_coolant_density

        breakdown = ReactivityBreakdown(
            control_rods=-n.control_rod_worth * (1.0 - n.control_rod_position),
            doppler=n.fuel_temp_coeff * (fuel_temperature - n.ref_fuel_temp),
            coolant_temperature=n.coolant_temp_coeff * (coolant_temperature - n.ref_coolant_temp),
            coolant_density=n.coolant_density_coeff * (coolant_density - n.ref_coolant_density),
        )
        diagnostics = NeutronicsDiagnostics(
            fuel_temperature=fuel_temperature,
            coolant_temperature=coolant_temperature,
            coolant_density=coolant_density,
        )
        return breakdown, diagnostics

    def apply(self, state: SimulationState, dt: float) -> SimulationState:
        new_state = state.copy()
        n = new_state.neutronics
        if not n.core_id or n.nominal_power <= 0.0:
            return new_state

        breakdown, diagnostics = self.compute_reactivity(state)
        rho = (
            breakdown.control_rods
            + breakdown.doppler
            + breakdown.coolant_temperature
            + breakdown.coolant_density
        )
        beta = n.delayed_neutron_fraction
        Lambda = n.prompt_neutron_lifetime
        lam = n.precursor_decay_constant

        N = n.power / n.nominal_power
        C = n.precursor_concentration
        dN = ((rho - beta) / Lambda * N + lam * C) * dt
        dC = (beta / Lambda * N - lam * C) * dt
        N_new = max(N + dN, POPULATION_FLOOR)
        C_new = max(C + dC, POPULATION_FLOOR)

        max_change = MAX_POWER_RATE * dt
        if N_new > N + max_change:
            N_new = N + max_change
        elif N_new < N - max_change:
            N_new = max(N - max_change, POPULATION_FLOOR)

        decay_fraction = compute_decay_heat_fraction(
            n.scrammed, n.scram_time, state.time, n.power / n.nominal_power, dt
        )
        fission_power = N_new * n.nominal_power
        decay_power = decay_fraction * n.nominal_power

        n.power = (1.0 - decay_fraction) * fission_power + decay_power
        n.precursor_concentration = C_new
        n.reactivity = rho
        n.decay_heat_fraction = decay_fraction
        n.reactivity_breakdown = breakdown
        diagnostics.fission_power = fission_power
        diagnostics.decay_heat_power = decay_power
        n.diagnostics = diagnostics

        if n.scrammed and n.control_rod_position > RESTART_ROD_POSITION and rho > 0.0:
            logger.warning(
                f"SCRAM cleared at t={state.time:.3f} s: rods at {n.control_rod_position:.2f}, "
                f"reactivity {rho:.5f}"
            )
            n.scrammed = False
            n.scram_time = -1.0
            n.scram_reason = ""

        logger.debug(f"Neutronics step: rho={rho:.6f}, P={n.power / 1e6:.3f} MW")
        return new_state

    def get_max_stable_dt(self, state: SimulationState) -> float:
        n = state.neutronics
        if not n.core_id or n.nominal_power <= 0.0:
            return MAX_NEUTRONICS_DT
        margin = abs(n.reactivity - n.delayed_neutron_fraction)
        if margin <= 0.0:
            return MAX_NEUTRONICS_DT
        return min(MAX_NEUTRONICS_DT, STABILITY_FACTOR * n.prompt_neutron_lifetime / margin)


def trigger_scram(state: SimulationState, reason: str) -> SimulationState:
    """Insert the rods and latch the trip. A second trip keeps the first time and reason."""
    new_state = state.copy()
    n = new_state.neutronics
    if n.scrammed:
        return new_state
    n.scrammed = True
    n.scram_time = state.time
    n.scram_reason = reason
    n.control_rod_position = 0.0
    logger.warning(f"SCRAM at t={state.time:.3f} s: {reason}")
    return new_state


def core_flow(state: SimulationState) -> float:
    """Total |mass flow| through connections touching core/coolant nodes [kg/s]."""
    n = state.neutronics
    core_nodes = {
        node.id
        for node in state.flow_nodes.values()
        if _is_core_coolant(node.id, node.label, n.coolant_node_id)
    }
    return float(
        sum(
            abs(conn.mass_flow_rate)
            for conn in state.flow_connections
            if conn.from_node_id in core_nodes
            or conn.to_node_id in core_nodes
            or "core" in conn.from_node_id.lower()
            or "core" in conn.to_node_id.lower()
        )
    )


def check_scram_conditions(
    state: SimulationState, min_core_flow: float = LOW_FLOW_TRIP
) -> ScramDecision:
    n = state.neutronics
    if not n.core_id or n.nominal_power <= 0.0:
        return ScramDecision(False)

    power_fraction = n.power / n.nominal_power
    if power_fraction > HIGH_POWER_TRIP:
        return ScramDecision(True, "High power (>125%)")
    if power_fraction < LOW_POWER_TRIP:
        return ScramDecision(True, "Low power (<12%)")

    for node in state.thermal_nodes.values():
        if "fuel" not in f"{node.id} {node.label}".lower():
            continue
        if node.temperature > FUEL_TEMPERATURE_TRIP * node.max_temperature:
            return ScramDecision(
                True, f"High fuel temperature ({node.temperature:.0f} K in {node.label})"
            )

    if power_fraction > LOW_FLOW_MIN_POWER and core_flow(state) < min_core_flow:
        return ScramDecision(True, "Low coolant flow")

    return ScramDecision(False)
