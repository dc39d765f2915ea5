# couplers/OperatorSplittingCoupler.py

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import numpy as np
import logging
from methods.operator import Operator
from physics.components import apply_component_flows, update_pump_speeds
from physics.flow import close_fluid_states
from physics.neutronics import check_scram_conditions, trigger_scram
from physics.water import WaterEOS, DEFAULT_PRESSURE, DEFAULT_TEMPERATURE
from utils.states import SimulationState
from utils.time_parameters import TimeParameters

logger = logging.getLogger(__name__)

# sanitising bounds
THERMAL_T_MIN, THERMAL_T_MAX = 200.0, 5000.0  # [K]
FLUID_T_MIN, FLUID_T_MAX = 250.0, 2000.0  # [K]
FLUID_P_MIN, FLUID_P_MAX = 1000.0, 50e6  # [Pa]
MASS_FLOOR = 1e-6  # [kg]
MAX_FLOW_RATE = 1e5  # [kg/s]
PRECURSOR_RESET = 0.01

# adaptive step control
PRESSURE_CHANGE_TARGET, PRESSURE_CHANGE_MAX = 0.05, 0.15  # Relative, per step
FLOW_CHANGE_TARGET, FLOW_CHANGE_MAX = 500.0, 1500.0  # [kg/s] per step
MASS_CHANGE_TARGET, MASS_CHANGE_MAX = 0.02, 0.05  # Relative, per step
DT_SHRINK_RATE = 0.5
DT_GROWTH_RATE = 1.1
MAX_RETRIES = 3
MIN_DT = 1e-6  # [s]


@dataclass
class StepMetrics:
    time: float  # Start of the outer step [s]
    dt: float  # [s]
    subcycles: Dict[str, int] = field(default_factory=dict)
    max_stable_dt: Dict[str, float] = field(default_factory=dict)
    limiting_operator: str = ""
    substeps: int = 0  # Accepted substeps
    rejected_steps: int = 0
    max_pressure_change: float = 0.0  # Relative, over accepted substeps
    max_flow_change: float = 0.0  # [kg/s]
    max_mass_change: float = 0.0  # Relative


@dataclass
class StepControl:
    """Limits on how far one substep may move pressures, flows and masses."""

    pressure_change_target: float = PRESSURE_CHANGE_TARGET
    pressure_change_max: float = PRESSURE_CHANGE_MAX
    flow_change_target: float = FLOW_CHANGE_TARGET  # [kg/s]
    flow_change_max: float = FLOW_CHANGE_MAX  # [kg/s]
    mass_change_target: float = MASS_CHANGE_TARGET
    mass_change_max: float = MASS_CHANGE_MAX
    shrink_rate: float = DT_SHRINK_RATE
    growth_rate: float = DT_GROWTH_RATE
    max_retries: int = MAX_RETRIES
    min_dt: float = MIN_DT  # [s]

    def margins(self, changes: Tuple[float, float, float]) -> Tuple[float, float]:
        """Worst change/target and worst change/max over (pressure, flow, mass)."""
        targets = (self.pressure_change_target, self.flow_change_target, self.mass_change_target)
        limits = (self.pressure_change_max, self.flow_change_max, self.mass_change_max)
        margin = max(c / t for c, t in zip(changes, targets))
        overshoot = max(c / m for c, m in zip(changes, limits))
        return margin, overshoot


def state_changes(before: SimulationState, after: SimulationState) -> Tuple[float, float, float]:
    """Largest relative pressure change, absolute flow change and relative mass change."""
    pressure = mass = flow = 0.0
    for node_id, node in before.flow_nodes.items():
        new = after.flow_nodes[node_id].fluid
        old = node.fluid
        pressure = max(pressure, abs(new.pressure - old.pressure) / max(old.pressure, FLUID_P_MIN))
        mass = max(mass, abs(new.mass - old.mass) / max(old.mass, MASS_FLOOR))
    for old, new in zip(before.flow_connections, after.flow_connections):
        flow = max(flow, abs(new.mass_flow_rate - old.mass_flow_rate))
    return pressure, flow, mass


def sanitize_state(state: SimulationState) -> SimulationState:
    """Clamp non-finite or out-of-range values in place, logging each fix."""
    for node_id, node in state.thermal_nodes.items():
        if not np.isfinite(node.temperature) or node.temperature < 0:
            logger.warning(f"Fixing invalid temperature in thermal node {node_id}: {node.temperature}")
            node.temperature = 300.0
        node.temperature = float(np.clip(node.temperature, THERMAL_T_MIN, THERMAL_T_MAX))

    for node_id, node in state.flow_nodes.items():
        fluid = node.fluid
        if not np.isfinite(fluid.temperature) or fluid.temperature < 0:
            logger.warning(f"Fixing invalid temperature in flow node {node_id}: {fluid.temperature}")
            fluid.temperature = DEFAULT_TEMPERATURE
        if not np.isfinite(fluid.mass) or fluid.mass <= 0:
            logger.warning(f"Fixing invalid mass in flow node {node_id}: {fluid.mass}")
            fluid.mass = MASS_FLOOR
        if not np.isfinite(fluid.pressure) or fluid.pressure <= 0:
            logger.warning(f"Fixing invalid pressure in flow node {node_id}: {fluid.pressure}")
            fluid.pressure = DEFAULT_PRESSURE
        fluid.quality = float(np.clip(fluid.quality, 0.0, 1.0))
        fluid.temperature = float(np.clip(fluid.temperature, FLUID_T_MIN, FLUID_T_MAX))
        fluid.pressure = float(np.clip(fluid.pressure, FLUID_P_MIN, FLUID_P_MAX))

    for conn in state.flow_connections:
        if not np.isfinite(conn.mass_flow_rate):
            logger.warning(f"Fixing invalid flow rate in connection {conn.id}: {conn.mass_flow_rate}")
            conn.mass_flow_rate = 0.0
        conn.mass_flow_rate = float(np.clip(conn.mass_flow_rate, -MAX_FLOW_RATE, MAX_FLOW_RATE))

    n = state.neutronics
    if not np.isfinite(n.power) or n.power < 0:
        logger.warning(f"Fixing invalid reactor power: {n.power}")
        n.power = 0.0
    if not np.isfinite(n.precursor_concentration) or n.precursor_concentration < 0:
        logger.warning(f"Fixing invalid precursor concentration: {n.precursor_concentration}")
        n.precursor_concentration = PRECURSOR_RESET
    return state


class OperatorSplittingCoupler:
    """
    Explicit operator splitting: over each outer step every operator is
    integrated in turn, subcycled at its own stable step, starting from the
    state the previous operator left.
    """

    def __init__(
        self,
        operators: List[Operator],
        eos: WaterEOS,
        time_parameters: Optional[TimeParameters] = None,
        auto_scram: bool = True,
        step_control: Optional[StepControl] = None,
    ):
        self.operators = operators
        self.eos = eos
        self.time_parameters = time_parameters
        self.auto_scram = auto_scram
        self.step_control = step_control
        self.adaptive_dt: Optional[float] = None  # None until the first rejection
        self.consecutive_good_steps = 0
        self.metrics: List[StepMetrics] = []

    def compute_subcycle_counts(self, state: SimulationState, dt: float) -> Dict[str, int]:
        return {op.name: op.get_subcycle_count(state, dt) for op in self.operators}

    def advance(self, state: SimulationState, dt: float, subcycles: Dict[str, int]) -> SimulationState:
        """One splitting pass over dt, each operator subcycled as given."""
        t0 = state.time
        current = state.copy()
        for op in self.operators:
            n_sub = subcycles[op.name]
            sub_dt = dt / n_sub
            for i in range(n_sub):
                current = op.apply(current, sub_dt)
                if op.modifies_fluid:
                    current = close_fluid_states(current, self.eos, op.affected_flow_nodes(current))
                current.time = t0 + (i + 1) * sub_dt
            current.time = t0
        current = sanitize_state(current)
        current.time = t0 + dt
        return current

    def step(self, state: SimulationState, dt: float) -> SimulationState:
        """
        Advance the plant by one outer step dt.

        Without a step control the outer step is a single splitting pass. With
        one, dt is covered by substeps: a substep that moves pressure, flow or
        mass past its maximum is rejected and retried shorter, and the substep
        length grows again after a run of quiet steps.
        """
        if dt <= 0:
            raise ValueError(f"Invalid time step: {dt}. It must be positive.")
        t0 = state.time
        t_end = t0 + dt
        metrics = StepMetrics(time=t0, dt=dt)
        metrics.max_stable_dt = {op.name: op.get_max_stable_dt(state) for op in self.operators}
        if metrics.max_stable_dt:
            metrics.limiting_operator = min(metrics.max_stable_dt, key=metrics.max_stable_dt.get)
        metrics.subcycles = {op.name: 0 for op in self.operators}

        current = state
        retries = 0
        while t_end - current.time > 1e-12 * max(abs(t_end), 1.0):
            remaining = t_end - current.time
            step_dt = remaining if self.step_control is None else self.substep_length(remaining)
            subcycles = self.compute_subcycle_counts(current, step_dt)
            candidate = self.advance(current, step_dt, subcycles)
            changes = state_changes(current, candidate)

            if self.step_control is not None:
                control = self.step_control
                margin, overshoot = control.margins(changes)
                if overshoot > 1.0 and retries < control.max_retries and step_dt > control.min_dt:
                    retries += 1
                    metrics.rejected_steps += 1
                    self.adaptive_dt = max(step_dt * max(control.shrink_rate, 1.0 / overshoot), control.min_dt)
                    self.consecutive_good_steps = 0
                    logger.debug(
                        f"Rejected substep of {step_dt:.4g} s at t={current.time:.4f} s "
                        f"(changes {overshoot:.2f}x the maximum), retrying with {self.adaptive_dt:.4g} s"
                    )
                    continue
                if overshoot > 1.0:
                    logger.warning(
                        f"Accepting substep of {step_dt:.4g} s at t={current.time:.4f} s "
                        f"after {retries} retries, changes {overshoot:.2f}x the maximum"
                    )
                self.grow_substep(margin)

            retries = 0
            current = candidate
            metrics.substeps += 1
            for name, count in subcycles.items():
                metrics.subcycles[name] += count
            metrics.max_pressure_change = max(metrics.max_pressure_change, changes[0])
            metrics.max_flow_change = max(metrics.max_flow_change, changes[1])
            metrics.max_mass_change = max(metrics.max_mass_change, changes[2])

        if current is state:
            current = state.copy()
        current.time = t_end

        if self.auto_scram and not current.neutronics.scrammed:
            decision = check_scram_conditions(current)
            if decision.should_scram:
                current = trigger_scram(current, decision.reason)

        self.metrics.append(metrics)
        logger.debug(
            f"t={current.time:.4f} s: {metrics.substeps} substeps, {metrics.rejected_steps} rejected, "
            f"subcycles {metrics.subcycles}, limited by {metrics.limiting_operator}"
        )
        return current

    def substep_length(self, remaining: float) -> float:
        if self.adaptive_dt is None:
            return remaining
        length = min(self.adaptive_dt, remaining)
        # avoid leaving a sliver at the end of the outer step
        if remaining - length < self.step_control.min_dt:
            length = remaining
        return length

    def grow_substep(self, margin: float):
        """Lengthen the substep after a run of steps well inside the targets."""
        control = self.step_control
        if margin < 0.5:
            self.consecutive_good_steps += 1
            if self.consecutive_good_steps >= 5 and self.adaptive_dt is not None:
                self.adaptive_dt *= min(control.growth_rate, 0.5 / max(margin, 0.01))
        elif margin < 1.0:
            self.consecutive_good_steps += 1
            if self.consecutive_good_steps >= 10 and self.adaptive_dt is not None:
                self.adaptive_dt *= 1.05
        else:
            self.consecutive_good_steps = 0

    def apply_operational_parameters(self, state: SimulationState, i: int) -> SimulationState:
        """Set pump speeds, valve positions and rod position from the schedules at step i."""
        tp = self.time_parameters
        new_state = state.copy()
        for pump_id, values in tp.pump_speed_values.items():
            if pump_id in new_state.components.pumps:
                new_state.components.pumps[pump_id].speed = float(values[i])
        for valve_id, values in tp.valve_position_values.items():
            if valve_id in new_state.components.valves:
                new_state.components.valves[valve_id].position = float(values[i])

        n = new_state.neutronics
        if tp.rod_position_values is not None:
            # after a trip, only rod moves scheduled later than the trip are honoured
            if not n.scrammed or tp.rod_schedule.has_point_between(n.scram_time, tp.time_values[i]):
                n.control_rod_position = float(np.clip(tp.rod_position_values[i], 0.0, 1.0))
        return new_state

    def solve(self, initial_state: SimulationState) -> List[SimulationState]:
        """
        Run the transient over the time grid and return the state at every step.
        """
        if self.time_parameters is None:
            raise ValueError("The coupler needs time parameters to run a transient.")
        initial_state.validate_topology()
        tp = self.time_parameters
        current = initial_state
        states = [current]
        for i in range(tp.num_time_steps):
            current = self.apply_operational_parameters(current, i)
            current = update_pump_speeds(current, tp.time_step)
            current = apply_component_flows(current)
            current = self.step(current, tp.time_step)
            states.append(current)
            if i % max(tp.num_time_steps // 10, 1) == 0:
                n = current.neutronics
                logger.info(
                    f"t={current.time:.2f} s: power {n.power / 1e6:.2f} MW, "
                    f"reactivity {n.reactivity * 1e5:.1f} pcm, scrammed={n.scrammed}"
                )
        stats = self.eos.get_bisection_stats()
        logger.info(
            f"Transient finished: {stats.calls} EOS calls, {stats.table_hits} table hits, "
            f"bisection failure rate {stats.failure_rate:.2%}"
        )
        return states
