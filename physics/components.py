# physics/components.py
# pump, valve and check-valve boundary conditions on the flow connections.
# Flows here are imposed, not solved from pressure differences.

import numpy as np
import logging
from utils.states import SimulationState, TopologyError

logger = logging.getLogger(__name__)


def update_pump_speeds(state: SimulationState, dt: float) -> SimulationState:
    """Ramp each pump's effective speed toward its setpoint (0 when tripped)."""
    new_state = state.copy()
    for pump in new_state.components.pumps.values():
        target = pump.speed if pump.running else 0.0
        if pump.effective_speed < target:
            step = dt / pump.ramp_up_time if pump.ramp_up_time > 0 else np.inf
            pump.effective_speed = min(target, pump.effective_speed + step)
        elif pump.effective_speed > target:
            step = dt / pump.coast_down_time if pump.coast_down_time > 0 else np.inf
            pump.effective_speed = max(target, pump.effective_speed - step)
    return new_state


def apply_component_flows(state: SimulationState) -> SimulationState:
    """
    Impose pump flow (rated flow x effective speed x valve opening) on the
    driven connections, shut connections behind closed valves and block
    reverse flow through check valves. On unpumped paths a check valve also
    stays shut until the pressure across it reaches its cracking pressure.
    """
    new_state = state.copy()
    connections = {conn.id: conn for conn in new_state.flow_connections}
    components = new_state.components

    def connection_for(component_id, flow_path):
        if flow_path not in connections:
            raise TopologyError(
                f"Component {component_id} sits on unknown flow connection {flow_path}"
            )
        return connections[flow_path]

    pumped = {}
    for pump in components.pumps.values():
        connection_for(pump.id, pump.flow_path)
        pumped[pump.flow_path] = pumped.get(pump.flow_path, 0.0) + pump.rated_flow * pump.effective_speed
    for path, flow in pumped.items():
        connections[path].mass_flow_rate = flow

    for valve in components.valves.values():
        conn = connection_for(valve.id, valve.flow_path)
        opening = float(np.clip(valve.position, 0.0, 1.0))
        if valve.flow_path in pumped:
            conn.mass_flow_rate = pumped[valve.flow_path] * opening
        elif opening <= 0.0:
            conn.mass_flow_rate = 0.0

    for check_valve in components.check_valves.values():
        conn = connection_for(check_valve.id, check_valve.flow_path)
        check_valve.open = conn.mass_flow_rate >= 0.0
        if not check_valve.open:
            logger.debug(f"Check valve {check_valve.id} closed against reverse flow")
        elif check_valve.flow_path not in pumped:
            driving = (
                new_state.flow_nodes[conn.from_node_id].fluid.pressure
                - new_state.flow_nodes[conn.to_node_id].fluid.pressure
            )
            check_valve.open = driving >= check_valve.cracking_pressure
            if not check_valve.open:
                logger.debug(
                    f"Check valve {check_valve.id} held shut: {driving:.4g} Pa across it, "
                    f"cracking pressure {check_valve.cracking_pressure:.4g} Pa"
                )
        if not check_valve.open:
            conn.mass_flow_rate = 0.0

    return new_state
