# tests/plant_fixtures.py
# small plant builders shared by the unit tests

from physics.water import (
    compressed_liquid_properties,
    saturation_pressure,
    superheated_vapor_properties,
    two_phase_properties,
)
from utils.states import (
    ComponentStates,
    FlowConnection,
    FlowNode,
    Fluid,
    NeutronicsState,
    Phase,
    SimulationState,
    ThermalNode,
)


def liquid_node(node_id, volume=1.0, T=550.0, P=15e6, ncg=None, label=None):
    v, u = compressed_liquid_properties(T, P)
    mass = volume / v
    fluid = Fluid(mass, mass * u, T, P, Phase.LIQUID, 0.0, dict(ncg or {}))
    return FlowNode(node_id, label or node_id, fluid, volume, 0.1, 0.1)


def vapor_node(node_id, mass=10.0, T=600.0, P=1e6, ncg=None, label=None):
    v, u = superheated_vapor_properties(T, P)
    fluid = Fluid(mass, mass * u, T, P, Phase.VAPOR, 1.0, dict(ncg or {}))
    return FlowNode(node_id, label or node_id, fluid, mass * v, 0.1, 0.1)


def two_phase_node(node_id, volume=1.0, T=500.0, quality=0.5, ncg=None, label=None):
    v, u = two_phase_properties(T, quality)
    mass = volume / v
    fluid = Fluid(mass, mass * u, T, saturation_pressure(T), Phase.TWO_PHASE, quality, dict(ncg or {}))
    return FlowNode(node_id, label or node_id, fluid, volume, 0.1, 0.1)


def connection(conn_id, from_node, to_node, mass_flow_rate=0.0):
    return FlowConnection(conn_id, from_node, to_node, 0.1, 0.1, 1.0, mass_flow_rate=mass_flow_rate)


def thermal_node(node_id, T=600.0, mass=100.0, specific_heat=500.0, label=None, max_temperature=2800.0):
    return ThermalNode(
        id=node_id,
        label=label or node_id,
        temperature=T,
        mass=mass,
        specific_heat=specific_heat,
        thermal_conductivity=10.0,
        characteristic_length=0.01,
        surface_area=1.0,
        max_temperature=max_temperature,
    )


def neutronics(core_id="core", **overrides):
    params = dict(
        core_id=core_id,
        fuel_node_id="fuel",
        coolant_node_id="core-coolant",
        power=1e8,
        nominal_power=1e8,
        reactivity=0.0,
        prompt_neutron_lifetime=2e-5,
        delayed_neutron_fraction=0.0065,
        precursor_concentration=0.0065 / (2e-5 * 0.08),
        precursor_decay_constant=0.08,
        fuel_temp_coeff=-2.5e-5,
        coolant_temp_coeff=-1e-4,
        coolant_density_coeff=0.0,
        ref_fuel_temp=900.0,
        ref_coolant_temp=550.0,
        ref_coolant_density=760.0,
        control_rod_position=1.0,
        control_rod_worth=0.05,
    )
    params.update(overrides)
    return NeutronicsState(**params)


def plant(
    flow_nodes=(),
    connections=(),
    thermal_nodes=(),
    thermal_connections=(),
    convection_connections=(),
    neutronics_state=None,
    components=None,
    time=0.0,
):
    return SimulationState(
        time=time,
        flow_nodes={node.id: node for node in flow_nodes},
        flow_connections=list(connections),
        thermal_nodes={node.id: node for node in thermal_nodes},
        thermal_connections=list(thermal_connections),
        convection_connections=list(convection_connections),
        neutronics=neutronics_state or neutronics(core_id=None),
        components=components or ComponentStates(),
    )
