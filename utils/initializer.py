# utils/initializer.py

import logging
from couplers.OperatorSplittingCoupler import OperatorSplittingCoupler, StepControl
from physics.flow import FlowNetworkOperator
from physics.neutronics import NeutronicsOperator
from physics.thermo import HeatTransferOperator
from physics.water import (
    WaterEOS,
    compressed_liquid_properties,
    saturation_pressure,
    superheated_vapor_properties,
    two_phase_properties,
)
from utils.gas import composition_from_partial_pressures
from utils.states import (
    CheckValveState,
    ComponentStates,
    ConvectionConnection,
    FlowConnection,
    FlowNode,
    Fluid,
    NeutronicsState,
    PumpState,
    SimulationState,
    ThermalConnection,
    ThermalNode,
    ValveState,
)
from utils.time_parameters import Schedule, TimeParameters

logger = logging.getLogger(__name__)


def initial_specific_state(fluid_model):
    """Specific volume and internal energy of the fluid given in the deck."""
    T = fluid_model.temperature
    if fluid_model.quality is not None:
        return two_phase_properties(T, fluid_model.quality)
    if fluid_model.pressure >= saturation_pressure(T):
        return compressed_liquid_properties(T, fluid_model.pressure)
    return superheated_vapor_properties(T, fluid_model.pressure)


def build_fluid(fluid_model, volume: float, eos: WaterEOS) -> Fluid:
    v, u = initial_specific_state(fluid_model)
    mass = volume / v
    internal_energy = mass * u
    ncg = composition_from_partial_pressures(fluid_model.ncg, volume, fluid_model.temperature)
    water = eos.calculate_state(mass, internal_energy, volume)
    return Fluid(
        mass=mass,
        internal_energy=internal_energy,
        temperature=water.temperature,
        pressure=water.pressure,
        phase=water.phase,
        quality=water.quality,
        ncg=ncg,
    )


def build_neutronics(nm) -> NeutronicsState:
    power_fraction = nm.initial_power_fraction
    precursors = nm.precursor_concentration
    if precursors is None:
        # equilibrium of dC/dt = beta/Lambda N - lambda C
        precursors = (
            nm.delayed_neutron_fraction
            / (nm.prompt_neutron_lifetime * nm.precursor_decay_constant)
            * power_fraction
        )
    return NeutronicsState(
        core_id=nm.core_id,
        fuel_node_id=nm.fuel_node_id,
        coolant_node_id=nm.coolant_node_id,
        power=nm.nominal_power * power_fraction,
        nominal_power=nm.nominal_power,
        reactivity=0.0,
        prompt_neutron_lifetime=nm.prompt_neutron_lifetime,
        delayed_neutron_fraction=nm.delayed_neutron_fraction,
        precursor_concentration=precursors,
        precursor_decay_constant=nm.precursor_decay_constant,
        fuel_temp_coeff=nm.fuel_temp_coeff,
        coolant_temp_coeff=nm.coolant_temp_coeff,
        coolant_density_coeff=nm.coolant_density_coeff,
        ref_fuel_temp=nm.ref_fuel_temp,
        ref_coolant_temp=nm.ref_coolant_temp,
        ref_coolant_density=nm.ref_coolant_density,
        control_rod_position=nm.control_rod_position,
        control_rod_worth=nm.control_rod_worth,
        decay_heat_fraction=nm.decay_heat_fraction,
    )


def build_components(cm) -> ComponentStates:
    return ComponentStates(
        pumps={
            p.id: PumpState(
                id=p.id,
                flow_path=p.flow_path,
                rated_flow=p.rated_flow,
                rated_head=p.rated_head,
                efficiency=p.efficiency,
                running=p.running,
                speed=p.speed,
                effective_speed=p.speed if p.running else 0.0,
                ramp_up_time=p.ramp_up_time,
                coast_down_time=p.coast_down_time,
            )
            for p in cm.pumps
        },
        valves={
            v.id: ValveState(
                id=v.id, flow_path=v.flow_path, position=v.position, fail_position=v.fail_position
            )
            for v in cm.valves
        },
        check_valves={
            c.id: CheckValveState(id=c.id, flow_path=c.flow_path, cracking_pressure=c.cracking_pressure)
            for c in cm.check_valves
        },
    )


def build_state(input_deck, eos: WaterEOS) -> SimulationState:
    flow_nodes = {
        n.id: FlowNode(
            id=n.id,
            label=n.label,
            fluid=build_fluid(n.fluid, n.volume, eos),
            volume=n.volume,
            hydraulic_diameter=n.hydraulic_diameter,
            flow_area=n.flow_area,
            elevation=n.elevation,
        )
        for n in input_deck.flow_nodes
    }
    flow_connections = [
        FlowConnection(
            id=c.id,
            from_node_id=c.from_node,
            to_node_id=c.to_node,
            flow_area=c.flow_area,
            hydraulic_diameter=c.hydraulic_diameter,
            length=c.length,
            elevation=c.elevation,
            resistance_coefficient=c.resistance_coefficient,
            mass_flow_rate=c.mass_flow_rate,
        )
        for c in input_deck.flow_connections
    ]
    thermal_nodes = {
        n.id: ThermalNode(
            id=n.id,
            label=n.label,
            temperature=n.temperature,
            mass=n.mass,
            specific_heat=n.specific_heat,
            thermal_conductivity=n.thermal_conductivity,
            characteristic_length=n.characteristic_length,
            surface_area=n.surface_area,
            heat_generation=n.heat_generation,
            max_temperature=n.max_temperature,
        )
        for n in input_deck.thermal_nodes
    }
    thermal_connections = [
        ThermalConnection(id=c.id, from_node_id=c.from_node, to_node_id=c.to_node, conductance=c.conductance)
        for c in input_deck.thermal_connections
    ]
    convection_connections = [
        ConvectionConnection(
            id=c.id, thermal_node_id=c.thermal_node, flow_node_id=c.flow_node, surface_area=c.surface_area
        )
        for c in input_deck.convection_connections
    ]
    state = SimulationState(
        time=0.0,
        flow_nodes=flow_nodes,
        flow_connections=flow_connections,
        thermal_nodes=thermal_nodes,
        thermal_connections=thermal_connections,
        convection_connections=convection_connections,
        neutronics=build_neutronics(input_deck.neutronics),
        components=build_components(input_deck.components),
    )
    state.validate_topology()
    return state


def _schedule(points, attribute):
    values = [(p.time, getattr(p, attribute)) for p in points if getattr(p, attribute) is not None]
    if not values:
        return None
    times, settings = zip(*values)
    return Schedule(times=list(times), values=list(settings))


def build_time_parameters(input_deck) -> TimeParameters:
    pump_schedules = {}
    for pump in input_deck.components.pumps:
        schedule = _schedule(pump.schedule, "speed")
        if schedule is not None:
            pump_schedules[pump.id] = schedule
    valve_schedules = {}
    for valve in input_deck.components.valves:
        schedule = _schedule(valve.schedule, "position")
        if schedule is not None:
            valve_schedules[valve.id] = schedule
    rods = input_deck.operational_parameters.control_rods
    rod_schedule = _schedule(rods.schedule, "position") if rods is not None else None

    return TimeParameters.from_total_time(
        input_deck.simulation.time_step,
        input_deck.simulation.total_time,
        pump_schedules=pump_schedules,
        valve_schedules=valve_schedules,
        rod_schedule=rod_schedule,
    )


def initialize_simulation(input_deck) -> dict:
    logger.info(f"Total Simulation Time: {input_deck.simulation.total_time} s")
    logger.info(f"Time Step: {input_deck.simulation.time_step} s")
    logger.info(
        f"Plant: {len(input_deck.flow_nodes)} flow nodes, {len(input_deck.flow_connections)} flow connections, "
        f"{len(input_deck.thermal_nodes)} thermal nodes"
    )
    logger.info(f"Nominal Power: {input_deck.neutronics.nominal_power / 1e6} MW")

    eos = WaterEOS()
    state = build_state(input_deck, eos)
    time_params = build_time_parameters(input_deck)
    operators = [NeutronicsOperator(), HeatTransferOperator(), FlowNetworkOperator()]
    coupler = OperatorSplittingCoupler(
        operators=operators,
        eos=eos,
        time_parameters=time_params,
        auto_scram=input_deck.simulation.auto_scram,
        step_control=StepControl() if input_deck.simulation.adaptive_time_step else None,
    )

    return {
        "state": state,
        "eos": eos,
        "operators": operators,
        "coupler": coupler,
        "time_params": time_params,
        "post_processing_params": input_deck.post_processing,
    }
