# utils/states.py

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class TopologyError(ValueError):
    """A connection references a node id that does not exist."""


class Phase(str, Enum):
    LIQUID = "liquid"
    TWO_PHASE = "two-phase"
    VAPOR = "vapor"


class GasSpecies(str, Enum):
    """Non-condensible gas species carried alongside the water."""

    N2 = "N2"
    O2 = "O2"
    H2 = "H2"
    HE = "He"
    CO = "CO"
    CO2 = "CO2"
    XE = "Xe"
    AR = "Ar"


@dataclass
class Fluid:
    mass: float  # [kg]
    internal_energy: float  # Extensive internal energy [J]
    temperature: float  # [K]
    pressure: float  # [Pa]
    phase: Phase = Phase.LIQUID
    quality: float = 0.0  # Vapor mass fraction [-]
    ncg: Dict[GasSpecies, float] = field(default_factory=dict)  # [mol]

    @property
    def specific_energy(self) -> float:
        return self.internal_energy / self.mass if self.mass > 0 else 0.0


@dataclass
class FlowNode:
    id: str
    label: str
    fluid: Fluid
    volume: float  # [m^3]
    hydraulic_diameter: float  # [m]
    flow_area: float  # [m^2]
    elevation: float = 0.0  # [m]

    @property
    def density(self) -> float:
        return self.fluid.mass / self.volume


@dataclass
class FlowConnection:
    id: str
    from_node_id: str
    to_node_id: str
    flow_area: float  # [m^2]
    hydraulic_diameter: float  # [m]
    length: float  # [m]
    elevation: float = 0.0  # Elevation change from -> to [m]
    resistance_coefficient: float = 1.0  # K factor [-]
    mass_flow_rate: float = 0.0  # Positive from -> to [kg/s]


@dataclass
class ThermalNode:
    id: str
    label: str
    temperature: float  # [K]
    mass: float  # [kg]
    specific_heat: float  # [J/kg-K]
    thermal_conductivity: float  # [W/m-K]
    characteristic_length: float  # [m]
    surface_area: float  # [m^2]
    heat_generation: float = 0.0  # [W]
    max_temperature: float = 2800.0  # [K]


@dataclass
class ThermalConnection:
    id: str
    from_node_id: str
    to_node_id: str
    conductance: float  # [W/K]


@dataclass
class ConvectionConnection:
    id: str
    thermal_node_id: str
    flow_node_id: str
    surface_area: float  # [m^2]


@dataclass
class PumpState:
    id: str
    flow_path: str  # Flow connection driven by the pump
    rated_flow: float  # [kg/s]
    rated_head: float  # [m]
    efficiency: float = 0.85
    running: bool = True
    speed: float = 1.0  # Setpoint, fraction of rated
    effective_speed: float = 1.0  # Actual, after ramping
    ramp_up_time: float = 5.0  # [s]
    coast_down_time: float = 30.0  # [s]


@dataclass
class ValveState:
    id: str
    flow_path: str
    position: float = 1.0  # 0 = closed, 1 = open
    fail_position: float = 0.0


@dataclass
class CheckValveState:
    id: str
    flow_path: str
    cracking_pressure: float = 0.0  # [Pa]
    open: bool = True


@dataclass
class ComponentStates:
    pumps: Dict[str, PumpState] = field(default_factory=dict)
    valves: Dict[str, ValveState] = field(default_factory=dict)
    check_valves: Dict[str, CheckValveState] = field(default_factory=dict)


@dataclass
class ReactivityBreakdown:
    control_rods: float = 0.0
    doppler: float = 0.0
    coolant_temperature: float = 0.0
    coolant_density: float = 0.0


@dataclass
class NeutronicsDiagnostics:
    fuel_temperature: float = 0.0  # Averaged observable used for feedback [K]
    coolant_temperature: float = 0.0  # [K]
    coolant_density: float = 0.0  # [kg/m^3]
    fission_power: float = 0.0  # [W]
    decay_heat_power: float = 0.0  # [W]


@dataclass
class NeutronicsState:
    core_id: Optional[str]
    fuel_node_id: Optional[str]
    coolant_node_id: Optional[str]
    power: float  # [W]
    nominal_power: float  # [W]
    reactivity: float  # [dk/k]
    prompt_neutron_lifetime: float  # Lambda [s]
    delayed_neutron_fraction: float  # beta [-]
    precursor_concentration: float  # Normalised [-]
    precursor_decay_constant: float  # lambda [1/s]
    fuel_temp_coeff: float  # [dk/k/K]
    coolant_temp_coeff: float  # [dk/k/K]
    coolant_density_coeff: float  # [dk/k per kg/m^3]
    ref_fuel_temp: float  # [K]
    ref_coolant_temp: float  # [K]
    ref_coolant_density: float  # [kg/m^3]
    control_rod_position: float  # 0 = inserted, 1 = withdrawn
    control_rod_worth: float  # [dk/k]
    decay_heat_fraction: float = 0.07
    scrammed: bool = False
    scram_time: float = -1.0  # [s]
    scram_reason: str = ""
    reactivity_breakdown: ReactivityBreakdown = field(
        default_factory=ReactivityBreakdown
    )
    diagnostics: NeutronicsDiagnostics = field(default_factory=NeutronicsDiagnostics)


@dataclass
class SimulationState:
    """
    The whole plant at time `time`. Operators never modify a state they are
    given: they work on `copy()` and hand back the successor.
    """

    time: float
    flow_nodes: Dict[str, FlowNode]
    flow_connections: List[FlowConnection]
    thermal_nodes: Dict[str, ThermalNode]
    thermal_connections: List[ThermalConnection]
    convection_connections: List[ConvectionConnection]
    neutronics: NeutronicsState
    components: ComponentStates = field(default_factory=ComponentStates)

    def copy(self) -> "SimulationState":
        return copy.deepcopy(self)

    def validate_topology(self):
        """Raise TopologyError when any connection points at an unknown node."""
        for conn in self.flow_connections:
            for node_id in (conn.from_node_id, conn.to_node_id):
                if node_id not in self.flow_nodes:
                    raise TopologyError(
                        f"Flow connection {conn.id} references unknown flow node {node_id}"
                    )
        for conn in self.thermal_connections:
            for node_id in (conn.from_node_id, conn.to_node_id):
                if node_id not in self.thermal_nodes:
                    raise TopologyError(
                        f"Thermal connection {conn.id} references unknown thermal node {node_id}"
                    )
        for conn in self.convection_connections:
            if conn.thermal_node_id not in self.thermal_nodes:
                raise TopologyError(
                    f"Convection connection {conn.id} references unknown thermal node {conn.thermal_node_id}"
                )
            if conn.flow_node_id not in self.flow_nodes:
                raise TopologyError(
                    f"Convection connection {conn.id} references unknown flow node {conn.flow_node_id}"
                )


@dataclass
class FlowNodeRates:
    d_mass: float = 0.0  # [kg/s]
    d_energy: float = 0.0  # [W]
    d_ncg: Dict[GasSpecies, float] = field(default_factory=dict)  # [mol/s]


@dataclass
class RateSet:
    """Time derivatives of the conserved fluid quantities, keyed by flow node id."""

    flow_nodes: Dict[str, FlowNodeRates] = field(default_factory=dict)
