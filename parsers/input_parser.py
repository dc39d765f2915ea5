# parsers/input_parser.py

from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import yaml
from pydantic import BaseModel, ValidationError, field_validator, model_validator
from utils.gas import AIR, parse_species

logger = logging.getLogger(__name__)


class SchedulePointModel(BaseModel):
    time: float
    speed: Optional[float] = None
    position: Optional[float] = None


class ScheduleModel(BaseModel):
    schedule: List[SchedulePointModel]


class PumpModel(BaseModel):
    id: str
    flow_path: str
    rated_flow: float
    rated_head: float = 100.0
    efficiency: float = 0.85
    running: bool = True
    speed: float = 1.0
    ramp_up_time: float = 5.0
    coast_down_time: float = 30.0
    schedule: List[SchedulePointModel] = []


class ValveModel(BaseModel):
    id: str
    flow_path: str
    position: float = 1.0
    fail_position: float = 0.0
    schedule: List[SchedulePointModel] = []


class CheckValveModel(BaseModel):
    id: str
    flow_path: str
    cracking_pressure: float = 0.0


class ComponentsModel(BaseModel):
    pumps: List[PumpModel] = []
    valves: List[ValveModel] = []
    check_valves: List[CheckValveModel] = []


class OperationalParametersModel(BaseModel):
    control_rods: Optional[ScheduleModel] = None


class FluidModel(BaseModel):
    temperature: float
    pressure: Optional[float] = None
    quality: Optional[float] = None
    ncg: Dict[str, float] = {}  # Initial partial pressures [Pa]

    @field_validator("temperature")
    @classmethod
    def temperature_positive(cls, v):
        if v <= 0:
            raise ValueError("temperature must be positive")
        return v

    @field_validator("ncg")
    @classmethod
    def known_species(cls, v):
        for name, partial_pressure in v.items():
            if str(name).lower() != AIR:
                parse_species(name)
            if partial_pressure < 0:
                raise ValueError(f"partial pressure of {name} must not be negative")
        return v

    @model_validator(mode="after")
    def pressure_or_quality(self):
        if (self.pressure is None) == (self.quality is None):
            raise ValueError("give either pressure (single phase) or quality (saturated), not both")
        if self.quality is not None and not 0.0 <= self.quality <= 1.0:
            raise ValueError("quality must lie in [0, 1]")
        if self.pressure is not None and self.pressure <= 0:
            raise ValueError("pressure must be positive")
        return self


class FlowNodeModel(BaseModel):
    id: str
    label: str
    volume: float
    hydraulic_diameter: float
    flow_area: float
    elevation: float = 0.0
    fluid: FluidModel

    @field_validator("volume", "hydraulic_diameter", "flow_area")
    @classmethod
    def positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v


class FlowConnectionModel(BaseModel):
    id: str
    from_node: str
    to_node: str
    flow_area: float
    hydraulic_diameter: float
    length: float
    elevation: float = 0.0
    resistance_coefficient: float = 1.0
    mass_flow_rate: float = 0.0


class ThermalNodeModel(BaseModel):
    id: str
    label: str
    temperature: float
    mass: float
    specific_heat: float
    thermal_conductivity: float
    characteristic_length: float
    surface_area: float
    heat_generation: float = 0.0
    max_temperature: float = 2800.0

    @field_validator("mass", "specific_heat")
    @classmethod
    def positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v


class ThermalConnectionModel(BaseModel):
    id: str
    from_node: str
    to_node: str
    conductance: float


class ConvectionConnectionModel(BaseModel):
    id: str
    thermal_node: str
    flow_node: str
    surface_area: float


class NeutronicsModel(BaseModel):
    core_id: Optional[str] = None
    fuel_node_id: Optional[str] = None
    coolant_node_id: Optional[str] = None
    nominal_power: float
    initial_power_fraction: float = 1.0
    prompt_neutron_lifetime: float
    delayed_neutron_fraction: float
    precursor_decay_constant: float
    precursor_concentration: Optional[float] = None
    fuel_temp_coeff: float
    coolant_temp_coeff: float
    coolant_density_coeff: float
    ref_fuel_temp: float
    ref_coolant_temp: float
    ref_coolant_density: float
    control_rod_position: float = 1.0
    control_rod_worth: float
    decay_heat_fraction: float = 0.07

    @field_validator("prompt_neutron_lifetime", "precursor_decay_constant")
    @classmethod
    def positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v


class SimulationModel(BaseModel):
    total_time: float
    time_step: float
    auto_scram: bool = True
    adaptive_time_step: bool = True

    @field_validator("total_time", "time_step")
    @classmethod
    def positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v


class PostProcessingModel(BaseModel):
    output: bool = True
    output_dir: str = "output"
    file_prefix: str = "plant"


class InputDeckModel(BaseModel):
    simulation: SimulationModel
    flow_nodes: List[FlowNodeModel]
    flow_connections: List[FlowConnectionModel] = []
    thermal_nodes: List[ThermalNodeModel] = []
    thermal_connections: List[ThermalConnectionModel] = []
    convection_connections: List[ConvectionConnectionModel] = []
    neutronics: NeutronicsModel
    components: ComponentsModel = ComponentsModel()
    operational_parameters: OperationalParametersModel = OperationalParametersModel()
    post_processing: PostProcessingModel = PostProcessingModel()

    @model_validator(mode="after")
    def check_topology(self):
        flow_ids = [node.id for node in self.flow_nodes]
        thermal_ids = [node.id for node in self.thermal_nodes]
        connection_ids = [conn.id for conn in self.flow_connections]
        for kind, ids in (("flow node", flow_ids), ("thermal node", thermal_ids), ("flow connection", connection_ids)):
            duplicates = {i for i in ids if ids.count(i) > 1}
            if duplicates:
                raise ValueError(f"duplicate {kind} ids: {sorted(duplicates)}")

        for conn in self.flow_connections:
            for node_id in (conn.from_node, conn.to_node):
                if node_id not in flow_ids:
                    raise ValueError(f"flow connection {conn.id} references unknown flow node {node_id}")
        for conn in self.thermal_connections:
            for node_id in (conn.from_node, conn.to_node):
                if node_id not in thermal_ids:
                    raise ValueError(f"thermal connection {conn.id} references unknown thermal node {node_id}")
        for conn in self.convection_connections:
            if conn.thermal_node not in thermal_ids:
                raise ValueError(f"convection connection {conn.id} references unknown thermal node {conn.thermal_node}")
            if conn.flow_node not in flow_ids:
                raise ValueError(f"convection connection {conn.id} references unknown flow node {conn.flow_node}")

        components = self.components.pumps + self.components.valves + self.components.check_valves
        for component in components:
            if component.flow_path not in connection_ids:
                raise ValueError(f"component {component.id} sits on unknown flow connection {component.flow_path}")
        return self


@dataclass
class InputDeck:
    simulation: SimulationModel
    flow_nodes: List[FlowNodeModel]
    flow_connections: List[FlowConnectionModel]
    thermal_nodes: List[ThermalNodeModel]
    thermal_connections: List[ThermalConnectionModel]
    convection_connections: List[ConvectionConnectionModel]
    neutronics: NeutronicsModel
    components: ComponentsModel
    operational_parameters: OperationalParametersModel
    post_processing: PostProcessingModel

    @staticmethod
    def from_dict(data: dict) -> "InputDeck":
        try:
            input_model = InputDeckModel(**data)
        except ValidationError as e:
            logger.error(f"Input Deck Validation Error:\n{e}")
            raise e

        return InputDeck(
            simulation=input_model.simulation,
            flow_nodes=input_model.flow_nodes,
            flow_connections=input_model.flow_connections,
            thermal_nodes=input_model.thermal_nodes,
            thermal_connections=input_model.thermal_connections,
            convection_connections=input_model.convection_connections,
            neutronics=input_model.neutronics,
            components=input_model.components,
            operational_parameters=input_model.operational_parameters,
            post_processing=input_model.post_processing,
        )

    @staticmethod
    def from_yaml(file_path: str) -> "InputDeck":
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)
        return InputDeck.from_dict(data)
