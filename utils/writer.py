# utils/writer.py

import os
import logging
import numpy as np
from physics.neutronics import average_fuel_temperature
from utils.gas import add_compositions, total_gas_mass, total_moles
from utils.states import GasSpecies

logger = logging.getLogger(__name__)


def collect_histories(states) -> dict:
    """Stack the state history into arrays, one column per node."""
    flow_ids = list(states[0].flow_nodes.keys())
    thermal_ids = list(states[0].thermal_nodes.keys())
    fuel_temperature = [average_fuel_temperature(s) for s in states]
    species = list(GasSpecies)
    inventories = [add_compositions(node.fluid.ncg for node in s.flow_nodes.values()) for s in states]
    return {
        "time": np.array([s.time for s in states]),
        "power": np.array([s.neutronics.power for s in states]),
        "reactivity": np.array([s.neutronics.reactivity for s in states]),
        "decay_heat_fraction": np.array([s.neutronics.decay_heat_fraction for s in states]),
        "scrammed": np.array([s.neutronics.scrammed for s in states]),
        "fuel_temperature": np.array([np.nan if t is None else t for t in fuel_temperature]),
        "flow_temperature": np.array([[s.flow_nodes[i].fluid.temperature for i in flow_ids] for s in states]),
        "flow_pressure": np.array([[s.flow_nodes[i].fluid.pressure for i in flow_ids] for s in states]),
        "flow_mass": np.array([[s.flow_nodes[i].fluid.mass for i in flow_ids] for s in states]),
        "flow_quality": np.array([[s.flow_nodes[i].fluid.quality for i in flow_ids] for s in states]),
        "ncg_moles": np.array([[total_moles(s.flow_nodes[i].fluid.ncg) for i in flow_ids] for s in states]),
        "ncg_mass": np.array([[total_gas_mass(s.flow_nodes[i].fluid.ncg) for i in flow_ids] for s in states]),
        "ncg_inventory": np.array([[inventory[sp] for sp in species] for inventory in inventories]),
        "thermal_temperature": np.array([[s.thermal_nodes[i].temperature for i in thermal_ids] for s in states]),
        "flow_node_ids": np.array(flow_ids),
        "thermal_node_ids": np.array(thermal_ids),
        "ncg_species": np.array([sp.value for sp in species]),
    }


def save_post_processing(simulation_objects, states):
    params = simulation_objects["post_processing_params"]
    if not params.output:
        logger.info("Post-processing output disabled.")
        return []
    os.makedirs(params.output_dir, exist_ok=True)
    written = []
    for quantity, values in collect_histories(states).items():
        path = os.path.join(params.output_dir, f"{params.file_prefix}_{quantity.upper()}.npy")
        np.save(path, values)
        written.append(path)
    logger.info(f"Wrote {len(written)} post-processing files to {params.output_dir}")
    return written
