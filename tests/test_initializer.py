# tests/test_initializer.py

import os
import tempfile
import unittest
import numpy as np
from parsers.input_parser import InputDeck, PostProcessingModel
from physics.thermo import HeatTransferOperator
from physics.water import saturation_pressure
from utils.gas import moles_from_partial_pressure
from utils.initializer import initialize_simulation
from utils.states import GasSpecies, Phase
from utils.writer import collect_histories, save_post_processing

INPUT_DECK_PATH = os.path.join(os.path.dirname(__file__), "..", "input", "input_deck.yaml")


class TestInitializer(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.input_deck = InputDeck.from_yaml(INPUT_DECK_PATH)
        cls.simulation_objects = initialize_simulation(cls.input_deck)

    def test_objects(self):
        objects = self.simulation_objects
        self.assertEqual([op.name for op in objects["operators"]], ["neutronics", "heat_transfer", "flow"])
        self.assertEqual(objects["time_params"].num_time_steps, 1000)
        self.assertIs(objects["coupler"].eos, objects["eos"])
        self.assertIsNotNone(objects["coupler"].step_control)
        self.assertEqual(objects["post_processing_params"].file_prefix, "pwr")

    def test_fluid_initial_conditions(self):
        state = self.simulation_objects["state"]
        core = state.flow_nodes["core-coolant"].fluid
        self.assertEqual(core.phase, Phase.LIQUID)
        self.assertAlmostEqual(core.temperature, 565.0, delta=3.0)
        self.assertAlmostEqual(core.pressure / 15.5e6, 1.0, delta=0.15)
        self.assertGreater(state.flow_nodes["core-coolant"].density, 650.0)

        pressurizer = state.flow_nodes["pressurizer"].fluid
        self.assertEqual(pressurizer.phase, Phase.TWO_PHASE)
        self.assertAlmostEqual(pressurizer.quality, 0.05, delta=0.01)
        self.assertAlmostEqual(pressurizer.pressure / saturation_pressure(618.0), 1.0, delta=0.01)
        self.assertAlmostEqual(pressurizer.ncg[GasSpecies.N2], moles_from_partial_pressure(1.0e5, 8.0, 618.0))

    def test_loop_starts_near_steady_state(self):
        state = self.simulation_objects["state"]
        for node_id in ["core-coolant", "hot-leg", "sg-primary", "cold-leg"]:
            fluid = state.flow_nodes[node_id].fluid
            self.assertEqual(fluid.phase, Phase.LIQUID, msg=node_id)
            self.assertAlmostEqual(fluid.pressure / 15.5e6, 1.0, delta=0.01, msg=node_id)
        self.assertAlmostEqual(
            state.flow_nodes["hot-leg"].fluid.temperature, state.flow_nodes["core-coolant"].fluid.temperature
        )

        # core heat in, steam generator heat out, both at nominal power
        thermal_q, fluid_q = HeatTransferOperator().compute_heat_flows(state)
        self.assertAlmostEqual(fluid_q["core-coolant"] / 1.0e8, 1.0, delta=0.1)
        self.assertAlmostEqual(fluid_q["sg-primary"] / -1.0e8, 1.0, delta=0.1)
        for node_id, q in thermal_q.items():
            self.assertLess(abs(q), 1.0e7, msg=node_id)

    def test_neutronics_starts_at_equilibrium(self):
        n = self.simulation_objects["state"].neutronics
        self.assertEqual(n.power, 1.0e8)
        self.assertAlmostEqual(n.precursor_concentration, 0.0065 / (2.0e-5 * 0.08))
        self.assertFalse(n.scrammed)

    def test_components_and_schedules(self):
        state = self.simulation_objects["state"]
        self.assertEqual(state.components.pumps["rcp-1"].effective_speed, 1.0)
        self.assertIn("rcp-1-check", state.components.check_valves)
        tp = self.simulation_objects["time_params"]
        self.assertAlmostEqual(tp.rod_position_values[-1], 0.97)
        self.assertAlmostEqual(tp.pump_speed_values["rcp-1"][500], 1.0)

    def test_first_steps_hold_the_plant(self):
        objects = self.simulation_objects
        coupler = objects["coupler"]
        state = objects["state"]
        start_mass = sum(node.fluid.mass for node in state.flow_nodes.values())
        for i in range(3):
            state = coupler.apply_operational_parameters(state, i)
            state = coupler.step(state, objects["time_params"].time_step)
        end_mass = sum(node.fluid.mass for node in state.flow_nodes.values())
        self.assertAlmostEqual(state.time, 0.3)
        self.assertAlmostEqual(end_mass / start_mass, 1.0, places=9)
        self.assertFalse(state.neutronics.scrammed)
        self.assertAlmostEqual(state.neutronics.power / 1.0e8, 1.0, delta=0.05)


class TestWriter(unittest.TestCase):

    def test_histories_and_files(self):
        simulation_objects = initialize_simulation(InputDeck.from_yaml(INPUT_DECK_PATH))
        state = simulation_objects["state"]
        later = state.copy()
        later.time = 0.1
        histories = collect_histories([state, later])
        self.assertEqual(histories["flow_temperature"].shape, (2, 5))
        self.assertEqual(histories["thermal_temperature"].shape, (2, 3))
        self.assertEqual(list(histories["time"]), [0.0, 0.1])
        self.assertGreater(histories["ncg_moles"][0].sum(), 0.0)
        self.assertAlmostEqual(histories["ncg_mass"][0].sum(), 0.028014 * histories["ncg_moles"][0].sum())
        self.assertEqual(histories["ncg_inventory"].shape, (2, len(GasSpecies)))
        n2 = list(histories["ncg_species"]).index("N2")
        self.assertAlmostEqual(histories["ncg_inventory"][0, n2], histories["ncg_moles"][0].sum())

        with tempfile.TemporaryDirectory() as tmp:
            simulation_objects["post_processing_params"] = PostProcessingModel(output_dir=tmp, file_prefix="t")
            written = save_post_processing(simulation_objects, [state, later])
            self.assertEqual(len(written), len(histories))
            power = np.load(os.path.join(tmp, "t_POWER.npy"))
            self.assertEqual(power.shape, (2,))

        simulation_objects["post_processing_params"] = PostProcessingModel(output=False)
        self.assertEqual(save_post_processing(simulation_objects, [state]), [])


if __name__ == '__main__':
    unittest.main()
