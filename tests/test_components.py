# tests/test_components.py

import unittest
from physics.components import apply_component_flows, update_pump_speeds
from utils.states import CheckValveState, ComponentStates, PumpState, TopologyError, ValveState
from plant_fixtures import connection, liquid_node, plant


def pumped_loop(components):
    return plant(
        flow_nodes=[liquid_node("a"), liquid_node("b")],
        connections=[connection("ab", "a", "b", 0.0), connection("ba", "b", "a", -5.0)],
        components=components,
    )


class TestPumps(unittest.TestCase):

    def test_ramp_up(self):
        pump = PumpState("p1", "ab", 100.0, 50.0, effective_speed=0.0, ramp_up_time=5.0)
        state = pumped_loop(ComponentStates(pumps={"p1": pump}))
        new_state = update_pump_speeds(state, 1.0)
        self.assertAlmostEqual(new_state.components.pumps["p1"].effective_speed, 0.2)
        for _ in range(10):
            new_state = update_pump_speeds(new_state, 1.0)
        self.assertEqual(new_state.components.pumps["p1"].effective_speed, 1.0)

    def test_coast_down_when_tripped(self):
        pump = PumpState("p1", "ab", 100.0, 50.0, running=False, coast_down_time=30.0)
        state = pumped_loop(ComponentStates(pumps={"p1": pump}))
        new_state = update_pump_speeds(state, 3.0)
        self.assertAlmostEqual(new_state.components.pumps["p1"].effective_speed, 0.9)
        self.assertEqual(state.components.pumps["p1"].effective_speed, 1.0)

    def test_pump_sets_connection_flow(self):
        pump = PumpState("p1", "ab", 100.0, 50.0, effective_speed=0.5)
        new_state = apply_component_flows(pumped_loop(ComponentStates(pumps={"p1": pump})))
        self.assertEqual(new_state.flow_connections[0].mass_flow_rate, 50.0)


class TestValves(unittest.TestCase):

    def test_valve_throttles_pumped_flow(self):
        components = ComponentStates(
            pumps={"p1": PumpState("p1", "ab", 100.0, 50.0)},
            valves={"v1": ValveState("v1", "ab", position=0.25)},
        )
        new_state = apply_component_flows(pumped_loop(components))
        self.assertEqual(new_state.flow_connections[0].mass_flow_rate, 25.0)

    def test_closed_valve_stops_flow(self):
        components = ComponentStates(valves={"v1": ValveState("v1", "ba", position=0.0)})
        new_state = apply_component_flows(pumped_loop(components))
        self.assertEqual(new_state.flow_connections[1].mass_flow_rate, 0.0)

    def test_check_valve_blocks_reverse_flow(self):
        components = ComponentStates(
            check_valves={"c1": CheckValveState("c1", "ba"), "c2": CheckValveState("c2", "ab")}
        )
        new_state = apply_component_flows(pumped_loop(components))
        self.assertEqual(new_state.flow_connections[1].mass_flow_rate, 0.0)
        self.assertFalse(new_state.components.check_valves["c1"].open)
        self.assertTrue(new_state.components.check_valves["c2"].open)

    def test_check_valve_cracking_pressure(self):
        state = plant(
            flow_nodes=[liquid_node("a", P=15.2e6), liquid_node("b", P=15.0e6)],
            connections=[connection("ab", "a", "b", 3.0)],
            components=ComponentStates(check_valves={"c1": CheckValveState("c1", "ab", cracking_pressure=5e5)}),
        )
        held = apply_component_flows(state)
        self.assertFalse(held.components.check_valves["c1"].open)
        self.assertEqual(held.flow_connections[0].mass_flow_rate, 0.0)

        state.components.check_valves["c1"].cracking_pressure = 1e5
        cracked = apply_component_flows(state)
        self.assertTrue(cracked.components.check_valves["c1"].open)
        self.assertEqual(cracked.flow_connections[0].mass_flow_rate, 3.0)

    def test_pump_holds_check_valve_open(self):
        state = plant(
            flow_nodes=[liquid_node("a", P=15.0e6), liquid_node("b", P=15.2e6)],
            connections=[connection("ab", "a", "b", 0.0)],
            components=ComponentStates(
                pumps={"p1": PumpState("p1", "ab", 100.0, 50.0)},
                check_valves={"c1": CheckValveState("c1", "ab", cracking_pressure=5e5)},
            ),
        )
        new_state = apply_component_flows(state)
        self.assertTrue(new_state.components.check_valves["c1"].open)
        self.assertEqual(new_state.flow_connections[0].mass_flow_rate, 100.0)

    def test_unknown_flow_path(self):
        components = ComponentStates(valves={"v1": ValveState("v1", "nowhere")})
        with self.assertRaises(TopologyError):
            apply_component_flows(pumped_loop(components))


if __name__ == '__main__':
    unittest.main()
