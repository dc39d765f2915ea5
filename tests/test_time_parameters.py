# tests/test_time_parameters.py

import unittest
import numpy as np
from utils.time_parameters import Schedule, TimeParameters


class TestTimeParameters(unittest.TestCase):

    def test_time_grid(self):
        tp = TimeParameters.from_total_time(0.1, 1.0)
        self.assertEqual(tp.num_time_steps, 10)
        self.assertEqual(len(tp.time_values), 11)
        self.assertAlmostEqual(tp.time_values[-1], 1.0)
        self.assertIsNone(tp.rod_position_values)

    def test_partial_last_step_is_covered(self):
        tp = TimeParameters.from_total_time(0.3, 1.0)
        self.assertEqual(tp.num_time_steps, 4)

    def test_invalid_time_step(self):
        with self.assertRaises(ValueError):
            TimeParameters(0.0, 1.0, 10)

    def test_schedules_are_interpolated(self):
        tp = TimeParameters.from_total_time(
            1.0,
            10.0,
            pump_schedules={"p1": Schedule([0.0, 10.0], [1.0, 0.0])},
            valve_schedules={"v1": Schedule([5.0], [0.5])},
            rod_schedule=Schedule([10.0, 0.0], [0.0, 1.0]),
        )
        np.testing.assert_allclose(tp.pump_speed_values["p1"], np.linspace(1.0, 0.0, 11))
        np.testing.assert_allclose(tp.valve_position_values["v1"], 0.5)
        self.assertAlmostEqual(tp.rod_position_values[3], 0.7)

    def test_schedule_helpers(self):
        schedule = Schedule([2.0, 0.0, 1.0], [0.0, 1.0, 0.5])
        np.testing.assert_array_equal(schedule.times, [0.0, 1.0, 2.0])
        self.assertAlmostEqual(schedule.value_at(1.5), 0.25)
        self.assertAlmostEqual(schedule.value_at(5.0), 0.0)
        self.assertTrue(schedule.has_point_between(0.5, 1.0))
        self.assertFalse(schedule.has_point_between(1.0, 1.5))

    def test_schedule_needs_points(self):
        with self.assertRaises(ValueError):
            Schedule([], [])
        with self.assertRaises(ValueError):
            Schedule([0.0, 1.0], [1.0])


if __name__ == '__main__':
    unittest.main()
