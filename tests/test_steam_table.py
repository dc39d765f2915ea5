# tests/test_steam_table.py

import unittest
import numpy as np
from physics.steam_table import CompressedLiquidTable, default_compressed_liquid_table
from physics.water import (
    WaterEOS,
    compressed_liquid_properties,
    saturation_pressure,
    superheated_vapor_properties,
    two_phase_properties,
)


class TestCompressedLiquidTable(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.table = default_compressed_liquid_table()

    def test_table_is_cached(self):
        self.assertIs(default_compressed_liquid_table(), self.table)

    def test_mesh_covers_grid(self):
        self.assertEqual(len(self.table.points), len(self.table.temperatures))
        self.assertGreater(len(self.table.triangulation.simplices), 0)
        self.assertTrue(np.any(self.table.valid_simplices))
        # every tabulated pressure sits on or above the saturation line
        p_sat = np.array([saturation_pressure(T) for T in self.table.temperatures])
        self.assertTrue(np.all(self.table.pressures >= p_sat * (1.0 - 1e-12)))

    def test_lookup_at_interior_points(self):
        for T, P in [(503.75, 13.75e6), (401.25, 11.25e6), (551.25, 18.75e6)]:
            v, u = compressed_liquid_properties(T, P)
            hit = self.table.lookup(u, v)
            self.assertIsNotNone(hit, msg=f"no table hit at {T} K, {P} Pa")
            T_hit, P_hit = hit
            self.assertAlmostEqual(T_hit, T, delta=0.1)
            self.assertAlmostEqual(P_hit / P, 1.0, delta=0.02)

    def test_lookup_agrees_with_analytic_solve(self):
        eos = WaterEOS(use_table=False)
        v, u = compressed_liquid_properties(503.75, 13.75e6)
        T_table, P_table = self.table.lookup(u, v)
        T_solve, P_solve = eos.solve_liquid(u, v)
        self.assertAlmostEqual(T_table, T_solve, delta=0.1)
        self.assertAlmostEqual(P_table / P_solve, 1.0, delta=0.02)

    def test_hits_agree_with_analytic_solve_in_operating_band(self):
        # hot PWR liquid, off the grid nodes
        eos = WaterEOS(use_table=False)
        hits = 0
        total = 0
        for T in [561.3, 573.8, 586.2, 598.7, 607.1]:
            for P in [14.1e6, 16.3e6, 18.9e6, 21.7e6]:
                if P < saturation_pressure(T) + 0.5e6:
                    continue
                total += 1
                v, u = compressed_liquid_properties(T, P)
                T_solve, P_solve = eos.solve_liquid(u, v)
                self.assertAlmostEqual(T_solve, T, delta=1e-6)
                self.assertAlmostEqual(P_solve / P, 1.0, delta=1e-6)
                hit = self.table.lookup(u, v)
                if hit is None:
                    continue
                hits += 1
                T_table, P_table = hit
                self.assertAlmostEqual(T_table, T_solve, delta=0.1, msg=f"{T} K, {P} Pa")
                self.assertAlmostEqual(P_table / P_solve, 1.0, delta=0.02, msg=f"{T} K, {P} Pa")
        self.assertGreater(total, 10)
        self.assertGreaterEqual(hits, total // 2)

    def test_consistency_rejects_large_residuals(self):
        v, u = compressed_liquid_properties(580.0, 15.5e6)
        self.assertTrue(self.table.is_consistent(580.0, 15.5e6, u, v))
        # one MPa off, or half a kelvin off, is no longer a hit
        self.assertFalse(self.table.is_consistent(580.0, 16.5e6, u, v))
        self.assertFalse(self.table.is_consistent(580.5, 15.5e6, u, v))


    def test_vapor_query_misses(self):
        v, u = superheated_vapor_properties(600.0, 1e6)
        self.assertIsNone(self.table.lookup(u, v))

    def test_two_phase_query_misses(self):
        v, u = two_phase_properties(450.0, 0.5)
        self.assertIsNone(self.table.lookup(u, v))

    def test_invalid_query_misses(self):
        self.assertIsNone(self.table.lookup(np.nan, 1e-3))
        self.assertIsNone(self.table.lookup(1e6, -1.0))

    def test_consistency_rejects_subcooled_pressure(self):
        v, u = compressed_liquid_properties(500.0, 10e6)
        self.assertTrue(self.table.is_consistent(500.0, 10e6, u, v))
        self.assertFalse(self.table.is_consistent(500.0, 0.5 * saturation_pressure(500.0), u, v))
        self.assertFalse(self.table.is_consistent(560.0, 10e6, u, v))

    def test_small_custom_table(self):
        table = CompressedLiquidTable.from_forward_model(
            t_min=400.0, t_max=500.0, t_step=2.5, pressures=np.array([5.0, 7.5, 10.0, 12.5, 15.0]) * 1e6
        )
        v, u = compressed_liquid_properties(451.25, 11.25e6)
        hit = table.lookup(u, v)
        self.assertIsNotNone(hit)
        self.assertAlmostEqual(hit[0], 451.25, delta=0.1)


if __name__ == '__main__':
    unittest.main()
