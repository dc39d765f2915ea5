# physics/steam_table.py
# triangulated compressed-liquid table: (u, log v) -> (T, P) by barycentric
# interpolation over a Delaunay mesh of forward-model points

from functools import lru_cache
from typing import Optional, Tuple
import numpy as np
import logging
from scipy.spatial import Delaunay
from physics.water import (
    compressed_liquid_properties,
    liquid_compressibility,
    saturation_pressure,
    CV_LIQUID,
)

logger = logging.getLogger(__name__)

# MAGIC CONSTANTS
TABLE_T_MIN = 275.0  # [K]
TABLE_T_MAX = 615.0  # [K]
TABLE_T_STEP = 2.5  # [K]
TABLE_PRESSURES = np.array(
    [0.1, 0.5, 1.0, 2.0, 3.0, 5.0, 7.5, 10.0, 12.5, 15.0, 17.5, 20.0, 22.5, 25.0]
) * 1e6  # [Pa]
MIN_PRESSURE_SPACING = 1.0e4  # Pressure levels this close to Psat are dropped [Pa]
GAP_EDGE_FACTOR = 4.0  # Triangles with an edge this many times the median are gaps
SATURATION_TOLERANCE = 1e-3
PRESSURE_TOLERANCE = 1e-2  # Pressure-equivalent volume residual, relative to P
TEMPERATURE_TOLERANCE = 0.05  # Temperature-equivalent energy residual [K]


class CompressedLiquidTable:
    """
    Point set of compressed-liquid states triangulated in normalised
    (u, log v) coordinates. `lookup` returns None for any query that falls
    outside the mesh, inside an oversized (gap) triangle, or whose
    interpolated (T, P) is not compressed liquid.
    """

    def __init__(self, temperatures, pressures, energies, volumes):
        self.temperatures = np.asarray(temperatures, dtype=float)
        self.pressures = np.asarray(pressures, dtype=float)
        self.energies = np.asarray(energies, dtype=float)
        self.volumes = np.asarray(volumes, dtype=float)

        log_v = np.log(self.volumes)
        self._u_min = self.energies.min()
        self._u_span = self.energies.max() - self._u_min
        self._log_v_min = log_v.min()
        self._log_v_span = log_v.max() - self._log_v_min

        self.points = self.normalize(self.energies, self.volumes)
        self.triangulation = Delaunay(self.points)
        self.valid_simplices = self._find_valid_simplices()
        logger.debug(
            f"Compressed-liquid table: {len(self.points)} points, "
            f"{len(self.triangulation.simplices)} triangles, "
            f"{int(np.sum(~self.valid_simplices))} masked as gaps."
        )

    @classmethod
    def from_forward_model(
        cls,
        t_min: float = TABLE_T_MIN,
        t_max: float = TABLE_T_MAX,
        t_step: float = TABLE_T_STEP,
        pressures: np.ndarray = TABLE_PRESSURES,
    ) -> "CompressedLiquidTable":
        """Tabulate the liquid model from the saturation line up to the top pressure level."""
        temperatures, table_pressures, energies, volumes = [], [], [], []
        for T in np.arange(t_min, t_max + 0.5 * t_step, t_step):
            p_sat = saturation_pressure(T)
            levels = [p_sat] + [p for p in pressures if p > p_sat + MIN_PRESSURE_SPACING]
            for P in levels:
                v, u = compressed_liquid_properties(T, P)
                temperatures.append(T)
                table_pressures.append(P)
                energies.append(u)
                volumes.append(v)
        return cls(temperatures, table_pressures, energies, volumes)

    def normalize(self, energies, volumes) -> np.ndarray:
        x = (np.asarray(energies, dtype=float) - self._u_min) / self._u_span
        y = (np.log(np.asarray(volumes, dtype=float)) - self._log_v_min) / self._log_v_span
        return np.column_stack([x, y])

    def _find_valid_simplices(self) -> np.ndarray:
        corners = self.points[self.triangulation.simplices]  # (n, 3, 2)
        edges = np.linalg.norm(corners - np.roll(corners, 1, axis=1), axis=2)
        longest = edges.max(axis=1)
        return longest <= GAP_EDGE_FACTOR * np.median(longest)

    def locate(self, u: float, v: float) -> Tuple[int, Optional[np.ndarray]]:
        """Enclosing triangle index and barycentric weights, (-1, None) when there is none."""
        if not (np.isfinite(u) and np.isfinite(v)) or v <= 0.0:
            return -1, None
        query = self.normalize([u], [v])
        simplex = int(self.triangulation.find_simplex(query)[0])
        if simplex < 0 or not self.valid_simplices[simplex]:
            return -1, None
        transform = self.triangulation.transform[simplex]
        b = transform[:2].dot(query[0] - transform[2])
        return simplex, np.array([b[0], b[1], 1.0 - b[0] - b[1]])

    def lookup(self, u: float, v: float) -> Optional[Tuple[float, float]]:
        simplex, weights = self.locate(u, v)
        if weights is None:
            return None
        vertices = self.triangulation.simplices[simplex]
        T = float(weights.dot(self.temperatures[vertices]))
        P = float(weights.dot(self.pressures[vertices]))
        if not self.is_consistent(T, P, u, v):
            return None
        return T, P

    def is_consistent(self, T: float, P: float, u: float, v: float) -> bool:
        """
        Interpolated (T, P) must be compressed liquid reproducing (u, v). The
        volume residual is converted to a pressure through the compressibility
        and the energy residual to a temperature through cv.
        """
        if not (np.isfinite(T) and np.isfinite(P)) or T <= 0.0 or P <= 0.0:
            return False
        if P < saturation_pressure(T) * (1.0 - SATURATION_TOLERANCE):
            return False
        v_check, u_check = compressed_liquid_properties(T, P)
        pressure_residual = abs(v_check - v) / (v * liquid_compressibility(T))
        if pressure_residual > PRESSURE_TOLERANCE * P:
            return False
        return abs(u_check - u) <= CV_LIQUID * TEMPERATURE_TOLERANCE


@lru_cache(maxsize=1)
def default_compressed_liquid_table() -> CompressedLiquidTable:
    """Table over the default grid, built on first use."""
    return CompressedLiquidTable.from_forward_model()
