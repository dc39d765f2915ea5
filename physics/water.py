# physics/water.py
# water/steam equation of state: saturation correlations, forward property
# functions and the (mass, U, V) -> (T, P, phase, quality) closure

from dataclasses import dataclass, fields
from typing import Optional, Tuple
import numpy as np
import logging
from scipy.optimize import brentq
from utils.states import Phase

logger = logging.getLogger(__name__)

# MAGIC CONSTANTS
T_CRIT = 647.096  # Critical temperature [K]
P_CRIT = 22.064e6  # Critical pressure [Pa]
RHO_CRIT = 322.0  # Critical density [kg/m^3]
T_TRIPLE = 273.16  # [K]
P_TRIPLE = 611.657  # [Pa]
T_REF = 273.15  # [K]
CV_LIQUID = 4186.0  # [J/kg-K]
CV_VAPOR = 1500.0  # Superheated steam, constant volume [J/kg-K]
R_WATER = 461.5  # Specific gas constant [J/kg-K]

CRITICAL_MARGIN = 0.5  # Saturation branch is searched up to T_CRIT - margin [K]
MAX_BISECTION_ITERATIONS = 30
BISECTION_TOLERANCE = 1e-4  # [K]
QUALITY_DISAGREEMENT = 0.3
QUALITY_EPSILON = 1e-6  # Qualities this close to 0 or 1 close as single phase
MAX_OVERPRESSURE = 1.0e8  # Cap on P - Psat in the liquid model [Pa]
ROUND_TRIP_TOLERANCE = 0.05
ENERGY_FLOOR = 1.0e4  # Denominator floor for relative energy errors [J/kg]
ENERGY_MARGIN = 5.0e3  # Allowed undershoot of the triple-point liquid energy [J/kg]
MAX_TEMPERATURE = 2273.15  # Upper end of the physical window [K]
MAX_PRESSURE = 1.0e8  # [Pa]

DEFAULT_TEMPERATURE = 293.15  # [K]
DEFAULT_PRESSURE = 101325.0  # [Pa]

# IAPWS auxiliary equations for the saturation line (Wagner & Pruss)
_PSAT_COEFFS = np.array(
    [-7.85951783, 1.84408259, -11.7866497, 22.6807411, -15.9618719, 1.80122502]
)
_PSAT_EXPONENTS = np.array([1.0, 1.5, 3.0, 3.5, 4.0, 7.5])
_RHO_LIQ_COEFFS = np.array(
    [1.99274064, 1.09965342, -0.510839303, -1.75493479, -45.5170352, -6.74694450e5]
)
_RHO_LIQ_EXPONENTS = np.array([1.0, 2.0, 5.0, 16.0, 43.0, 110.0]) / 3.0
_RHO_VAP_COEFFS = np.array(
    [-2.03150240, -2.68302940, -5.38626492, -17.2991605, -44.7586581, -63.9201063]
)
_RHO_VAP_EXPONENTS = np.array([2.0, 4.0, 8.0, 18.0, 37.0, 71.0]) / 6.0
_ALPHA_OFFSET = -1135.905627715
_ALPHA_COEFFS = np.array(
    [-5.65134998e-8, 2690.66631, 127.287297, -135.003439, 0.981825814]
)
_ALPHA_EXPONENTS = np.array([-19.0, 1.0, 4.5, 5.0, 54.5])


@dataclass(frozen=True)
class WaterState:
    temperature: float  # [K]
    pressure: float  # [Pa]
    phase: Phase
    quality: float  # [-]
    density: float = 0.0  # [kg/m^3]
    specific_energy: float = 0.0  # [J/kg]


@dataclass
class EosStatistics:
    """Counters for the fallbacks taken by WaterEOS."""

    calls: int = 0
    table_hits: int = 0
    table_misses: int = 0
    bisection_total: int = 0
    bisection_failures: int = 0
    default_states: int = 0
    quality_disagreements: int = 0

    @property
    def failure_rate(self) -> float:
        if self.bisection_total == 0:
            return 0.0
        return self.bisection_failures / self.bisection_total

    def reset(self):
        for f in fields(self):
            setattr(self, f.name, 0)


@dataclass(frozen=True)
class SaturationSolution:
    temperature: float  # [K]
    quality_energy: float  # Lever rule on u
    quality_volume: float  # Lever rule on v
    iterations: int


def default_state() -> WaterState:
    """Ambient liquid, returned for inputs the closure cannot use."""
    return WaterState(
        temperature=DEFAULT_TEMPERATURE,
        pressure=DEFAULT_PRESSURE,
        phase=Phase.LIQUID,
        quality=0.0,
        density=saturated_liquid_density(DEFAULT_TEMPERATURE),
        specific_energy=saturated_liquid_energy(DEFAULT_TEMPERATURE),
    )


def _clip_saturation_temperature(T: float) -> float:
    return float(min(max(T, T_TRIPLE), T_CRIT))


def _tau(T: float) -> float:
    return 1.0 - _clip_saturation_temperature(T) / T_CRIT


def saturation_pressure(T: float) -> float:
    """Saturation pressure [Pa], Wagner-Pruss form."""
    if T <= T_TRIPLE:
        return P_TRIPLE
    if T >= T_CRIT:
        return P_CRIT
    tau = 1.0 - T / T_CRIT
    return float(P_CRIT * np.exp(T_CRIT / T * np.sum(_PSAT_COEFFS * tau**_PSAT_EXPONENTS)))


def saturation_pressure_derivative(T: float) -> float:
    """dPsat/dT [Pa/K], analytic derivative of the Wagner-Pruss equation."""
    T = _clip_saturation_temperature(T)
    tau = 1.0 - T / T_CRIT
    f = np.sum(_PSAT_COEFFS * tau**_PSAT_EXPONENTS)
    df = np.sum(_PSAT_COEFFS * _PSAT_EXPONENTS * tau ** (_PSAT_EXPONENTS - 1.0))
    p_sat = P_CRIT * np.exp(T_CRIT / T * f)
    return float(-p_sat * (T_CRIT * f / T**2 + df / T))


def saturation_temperature(P: float) -> float:
    """Inverse of saturation_pressure [K]."""
    if P <= P_TRIPLE:
        return T_TRIPLE
    if P >= P_CRIT:
        return T_CRIT
    return float(
        brentq(lambda T: np.log(saturation_pressure(T) / P), T_TRIPLE, T_CRIT, xtol=1e-9)
    )


def saturated_liquid_density(T: float) -> float:
    tau = _tau(T)
    return float(RHO_CRIT * (1.0 + np.sum(_RHO_LIQ_COEFFS * tau**_RHO_LIQ_EXPONENTS)))


def saturated_vapor_density(T: float) -> float:
    tau = _tau(T)
    return float(RHO_CRIT * np.exp(np.sum(_RHO_VAP_COEFFS * tau**_RHO_VAP_EXPONENTS)))


def _alpha(T: float) -> float:
    """Auxiliary quantity alpha [J/kg] of the saturated enthalpy equations."""
    theta = _clip_saturation_temperature(T) / T_CRIT
    return float(1000.0 * (_ALPHA_OFFSET + np.sum(_ALPHA_COEFFS * theta**_ALPHA_EXPONENTS)))


def saturated_liquid_enthalpy(T: float) -> float:
    T = _clip_saturation_temperature(T)
    return _alpha(T) + T / saturated_liquid_density(T) * saturation_pressure_derivative(T)


def saturated_vapor_enthalpy(T: float) -> float:
    T = _clip_saturation_temperature(T)
    return _alpha(T) + T / saturated_vapor_density(T) * saturation_pressure_derivative(T)


def saturated_liquid_energy(T: float) -> float:
    """Specific internal energy of saturated liquid [J/kg]."""
    return saturated_liquid_enthalpy(T) - saturation_pressure(T) / saturated_liquid_density(T)


def saturated_vapor_energy(T: float) -> float:
    """Specific internal energy of saturated vapor [J/kg]."""
    return saturated_vapor_enthalpy(T) - saturation_pressure(T) / saturated_vapor_density(T)


def latent_heat(T: float) -> float:
    return saturated_vapor_enthalpy(T) - saturated_liquid_enthalpy(T)


def liquid_compressibility(T: float) -> float:
    """Isothermal compressibility of liquid water [1/Pa]."""
    return 4.5e-10 + 2.0e-9 * max((T - T_REF) / 300.0, 0.0) ** 3


def compressed_liquid_properties(T: float, P: float) -> Tuple[float, float]:
    """
    Specific volume [m^3/kg] and specific internal energy [J/kg] of liquid at (T, P).

    The volume is v = v_f(T) (1 - kappa(T) (P - Psat(T))). The energy is that
    of the saturated liquid with the same density, at T_f, heated along the
    isochore: u = u_f(T_f) + cv (T - T_f). Since T_f < T every compressed state
    lies on the liquid side of the saturation dome, and `WaterEOS.solve_liquid`
    inverts the pair exactly. Pressures at or below saturation return the
    saturated liquid values.
    """
    overpressure = min(P - saturation_pressure(T), MAX_OVERPRESSURE)
    v_f = 1.0 / saturated_liquid_density(T)
    if overpressure <= 0.0:
        return v_f, saturated_liquid_energy(T)
    v = v_f * (1.0 - liquid_compressibility(T) * overpressure)
    T_f = liquid_saturation_temperature(1.0 / v)
    return v, saturated_liquid_energy(T_f) + CV_LIQUID * (T - T_f)


def liquid_saturation_temperature(rho: float) -> float:
    """Temperature at which the saturated liquid density equals rho [K]."""
    lo, hi = T_TRIPLE, T_CRIT - CRITICAL_MARGIN
    if rho >= saturated_liquid_density(lo):
        return lo
    if rho <= saturated_liquid_density(hi):
        return hi
    return float(
        brentq(lambda T: np.log(saturated_liquid_density(T) / rho), lo, hi, xtol=1e-9)
    )


def vapor_saturation_temperature(rho: float) -> float:
    """Temperature at which the saturated vapor density equals rho [K]."""
    lo, hi = T_TRIPLE, T_CRIT - CRITICAL_MARGIN
    if rho <= saturated_vapor_density(lo):
        return lo
    if rho >= saturated_vapor_density(hi):
        return hi
    return float(
        brentq(lambda T: np.log(saturated_vapor_density(T) / rho), lo, hi, xtol=1e-9)
    )


def superheated_vapor_properties(T: float, P: float) -> Tuple[float, float]:
    """
    Specific volume and specific internal energy of vapor at (T, P). The vapor
    sits on the isochore of the saturated vapor at T_s, with P = Psat(T_s) T / T_s
    and u = u_g(T_s) + cv (T - T_s).
    """
    hi = min(T, T_CRIT - CRITICAL_MARGIN)
    lo = T_TRIPLE

    def residual(T_s):
        return saturation_pressure(T_s) * T / T_s - P

    if hi <= lo or residual(hi) <= 0.0:
        T_s = max(hi, lo)
    elif residual(lo) >= 0.0:
        T_s = lo
    else:
        T_s = brentq(residual, lo, hi, xtol=1e-9)
    v = 1.0 / saturated_vapor_density(T_s)
    u = saturated_vapor_energy(T_s) + CV_VAPOR * (T - T_s)
    return v, u


def two_phase_properties(T: float, quality: float) -> Tuple[float, float]:
    """Specific volume and internal energy of a saturated mixture."""
    v_f = 1.0 / saturated_liquid_density(T)
    v_g = 1.0 / saturated_vapor_density(T)
    u_f = saturated_liquid_energy(T)
    u_g = saturated_vapor_energy(T)
    return v_f + quality * (v_g - v_f), u_f + quality * (u_g - u_f)


def saturation_qualities(T: float, u: float, v: float) -> Tuple[float, float]:
    """Lever-rule qualities (on v, on u) of a state assumed saturated at T."""
    v_f = 1.0 / saturated_liquid_density(T)
    v_g = 1.0 / saturated_vapor_density(T)
    u_f = saturated_liquid_energy(T)
    u_g = saturated_vapor_energy(T)
    return (v - v_f) / (v_g - v_f), (u - u_f) / (u_g - u_f)


def is_physical(state: WaterState) -> bool:
    """True when (T, P) are finite and inside the window the closure is trusted in."""
    T, P = state.temperature, state.pressure
    return bool(
        np.isfinite(T)
        and np.isfinite(P)
        and T_TRIPLE <= T <= MAX_TEMPERATURE
        and 0.0 < P <= MAX_PRESSURE
    )


def round_trip_error(state: WaterState, density: float, specific_energy: float) -> Tuple[float, float]:
    """
    Relative density and energy errors obtained by feeding the closed (T, P)
    back through the forward property functions. Errors above 5% are logged.
    """
    if state.phase == Phase.LIQUID:
        v, u = compressed_liquid_properties(state.temperature, state.pressure)
    elif state.phase == Phase.VAPOR:
        v, u = superheated_vapor_properties(state.temperature, state.pressure)
    else:
        v, u = two_phase_properties(state.temperature, state.quality)
    density_error = abs(1.0 / v - density) / density
    energy_error = abs(u - specific_energy) / max(abs(specific_energy), ENERGY_FLOOR)
    if max(density_error, energy_error) > ROUND_TRIP_TOLERANCE:
        logger.warning(
            f"EOS round-trip error above {ROUND_TRIP_TOLERANCE:.0%} at rho={density:.4g} kg/m^3, "
            f"u={specific_energy:.4g} J/kg: density {density_error:.2%}, energy {energy_error:.2%}"
        )
    return density_error, energy_error


class WaterEOS:
    """
    Closes a control volume from its conserved quantities. Compressed liquid is
    answered from the triangulated table when possible; everything else, and
    every table miss, goes through the saturation-curve bisection and the
    single-phase solves.
    """

    def __init__(self, table=None, use_table: bool = True):
        if table is None and use_table:
            from physics.steam_table import default_compressed_liquid_table

            table = default_compressed_liquid_table()
        self.table = table
        self.stats = EosStatistics()

    def calculate_state(self, mass: float, internal_energy: float, volume: float) -> WaterState:
        self.stats.calls += 1
        if not (
            np.isfinite(mass)
            and np.isfinite(internal_energy)
            and np.isfinite(volume)
            and mass > 0.0
            and volume > 0.0
        ):
            return self._default(f"Invalid EOS input (mass={mass}, U={internal_energy}, V={volume})")

        u = internal_energy / mass
        v = volume / mass
        rho = mass / volume
        if u < saturated_liquid_energy(T_TRIPLE) - ENERGY_MARGIN:
            return self._default(f"Specific energy {u:.6g} J/kg below the triple-point liquid")

        state = None
        if rho > RHO_CRIT and self.table is not None:
            hit = self.table.lookup(u, v)
            if hit is not None:
                self.stats.table_hits += 1
                temperature, pressure = hit
                state = WaterState(temperature, pressure, Phase.LIQUID, 0.0, rho, u)
            else:
                self.stats.table_misses += 1
                logger.debug(f"Compressed-liquid table miss at u={u:.6g}, v={v:.6g}")
        if state is None:
            state = self.solve_analytic(u, v)

        if not is_physical(state):
            return self._default(
                f"State T={state.temperature:.6g} K, P={state.pressure:.6g} Pa out of range "
                f"(rho={rho:.6g} kg/m^3, u={u:.6g} J/kg)"
            )
        return state

    def _default(self, reason: str) -> WaterState:
        self.stats.default_states += 1
        logger.warning(f"{reason}, returning the default state.")
        return default_state()

    def solve_analytic(self, u: float, v: float) -> WaterState:
        rho = 1.0 / v
        solution = self.find_saturation_temperature(u, v)
        if solution is not None:
            if abs(solution.quality_energy - solution.quality_volume) > QUALITY_DISAGREEMENT:
                self.stats.quality_disagreements += 1
                logger.warning(
                    f"Energy quality {solution.quality_energy:.3f} and density quality "
                    f"{solution.quality_volume:.3f} disagree at T={solution.temperature:.2f} K"
                )
            quality = float(np.clip(solution.quality_energy, 0.0, 1.0))
            if QUALITY_EPSILON < quality < 1.0 - QUALITY_EPSILON:
                T = solution.temperature
                return WaterState(T, saturation_pressure(T), Phase.TWO_PHASE, quality, rho, u)

        if rho > RHO_CRIT:
            T, P = self.solve_liquid(u, v)
            return WaterState(T, P, Phase.LIQUID, 0.0, rho, u)
        T, P = self.solve_vapor(u, v)
        return WaterState(T, P, Phase.VAPOR, 1.0, rho, u)

    def find_saturation_temperature(self, u: float, v: float) -> Optional[SaturationSolution]:
        """
        Bisect for the temperature at which the density and energy lever rules
        give the same quality. None when the saturation curve has no such point
        or the bisection does not converge.
        """
        lo, hi = T_TRIPLE, T_CRIT - CRITICAL_MARGIN

        def mismatch(T):
            x_v, x_u = saturation_qualities(T, u, v)
            return x_v - x_u

        g_lo = mismatch(lo)
        g_hi = mismatch(hi)
        if not (np.isfinite(g_lo) and np.isfinite(g_hi)) or g_lo * g_hi > 0.0:
            return None

        self.stats.bisection_total += 1
        converged = False
        iterations = 0
        for iterations in range(1, MAX_BISECTION_ITERATIONS + 1):
            mid = 0.5 * (lo + hi)
            g_mid = mismatch(mid)
            if not np.isfinite(g_mid):
                break
            if g_lo * g_mid <= 0.0:
                hi = mid
            else:
                lo, g_lo = mid, g_mid
            if hi - lo < BISECTION_TOLERANCE:
                converged = True
                break

        if not converged:
            self.stats.bisection_failures += 1
            logger.debug(
                f"Saturation bisection failed after {iterations} iterations at u={u:.6g}, v={v:.6g}"
            )
            return None

        T = 0.5 * (lo + hi)
        x_v, x_u = saturation_qualities(T, u, v)
        return SaturationSolution(T, x_u, x_v, iterations)

    def solve_liquid(self, u: float, v: float) -> Tuple[float, float]:
        """
        Temperature and pressure of compressed liquid with specific (u, v):
        walk up the isochore from the saturated liquid of the same density,
        then read the overpressure off the compressibility.
        """
        T_f = liquid_saturation_temperature(1.0 / v)
        T = max(T_f + (u - saturated_liquid_energy(T_f)) / CV_LIQUID, T_TRIPLE)
        v_f = 1.0 / saturated_liquid_density(T)
        overpressure = (1.0 - v / v_f) / liquid_compressibility(T)
        if overpressure < 0.0:
            # below the saturated liquid energy of this density
            logger.debug(f"Liquid solve below saturation at u={u:.6g}, v={v:.6g}, T={T:.2f} K")
        overpressure = min(max(overpressure, 0.0), MAX_OVERPRESSURE)
        return float(T), float(saturation_pressure(T) + overpressure)

    def solve_vapor(self, u: float, v: float) -> Tuple[float, float]:
        """Temperature and pressure of superheated vapor with specific (u, v)."""
        T_s = vapor_saturation_temperature(1.0 / v)
        T = max(T_s + (u - saturated_vapor_energy(T_s)) / CV_VAPOR, T_TRIPLE)
        return float(T), float(saturation_pressure(T_s) * T / T_s)

    def get_bisection_stats(self) -> EosStatistics:
        return EosStatistics(**{f.name: getattr(self.stats, f.name) for f in fields(self.stats)})

    def reset_bisection_stats(self):
        self.stats.reset()


def calculate_state(mass: float, internal_energy: float, volume: float) -> WaterState:
    """Close a single control volume with a fresh WaterEOS."""
    return WaterEOS().calculate_state(mass, internal_energy, volume)
