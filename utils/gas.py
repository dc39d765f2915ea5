# utils/gas.py
# helpers for non-condensible gas inventories (species -> moles)

from typing import Dict, Iterable, Mapping
from utils.states import GasSpecies

# MAGIC CONSTANTS
R_GAS = 8.31446  # Universal gas constant [J/mol-K]
AIR = "air"  # Deck key for a dry-air charge
AIR_FRACTIONS = {GasSpecies.N2: 0.7808, GasSpecies.O2: 0.2095, GasSpecies.AR: 0.0093}

MOLAR_MASS = {  # [kg/mol]
    GasSpecies.N2: 0.028014,
    GasSpecies.O2: 0.031998,
    GasSpecies.H2: 0.002016,
    GasSpecies.HE: 0.004003,
    GasSpecies.CO: 0.028010,
    GasSpecies.CO2: 0.044009,
    GasSpecies.XE: 0.131293,
    GasSpecies.AR: 0.039948,
}


def empty_composition() -> Dict[GasSpecies, float]:
    return {species: 0.0 for species in GasSpecies}


def parse_species(name: str) -> GasSpecies:
    """Look up a species by its chemical symbol, case-insensitively."""
    for species in GasSpecies:
        if species.value.lower() == str(name).lower():
            return species
    raise ValueError(
        f"Unknown gas species: {name}. Valid species are {[s.value for s in GasSpecies]}."
    )


def total_moles(composition: Mapping[GasSpecies, float]) -> float:
    return float(sum(composition.values()))


def total_gas_mass(composition: Mapping[GasSpecies, float]) -> float:
    return float(sum(MOLAR_MASS[s] * n for s, n in composition.items()))


def moles_from_partial_pressure(
    partial_pressure: float, volume: float, temperature: float
) -> float:
    """Ideal-gas inventory n = pV / RT."""
    if temperature <= 0 or volume <= 0:
        return 0.0
    return partial_pressure * volume / (R_GAS * temperature)


def partial_pressure(moles: float, volume: float, temperature: float) -> float:
    if volume <= 0:
        return 0.0
    return moles * R_GAS * temperature / volume


def air_composition(
    pressure: float, volume: float, temperature: float
) -> Dict[GasSpecies, float]:
    """Moles of dry air at the given total pressure, volume and temperature."""
    moles = moles_from_partial_pressure(pressure, volume, temperature)
    composition = empty_composition()
    for species, fraction in AIR_FRACTIONS.items():
        composition[species] = moles * fraction
    return composition


def add_compositions(
    compositions: Iterable[Mapping[GasSpecies, float]],
) -> Dict[GasSpecies, float]:
    total = empty_composition()
    for composition in compositions:
        for species, moles in composition.items():
            total[species] = total.get(species, 0.0) + moles
    return total


def composition_from_partial_pressures(
    partial_pressures: Mapping[str, float], volume: float, temperature: float
) -> Dict[GasSpecies, float]:
    """
    Inventory of a gas charge given as partial pressures keyed by species
    symbol, or by "air" for dry air. Species absent from the charge are left out.
    """
    parts = []
    for name, pressure in partial_pressures.items():
        if str(name).lower() == AIR:
            parts.append(air_composition(pressure, volume, temperature))
        else:
            parts.append({parse_species(name): moles_from_partial_pressure(pressure, volume, temperature)})
    return {species: moles for species, moles in add_compositions(parts).items() if moles > 0.0}
