# radsim/emission.py
from __future__ import annotations
import math

import numpy as np

from .config import SimCfg, STEFAN_BOLTZMANN
from .errors import InvalidVolumeError


# ============================================================
# Geometry
# ============================================================

def surface_area(volume: float) -> float:
    """
    Surface area of a sphere holding `volume`.

    radius = cbrt(volume / (4/3 pi)), area = 4 pi radius^2.
    Raises InvalidVolumeError for volume <= 0 or non-finite input.
    """
    v = float(volume)
    if not math.isfinite(v) or v <= 0.0:
        raise InvalidVolumeError(f"volume must be finite and > 0, got {volume!r}")
    radius = float(np.cbrt(v / ((4.0 / 3.0) * np.pi)))
    return 4.0 * np.pi * radius ** 2


# ============================================================
# Radiation
# ============================================================

def emission_rate(
    area: float,
    temperature: float,
    scale_divisor: float,
    sigma: float = STEFAN_BOLTZMANN,
) -> float:
    """
    Scaled Stefan-Boltzmann power: sigma * area * T^4 / scale_divisor.
    Overflows to inf for huge temperatures; advance() clamps that to the balance.
    """
    t = float(temperature)
    return sigma * float(area) * (t * t * t * t) / float(scale_divisor)


def source_emission_rate(balance: float, cfg: SimCfg) -> float:
    """
    Instantaneous rate of a source with the given balance.
    The balance doubles as both the radiating volume and the surface temperature.
    A depleted source radiates nothing.
    """
    if balance <= 0.0:
        return 0.0
    return emission_rate(
        surface_area(balance), balance,
        cfg.emission_scale_divisor, sigma=cfg.stefan_boltzmann,
    )


def emission_amount(source, elapsed_seconds: float, cfg: SimCfg) -> float:
    """
    Energy radiated by `source` over `elapsed_seconds`.

    Never negative: elapsed <= 0 (clock skew, repeated timestamp) yields 0.
    The result is not clamped to the source balance; advance() owns that.
    """
    dt = float(elapsed_seconds)
    if not dt > 0.0:
        return 0.0
    return source_emission_rate(source.balance, cfg) * dt


def maxwell_boltzmann_probability(energy: float, temperature: float) -> float:
    """
    sqrt(E / (pi T^3)) * exp(-E / T), the Maxwell-Boltzmann energy density
    in units where k_B = 1.
    """
    if temperature <= 0.0:
        raise ValueError("temperature must be > 0")
    if energy < 0.0:
        raise ValueError("energy must be >= 0")
    return math.sqrt(energy / (math.pi * temperature ** 3)) * math.exp(-energy / temperature)
