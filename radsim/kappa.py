# radsim/kappa.py
from __future__ import annotations
import logging
from typing import Any, Iterable

import numpy as np

from .errors import DegenerateSampleError

logger = logging.getLogger(__name__)


# ============================================================
# RNG
# ============================================================

def _stable_seed_from(items: Iterable[Any]) -> int:
    """
    Deterministic 63-bit seed from a tuple of hashables.
    """
    import hashlib, struct
    h = hashlib.blake2b(repr(tuple(items)).encode("utf-8"), digest_size=8).digest()
    return struct.unpack("<Q", h)[0] & ((1 << 63) - 1)


def make_rng(cfg) -> np.random.Generator:
    """
    Generator for a SimCfg. An explicit seed wins; otherwise the seed is
    derived from the physics signature so identical configs replay identically.
    """
    seed = cfg.seed
    if seed is None:
        seed = _stable_seed_from(("kappa", cfg.kappa, cfg.level_count, cfg.initial_supply,
                                  cfg.emission_scale_divisor, cfg.stefan_boltzmann))
    return np.random.default_rng(int(seed))


# ============================================================
# Sampler
# ============================================================

def _open_uniform(rng, shape, max_retries: int) -> np.ndarray:
    """
    Uniform draws in the open interval (0, 1).
    Generator.random() is half-open [0, 1); exact zeros are redrawn.
    """
    u = np.asarray(rng.random(shape), dtype=np.float64)
    for _ in range(max_retries):
        bad = u <= 0.0
        if not np.any(bad):
            return u
        u[bad] = np.asarray(rng.random(int(np.count_nonzero(bad))), dtype=np.float64)
    if np.any(u <= 0.0):
        raise DegenerateSampleError(
            f"uniform draw stayed at 0 after {max_retries} retries"
        )
    return u


def kappa_sample(kappa: float, count: int, rng, max_retries: int = 8) -> np.ndarray:
    """
    Heavy-tailed kappa surrogate.

    For each output draw u, v, w in (0, 1), map each through
    t -> t^(-1/kappa) - 1 and emit the mean of the three. This is not an
    inverse-CDF kappa sampler; only the relative magnitudes matter downstream.
    """
    if not kappa > 0:
        raise ValueError("kappa must be > 0")
    count = int(count)
    if count < 0:
        raise ValueError("count must be >= 0")
    if count == 0:
        return np.zeros((0,), dtype=np.float64)

    uvw = _open_uniform(rng, (count, 3), max_retries)
    xyz = np.power(uvw, -1.0 / float(kappa)) - 1.0
    return xyz.sum(axis=1) / 3.0


def normalize(samples) -> np.ndarray:
    """
    Scale samples to sum to 1.
    A non-positive or non-finite sum falls back to the uniform 1/n split.
    """
    s = np.asarray(samples, dtype=np.float64)
    n = s.size
    if n == 0:
        return s.copy()
    total = float(np.sum(s))
    if not np.isfinite(total) or total <= 0.0 or not np.all(np.isfinite(s)):
        logger.warning("Degenerate sample sum %r over %d values; using uniform split", total, n)
        return np.full(n, 1.0 / n, dtype=np.float64)
    return s / total


def level_weights(kappa: float, count: int, rng, max_retries: int = 8) -> np.ndarray:
    """Fresh normalized kappa weights for `count` levels."""
    return normalize(kappa_sample(kappa, count, rng, max_retries=max_retries))
