# radsim/state.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np

from .config import SimCfg
from .emission import emission_amount, source_emission_rate
from .kappa import level_weights, make_rng

logger = logging.getLogger(__name__)

StepStatus = Literal[
    "ok",          # normal transfer
    "clock_skew",  # time went backwards; nothing emitted
    "depleted",    # emission clamped to the remaining balance; source is now empty
]


# ============================================================
# Entities
# ============================================================

@dataclass
class Source:
    """
    Finite reservoir radiating its balance away.
    Times are milliseconds on whatever monotonic clock the driver uses.
    """
    balance: float
    emission_rate: float
    last_update_time: float
    initial_supply: float

    @property
    def depleted(self) -> bool:
        return self.balance <= 0.0


@dataclass
class Environment:
    """
    Sink accumulating everything the source emits.
    levels is None when level tracking is disabled.
    """
    balance: float = 0.0
    levels: Optional[np.ndarray] = None


@dataclass(frozen=True)
class StepResult:
    """Plain snapshot of one tick, safe to hand to recorders."""
    time: float
    elapsed_seconds: float
    emitted: float
    source_balance: float
    environment_balance: float
    emission_rate: float
    levels: Optional[np.ndarray]
    status: StepStatus = "ok"


def initialize_source(initial_supply: float, now: float = 0.0, cfg: SimCfg | None = None) -> Source:
    cfg = cfg or SimCfg()
    supply = float(initial_supply)
    if not supply > 0.0:
        raise ValueError(f"initial_supply must be > 0, got {initial_supply!r}")
    return Source(
        balance=supply,
        emission_rate=source_emission_rate(supply, cfg),
        last_update_time=float(now),
        initial_supply=supply,
    )


def initialize_environment(level_count: int = 0) -> Environment:
    """level_count=0 disables level tracking entirely."""
    n = int(level_count)
    if n < 0:
        raise ValueError("level_count must be >= 0")
    return Environment(balance=0.0, levels=np.zeros(n, dtype=np.float64) if n > 0 else None)


# ============================================================
# Update rule
# ============================================================

def advance(
    source: Source,
    environment: Environment,
    current_time: float,
    cfg: SimCfg,
    rng: np.random.Generator,
) -> StepResult:
    """
    Move the energy radiated since source.last_update_time from source to environment.

      1. elapsed = (current_time - last_update_time) / 1000
      2. emitted = emission_amount(...), clamped to the source balance
      3. source.balance -= emitted, environment.balance += emitted
      4. levels[i] += emitted * w[i] with w a fresh normalized kappa draw
      5. last_update_time = current_time

    Weights are drawn before any mutation, so a DegenerateSampleError leaves
    both entities untouched.
    """
    now = float(current_time)
    elapsed = (now - source.last_update_time) / 1000.0
    status: StepStatus = "ok"

    if elapsed < 0.0:
        logger.warning(
            "Clock went backwards by %.6fs (last=%s, now=%s); emitting nothing this tick",
            -elapsed, source.last_update_time, now,
        )
        status = "clock_skew"
        emitted = 0.0
    else:
        emitted = emission_amount(source, elapsed, cfg)
        if source.balance > 0.0 and emitted >= source.balance:
            logger.info("Emission %.6g exceeds balance %.6g; clamping, source depleted",
                        emitted, source.balance)
            emitted = source.balance
            status = "depleted"

    weights = None
    if environment.levels is not None and emitted > 0.0:
        weights = level_weights(cfg.kappa, environment.levels.size, rng,
                                max_retries=cfg.max_sample_retries)

    # apply
    if status == "depleted":
        source.balance = 0.0
    else:
        source.balance -= emitted
    environment.balance += emitted
    if weights is not None:
        environment.levels += emitted * weights

    source.emission_rate = source_emission_rate(source.balance, cfg)
    source.last_update_time = now

    return StepResult(
        time=now,
        elapsed_seconds=max(0.0, elapsed),
        emitted=emitted,
        source_balance=source.balance,
        environment_balance=environment.balance,
        emission_rate=source.emission_rate,
        levels=None if environment.levels is None else environment.levels.copy(),
        status=status,
    )


class SimulationState:
    """
    One run's entities plus the config and RNG that drive them.
    Not safe for concurrent callers; independent instances share nothing.
    """
    def __init__(self, cfg: SimCfg | None = None, now: float = 0.0,
                 rng: np.random.Generator | None = None) -> None:
        self.cfg = cfg or SimCfg()
        self.rng = rng if rng is not None else make_rng(self.cfg)
        self.source = initialize_source(self.cfg.initial_supply, now=now, cfg=self.cfg)
        self.environment = initialize_environment(self.cfg.level_count)

    @property
    def depleted(self) -> bool:
        return self.source.depleted

    def advance(self, current_time: float) -> StepResult:
        return advance(self.source, self.environment, current_time, self.cfg, self.rng)
