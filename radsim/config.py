from __future__ import annotations

"""
Configuration for radsim runs.

Three frozen dataclasses, one per concern:
  - SimCfg : physics + sampler knobs consumed by the core (emission, kappa, state)
  - RunCfg : driver loop pacing (Engine)
  - IoCfg  : output layout and overwrite policy (recorder, runner)

Config files are JSON or TOML with optional sections "sim", "run" and "io".
Unknown keys are rejected so that typos do not silently fall back to defaults.
"""

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple

import toml

from .errors import ConfigurationError

STEFAN_BOLTZMANN = 5.670374419e-8   # W m^-2 K^-4
EMISSION_SCALE_DIVISOR = 4.65e20    # calibration knob, not a physical constant

OutputFormat = Literal["csv", "parquet"]
OnExists = Literal["ask", "overwrite", "rename", "abort"]


@dataclass(frozen=True)
class SimCfg:
    """
    Core simulation parameters.

    Parameters
    ----------
    stefan_boltzmann : float
        sigma in the emission law.
    emission_scale_divisor : float
        Divides the raw radiated power so emission stays small relative to balances.
    kappa : float
        Shape parameter of the kappa surrogate used for the level split.
    level_count : int
        Number of environment levels; 0 disables level tracking.
    initial_supply : float
        Starting balance of the source.
    seed : Optional[int]
        RNG seed; if None, derived deterministically from the other fields.
    max_sample_retries : int
        Redraw rounds allowed when a uniform draw is exactly zero.
    """
    stefan_boltzmann: float = STEFAN_BOLTZMANN
    emission_scale_divisor: float = EMISSION_SCALE_DIVISOR
    kappa: float = 3.5
    level_count: int = 100
    initial_supply: float = 1000.0
    seed: Optional[int] = None
    max_sample_retries: int = 8

    def __post_init__(self) -> None:
        if not self.emission_scale_divisor > 0:
            raise ConfigurationError("emission_scale_divisor must be > 0")
        if not self.kappa > 0:
            raise ConfigurationError("kappa must be > 0")
        if self.level_count < 0:
            raise ConfigurationError("level_count must be >= 0")
        if not self.initial_supply > 0:
            raise ConfigurationError("initial_supply must be > 0")
        if self.max_sample_retries < 1:
            raise ConfigurationError("max_sample_retries must be >= 1")


@dataclass(frozen=True)
class RunCfg:
    """
    Driver loop pacing.

      - tick_ms:     logical/wall time between ticks in milliseconds
      - max_steps:   hard stop; None = run until the source is depleted (or should_stop)
      - flush_every: recorder flush interval in steps (the original batched 10)
      - realtime:    sleep tick_ms between ticks instead of using a logical clock
      - log_every:   observer interval in steps (0 = off)
    """
    tick_ms: float = 1000.0
    max_steps: Optional[int] = 1000
    flush_every: int = 10
    realtime: bool = False
    log_every: int = 0

    def __post_init__(self) -> None:
        if not self.tick_ms > 0:
            raise ConfigurationError("tick_ms must be > 0")
        if self.max_steps is not None and self.max_steps < 0:
            raise ConfigurationError("max_steps must be >= 0")
        if self.flush_every < 1:
            raise ConfigurationError("flush_every must be >= 1")


@dataclass(frozen=True)
class IoCfg:
    data_root: str = "data"
    run_id: Optional[str] = None
    format: OutputFormat = "csv"
    charts: bool = True
    catalog: Optional[str] = None
    on_exists: OnExists = "ask"

    def __post_init__(self) -> None:
        if self.format not in ("csv", "parquet"):
            raise ConfigurationError(f"unknown output format: {self.format!r}")
        if self.on_exists not in ("ask", "overwrite", "rename", "abort"):
            raise ConfigurationError(f"unknown on_exists policy: {self.on_exists!r}")


# ------------------------------ loading ------------------------------

def _build(cls, section: str, values: Dict[str, Any]):
    names = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(values) - names)
    if unknown:
        raise ConfigurationError(f"unknown keys in [{section}]: {', '.join(unknown)}")
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigurationError(f"[{section}]: {e}") from e


def configs_from_dict(d: Optional[Dict[str, Any]]) -> Tuple[SimCfg, RunCfg, IoCfg]:
    """Build (SimCfg, RunCfg, IoCfg) from a dict with optional sim/run/io sections."""
    d = dict(d or {})
    extra = sorted(set(d) - {"sim", "run", "io"})
    if extra:
        raise ConfigurationError(f"unknown config sections: {', '.join(extra)}")
    return (
        _build(SimCfg, "sim", dict(d.get("sim") or {})),
        _build(RunCfg, "run", dict(d.get("run") or {})),
        _build(IoCfg, "io", dict(d.get("io") or {})),
    )


def load_config(path: str | Path) -> Tuple[SimCfg, RunCfg, IoCfg]:
    """Read a .json or .toml config file."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"config not found: {path}")
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix == ".json":
        raw = json.loads(text)
    elif suffix == ".toml":
        raw = toml.loads(text)
    else:
        raise ConfigurationError(f"unsupported config type '{suffix}' (use .json or .toml)")
    if not isinstance(raw, dict):
        raise ConfigurationError("config root must be a mapping")
    return configs_from_dict(raw)


def to_dict(*cfgs) -> Dict[str, Any]:
    """Flatten config objects into {"sim": {...}, "run": {...}, "io": {...}} for run metadata."""
    out: Dict[str, Any] = {}
    for cfg in cfgs:
        key = {SimCfg: "sim", RunCfg: "run", IoCfg: "io"}[type(cfg)]
        out[key] = dataclasses.asdict(cfg)
    return out
