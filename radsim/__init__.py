"""
radsim core package.

Contains:
- emission : Stefan-Boltzmann surface area / rate / amount
- kappa    : kappa-surrogate sampler + normalization for level splits
- state    : Source / Environment entities and the advance() update rule
- config   : SimCfg / RunCfg / IoCfg and JSON/TOML loading
- clock    : wall and logical time sources
- engine   : tick-driven driver loop
- recorder : CSV/Parquet table recorder
- observer : level statistics logger
- charts   : PNG charts
- catalog  : DuckDB run catalog
- runner   : CLI entrypoint
"""

# Public API
from .config import SimCfg, RunCfg, IoCfg, load_config
from .state import (
    Source,
    Environment,
    SimulationState,
    StepResult,
    advance,
    initialize_environment,
    initialize_source,
)
from .engine import Engine
from .runner import run

__all__ = [
    "SimCfg", "RunCfg", "IoCfg", "load_config",
    "Source", "Environment", "SimulationState", "StepResult",
    "advance", "initialize_environment", "initialize_source",
    "Engine", "run",
]
