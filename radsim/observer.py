# radsim/observer.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict, Any
import numpy as np
from pathlib import Path


@dataclass
class ObserverCfg:
    """
    Optional observer for level diagnostics.

    Parameters
    ----------
    log_every : int
        Interval of steps at which to compute stats (0 = off).
    out_dir : Optional[str]
        Directory for observer_stats.csv. If None, the run directory is used.
    """
    log_every: int = 0
    out_dir: Optional[str] = None


class LevelObserver:
    """
    Lightweight, headless-safe observer.
    - At chosen intervals, computes stats of environment.levels.
    - level_drift = sum(levels) - environment.balance tracks the partition invariant.
    - Keeps last_stats for programmatic access; finalize() writes a CSV.
    """
    def __init__(self, environment, cfg: ObserverCfg, run_dir: Path) -> None:
        self.environment = environment
        self.cfg = cfg
        self.out_dir = Path(cfg.out_dir or run_dir)

        self.last_stats: Dict[str, Any] = {}
        self._rows: list[Dict[str, Any]] = []
        self._csv_path = self.out_dir / "observer_stats.csv" if cfg.log_every > 0 else None

    @property
    def csv_path(self) -> Optional[Path]:
        return self._csv_path

    def step(self, step: int) -> None:
        if self.cfg.log_every <= 0 or (step % self.cfg.log_every) != 0:
            return
        L = self.environment.levels
        if L is None:
            return

        stats = {
            "step": int(step),
            "mean": float(np.mean(L)),
            "std": float(np.std(L)),
            "min": float(np.min(L)),
            "max": float(np.max(L)),
            "level_drift": float(np.sum(L) - self.environment.balance),
        }
        self.last_stats = stats
        self._rows.append(stats)

    def finalize(self, extra: Dict[str, Any] | None = None) -> None:
        if self._csv_path is None or not self._rows:
            return
        import pandas as pd
        self.out_dir.mkdir(parents=True, exist_ok=True)
        df = pd.DataFrame(self._rows)
        if extra:
            for k, v in extra.items():
                df[k] = v
        df.to_csv(self._csv_path, index=False)
        self._rows.clear()
