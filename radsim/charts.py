"""PNG charts for a finished run, drawn from the recorder's tables."""
from __future__ import annotations

from pathlib import Path
from typing import Dict

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402


def _save(fig, path: Path) -> Path:
    fig.tight_layout()
    fig.savefig(path, dpi=100)
    plt.close(fig)
    return path


def plot_balances(sim: pd.DataFrame, path: Path) -> Path:
    fig, ax = plt.subplots(figsize=(8, 6))
    t = (sim["time"] - sim["time"].iloc[0]) / 1000.0 if len(sim) else sim["time"]
    ax.plot(t, sim["source_balance"], color="red", label="Source Balance")
    ax.plot(t, sim["environment_balance"], color="blue", label="Environment Balance")
    ax.set_xlabel("Time [s]")
    ax.set_ylabel("Balance")
    ax.legend()
    return _save(fig, path)


def plot_levels(final_levels: np.ndarray, path: Path) -> Path:
    fig, ax = plt.subplots(figsize=(8, 6))
    idx = np.arange(1, final_levels.size + 1)
    ax.bar(idx, final_levels, color="blue", label="Environment Balance by Level")
    ax.set_xlabel("Level")
    ax.set_ylabel("Balance")
    ax.legend()
    return _save(fig, path)


def plot_level_trajectories(levels: pd.DataFrame, path: Path) -> Path:
    """One line per level: its balance after every recorded step."""
    wide = levels.pivot(index="step", columns="level", values="balance").sort_index()
    fig, ax = plt.subplots(figsize=(8, 6))
    n = max(1, wide.shape[1])
    for i, col in enumerate(wide.columns):
        ax.plot(wide.index, wide[col], color=plt.cm.hsv(i / n), linewidth=0.8)
    ax.set_xlabel("Step")
    ax.set_ylabel("Balance")
    return _save(fig, path)


def render_run_charts(recorder) -> Dict[str, Path]:
    """
    Render every chart the run's tables support into recorder.charts_dir.
    Call after recorder.flush()/finalize() so the tables are on disk.
    """
    out: Dict[str, Path] = {}
    out_dir = Path(recorder.charts_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    sim = recorder.read_table("simulation")
    if len(sim):
        out["balances"] = plot_balances(sim, out_dir / "simulation_chart.png")

    levels = recorder.read_table("levels")
    if len(levels):
        last = levels[levels["step"] == levels["step"].max()].sort_values("level")
        out["levels"] = plot_levels(last["balance"].to_numpy(), out_dir / "level_chart.png")
        out["level_time"] = plot_level_trajectories(levels, out_dir / "level_time_chart.png")
    return out
