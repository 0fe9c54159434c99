from __future__ import annotations

"""
Headless runner for radsim.

Responsibilities
- Load a config (JSON/TOML), apply CLI overrides, choose/normalize a run_id.
- Resolve collisions with existing outputs (ask, overwrite, rename, abort).
- Drive the Engine, then render charts and register the run in the DuckDB catalog.
- Emit clear, machine-parseable logs and non-zero exit codes on hard failures.
"""

import argparse
import dataclasses
import datetime as _dt
import logging
import signal
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .catalog import update_catalog
from .charts import render_run_charts
from .config import configs_from_dict, load_config, to_dict
from .engine import Engine
from .errors import ConfigurationError, OutputExistsError
from .recorder import RunRecorder, existing_outputs


# ------------------------------ helpers ------------------------------

def _utc() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def _stamp() -> str:
    return _utc().strftime("%Y-%m-%dT%H:%M:%SZ")


def _ts_run_id(prefix: str = "RADSIM") -> str:
    return f"{prefix}_{_utc().strftime('%Y%m%dT%H%M%SZ')}"


def _echo(level: str, msg: str) -> None:
    print(f"[{_stamp()}] [{level}] {msg}", flush=True)


def resolve_run_id(
    data_root: Path,
    run_id: str,
    policy: str,
    ask: Callable[[str], str] = input,
) -> tuple[str, bool]:
    """
    Decide where a run may write. Returns (run_id, overwrite).

      overwrite : reuse run_id, existing tables are replaced
      rename    : new run_id with a UTC timestamp suffix (plus _2, _3, ... if that is taken too)
      ask       : prompt y/n; anything but 'y' declines
      abort     : refuse
    Raises OutputExistsError when the policy declines.
    """
    clashes = existing_outputs(data_root, run_id)
    if not clashes:
        return run_id, False
    if policy == "overwrite":
        return run_id, True
    if policy == "rename":
        stamped = f"{run_id}_{_utc().strftime('%Y-%m-%dT%H-%M-%S')}"
        renamed, n = stamped, 1
        while existing_outputs(data_root, renamed):
            n += 1
            renamed = f"{stamped}_{n}"
        _echo("WARN", f"outputs for '{run_id}' exist; writing to '{renamed}' instead")
        return renamed, False
    if policy == "ask":
        answer = ask(f'Outputs for run "{run_id}" already exist. Do you want to overwrite them? (y/n): ')
        if answer.strip().lower() == "y":
            return run_id, True
    raise OutputExistsError(
        f"outputs for run '{run_id}' already exist; save them elsewhere or choose another run id"
    )


class _StopFlag:
    """SIGINT sets the flag; the engine finishes the current tick and finalizes."""
    def __init__(self) -> None:
        self.set = False

    def __call__(self) -> bool:
        return self.set

    def _handler(self, signum, frame) -> None:
        self.set = True


# ------------------------------ main flow ------------------------------

def run(
    config_path: Optional[Path] = None,
    *,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
    ask: Callable[[str], str] = input,
) -> Dict[str, Any]:
    """
    Execute a simulation run end to end. Returns the engine summary plus run_id/run_dir.
    `overrides` are merged per section ("sim", "run", "io") over the config file.
    """
    if config_path is not None:
        sim_cfg, run_cfg, io_cfg = load_config(config_path)
        base = to_dict(sim_cfg, run_cfg, io_cfg)
    else:
        base = {}
    for section, values in (overrides or {}).items():
        base.setdefault(section, {}).update({k: v for k, v in values.items() if v is not None})
    sim_cfg, run_cfg, io_cfg = configs_from_dict(base)

    data_root = Path(io_cfg.data_root)
    run_id, overwrite = resolve_run_id(data_root, io_cfg.run_id or _ts_run_id(), io_cfg.on_exists, ask)

    _echo("RUN", f"run_id={run_id}")
    _echo("INFO", f"data_root={data_root}")
    if config_path is not None:
        _echo("INFO", f"config={config_path}")

    recorder = RunRecorder(
        data_root, run_id, fmt=io_cfg.format, overwrite=overwrite,
        meta={"config": to_dict(sim_cfg, run_cfg, dataclasses.replace(io_cfg, run_id=run_id))},
    )

    stop = _StopFlag()
    previous = signal.signal(signal.SIGINT, stop._handler) if run_cfg.realtime else None
    try:
        engine = Engine(sim_cfg, run_cfg, recorder, should_stop=stop)
        summary = engine.run()
    except Exception as e:
        _echo("FATAL", f"Engine failed: {type(e).__name__}: {e}")
        raise
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    _echo("OK", f"steps={summary['steps']} reason={summary['reason']} "
                f"source={summary['source_balance']:.9g} environment={summary['environment_balance']:.9g}")

    if io_cfg.charts:
        try:
            charts = render_run_charts(recorder)
            _echo("OK", f"charts: {', '.join(sorted(charts)) or 'none'}")
        except Exception as e:
            _echo("ERROR", f"Chart rendering failed: {type(e).__name__}: {e}")
            # Do not raise; the tables are already written.

    if io_cfg.catalog:
        update_catalog(Path(io_cfg.catalog), recorder.run_dir)
        _echo("OK", f"catalog updated: {io_cfg.catalog}")

    _echo("DONE", f"run_id={run_id}")
    summary.update({"run_id": run_id, "run_dir": str(recorder.run_dir)})
    return summary


# ------------------------------ CLI ------------------------------

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="radsim headless runner")
    ap.add_argument("--config", default=None, help="Path to simulation config (JSON/TOML)")
    ap.add_argument("--data_root", default=None, help="Data root (default: data)")
    ap.add_argument("--run_id", default=None, help="Override run id (default: timestamped)")
    ap.add_argument("--steps", type=int, default=None, help="Maximum number of ticks")
    ap.add_argument("--seed", type=int, default=None, help="RNG seed")
    ap.add_argument("--levels", type=int, default=None, help="Environment level count (0 = off)")
    ap.add_argument("--format", choices=["csv", "parquet"], default=None)
    ap.add_argument("--on-exists", dest="on_exists",
                    choices=["ask", "overwrite", "rename", "abort"], default=None)
    ap.add_argument("--realtime", action="store_true", help="Pace ticks on the wall clock")
    ap.add_argument("--no-charts", action="store_true", help="Skip PNG chart rendering")
    ap.add_argument("--catalog", default=None, help="DuckDB catalog to register the run in")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )
    overrides = {
        "sim": {"seed": args.seed, "level_count": args.levels},
        "run": {"max_steps": args.steps, "realtime": True if args.realtime else None},
        "io": {
            "data_root": args.data_root, "run_id": args.run_id, "format": args.format,
            "on_exists": args.on_exists, "catalog": args.catalog,
            "charts": False if args.no_charts else None,
        },
    }
    try:
        run(Path(args.config) if args.config else None, overrides=overrides)
    except OutputExistsError as e:
        _echo("ABORT", str(e))
        return 1
    except ConfigurationError as e:
        _echo("FATAL", f"Bad configuration: {e}")
        return 2
    except Exception:
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
