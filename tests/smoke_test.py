from __future__ import annotations
import json
from pathlib import Path

import duckdb
import pandas as pd
import pytest

from radsim.catalog import update_catalog
from radsim.charts import render_run_charts
from radsim.clock import LogicalClock, WallClock
from radsim.config import RunCfg, SimCfg
from radsim.engine import Engine
from radsim.errors import OutputExistsError
from radsim.recorder import RunRecorder


@pytest.mark.quick
def test_end_to_end_smoke(tmp_path: Path) -> None:
    """
    End-to-end smoke test:
      Engine.run() -> simulation/levels tables + manifest
      -> observer stats
      -> charts
      -> DuckDB catalog
    """
    data_root = tmp_path / "data"
    run_id = "RADSIM_SMOKE_TEST"
    steps = 25
    levels = 20

    sim_cfg = SimCfg(emission_scale_divisor=1e12, level_count=levels, seed=1)
    run_cfg = RunCfg(max_steps=steps, flush_every=10, log_every=5)

    rec = RunRecorder(data_root=data_root, run_id=run_id)
    engine = Engine(sim_cfg, run_cfg, rec)
    summary = engine.run()

    assert summary["steps"] == steps
    assert summary["reason"] == "max_steps"
    assert summary["source_balance"] + summary["environment_balance"] == pytest.approx(1000.0, rel=1e-12)

    run_dir = data_root / "runs" / run_id
    sim = pd.read_csv(run_dir / "tables" / "simulation.csv")
    assert list(sim.columns) == ["step", "time", "source_balance", "environment_balance", "emitted", "status"]
    assert len(sim) == steps
    assert sim["step"].tolist() == list(range(steps))
    assert (sim["environment_balance"].diff().dropna() >= 0).all()
    assert (sim["source_balance"].diff().dropna() <= 0).all()
    assert set(sim["status"]) == {"ok"}

    # level snapshots at steps 9, 19 and the final step 24
    lv = pd.read_csv(run_dir / "tables" / "levels.csv")
    assert sorted(lv["step"].unique().tolist()) == [9, 19, 24]
    assert len(lv) == 3 * levels
    assert lv["level"].min() == 1 and lv["level"].max() == levels
    final = lv[lv["step"] == 24]["balance"].sum()
    assert final == pytest.approx(sim["environment_balance"].iloc[-1], rel=1e-9)

    manifest = json.loads((run_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["run_id"] == run_id
    assert manifest["tables"]["simulation"]["rows"] == steps
    assert manifest["tables"]["levels"]["rows"] == 3 * levels
    assert (run_dir / "run_meta.json").exists()

    obs = pd.read_csv(run_dir / "observer_stats.csv")
    assert obs["step"].tolist() == [0, 5, 10, 15, 20]
    assert (obs["level_drift"].abs() < 1e-9).all()

    charts = render_run_charts(rec)
    assert set(charts) == {"balances", "levels", "level_time"}
    for p in charts.values():
        assert p.exists() and p.stat().st_size > 0

    catalog = tmp_path / "catalog.duckdb"
    assert update_catalog(catalog, run_dir) == run_id
    # re-registering replaces rather than duplicates
    update_catalog(catalog, run_dir)
    con = duckdb.connect(str(catalog))
    try:
        assert con.execute("SELECT COUNT(*) FROM runs").fetchone()[0] == 1
        rows = dict(con.execute(
            "SELECT table_name, row_count FROM table_rows WHERE run_id = ?", [run_id]
        ).fetchall())
        assert rows == {"levels": 3 * levels, "simulation": steps}
    finally:
        con.close()


@pytest.mark.quick
def test_parquet_recording(tmp_path: Path) -> None:
    rec = RunRecorder(tmp_path, "PQ", fmt="parquet")
    engine = Engine(SimCfg(emission_scale_divisor=1e12, level_count=4, seed=2),
                    RunCfg(max_steps=12, flush_every=5), rec)
    engine.run()

    shards = sorted(p.name for p in rec.tables_dir.glob("simulation_*.parquet"))
    assert shards == ["simulation_0001.parquet", "simulation_0002.parquet", "simulation_0003.parquet"]
    sim = rec.read_table("simulation")
    assert len(sim) == 12
    lv = rec.read_table("levels")
    assert sorted(lv["step"].unique().tolist()) == [4, 9, 11]


@pytest.mark.quick
def test_engine_stops_when_depleted(tmp_path: Path) -> None:
    rec = RunRecorder(tmp_path, "DRAIN")
    engine = Engine(SimCfg(emission_scale_divisor=1.0, level_count=5, seed=3),
                    RunCfg(max_steps=None), rec, clock=LogicalClock(step_ms=1000.0))
    summary = engine.run()

    assert summary["reason"] == "depleted"
    assert summary["steps"] == 1
    assert summary["source_balance"] == 0.0
    assert summary["environment_balance"] == pytest.approx(1000.0)
    sim = rec.read_table("simulation")
    assert sim["status"].tolist() == ["depleted"]
    assert len(rec.read_table("levels")) == 5


@pytest.mark.quick
def test_engine_without_levels_writes_no_level_table(tmp_path: Path) -> None:
    rec = RunRecorder(tmp_path, "NOLEVELS")
    Engine(SimCfg(level_count=0, seed=4), RunCfg(max_steps=3), rec).run()
    assert rec.tables == ["simulation"]
    assert not list(rec.tables_dir.glob("levels*"))
    assert set(render_run_charts(rec)) == {"balances"}


@pytest.mark.quick
def test_external_stop_request(tmp_path: Path) -> None:
    calls = {"n": 0}

    def stop() -> bool:
        calls["n"] += 1
        return calls["n"] > 4

    engine = Engine(SimCfg(level_count=3, seed=5), RunCfg(max_steps=None), None, should_stop=stop)
    summary = engine.run()
    assert summary["reason"] == "stopped"
    assert summary["steps"] == 4


@pytest.mark.quick
def test_recorder_refuses_to_clobber(tmp_path: Path) -> None:
    rec = RunRecorder(tmp_path, "SAME")
    Engine(SimCfg(level_count=2, seed=6), RunCfg(max_steps=2), rec).run()

    with pytest.raises(OutputExistsError):
        RunRecorder(tmp_path, "SAME")

    rec2 = RunRecorder(tmp_path, "SAME", overwrite=True)
    assert not list(rec2.tables_dir.iterdir())


@pytest.mark.quick
def test_realtime_engine_paces_on_wall_clock() -> None:
    sim_cfg = SimCfg(emission_scale_divisor=1e12, level_count=5, seed=8)
    engine = Engine(sim_cfg, RunCfg(tick_ms=1.0, max_steps=3, realtime=True))
    assert isinstance(engine.clock, WallClock)

    start = engine.state.source.last_update_time
    times = [engine.step().time for _ in range(3)]
    assert times[0] > start
    assert times == sorted(times)
    # each tick sleeps tick_ms before reading the clock
    assert times[-1] - start > 2.0
    assert engine.state.environment.balance > 0.0

    summary = Engine(sim_cfg, RunCfg(tick_ms=1.0, max_steps=3, realtime=True)).run()
    assert summary["steps"] == 3
    assert summary["reason"] == "max_steps"
