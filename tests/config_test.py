from __future__ import annotations
import json
from pathlib import Path

import pytest

from radsim.config import (
    IoCfg,
    RunCfg,
    SimCfg,
    configs_from_dict,
    load_config,
    to_dict,
)
from radsim.errors import ConfigurationError

REPO = Path(__file__).resolve().parents[1]


@pytest.mark.quick
def test_defaults_match_reference_values() -> None:
    sim, run, io = configs_from_dict({})
    assert sim.stefan_boltzmann == 5.670374419e-8
    assert sim.emission_scale_divisor == 4.65e20
    assert sim.kappa == 3.5
    assert sim.level_count == 100
    assert run.tick_ms == 1000.0
    assert run.flush_every == 10
    assert io.format == "csv"


@pytest.mark.quick
def test_load_toml_and_json(tmp_path: Path) -> None:
    toml_path = tmp_path / "cfg.toml"
    toml_path.write_text('[sim]\nkappa = 2.0\nlevel_count = 0\n[run]\nmax_steps = 5\n', encoding="utf-8")
    sim, run, io = load_config(toml_path)
    assert sim.kappa == 2.0 and sim.level_count == 0
    assert run.max_steps == 5
    assert io == IoCfg()

    json_path = tmp_path / "cfg.json"
    json_path.write_text(json.dumps({"io": {"format": "parquet"}}), encoding="utf-8")
    _, _, io = load_config(json_path)
    assert io.format == "parquet"


@pytest.mark.quick
def test_shipped_example_config_loads() -> None:
    sim, run, io = load_config(REPO / "examples" / "default.toml")
    assert sim.level_count == 100
    assert run.max_steps == 600


@pytest.mark.quick
@pytest.mark.parametrize("payload", [
    {"sim": {"kapa": 3.0}},
    {"physics": {}},
    {"sim": {"kappa": 0.0}},
    {"sim": {"emission_scale_divisor": -1.0}},
    {"sim": {"level_count": -3}},
    {"run": {"tick_ms": 0}},
    {"run": {"flush_every": 0}},
    {"io": {"format": "xlsx"}},
    {"io": {"on_exists": "maybe"}},
])
def test_invalid_configs_rejected(payload) -> None:
    with pytest.raises(ConfigurationError):
        configs_from_dict(payload)


@pytest.mark.quick
def test_unsupported_file_type(tmp_path: Path) -> None:
    p = tmp_path / "cfg.yaml"
    p.write_text("sim: {}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(p)
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.toml")


@pytest.mark.quick
def test_to_dict_round_trips_through_sections() -> None:
    cfgs = (SimCfg(seed=3), RunCfg(max_steps=7), IoCfg(run_id="X"))
    assert configs_from_dict(to_dict(*cfgs)) == cfgs
