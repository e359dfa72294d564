import sys
from pathlib import Path
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

import pytest
import yaml

from backtest.engine import KILL_ZONES
from models.params import StrategyMode
from utils.config import (
    grid_from_config,
    load_config,
    mode_from_config,
    params_from_config,
    settings_from_config,
)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_load_config_empty_file(tmp_path):
    p = tmp_path / "empty.yaml"
    p.write_text("", encoding="utf-8")
    assert load_config(str(p)) == {}


def test_repo_config_parses():
    cfg = load_config(str(root / "config.yaml"))
    params = params_from_config(cfg)
    assert params.lookback_period == 20
    assert mode_from_config(cfg) is StrategyMode.PRICE_ACTION
    settings = settings_from_config(cfg)
    assert settings.kill_zones == KILL_ZONES
    assert settings.pips.pip_size == 0.0001
    assert grid_from_config(cfg) is None


def test_params_from_config(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text(yaml.safe_dump({"strategy": {"mode": "ict", "stop_loss_pips": 12, "use_kill_zones": False}}))
    cfg = load_config(str(p))
    params = params_from_config(cfg)
    assert params.stop_loss_pips == 12
    assert params.use_kill_zones is False
    assert params.risk_reward_ratio == 2.0
    assert mode_from_config(cfg) is StrategyMode.ICT


def test_unknown_strategy_key_rejected():
    with pytest.raises(ValueError):
        params_from_config({"strategy": {"stop_los_pips": 12}})


def test_invalid_values_rejected():
    with pytest.raises(ValueError):
        params_from_config({"strategy": {"optimize_from_percent": 100}})
    with pytest.raises(ValueError):
        mode_from_config({"strategy": {"mode": "scalping"}})


def test_settings_and_grid_overrides():
    cfg = {
        "backtest": {"pip_size": 0.01, "kill_zones": [[0, 24]], "sizing": "risk_pct", "lookahead_bars": 50},
        "optimizer": {"grid": {"stop_loss_pips": [10, 20], "use_kill_zones": False}},
    }
    s = settings_from_config(cfg)
    assert s.pips.pip_size == 0.01
    assert s.kill_zones == ((0, 24),)
    assert s.sizing == "risk_pct"
    assert s.lookahead_bars == 50
    assert grid_from_config(cfg) == {"stop_loss_pips": [10, 20], "use_kill_zones": [False]}


def test_defaults_without_sections():
    assert params_from_config({}).strong_body_min == 0.6
    assert settings_from_config({}).initial_balance == 10_000.0
    assert mode_from_config({}) is StrategyMode.PRICE_ACTION
