"""
Tests for the command-line walk-forward runner.
"""

import json
import signal
from datetime import datetime, timedelta, timezone

import pytest

from api import walk_forward_worker
from engine.cancellation import CancellationToken

BASE = datetime(2024, 6, 3, 13, 30, tzinfo=timezone.utc)


@pytest.fixture
def trades_file(tmp_path):
    trades = []
    funds = 50000.0
    for day in range(50):
        pl = 300.0 if day % 3 else -120.0
        funds += pl
        opened = BASE + timedelta(days=day)
        trades.append(
            {
                "date_opened": opened.isoformat(),
                "date_closed": (opened + timedelta(hours=2)).isoformat(),
                "pl": pl,
                "funds_at_close": funds,
            }
        )
    path = tmp_path / "trades.json"
    path.write_text(json.dumps(trades), encoding="utf-8")
    return path


def _write_config(tmp_path, **overrides):
    config = {
        "in_sample_days": 30,
        "out_of_sample_days": 10,
        "step_size_days": 10,
        "parameter_ranges": {"kellyMultiplier": [1, 2, 1]},
    }
    config.update(overrides)
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    return path


def test_writes_result_file(tmp_path, trades_file):
    """A successful run exits 0 and writes the computation as JSON."""
    output = tmp_path / "result.json"
    code = walk_forward_worker.main(
        ["--trades", str(trades_file), "--config", str(_write_config(tmp_path)), "--output", str(output)]
    )

    assert code == 0
    result = json.loads(output.read_text(encoding="utf-8"))
    assert len(result["results"]["periods"]) == 2
    assert result["results"]["stats"]["analyzed_trades"] == 50


def test_prints_to_stdout_without_output(tmp_path, trades_file, capsys):
    """Without --output the JSON goes to stdout."""
    code = walk_forward_worker.main(["--trades", str(trades_file), "--config", str(_write_config(tmp_path))])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["config"]["in_sample_days"] == 30


def test_invalid_configuration_exits_2(tmp_path, trades_file):
    """Configuration errors are input errors."""
    config = _write_config(tmp_path, out_of_sample_days=0)
    assert walk_forward_worker.main(["--trades", str(trades_file), "--config", str(config)]) == 2


def test_missing_trades_file_exits_2(tmp_path):
    """Unreadable input is an input error."""
    config = _write_config(tmp_path)
    assert walk_forward_worker.main(["--trades", str(tmp_path / "nope.json"), "--config", str(config)]) == 2


def test_malformed_trades_exit_2(tmp_path):
    """Trades that fail validation are rejected."""
    path = tmp_path / "trades.json"
    path.write_text(json.dumps([{"pl": "lots"}]), encoding="utf-8")
    assert walk_forward_worker.main(["--trades", str(path), "--config", str(_write_config(tmp_path))]) == 2


def test_csv_format(tmp_path, trades_file):
    """--format csv writes the period table and summary."""
    output = tmp_path / "result.csv"
    code = walk_forward_worker.main(
        [
            "--trades", str(trades_file),
            "--config", str(_write_config(tmp_path)),
            "--format", "csv",
            "--output", str(output),
        ]
    )

    assert code == 0
    lines = output.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("IS Start,")
    assert len([line for line in lines[1:] if line.startswith("2024-")]) == 2
    assert "Summary" in lines


def test_preset_without_config_file(tmp_path, trades_file):
    """--preset layers onto the default config when --config is omitted."""
    output = tmp_path / "result.json"
    code = walk_forward_worker.main(
        ["--trades", str(trades_file), "--preset", "conservative", "--output", str(output)]
    )

    assert code == 0
    config = json.loads(output.read_text(encoding="utf-8"))["config"]
    assert (config["in_sample_days"], config["out_of_sample_days"]) == (30, 10)
    assert config["parameter_ranges"]["consecutiveLossLimit"] == [2.0, 4.0, 1.0]
    assert config["min_in_sample_trades"] == 15


def test_auto_config_overrides_window_sizes(tmp_path, trades_file):
    """--auto-config sizes windows from the daily trade history."""
    output = tmp_path / "result.json"
    code = walk_forward_worker.main(
        [
            "--trades", str(trades_file),
            "--config", str(_write_config(tmp_path)),
            "--auto-config",
            "--output", str(output),
        ]
    )

    assert code == 0
    config = json.loads(output.read_text(encoding="utf-8"))["config"]
    assert (config["in_sample_days"], config["out_of_sample_days"], config["step_size_days"]) == (14, 7, 7)
    assert (config["min_in_sample_trades"], config["min_out_of_sample_trades"]) == (15, 5)
    assert config["parameter_ranges"] == {"kellyMultiplier": [1.0, 2.0, 1.0]}


def test_unknown_preset_is_a_usage_error(tmp_path, trades_file):
    """argparse rejects preset names it does not know."""
    with pytest.raises(SystemExit) as exc_info:
        walk_forward_worker.main(["--trades", str(trades_file), "--preset", "reckless"])
    assert exc_info.value.code == 2


def test_ctrl_c_cancels_the_run(tmp_path, trades_file, monkeypatch):
    """SIGINT during a run sets the token; the run stops and exits 130."""
    seen = []

    def _interrupt_once(event):
        seen.append(event.phase)
        if len(seen) == 1:
            signal.raise_signal(signal.SIGINT)

    monkeypatch.setattr(walk_forward_worker, "_log_progress", _interrupt_once)
    previous = signal.getsignal(signal.SIGINT)
    output = tmp_path / "result.json"

    code = walk_forward_worker.main(
        ["--trades", str(trades_file), "--config", str(_write_config(tmp_path)), "--output", str(output)]
    )

    assert code == 130
    assert not output.exists()
    assert "completed" not in [phase.value for phase in seen]
    assert signal.getsignal(signal.SIGINT) is previous


def test_interrupt_handler_sets_token_reason():
    """The installed handler cancels with reason 'Interrupted' and is removable."""
    previous = signal.getsignal(signal.SIGINT)
    token = CancellationToken()
    restore = walk_forward_worker._install_interrupt_handler(token)
    try:
        signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
    finally:
        restore()

    assert token.is_cancelled
    assert token.reason == "Interrupted"
    assert signal.getsignal(signal.SIGINT) is previous
