"""Tests for the scenario runner, exports, charts and CLI."""

import json

import pandas as pd
import pytest

from tierlock.cli import main
from tierlock.config.loader import load_config
from tierlock.reporting.charts import create_locked_chart, create_rewards_chart
from tierlock.reporting.export import export_csv, export_json, locks_to_frame, snapshots_to_frame
from tierlock.simulation.runner import ACTIONS, ScenarioRunner


@pytest.fixture(scope="module")
def config():
    config = load_config()
    config.simulation.steps = 40
    config.simulation.accounts = 5
    return config


@pytest.fixture(scope="module")
def result(config):
    return ScenarioRunner(config).run()


class TestScenarioRunner:
    """Smoke and invariant tests for seeded scenarios."""

    def test_runs_without_invariant_errors(self, result, config):
        """Every step keeps the ledger consistent."""
        assert result.invariant_errors == []
        assert len(result.snapshots) == config.simulation.steps
        assert sum(result.action_counts.values()) == config.simulation.steps * config.simulation.accounts

    def test_activity_happens(self, result):
        """Some stake is locked and some rewards are paid."""
        assert max(s.total_locked for s in result.snapshots) > 0
        assert set(result.action_counts) == set(ACTIONS)
        assert sum(result.final_metrics['rewards_paid'].values()) > 0

    def test_clock_advances(self, result, config):
        """Snapshots are spaced by the configured step."""
        times = [s.t for s in result.snapshots]
        assert times[0] == config.simulation.start_time + config.simulation.step_seconds
        assert all(b - a == config.simulation.step_seconds for a, b in zip(times, times[1:]))

    def test_deterministic_for_seed(self, config, result):
        """Same seed, same history."""
        again = ScenarioRunner(config).run()
        assert again.snapshots == result.snapshots
        assert again.rejections == result.rejections

    def test_final_metrics(self, result):
        """Final metrics mirror the last snapshot."""
        final = result.snapshots[-1]
        assert result.final_metrics['final_locked'] == final.total_locked
        assert result.final_metrics['penalties_collected'] == final.treasury_balance
        assert result.final_metrics['peak_locked'] >= final.total_locked


class TestReporting:
    """Tests for exports and charts."""

    def test_snapshot_frame(self, result):
        """One row per step with per-token reward columns."""
        df = snapshots_to_frame(result)
        assert len(df) == len(result.snapshots)
        assert {'total_locked', 'paid_USDC', 'paid_WETH', 't_days'} <= set(df.columns)

    def test_locks_frame(self, result):
        """Every record in the engine appears once."""
        df = locks_to_frame(result.engine)
        assert len(df) == sum(1 for _ in result.engine.registry.iter_all())
        assert set(df['state'].unique()) <= {'active', 'maturing'}

    def test_export_files(self, result, tmp_path):
        """CSV and JSON exports are readable."""
        csv_path = tmp_path / "snapshots.csv"
        json_path = tmp_path / "result.json"
        export_csv(result, str(csv_path))
        export_json(result, str(json_path))

        assert len(pd.read_csv(csv_path)) == len(result.snapshots)
        data = json.loads(json_path.read_text())
        assert data['config_hash'] == result.config.compute_hash()
        assert len(data['snapshots']) == len(result.snapshots)

    def test_charts(self, result):
        """Charts carry one trace per series."""
        assert len(create_locked_chart(result.snapshots).data) == 3
        assert len(create_rewards_chart(result.snapshots).data) == 2


class TestCli:
    """Tests for the command line entry point."""

    def test_simulate(self, tmp_path, capsys):
        """simulate prints final metrics and writes exports."""
        csv_path = tmp_path / "out.csv"
        code = main([
            "simulate", "--set", "simulation.steps=5", "--set", "simulation.accounts=3",
            "--seed", "7", "--csv", str(csv_path),
        ])
        assert code == 0
        assert csv_path.exists()
        metrics = json.loads(capsys.readouterr().out)
        assert 'final_locked' in metrics

    def test_save_config_round_trip(self, tmp_path, capsys):
        """The effective config written out loads back identically."""
        saved = tmp_path / "effective.yaml"
        code = main([
            "simulate", "--set", "simulation.steps=2", "--save-config", str(saved),
        ])
        assert code == 0
        reloaded = load_config(str(saved))
        assert reloaded.simulation.steps == 2
        assert reloaded == load_config(overrides={"simulation.steps": 2})

    def test_bad_override(self, capsys):
        """Malformed overrides exit with a usage error."""
        with pytest.raises(SystemExit):
            main(["simulate", "--set", "nonsense"])
        with pytest.raises(SystemExit):
            main(["simulate", "--set", "nowhere.steps=3"])

    def test_charts_written(self, tmp_path, capsys):
        """--charts renders both figures as HTML files."""
        out = tmp_path / "charts"
        code = main(["simulate", "--set", "simulation.steps=3", "--charts", str(out)])
        assert code == 0
        assert (out / "locked.html").exists()
        assert (out / "rewards.html").exists()
