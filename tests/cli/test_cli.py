"""Tests for the quantspine CLI: templates, run, and config parsing helpers."""

from __future__ import annotations

import importlib
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from quant_spine.cli.app import app
from quant_spine.cli.utils import load_config_file, parse_overrides
from quant_spine.core.errors import InvalidConfigError

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_cli(monkeypatch, fake_service):
    """Route ``run`` through the fake service and keep logs off the output."""
    monkeypatch.setenv("QUANTSPINE_LOG_LEVEL", "WARNING")
    cli_module = importlib.import_module("quant_spine.cli.app")
    monkeypatch.setattr(cli_module, "build_service", lambda settings: fake_service)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "quant-spine" in result.stdout

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "templates" in result.output
        assert "run" in result.output


# ---------------------------------------------------------------------------
# templates
# ---------------------------------------------------------------------------


class TestTemplatesCommand:
    def test_list(self):
        result = runner.invoke(app, ["templates", "list"])
        assert result.exit_code == 0
        assert "Workflow templates" in result.stdout

    def test_list_json(self):
        result = runner.invoke(app, ["templates", "list", "--json"])
        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert [r["name"] for r in rows] == ["basic_quant_strategy", "factor_research"]
        assert rows[0]["steps"] == 6
        assert rows[1]["category"] == "research"

    def test_show(self):
        result = runner.invoke(app, ["templates", "show", "factor_research"])
        assert result.exit_code == 0
        assert "Template: factor_research" in result.stdout

    def test_show_json(self):
        result = runner.invoke(app, ["templates", "show", "factor_research", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["name"] == "factor_research"
        assert [s["name"] for s in data["steps"]] == [
            "prepare_data",
            "generate_factors",
            "analyze_factors",
        ]

    def test_show_unknown(self):
        result = runner.invoke(app, ["templates", "show", "nope"])
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.output


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRunCommand:
    def test_success_json(self, fake_service):
        result = runner.invoke(app, ["run", "factor_research", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["workflow_name"] == "factor_research"
        assert [s["name"] for s in data["steps"]] == [
            "prepare_data",
            "generate_factors",
            "analyze_factors",
        ]
        assert fake_service.dispatched == ["prepare_data", "generate_factors", "analyze_factors"]

    def test_success_with_progress(self):
        result = runner.invoke(app, ["run", "factor_research"])
        assert result.exit_code == 0, result.output
        assert "Workflow completed" in result.stdout
        assert "Completed" in result.stdout

    def test_overrides_reach_scripts(self, fake_service):
        result = runner.invoke(
            app,
            ["run", "factor_research", "--json", "--set", "top_k=7", "-s", "instruments=[SPY]"],
        )
        assert result.exit_code == 0, result.output
        config = fake_service.config_for("prepare_data")
        assert config["top_k"] == 7
        assert config["instruments"] == ["SPY"]
        assert config["start_time"] == "2019-01-01"

    def test_config_file(self, fake_service, tmp_path: Path):
        path = tmp_path / "run.yaml"
        path.write_text("top_k: 3\nend_time: '2022-06-30'\n", encoding="utf-8")

        result = runner.invoke(
            app, ["run", "factor_research", "--json", "-c", str(path), "--set", "top_k=4"]
        )

        assert result.exit_code == 0, result.output
        config = fake_service.config_for("prepare_data")
        assert config["top_k"] == 4
        assert config["end_time"] == "2022-06-30"

    def test_failed_run_exits_nonzero(self, fake_service):
        fake_service.respond("prepare_data", {"success": False, "error": "no instruments"})

        result = runner.invoke(app, ["run", "factor_research"])

        assert result.exit_code == 1
        assert "RUN_FAILED" in result.output
        assert "no instruments" in result.output
        assert fake_service.dispatched == ["prepare_data"]

    def test_unknown_template(self, fake_service):
        result = runner.invoke(app, ["run", "nope"])
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.output
        assert fake_service.requests == []

    def test_bad_override(self, fake_service):
        result = runner.invoke(app, ["run", "factor_research", "--set", "top_k"])
        assert result.exit_code == 1
        assert "CONFIG" in result.output
        assert fake_service.requests == []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestParseOverrides:
    def test_typed_values(self):
        assert parse_overrides(
            ["top_k=20", "ratio=0.5", "dry=true", "instruments=[AAPL, MSFT]", "model=lightgbm"]
        ) == {
            "top_k": 20,
            "ratio": 0.5,
            "dry": True,
            "instruments": ["AAPL", "MSFT"],
            "model": "lightgbm",
        }

    def test_value_may_contain_equals(self):
        assert parse_overrides(["expr=a=b"]) == {"expr": "a=b"}

    def test_empty_value(self):
        assert parse_overrides(["note="]) == {"note": ""}

    def test_none(self):
        assert parse_overrides(None) == {}

    @pytest.mark.parametrize("pair", ["top_k", "=5"])
    def test_malformed(self, pair):
        with pytest.raises(InvalidConfigError):
            parse_overrides([pair])


class TestLoadConfigFile:
    def test_mapping(self, tmp_path: Path):
        path = tmp_path / "c.json"
        path.write_text('{"top_k": 5}', encoding="utf-8")
        assert load_config_file(path) == {"top_k": 5}

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "c.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "c.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(InvalidConfigError, match="must contain a mapping"):
            load_config_file(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(InvalidConfigError, match="Cannot read"):
            load_config_file(tmp_path / "missing.yaml")
