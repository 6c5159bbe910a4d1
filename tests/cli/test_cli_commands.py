"""Tests for the codeatlas command line."""

import json

import pytest
from typer.testing import CliRunner

from codeatlas.cli import app
from codeatlas.repository import discover_repository
from codeatlas.state import IncrementalStateStore

runner = CliRunner()


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty repository with HOME, cwd, scratch and cache kept under tmp_path."""
    home = tmp_path / "home"
    home.mkdir()
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.py").write_text("print('hi')\n")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("TEMP_DIR", str(tmp_path / "scratch"))
    monkeypatch.setenv("CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("COLUMNS", "200")
    for name in ("CODEATLAS_GRACE_SECONDS", "CODEATLAS_CONCURRENCY", "CACHE_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return root


class TestRun:
    def test_run_without_adapters_writes_degraded_document(self, isolated, tmp_path):
        out = tmp_path / "out" / "run.json"
        result = runner.invoke(app, ["run", str(isolated), "--stable", "-q", "-o", str(out)])
        assert result.exit_code == 0, result.output
        doc = json.loads(out.read_text())
        assert doc["schemaVersion"] == 1
        assert doc["run"]["status"] == "degraded"
        assert doc["adapters"] == []
        assert "started_at" not in doc["run"]

    def test_json_on_stdout(self, isolated):
        result = runner.invoke(app, ["run", str(isolated), "--json", "--stable", "-q"])
        assert result.exit_code == 0, result.output
        assert '"schemaVersion": 1' in result.stdout

    def test_unknown_adapter_is_a_configuration_error(self, isolated):
        result = runner.invoke(app, ["run", str(isolated), "-a", "nope", "-q"])
        assert result.exit_code == 2

    def test_invalid_environment_value(self, isolated, monkeypatch):
        monkeypatch.setenv("CODEATLAS_GRACE_SECONDS", "-1")
        result = runner.invoke(app, ["run", str(isolated), "-q"])
        assert result.exit_code == 2

    def test_missing_path(self, isolated, tmp_path):
        result = runner.invoke(app, ["run", str(tmp_path / "absent")])
        assert result.exit_code != 0


class TestAdapters:
    def test_lists_registered_adapters(self, isolated):
        result = runner.invoke(app, ["adapters", "-C", str(isolated)])
        assert result.exit_code == 0, result.output
        assert "git-history" in result.output
        assert "semgrep" in result.output


class TestCacheCommands:
    def test_info(self, isolated, tmp_path):
        result = runner.invoke(app, ["cache", "info"])
        assert result.exit_code == 0, result.output
        assert "Enabled" in result.output

    def test_clear(self, isolated):
        result = runner.invoke(app, ["cache", "clear"])
        assert result.exit_code == 0, result.output
        assert "cleared" in result.output

    def test_clear_when_disabled(self, isolated, monkeypatch):
        monkeypatch.setenv("CACHE_ENABLED", "false")
        result = runner.invoke(app, ["cache", "clear"])
        assert result.exit_code == 0
        assert "disabled" in result.output

    def test_bad_config_file(self, isolated, tmp_path):
        bad = tmp_path / "bad.toml"
        bad.write_text("concurrency = 0\n")
        result = runner.invoke(app, ["cache", "info", "-c", str(bad)])
        assert result.exit_code == 2


class TestStateCommands:
    def test_show_without_marker(self, isolated):
        result = runner.invoke(app, ["state", "show", str(isolated)])
        assert result.exit_code == 0, result.output
        assert "No incremental state" in result.output

    def test_show_and_clear(self, isolated):
        repo = discover_repository(isolated)
        IncrementalStateStore().mark_analyzed(repo, "a" * 40, {"semgrep": {"status": "ok"}})

        shown = runner.invoke(app, ["state", "show", str(isolated)])
        assert shown.exit_code == 0, shown.output
        assert "a" * 40 in shown.output
        assert "semgrep" in shown.output

        cleared = runner.invoke(app, ["state", "clear", str(isolated)])
        assert "Incremental state cleared" in cleared.output
        assert IncrementalStateStore().load(repo) is None
