"""
Tests for the CLI

Tests for photoshoot/runner.py commands that work offline.
"""

from datetime import datetime, timezone

import pytest
import yaml
from click.testing import CliRunner
from conftest import photographed_item

from photoshoot.history import HistoryStore
from photoshoot.runner import cli


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"output": {"base_dir": str(tmp_path / "output")}}, f)
    return path


@pytest.fixture
def entry_id(tmp_path, params):
    store = HistoryStore(tmp_path / "output" / "history.json")
    return store.append(
        params,
        [photographed_item("a"), photographed_item("b")],
        datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


class TestHistoryCommands:
    """Tests for history listing and removal."""

    def test_empty_history(self, config_path):
        result = CliRunner().invoke(cli, ["-c", str(config_path), "history"])

        assert result.exit_code == 0
        assert "No history yet" in result.output

    def test_remove(self, config_path, entry_id, tmp_path):
        result = CliRunner().invoke(cli, ["-c", str(config_path), "history-remove", str(entry_id), "--yes"])

        assert result.exit_code == 0
        assert HistoryStore(tmp_path / "output" / "history.json").list() == []

    def test_clear(self, config_path, entry_id, tmp_path):
        result = CliRunner().invoke(cli, ["-c", str(config_path), "history-clear", "--yes"])

        assert result.exit_code == 0
        assert "History cleared." in result.output
        assert not (tmp_path / "output" / "history.json").exists()

    def test_unknown_entry(self, config_path):
        result = CliRunner().invoke(cli, ["-c", str(config_path), "show", "42"])

        assert result.exit_code == 1


class TestExportCommand:
    """Tests for export."""

    def test_export_directory(self, config_path, entry_id, tmp_path):
        out = tmp_path / "photos"

        result = CliRunner().invoke(cli, ["-c", str(config_path), "export", str(entry_id), "-o", str(out)])

        assert result.exit_code == 0
        assert sorted(path.name for path in out.iterdir()) == ["photo-1-a.png", "photo-2-b.png"]

    def test_export_zip(self, config_path, entry_id, tmp_path):
        result = CliRunner().invoke(cli, ["-c", str(config_path), "export", str(entry_id), "--zip"])

        assert result.exit_code == 0
        assert (tmp_path / "output" / "exports" / f"photoshoot-{entry_id}.zip").exists()


class TestConfigCommands:
    """Tests for configuration handling."""

    def test_set_key(self, config_path):
        result = CliRunner().invoke(cli, ["-c", str(config_path), "set-key", "my-key"])

        assert result.exit_code == 0
        with open(config_path, "r", encoding="utf-8") as f:
            assert yaml.safe_load(f)["api"]["api_key"] == "my-key"

    def test_missing_config_file(self, tmp_path):
        result = CliRunner().invoke(cli, ["-c", str(tmp_path / "missing.yaml"), "history"])

        assert result.exit_code == 1
