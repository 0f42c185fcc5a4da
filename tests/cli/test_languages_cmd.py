"""Tests for the languages CLI command."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from polyscript.cli.languages_cmd import languages


@pytest.fixture
def cli_runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@patch("polyscript.cli.languages_cmd.find_interpreter")
def test_json_output(mock_find, cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    mock_find.side_effect = lambda name: "/usr/bin/lua" if name == "lua" else None

    result = cli_runner.invoke(languages, ["--json"])

    assert result.exit_code == 0, result.output
    rows = {row["language"]: row for row in json.loads(result.output)}
    assert sorted(rows) == ["javascript", "lua", "php", "python"]
    assert rows["lua"]["local_interpreter"] == "/usr/bin/lua"
    assert rows["php"]["local_interpreter"] is None
    assert rows["javascript"]["aliases"] == ["js", "node", "nodejs"]


@patch("polyscript.cli.languages_cmd.find_interpreter", return_value=None)
def test_configured_image(mock_find, cli_runner, tmp_path):
    config = tmp_path / "config.yml"
    config.write_text("script_executor:\n  languages:\n    php:\n      image: example/php:8.1\n")

    result = cli_runner.invoke(languages, ["--json", "--config-file", str(config)])

    rows = {row["language"]: row for row in json.loads(result.output)}
    assert rows["php"]["image"] == "example/php:8.1"


@patch("polyscript.cli.languages_cmd.find_interpreter", return_value=None)
def test_table_output(mock_find, cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = cli_runner.invoke(languages)

    assert result.exit_code == 0
    assert "Supported languages" in result.output
