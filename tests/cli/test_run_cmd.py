"""Tests for the run (preview) CLI command."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from polyscript.cli.run_cmd import _load_configurable, run
from polyscript.services.script_executor import (
    ExecutionFailure,
    ExecutionSuccess,
    LanguageNotSupportedError,
    ValidationError,
)


@pytest.fixture
def cli_runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def coordinator():
    """Coordinator double whose preview succeeds with {'response': 1}."""
    mock = MagicMock()
    mock.preview = AsyncMock(
        return_value=ExecutionSuccess(response={"response": 1}, language="lua", invocation_id="abc")
    )
    return mock


class TestRunCommand:
    @patch("polyscript.cli.run_cmd._build_coordinator")
    def test_inline_code(self, mock_build, coordinator, cli_runner):
        mock_build.return_value = coordinator

        result = cli_runner.invoke(
            run, ["-l", "lua", "--code", "return {response=1}", "--data", '{"name": "Taylor"}', "-u", "42"]
        )

        assert result.exit_code == 0, result.output
        assert '"response": 1' in result.output
        coordinator.preview.assert_awaited_once_with(
            "lua",
            "return {response=1}",
            data='{"name": "Taylor"}',
            config="{}",
            acting_user="42",
            timeout_seconds=None,
        )

    @patch("polyscript.cli.run_cmd._build_coordinator")
    def test_script_file(self, mock_build, coordinator, cli_runner, tmp_path):
        mock_build.return_value = coordinator
        script = tmp_path / "greet.php"
        script.write_text("return ['response' => 1];")

        result = cli_runner.invoke(run, ["-l", "php", str(script), "--timeout", "3"])

        assert result.exit_code == 0, result.output
        args, kwargs = coordinator.preview.call_args
        assert args == ("php", "return ['response' => 1];")
        assert kwargs["timeout_seconds"] == 3.0

    @patch("polyscript.cli.run_cmd._build_coordinator")
    def test_failure_exits_one(self, mock_build, coordinator, cli_runner):
        coordinator.preview.return_value = ExecutionFailure.from_exception(
            LanguageNotSupportedError("cobol", ["lua"]), "cobol"
        )
        mock_build.return_value = coordinator

        result = cli_runner.invoke(run, ["-l", "cobol", "--code", "x"])

        assert result.exit_code == 1
        assert "language_not_supported" in result.output

    @patch("polyscript.cli.run_cmd._build_coordinator")
    def test_validation_error_exits_two(self, mock_build, coordinator, cli_runner):
        coordinator.preview.side_effect = ValidationError("The run as user field is required.")
        mock_build.return_value = coordinator

        result = cli_runner.invoke(run, ["-l", "lua", "--code", "x"])

        assert result.exit_code == 2
        assert "run as user" in result.output

    def test_code_and_file_are_exclusive(self, cli_runner, tmp_path):
        script = tmp_path / "a.lua"
        script.write_text("return 1")

        assert cli_runner.invoke(run, ["-l", "lua"]).exit_code == 2
        assert cli_runner.invoke(run, ["-l", "lua", str(script), "--code", "x"]).exit_code == 2

    def test_language_is_required(self, cli_runner):
        result = cli_runner.invoke(run, ["--code", "x"])
        assert result.exit_code == 2


class TestLoadConfigurable:
    def test_backend_override(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        configurable = _load_configurable(None, "local")

        assert configurable["script_executor"]["backend"] == "local"

    def test_config_file(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(json.dumps({"script_executor": {"backend": "podman", "timeout_seconds": 9}}))

        configurable = _load_configurable(str(path), None)

        assert configurable["script_executor"]["backend"] == "podman"
        assert configurable["script_executor"]["timeout_seconds"] == 9
