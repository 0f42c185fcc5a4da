"""Tests for the health CLI command."""

from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from polyscript.cli.health_cmd import HealthChecker, HealthCheckResult, health


@pytest.fixture
def cli_runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def write_config(tmp_path):
    """Write a config.yml into tmp_path from a mapping and return its path."""

    def write(data: dict):
        path = tmp_path / "config.yml"
        path.write_text(yaml.safe_dump(data))
        return path

    return write


@pytest.fixture
def local_config(write_config, tmp_path):
    scripts_home = tmp_path / "scripts"
    scripts_home.mkdir()
    return write_config(
        {
            "script_executor": {"scripts_home": str(scripts_home), "backend": "local"},
            "notifications": {
                "channels": ["broadcast", "database"],
                "database_path": str(tmp_path / "notifications"),
            },
        }
    )


def statuses(checker: HealthChecker) -> dict[str, str]:
    return {result.name: result.status for result in checker.results}


class TestHealthCheckResult:
    def test_repr(self):
        assert repr(HealthCheckResult("config_file", "ok")) == "HealthCheckResult(config_file, ok)"


class TestHealthChecker:
    @patch("polyscript.cli.health_cmd.find_interpreter", side_effect=lambda name: f"/usr/bin/{name}")
    def test_healthy_local_host(self, mock_find, local_config):
        checker = HealthChecker(config_path=local_config)

        assert checker.check_all()
        assert statuses(checker) == {
            "config_file": "ok",
            "executor_settings": "ok",
            "scripts_home": "ok",
            "interpreters": "ok",
            "notification_channels": "ok",
            "notification_database": "ok",
        }

    @patch("polyscript.cli.health_cmd.find_interpreter", side_effect=lambda name: "/usr/bin/lua" if name == "lua" else None)
    def test_missing_interpreters_warn(self, mock_find, local_config):
        checker = HealthChecker(config_path=local_config)
        checker.check_all()

        assert statuses(checker)["interpreters"] == "warning"

    @patch("polyscript.cli.health_cmd.find_interpreter", return_value=None)
    def test_no_interpreters_is_an_error(self, mock_find, local_config):
        checker = HealthChecker(config_path=local_config)

        assert not checker.check_all()
        assert statuses(checker)["interpreters"] == "error"

    def test_missing_scripts_home(self, write_config, tmp_path):
        path = write_config({"script_executor": {"scripts_home": str(tmp_path / "absent"), "backend": "local"}})
        checker = HealthChecker(config_path=path)

        with patch("polyscript.cli.health_cmd.find_interpreter", return_value="/usr/bin/php"):
            assert not checker.check_all()
        assert statuses(checker)["scripts_home"] == "error"

    def test_invalid_executor_settings(self, write_config):
        checker = HealthChecker(config_path=write_config({"script_executor": {"backend": "vm"}}))

        assert not checker.check_all()
        assert statuses(checker)["executor_settings"] == "error"
        assert "scripts_home" not in statuses(checker)

    def test_missing_config_file_uses_defaults(self, tmp_path):
        checker = HealthChecker(config_path=tmp_path / "config.yml")
        checker.check_configuration()

        assert statuses(checker) == {"config_file": "warning", "executor_settings": "ok"}
        assert checker.executor_config.backend == "auto"

    @patch("polyscript.cli.health_cmd.verify_runtime_is_running", return_value=(True, "podman"))
    def test_container_runtime_available(self, mock_verify, write_config, tmp_path):
        checker = HealthChecker(config_path=write_config({"script_executor": {"backend": "podman"}}))
        checker.check_configuration()
        checker.check_backend()

        mock_verify.assert_called_once_with("podman")
        assert statuses(checker)["container_runtime"] == "ok"

    @patch(
        "polyscript.cli.health_cmd.verify_runtime_is_running",
        return_value=(False, "No container runtime found (tried: docker, podman)."),
    )
    def test_container_runtime_unavailable(self, mock_verify, write_config):
        checker = HealthChecker(config_path=write_config({}))
        checker.check_configuration()
        checker.check_backend()

        mock_verify.assert_called_once_with(None)
        assert statuses(checker)["container_runtime"] == "error"

    def test_unknown_notification_channel(self, write_config):
        checker = HealthChecker(config_path=write_config({"notifications": {"channels": ["email"]}}))
        checker.check_configuration()
        checker.check_notifications()

        assert statuses(checker)["notification_channels"] == "error"


class TestHealthCommand:
    @patch("polyscript.cli.health_cmd.find_interpreter", side_effect=lambda name: f"/usr/bin/{name}")
    def test_exit_zero_when_healthy(self, mock_find, cli_runner, local_config):
        result = cli_runner.invoke(health, ["--config-file", str(local_config)])

        assert result.exit_code == 0, result.output
        assert "All checks passed" in result.output

    @patch("polyscript.cli.health_cmd.find_interpreter", side_effect=lambda name: "/usr/bin/lua" if name == "lua" else None)
    def test_exit_one_on_warnings(self, mock_find, cli_runner, local_config):
        result = cli_runner.invoke(health, ["--config-file", str(local_config), "--verbose"])

        assert result.exit_code == 1
        assert "Missing interpreters" in result.output

    @patch("polyscript.cli.health_cmd.verify_runtime_is_running", return_value=(False, "daemon down"))
    def test_exit_two_on_errors(self, mock_verify, cli_runner, write_config, tmp_path):
        scripts_home = tmp_path / "scripts"
        scripts_home.mkdir()
        path = write_config(
            {
                "script_executor": {"scripts_home": str(scripts_home), "backend": "docker"},
                "notifications": {"channels": ["broadcast"]},
            }
        )

        result = cli_runner.invoke(health, ["--config-file", str(path)])

        assert result.exit_code == 2
        assert "Health check failed with errors" in result.output
