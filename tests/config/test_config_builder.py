"""Tests for the configuration builder and global configuration access."""

import pytest
import yaml

from polyscript.utils.config import (
    ConfigBuilder,
    get_config_value,
    get_full_configuration,
    set_default_config,
)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "script_executor": {
                    "scripts_home": "${TEST_SCRIPTS_HOME:-/srv/scripts}",
                    "backend": "local",
                    "limits": {"memory": "128m"},
                },
                "notifications": {"channels": ["broadcast"]},
                "logging": {"logging_colors": {"sandbox": "magenta"}},
            }
        )
    )
    return path


class TestConfigBuilder:
    def test_sections_are_merged_over_defaults(self, config_file):
        configurable = ConfigBuilder(config_file).configurable
        executor = configurable["script_executor"]

        assert executor["backend"] == "local"
        assert executor["timeout_seconds"] == 60
        assert executor["limits"] == {"memory": "128m", "cpus": 1.0, "pids": 64, "network": False}
        assert configurable["notifications"]["channels"] == ["broadcast"]
        assert configurable["notifications"]["database_path"] == "./storage/notifications"

    def test_env_default_used_when_unset(self, config_file, monkeypatch):
        monkeypatch.delenv("TEST_SCRIPTS_HOME", raising=False)
        assert ConfigBuilder(config_file).get("script_executor.scripts_home") == "/srv/scripts"

    def test_env_variable_resolution(self, config_file, monkeypatch):
        monkeypatch.setenv("TEST_SCRIPTS_HOME", "/data/scripts")
        builder = ConfigBuilder(config_file)

        assert builder.configurable["script_executor"]["scripts_home"] == "/data/scripts"

    def test_simple_dollar_syntax(self, monkeypatch):
        monkeypatch.setenv("POLYSCRIPT_TEST_USER", "1000:1000")
        builder = ConfigBuilder.from_dict({"script_executor": {"container_user": "$POLYSCRIPT_TEST_USER"}})
        assert builder.configurable["script_executor"]["container_user"] == "1000:1000"

    def test_missing_file_in_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(FileNotFoundError, match="No config.yml found"):
            ConfigBuilder()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("")
        assert ConfigBuilder(path).configurable["script_executor"]["backend"] == "auto"

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="dictionary/mapping"):
            ConfigBuilder(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("script_executor: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            ConfigBuilder(path)

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            ConfigBuilder.from_dict({"script_executor": "docker"})


class TestGlobalConfiguration:
    def test_defaults_without_config_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert get_config_value("script_executor.backend") == "auto"
        assert get_config_value("logging.logging_colors.sandbox", "white") == "white"

    def test_config_file_env_var(self, config_file, monkeypatch):
        monkeypatch.setenv("CONFIG_FILE", str(config_file))

        assert get_config_value("script_executor.limits.memory") == "128m"
        assert get_config_value("logging.logging_colors.sandbox") == "magenta"

    def test_explicit_path_becomes_default(self, config_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        configurable = get_full_configuration(str(config_file))

        assert configurable["script_executor"]["backend"] == "local"
        assert get_config_value("script_executor.backend") == "local"

    def test_set_default_config(self):
        set_default_config(ConfigBuilder.from_dict({"script_executor": {"timeout_seconds": 5}}))

        assert get_config_value("script_executor.timeout_seconds") == 5
        assert get_full_configuration()["script_executor"]["backend"] == "auto"

    def test_empty_path(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            get_config_value("")
