"""Tests for component loggers."""

import logging

import pytest

from polyscript.utils.config import ConfigBuilder, set_default_config
from rich.logging import RichHandler

from polyscript.utils.logger import ComponentLogger, _setup_rich_logging, get_logger


class TestGetLogger:
    def test_component_logger(self):
        logger = get_logger("sandbox")

        assert isinstance(logger, ComponentLogger)
        assert logger.name == "sandbox"
        assert logger.component_name == "sandbox"

    def test_color_from_configuration(self):
        set_default_config(ConfigBuilder.from_dict({"logging": {"logging_colors": {"coordinator": "cyan"}}}))
        assert get_logger("coordinator").color == "cyan"

    def test_unconfigured_color_is_white(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert get_logger("unconfigured_component").color == "white"

    def test_explicit_name_and_color(self):
        logger = get_logger(name="custom", color="blue")

        assert logger.name == "custom"
        assert logger.color == "blue"

    def test_component_name_required(self):
        with pytest.raises(ValueError, match="Component name is required"):
            get_logger()


class TestComponentLogger:
    def test_messages_are_prefixed(self, caplog):
        logger = ComponentLogger(logging.getLogger("test.prefix"), "sandbox", "magenta")

        with caplog.at_level(logging.INFO, logger="test.prefix"):
            logger.info("container created")
            logger.success("done")

        assert "[magenta]Sandbox: container created[/magenta]" in caplog.messages
        assert any("✅ Sandbox: done" in message for message in caplog.messages)

    def test_levels(self, caplog):
        logger = ComponentLogger(logging.getLogger("test.levels"), "registry")

        with caplog.at_level(logging.DEBUG, logger="test.levels"):
            logger.debug("trace")
            logger.warning("careful")
            logger.error("broken")
            logger.timing("took 1s")

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.DEBUG, logging.WARNING, logging.ERROR, logging.INFO]


class TestRichSetup:
    @pytest.fixture
    def root_logger(self, monkeypatch):
        root = logging.getLogger()
        monkeypatch.setattr(root, "handlers", [])
        monkeypatch.setattr(root, "level", root.level)
        return root

    def test_existing_handlers_are_kept(self, root_logger):
        host_handler = logging.NullHandler()
        root_logger.handlers.append(host_handler)

        _setup_rich_logging()

        assert root_logger.handlers == [host_handler]

    def test_handler_added_once_when_unconfigured(self, root_logger):
        _setup_rich_logging(logging.DEBUG)
        _setup_rich_logging()

        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0], RichHandler)
        assert root_logger.level == logging.DEBUG
