"""Tests for the language registry."""

import pytest

from polyscript.services.script_executor import ScriptExecutorConfig
from polyscript.services.script_executor.exceptions import LanguageNotSupportedError
from polyscript.services.script_executor.languages import (
    LanguageId,
    LanguageRegistry,
    build_default_registry,
)
from polyscript.services.script_executor.languages.adapters import LuaAdapter, PhpAdapter


class TestResolve:
    def test_resolves_canonical_identifiers(self):
        registry = build_default_registry()

        assert registry.resolve("lua").language == LanguageId.LUA
        assert registry.resolve("php").language == LanguageId.PHP

    @pytest.mark.parametrize(
        "alias, language",
        [("JS", LanguageId.JAVASCRIPT), ("node", LanguageId.JAVASCRIPT), ("py", LanguageId.PYTHON), (" Lua ", LanguageId.LUA)],
    )
    def test_aliases_and_case(self, alias, language):
        assert build_default_registry().resolve(alias).language == language

    def test_unknown_language(self):
        registry = build_default_registry()

        with pytest.raises(LanguageNotSupportedError) as exc_info:
            registry.resolve("cobol")

        error = exc_info.value
        assert error.language == "cobol"
        assert error.supported == ["javascript", "lua", "php", "python"]

    def test_empty_language(self):
        with pytest.raises(LanguageNotSupportedError):
            build_default_registry().resolve("")

    def test_membership(self):
        registry = build_default_registry()

        assert "python3" in registry
        assert "ruby" not in registry
        assert len(registry) == 4


class TestRegistration:
    def test_default_registry_is_frozen(self):
        registry = build_default_registry()

        assert registry.frozen
        with pytest.raises(RuntimeError, match="frozen"):
            registry.register(LuaAdapter())

    def test_duplicate_registration(self):
        registry = LanguageRegistry()
        registry.register(PhpAdapter())

        with pytest.raises(ValueError, match="php"):
            registry.register(PhpAdapter())

    def test_adapters_sorted_by_language(self):
        languages = [adapter.language.value for adapter in build_default_registry().adapters()]
        assert languages == ["javascript", "lua", "php", "python"]

    def test_configured_overrides(self):
        config = ScriptExecutorConfig(
            {"script_executor": {"languages": {"lua": {"image": "example/lua:5.1", "interpreter": "luajit"}}}}
        )
        registry = build_default_registry(config)

        lua = registry.resolve("lua")
        assert lua.image == "example/lua:5.1"
        assert lua.interpreter == "luajit"
        assert registry.resolve("php").image == PhpAdapter.default_image
