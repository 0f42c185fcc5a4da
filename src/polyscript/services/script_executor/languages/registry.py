"""Language registry: maps language identifiers to adapters.

Adapters are registered explicitly at process start, then the registry is
frozen and shared read-only by every invocation. Resolution is synchronous,
case-insensitive and alias-aware; unknown identifiers raise
:class:`LanguageNotSupportedError` before any sandbox exists.

Examples:
    >>> registry = build_default_registry()
    >>> registry.resolve("Lua").language
    <LanguageId.LUA: 'lua'>
    >>> registry.resolve("cobol")
    Traceback (most recent call last):
    ...
    LanguageNotSupportedError: Language 'cobol' is not supported (supported: javascript, lua, php, python)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from polyscript.utils.logger import get_logger

from ..exceptions import LanguageNotSupportedError
from .adapters import ADAPTER_CLASSES, LanguageAdapter, LanguageId

if TYPE_CHECKING:
    from ..config import ScriptExecutorConfig

logger = get_logger("registry")


class LanguageRegistry:
    """Mapping from language identifier (and aliases) to a :class:`LanguageAdapter`."""

    def __init__(self):
        self._adapters: dict[LanguageId, LanguageAdapter] = {}
        self._aliases: dict[str, LanguageId] = {}
        self._frozen = False

    def register(self, adapter: LanguageAdapter) -> None:
        """Register an adapter under its language identifier and aliases.

        Raises:
            RuntimeError: If the registry has been frozen
            ValueError: If the language or an alias is already registered
        """
        if self._frozen:
            raise RuntimeError("Language registry is frozen; register adapters at startup")

        names = [adapter.language.value, *adapter.aliases]
        taken = [name for name in names if name in self._aliases]
        if taken:
            raise ValueError(f"Language identifier(s) already registered: {', '.join(taken)}")

        self._adapters[adapter.language] = adapter
        for name in names:
            self._aliases[name] = adapter.language
        logger.debug(f"Registered {adapter.display_name} adapter ({adapter.image})")

    def freeze(self) -> LanguageRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @staticmethod
    def _normalize(language_id: str) -> str:
        return str(language_id or "").strip().lower()

    def resolve(self, language_id: str) -> LanguageAdapter:
        """Return the adapter for ``language_id``.

        Raises:
            LanguageNotSupportedError: If no adapter is registered for the identifier
        """
        canonical = self._aliases.get(self._normalize(language_id))
        if canonical is None:
            raise LanguageNotSupportedError(str(language_id), self.supported_languages())
        return self._adapters[canonical]

    def is_supported(self, language_id: str) -> bool:
        return self._normalize(language_id) in self._aliases

    def supported_languages(self) -> list[str]:
        return sorted(language.value for language in self._adapters)

    def adapters(self) -> list[LanguageAdapter]:
        return [self._adapters[LanguageId(name)] for name in self.supported_languages()]

    def __contains__(self, language_id: str) -> bool:
        return self.is_supported(language_id)

    def __len__(self) -> int:
        return len(self._adapters)


def build_default_registry(config: ScriptExecutorConfig | None = None) -> LanguageRegistry:
    """Register every built-in adapter, applying ``script_executor.languages`` overrides.

    Args:
        config: Executor settings; per-language ``image`` and ``interpreter``
            overrides are read from it

    Returns:
        A frozen registry
    """
    registry = LanguageRegistry()
    for language, adapter_class in ADAPTER_CLASSES.items():
        settings = config.language_settings(language.value) if config else {}
        registry.register(
            adapter_class(image=settings.get("image"), interpreter=settings.get("interpreter"))
        )
    logger.info(f"Language registry ready: {', '.join(registry.supported_languages())}")
    return registry.freeze()
