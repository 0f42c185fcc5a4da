"""Language adapters and the registry that resolves them."""

from .adapters import (
    ADAPTER_CLASSES,
    JavaScriptAdapter,
    LanguageAdapter,
    LanguageId,
    LuaAdapter,
    PhpAdapter,
    PythonAdapter,
)
from .registry import LanguageRegistry, build_default_registry

__all__ = [
    "ADAPTER_CLASSES",
    "JavaScriptAdapter",
    "LanguageAdapter",
    "LanguageId",
    "LanguageRegistry",
    "LuaAdapter",
    "PhpAdapter",
    "PythonAdapter",
    "build_default_registry",
]
