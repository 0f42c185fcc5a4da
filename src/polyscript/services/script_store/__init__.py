"""Version Store: script definitions with duplicate-on-write versions."""

from .models import ScriptDefinition, ScriptPage, ScriptVersion
from .store import ScriptStore

__all__ = [
    "ScriptDefinition",
    "ScriptPage",
    "ScriptStore",
    "ScriptVersion",
]
