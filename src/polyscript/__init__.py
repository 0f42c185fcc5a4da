"""Polyscript - polyglot script execution engine.

Runs user-authored scripts written in several languages inside disposable,
resource-bounded sandboxes and reports each outcome asynchronously to the
requesting user.

This package contains:
- Language registry and per-language adapters
- Sandbox runner with container and local-process backends
- Execution coordinator and result notifier
- Script definition store with version snapshots
- Configuration management and logging
"""

# Version information
__version__ = "0.3.0"

__all__ = ["__version__"]

# Use specific imports like: from polyscript.services.script_executor import ExecutionCoordinator
