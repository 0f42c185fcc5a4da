"""
Pytest configuration and shared test utilities.

This module provides shared fixtures for all Polyscript tests: isolated global
configuration, executor settings pointing at a temporary scripts home, and a
scripted fake sandbox backend so no container runtime is needed.
"""

import asyncio
import json

import pytest

from polyscript.services.notifications import RecordingNotifier
from polyscript.services.script_executor import (
    ExecutionCoordinator,
    ScriptExecutorConfig,
    SandboxRunner,
    build_default_registry,
)
from polyscript.services.script_executor.exceptions import EnvironmentUnavailableError
from polyscript.services.script_executor.execution import runtime_helper
from polyscript.services.script_executor.execution.backends import SandboxBackend, SandboxHandle
from polyscript.services.script_executor.models import RESULT_SENTINEL, SandboxResult
from polyscript.services.script_store import ScriptStore
from polyscript.utils.config import set_default_config


def result_line(output) -> str:
    """The line a sandbox runner prints for ``output``."""
    return f"{RESULT_SENTINEL}{json.dumps({'output': output})}"


class FakeBackend(SandboxBackend):
    """Sandbox backend that returns scripted results instead of starting processes.

    Args:
        responder: Callable ``(handle, stdin) -> SandboxResult``; by default every
            run succeeds with ``{"response": 1}``
        delay: Seconds each run takes
        available: When False, ``check_available`` raises EnvironmentUnavailableError
    """

    name = "fake"

    def __init__(self, config, responder=None, delay: float = 0.0, available: bool = True):
        super().__init__(config)
        self.responder = responder or (
            lambda handle, stdin: SandboxResult(0, result_line({"response": 1}) + "\n", "")
        )
        self.delay = delay
        self.available = available
        self.created: list[SandboxHandle] = []
        self.stdin_payloads: list[bytes] = []
        self.killed: list[str] = []
        self.cleaned: list[str] = []
        self.active = 0
        self.max_active = 0

    async def check_available(self, adapter):
        if not self.available:
            raise EnvironmentUnavailableError("Fake backend is down", component="fake")

    async def create(self, adapter, request):
        handle = SandboxHandle(request.invocation_id, adapter, request, name=f"fake-{request.invocation_id}")
        self.created.append(handle)
        return handle

    async def run(self, handle, stdin):
        self.stdin_payloads.append(stdin)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.responder(handle, stdin)
        finally:
            self.active -= 1

    async def kill(self, handle):
        self.killed.append(handle.invocation_id)

    async def cleanup(self, handle):
        self.cleaned.append(handle.invocation_id)


# ===================================================================
# Global state isolation
# ===================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Reset cached configuration and runtime detection around every test."""
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    monkeypatch.delenv("CONTAINER_RUNTIME", raising=False)
    set_default_config(None)
    runtime_helper.reset_runtime_cache()
    yield
    set_default_config(None)
    runtime_helper.reset_runtime_cache()


# ===================================================================
# Executor fixtures
# ===================================================================


@pytest.fixture
def scripts_home(tmp_path):
    path = tmp_path / "scripts"
    path.mkdir()
    return path


@pytest.fixture
def configurable(scripts_home, tmp_path):
    """Configurable dictionary for a local-backend engine rooted in tmp_path."""
    return {
        "script_executor": {
            "scripts_home": str(scripts_home),
            "backend": "local",
            "timeout_seconds": 5,
            "max_concurrent_sandboxes": 2,
            "limits": {"memory": "512m", "cpus": 1, "pids": 32, "network": False},
            "languages": {},
        },
        "notifications": {
            "channels": ["broadcast", "database"],
            "database_path": str(tmp_path / "notifications"),
        },
        "script_store": {},
        "logging": {},
    }


@pytest.fixture
def executor_config(configurable):
    return ScriptExecutorConfig(configurable)


@pytest.fixture
def fake_backend_factory(executor_config):
    """Build FakeBackend instances bound to the test executor settings."""

    def factory(**kwargs) -> FakeBackend:
        return FakeBackend(executor_config, **kwargs)

    return factory


@pytest.fixture
def fake_backend(fake_backend_factory):
    return fake_backend_factory()


@pytest.fixture
def recording_notifier():
    return RecordingNotifier()


@pytest.fixture
def script_store():
    return ScriptStore()


@pytest.fixture
def make_coordinator(executor_config, recording_notifier, script_store):
    """Build an ExecutionCoordinator around a given backend."""

    def factory(backend, **kwargs) -> ExecutionCoordinator:
        return ExecutionCoordinator(
            registry=build_default_registry(executor_config),
            runner=SandboxRunner(executor_config, backend=backend),
            notifier=kwargs.pop("notifier", recording_notifier),
            store=kwargs.pop("store", script_store),
            config=executor_config,
            **kwargs,
        )

    return factory
