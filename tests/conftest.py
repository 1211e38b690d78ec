"""
Shared pytest fixtures for quant-spine tests.

This module provides:
- Registry/settings cleanup for test isolation
- ``settings`` pointing every directory at ``tmp_path``
- ``FakeScriptService``, a recording script service with scripted replies

Usage:
    def test_something(engine, fake_service):
        fake_service.respond("prepare_data", {"success": False, "error": "boom"})
        result = engine.execute(template)
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from quant_spine.core.settings import QuantSpineSettings, clear_settings_cache
from quant_spine.execution.script_service import (
    ResponseCategory,
    ScriptRequest,
    ScriptResponse,
)
from quant_spine.orchestration.engine import WorkflowEngine
from quant_spine.orchestration.templates import clear_template_registry

Reply = dict[str, Any] | ScriptResponse | Callable[[ScriptRequest], Any]


class FakeScriptService:
    """Records every request and answers from a table of scripted replies.

    Replies are looked up by step name first, then by step type; anything
    unmatched succeeds with an empty payload.  A reply is a script-style
    payload dict, a ready ``ScriptResponse``, or a callable taking the
    request and returning either.
    """

    def __init__(self) -> None:
        self.requests: list[ScriptRequest] = []
        self.replies: dict[str, Reply] = {}

    def respond(self, key: str, reply: Reply) -> FakeScriptService:
        self.replies[key] = reply
        return self

    @property
    def dispatched(self) -> list[str]:
        """Step names in the order they reached the service."""
        return [r.name for r in self.requests]

    def config_for(self, step_name: str) -> dict[str, Any]:
        for request in self.requests:
            if request.name == step_name:
                return request.config
        raise KeyError(step_name)

    def run(self, request: ScriptRequest) -> ScriptResponse:
        self.requests.append(request)
        reply = self.replies.get(request.name)
        if reply is None:
            reply = self.replies.get(request.config.get("step_type", ""), {"success": True})
        if callable(reply):
            reply = reply(request)
        if isinstance(reply, ScriptResponse):
            return reply
        return payload_response(reply)


def payload_response(payload: dict[str, Any]) -> ScriptResponse:
    """Interpret a payload the way the subprocess service does."""
    if payload.get("success") is True:
        return ScriptResponse(success=True, payload=dict(payload))
    return ScriptResponse.failure(
        payload.get("error") or "script reported failure without an error message",
        ResponseCategory.APPLICATION,
        payload=dict(payload),
    )


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Each test starts with fresh settings and an unloaded template registry."""
    for var in (
        "QUANTSPINE_TEMPLATE_DIR",
        "QUANTSPINE_ARTIFACT_DIR",
        "QUANTSPINE_PYTHON_PATH",
        "PYTHON_PATH",
        "QUANTSPINE_SCRIPT_DIR",
        "QLIB_SCRIPT_DIR",
        "QLIB_WORKSPACE_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("QUANTSPINE_WORKSPACE_ROOT", str(tmp_path / "env_workspaces"))
    clear_settings_cache()
    clear_template_registry()
    yield
    clear_settings_cache()
    clear_template_registry()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture
def settings(workspace_root: Path) -> QuantSpineSettings:
    return QuantSpineSettings(
        _env_file=None,
        workspace_root=workspace_root,
        step_timeout_seconds=30,
    )


@pytest.fixture
def fake_service() -> FakeScriptService:
    return FakeScriptService()


@pytest.fixture
def engine(fake_service: FakeScriptService, settings: QuantSpineSettings) -> WorkflowEngine:
    return WorkflowEngine(fake_service, settings)
