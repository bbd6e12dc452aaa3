"""Shared fixtures for conductor tests."""

from __future__ import annotations

import asyncio
import copy
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from conductor.registry.loader import CapabilityRegistry
from conductor.session.manager import SessionManager
from conductor.session.models import Session

CAPABILITY_DOC: dict[str, Any] = {
    "capabilities": {
        "lead": {
            "domains": ["infrastructure", "typescript-backend-general", "security"],
            "expertise": ["architecture", "leadership", "ddd"],
            "priority": 95,
            "role": "lead",
            "selectionCriteria": ["architecture-files", "strategy-files"],
        },
        "platform-engineer": {
            "domains": ["infrastructure", "security"],
            "expertise": ["kubernetes", "terraform", "aws"],
            "priority": 90,
            "role": "platform-engineer",
            "selectionCriteria": ["terraform-files", "kubernetes-manifests"],
        },
        "software-engineer-typescript-backend": {
            "domains": ["typescript-backend-general"],
            "expertise": ["nodejs", "express", "graphql", "prisma"],
            "priority": 85,
            "role": "software-engineer-typescript-backend",
            "selectionCriteria": ["code-files", "api-files"],
        },
        "software-engineer-typescript-frontend-react": {
            "domains": ["typescript-frontend-react", "typescript-frontend-general"],
            "expertise": ["react", "redux", "jsx"],
            "priority": 85,
            "role": "software-engineer-typescript-frontend-react",
            "selectionCriteria": ["react-imports", "component-files"],
        },
    },
    "selectionCriteria": {
        "api-files": "API-related files",
        "terraform-files": "Terraform configuration files",
        "kubernetes-manifests": "Kubernetes YAML manifests",
    },
    "taskDomains": {
        "infrastructure": "Infrastructure and DevOps tasks",
        "security": "Security and compliance tasks",
        "typescript-backend-general": "Backend TypeScript development",
    },
}


@pytest.fixture
def capability_doc() -> dict[str, Any]:
    return copy.deepcopy(CAPABILITY_DOC)


@pytest.fixture
def registry_file(tmp_path: Path, capability_doc: dict[str, Any]) -> Path:
    path = tmp_path / "agent-capabilities.json"
    path.write_text(json.dumps(capability_doc))
    return path


@pytest.fixture
def registry(registry_file: Path) -> CapabilityRegistry:
    reg = CapabilityRegistry(registry_file)
    reg.initialize()
    return reg


@pytest.fixture
def session() -> SessionManager:
    return SessionManager(Session(session_id="test-session"))


class RecordingProvider:
    """Scripted provider that records calls and start/end events per stage.

    ``script[stage]`` is a queue of outcomes: dicts or values are returned,
    exceptions are raised, and callables are invoked first.
    """

    def __init__(self) -> None:
        self.script: dict[str, list[Any]] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.events: list[tuple[str, str]] = []

    async def invoke(self, stage: Any, context: Any, inputs: dict[str, Any]) -> Any:
        self.calls.append((stage.stage, dict(inputs)))
        self.events.append(("start", stage.stage))
        delay = self.delays.get(stage.stage, 0.0)
        if delay:
            await asyncio.sleep(delay)
        self.events.append(("end", stage.stage))
        queue = self.script.get(stage.stage)
        outcome: Any = queue.pop(0) if queue else {f"{stage.stage}_out": f"{stage.stage}-result"}
        if callable(outcome) and not isinstance(outcome, type):
            outcome = outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def count(self, stage: str) -> int:
        return sum(1 for name, _ in self.calls if name == stage)


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def fake_sleep() -> tuple[list[float], Callable[[float], Any]]:
    slept: list[float] = []

    async def _sleep(seconds: float) -> None:
        slept.append(seconds)

    return slept, _sleep
