"""Pydantic models for agent selection."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class SignalSource(StrEnum):
    TASK = "task"
    FILES = "files"
    DEPENDENCIES = "dependencies"


class TaskSignal(BaseModel):
    """A weighted tag inferred from the task or its context."""

    model_config = ConfigDict(frozen=True)

    tag: str
    weight: float = Field(ge=0.0, le=1.0)
    source: SignalSource = SignalSource.TASK


class AgentCandidate(BaseModel):
    role: str
    score: float
    priority: int = 0
    matched_signals: list[TaskSignal] = Field(default_factory=list)


class Alternative(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    score: float


class AgentSelection(BaseModel):
    """Outcome of one dynamic resolution. ``selected_agent`` is None when nothing matched."""

    model_config = ConfigDict(frozen=True)

    selected_agent: str | None
    confidence: float = Field(ge=0.0, le=1.0)
    reasons: list[str] = Field(default_factory=list)
    alternatives: list[Alternative] = Field(default_factory=list)
    fallback: bool = False


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AgentSelectionEvent(BaseModel):
    session_id: str
    command: str
    selected_agent: str
    confidence: float
    fallback_used: bool = False
    manual_override: bool = False
    reasons: list[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=_now_iso)
