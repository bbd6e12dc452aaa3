"""Pydantic models for sessions and their command history."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class SessionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class SessionCommand(BaseModel):
    command: str
    args: list[str] = Field(default_factory=list)
    flags: dict[str, Any] = Field(default_factory=dict)
    agent: str | None = None
    success: bool
    duration_ms: float = 0.0
    outputs: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    timestamp: str = Field(default_factory=_now_iso)


class Session(BaseModel):
    session_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)
    context: dict[str, Any] = Field(default_factory=dict)
    commands: list[SessionCommand] = Field(default_factory=list)
    current_command: str | None = None
    last_command: str | None = None
