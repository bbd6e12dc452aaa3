"""Pydantic models for command definitions, stage pipelines, and results."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ErrorKind(StrEnum):
    ERROR = "error"
    TIMEOUT = "timeout"
    VALIDATION_FAILED = "validation_failed"
    CANCELLED = "cancelled"


class StageState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    AGGREGATED = "aggregated"


class CacheStrategy(StrEnum):
    NONE = "none"
    STAGE = "stage"
    COMMAND = "command"


class MergeStrategy(StrEnum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=1, ge=1)
    backoff_ms: int = Field(default=0, ge=0)
    retry_on: frozenset[ErrorKind] = Field(default_factory=frozenset)

    def should_retry(self, kind: ErrorKind, attempt: int) -> bool:
        """Cancellation is terminal even when listed in ``retry_on``."""
        if kind == ErrorKind.CANCELLED:
            return False
        return kind in self.retry_on and attempt < self.max_attempts


class StageSpec(BaseModel):
    """One step of a command pipeline. ``stage`` is unique within its pipeline."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    stage: str
    prompt: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)
    required: bool = True
    timeout_ms: int | None = Field(default=None, gt=0)


class PromptsPipeline(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    pipeline: list[StageSpec] = Field(default_factory=list)
    cache_strategy: CacheStrategy = CacheStrategy.NONE
    merge_strategy: MergeStrategy = MergeStrategy.SEQUENTIAL
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("cache_strategy", mode="before")
    @classmethod
    def _pipeline_alias(cls, value: object) -> object:
        if value == "pipeline":
            return CacheStrategy.COMMAND
        return value

    @field_validator("retry_policy", mode="before")
    @classmethod
    def _null_policy(cls, value: object) -> object:
        return {} if value is None else value


class CommandDefinition(BaseModel):
    """Static description of a named command. Unknown keys are dropped."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    description: str = ""
    agent: str | None = None
    fallback_agent: str | None = None
    dynamic_agent_selection: bool = False
    agent_selection_criteria: list[str] | None = None
    model: str | None = None
    prompts: PromptsPipeline = Field(default_factory=PromptsPipeline)

    @property
    def kind(self) -> str:
        return "pipeline" if self.prompts.pipeline else "single"


class StageOutput(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: str
    prompt: str
    state: StageState
    outputs: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    duration_ms: float = 0.0
    error: str | None = None
    error_kind: ErrorKind | None = None
    cached: bool = False

    @property
    def success(self) -> bool:
        return self.state == StageState.SUCCEEDED


class CommandResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    command: str
    agent: str
    args: list[str] = Field(default_factory=list)
    flags: dict[str, Any] = Field(default_factory=dict)
    model: str | None = None
    session_id: str
    duration_ms: float
    outputs: dict[str, Any] = Field(default_factory=dict)
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None
    stages: list[StageOutput] = Field(default_factory=list)
    cached: bool = False
