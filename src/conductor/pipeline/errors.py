"""Exceptions raised while building contexts and running pipelines."""

from __future__ import annotations

from conductor.pipeline.models import ErrorKind


class StageExecutionError(Exception):
    """A provider call for one stage failed with a classified kind."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.ERROR) -> None:
        super().__init__(message)
        self.kind = kind


class ContextCreationError(Exception):
    """The execution context could not be assembled."""


class StrategyExecutionError(Exception):
    """No strategy could run the command, or the strategy itself broke."""
