"""Command execution: strategies, the coordinator, and command loading."""

from conductor.execution.commands import (
    CommandNotFoundError,
    list_commands,
    load_command,
    resolve_command,
)
from conductor.execution.coordinator import (
    ExecutionCoordinator,
    ExecutionOptions,
    ExecutionResult,
    ResolvedCommand,
    extract_task_description,
)
from conductor.execution.strategy import (
    ExecutionStrategy,
    PipelineStrategy,
    SinglePromptStrategy,
    StrategyRegistry,
)

__all__ = [
    "CommandNotFoundError",
    "ExecutionCoordinator",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStrategy",
    "PipelineStrategy",
    "ResolvedCommand",
    "SinglePromptStrategy",
    "StrategyRegistry",
    "extract_task_description",
    "list_commands",
    "load_command",
    "resolve_command",
]
