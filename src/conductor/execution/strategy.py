"""Execution strategies and their lookup by (provider name, command kind)."""

from __future__ import annotations

from typing import Protocol

from conductor.pipeline.context import ExecutionContext
from conductor.pipeline.engine import PipelineEngine
from conductor.pipeline.errors import StrategyExecutionError
from conductor.pipeline.models import CommandDefinition, CommandResult, StageSpec

WILDCARD = "*"


class ExecutionStrategy(Protocol):
    def can_execute(self, command: CommandDefinition, context: ExecutionContext) -> bool: ...

    async def execute(
        self, command: CommandDefinition, context: ExecutionContext
    ) -> CommandResult: ...


class PipelineStrategy:
    """Runs the command's declared stage pipeline."""

    def __init__(self, engine: PipelineEngine | None = None) -> None:
        self._engine = engine or PipelineEngine()

    def can_execute(self, command: CommandDefinition, context: ExecutionContext) -> bool:
        return bool(command.prompts.pipeline)

    async def execute(self, command: CommandDefinition, context: ExecutionContext) -> CommandResult:
        if not self.can_execute(command, context):
            raise StrategyExecutionError(f"Command {command.name} declares no pipeline stages")
        return await self._engine.run(
            command, context, cancel_event=context.cancel_event, deadline=context.deadline
        )


class SinglePromptStrategy:
    """Runs a stage-less command as one stage fed by the positional arguments."""

    def __init__(self, engine: PipelineEngine | None = None) -> None:
        self._engine = engine or PipelineEngine()

    def can_execute(self, command: CommandDefinition, context: ExecutionContext) -> bool:
        return not command.prompts.pipeline

    async def execute(self, command: CommandDefinition, context: ExecutionContext) -> CommandResult:
        stage = StageSpec(
            stage=command.name,
            prompt=command.description or command.name,
            inputs={f"arg_{i}": f"$ARG_{i}" for i in range(1, len(context.args) + 1)},
        )
        prompts = command.prompts.model_copy(update={"pipeline": [stage]})
        return await self._engine.run(
            command.model_copy(update={"prompts": prompts}),
            context,
            cancel_event=context.cancel_event,
            deadline=context.deadline,
        )


class StrategyRegistry:
    """Maps (provider name, command kind) to a strategy, with ``*`` wildcards."""

    def __init__(self) -> None:
        self._strategies: dict[tuple[str, str], ExecutionStrategy] = {}

    @classmethod
    def default(cls, engine: PipelineEngine | None = None) -> StrategyRegistry:
        engine = engine or PipelineEngine()
        registry = cls()
        registry.register(WILDCARD, "pipeline", PipelineStrategy(engine))
        registry.register(WILDCARD, "single", SinglePromptStrategy(engine))
        return registry

    def register(self, provider_name: str, command_kind: str, strategy: ExecutionStrategy) -> None:
        self._strategies[(provider_name, command_kind)] = strategy

    def strategy_for(self, provider_name: str, command_kind: str) -> ExecutionStrategy:
        for key in (
            (provider_name, command_kind),
            (provider_name, WILDCARD),
            (WILDCARD, command_kind),
            (WILDCARD, WILDCARD),
        ):
            strategy = self._strategies.get(key)
            if strategy is not None:
                return strategy
        raise StrategyExecutionError(
            f"No execution strategy for provider {provider_name!r} and {command_kind} commands"
        )
