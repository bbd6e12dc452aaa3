"""Execution coordinator: resolve agent -> build context -> run strategy -> record.

The coordinator owns no execution logic of its own. Agent-selection failures
are recovered with the command's fallback agent; context and strategy errors
propagate unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from conductor.config import ConductorConfig
from conductor.execution.strategy import StrategyRegistry
from conductor.pipeline.context import ExecutionContext
from conductor.pipeline.models import CommandDefinition, CommandResult
from conductor.pipeline.provider import Provider
from conductor.selection.analytics import SelectionAnalytics
from conductor.selection.models import AgentSelection
from conductor.selection.resolver import DynamicAgentResolver
from conductor.session.manager import AGENT_SELECTION_KEY, SessionManager
from conductor.session.models import SessionCommand

logger = logging.getLogger(__name__)

FALLBACK_DUE_TO_ERROR = "fallback_due_to_error"
MANUAL_OVERRIDE_FLAG = "agent"


@dataclass
class ResolvedCommand:
    command: CommandDefinition
    provider: Provider
    provider_name: str


@dataclass
class ExecutionOptions:
    args: list[str] = field(default_factory=list)
    flags: dict[str, Any] = field(default_factory=dict)
    model: str | None = None
    cancel_event: asyncio.Event | None = None
    # On the time.monotonic() clock.
    deadline: float | None = None


@dataclass
class ExecutionResult:
    result: CommandResult
    session_manager: SessionManager
    start_time: float


def extract_task_description(
    command_name: str, options: ExecutionOptions, session: SessionManager
) -> str:
    """First positional argument, else the session plan/task description, else the command line."""
    if options.args and options.args[0].strip():
        return options.args[0]
    for key in ("planSummary.description", "task.description"):
        value = session.get_context(key)
        if isinstance(value, str) and value.strip():
            return value
    return " ".join([command_name, *options.args]).strip()


class ExecutionCoordinator:
    def __init__(
        self,
        resolver: DynamicAgentResolver | None = None,
        strategies: StrategyRegistry | None = None,
        analytics: SelectionAnalytics | None = None,
        config: ConductorConfig | None = None,
    ) -> None:
        self._resolver = resolver
        self._strategies = strategies or StrategyRegistry.default()
        self._analytics = analytics
        self._config = config or ConductorConfig()

    async def execute_command(
        self,
        command_name: str,
        resolved_command: ResolvedCommand,
        options: ExecutionOptions,
        session_manager: SessionManager,
    ) -> ExecutionResult:
        start_time = time.time()
        command = resolved_command.command
        session_manager.start_command(command_name)
        logger.info(f"Executing command {command_name} via {resolved_command.provider_name}")

        agent = self._resolve_agent(command_name, command, options, session_manager)

        context = ExecutionContext.create(
            command_name=command_name,
            agent_role=agent,
            provider_name=resolved_command.provider_name,
            provider=resolved_command.provider,
            session_manager=session_manager,
            args=options.args,
            flags=options.flags,
            model=options.model or command.model,
            cancel_event=options.cancel_event,
            deadline=options.deadline,
        )
        strategy = self._strategies.strategy_for(resolved_command.provider_name, command.kind)
        result = await strategy.execute(command, context)

        self._record(command_name, result, session_manager)
        if result.success:
            logger.info(f"Command {command_name} completed in {result.duration_ms:.0f}ms")
        else:
            logger.warning(f"Command {command_name} failed: {result.error}")
        return ExecutionResult(
            result=result, session_manager=session_manager, start_time=start_time
        )

    # -- Agent resolution ---------------------------------------------------

    def _resolve_agent(
        self,
        command_name: str,
        command: CommandDefinition,
        options: ExecutionOptions,
        session: SessionManager,
    ) -> str | None:
        override = options.flags.get(MANUAL_OVERRIDE_FLAG)
        if isinstance(override, str) and override:
            logger.info(f"Agent manually overridden: {override}")
            if self._analytics is not None:
                self._analytics.record(
                    session_id=session.session_id,
                    command=command_name,
                    selected_agent=override,
                    manual_override=True,
                )
            return override

        if self._resolver is None or not self._dynamic_enabled(command_name, command):
            return command.agent

        selection = self._run_resolver(self._resolver, command_name, command, options, session)
        agent = selection.selected_agent
        if agent is None:
            agent = command.fallback_agent or command.agent
            selection = selection.model_copy(update={"selected_agent": agent, "fallback": True})

        session.set_context(AGENT_SELECTION_KEY, selection.model_dump(mode="json"))
        session.save()

        logger.info(
            f"Dynamic agent selected: {agent}",
            extra={
                "command_name": command_name,
                "confidence": selection.confidence,
                "reasons": selection.reasons,
                "fallback": selection.fallback,
            },
        )
        if not selection.fallback and selection.confidence < self._config.low_confidence_threshold:
            alternatives = ", ".join(a.role for a in selection.alternatives) or "none"
            logger.warning(
                f"Low confidence ({selection.confidence:.2f}) selecting {agent}; "
                f"alternatives: {alternatives}"
            )
        if self._analytics is not None and agent:
            self._analytics.record(
                session_id=session.session_id,
                command=command_name,
                selected_agent=agent,
                selection=selection,
            )
        return agent

    def _dynamic_enabled(self, command_name: str, command: CommandDefinition) -> bool:
        if not command.dynamic_agent_selection:
            return False
        return self._config.dynamic_selection_enabled_for(command_name)

    def _run_resolver(
        self,
        resolver: DynamicAgentResolver,
        command_name: str,
        command: CommandDefinition,
        options: ExecutionOptions,
        session: SessionManager,
    ) -> AgentSelection:
        description = extract_task_description(command_name, options, session)
        try:
            return resolver.resolve_agent(
                description, session, allowed_candidates=command.agent_selection_criteria
            )
        except Exception as e:
            logger.warning(f"Dynamic agent resolution failed for {command_name}: {e}")
            return AgentSelection(
                selected_agent=command.fallback_agent or command.agent,
                confidence=0.0,
                reasons=[FALLBACK_DUE_TO_ERROR],
                fallback=True,
            )

    # -- History ------------------------------------------------------------

    def _record(self, command_name: str, result: CommandResult, session: SessionManager) -> None:
        session.record_stage_outputs({s.stage: s.outputs for s in result.stages if s.success})
        session.add_command(
            SessionCommand(
                command=command_name,
                args=result.args,
                flags=result.flags,
                agent=result.agent,
                success=result.success,
                duration_ms=result.duration_ms,
                outputs=result.outputs,
                error=result.error,
            )
        )
        session.save()
