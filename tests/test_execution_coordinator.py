"""Tests for execution/coordinator.py."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any
from unittest.mock import MagicMock

import pytest

from conductor.config import ConductorConfig
from conductor.execution.coordinator import (
    FALLBACK_DUE_TO_ERROR,
    ExecutionCoordinator,
    ExecutionOptions,
    ResolvedCommand,
    extract_task_description,
)
from conductor.execution.strategy import PipelineStrategy, StrategyRegistry
from conductor.pipeline.context import ExecutionContext
from conductor.pipeline.errors import ContextCreationError, StrategyExecutionError
from conductor.pipeline.models import (
    CommandDefinition,
    CommandResult,
    ErrorKind,
    PromptsPipeline,
    StageSpec,
)
from conductor.registry.loader import CapabilityRegistry
from conductor.selection.analytics import SelectionAnalytics
from conductor.selection.resolver import DynamicAgentResolver
from conductor.session.manager import AGENT_SELECTION_KEY, STAGE_OUTPUTS_KEY, SessionManager


def _command(dynamic: bool = True, **kwargs: Any) -> CommandDefinition:
    return CommandDefinition(
        name=kwargs.pop("name", "implement"),
        agent="lead",
        dynamic_agent_selection=dynamic,
        prompts=PromptsPipeline(
            pipeline=[
                StageSpec(stage="plan", prompt="planner"),
                StageSpec(stage="build", prompt="builder"),
            ]
        ),
        **kwargs,
    )


def _resolved(command: CommandDefinition, provider: Any) -> ResolvedCommand:
    return ResolvedCommand(command=command, provider=provider, provider_name="test")


class SelectionSpyStrategy:
    """Captures the session's agent selection at the moment the strategy runs."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.seen: Any = None

    def can_execute(self, command: CommandDefinition, context: ExecutionContext) -> bool:
        return True

    async def execute(self, command: CommandDefinition, context: ExecutionContext) -> CommandResult:
        self.seen = context.get_context(AGENT_SELECTION_KEY)
        if self.fail:
            raise StrategyExecutionError("strategy blew up")
        return await PipelineStrategy().execute(command, context)


@pytest.fixture
def resolver(registry: CapabilityRegistry) -> DynamicAgentResolver:
    return DynamicAgentResolver(registry)


@pytest.mark.unit
class TestAgentResolution:
    @pytest.mark.asyncio
    async def test_static_selection_skips_resolver(self, provider, session):
        resolver = MagicMock()
        coordinator = ExecutionCoordinator(resolver=resolver)
        outcome = await coordinator.execute_command(
            "implement", _resolved(_command(dynamic=False), provider), ExecutionOptions(), session
        )
        resolver.resolve_agent.assert_not_called()
        assert outcome.result.agent == "lead"
        assert session.get_context(AGENT_SELECTION_KEY) is None

    @pytest.mark.asyncio
    async def test_dynamic_selection_picks_specialist(
        self, provider, session, resolver, caplog: pytest.LogCaptureFixture
    ):
        caplog.set_level(logging.INFO, logger="conductor")
        coordinator = ExecutionCoordinator(resolver=resolver)
        outcome = await coordinator.execute_command(
            "implement",
            _resolved(_command(), provider),
            ExecutionOptions(args=["Setup Terraform infrastructure"]),
            session,
        )
        assert outcome.result.success
        assert outcome.result.agent == "platform-engineer"
        stored = session.get_context(AGENT_SELECTION_KEY)
        assert stored["selected_agent"] == "platform-engineer"
        assert stored["fallback"] is False
        assert "Dynamic agent selected: platform-engineer" in caplog.text

    @pytest.mark.asyncio
    async def test_resolver_error_uses_fallback_agent(self, provider, session):
        resolver = MagicMock()
        resolver.resolve_agent.side_effect = RuntimeError("registry exploded")
        coordinator = ExecutionCoordinator(resolver=resolver)
        command = _command(fallback_agent="software-engineer-typescript-backend")
        outcome = await coordinator.execute_command(
            "implement", _resolved(command, provider), ExecutionOptions(args=["x"]), session
        )
        assert outcome.result.success
        assert outcome.result.agent == "software-engineer-typescript-backend"
        stored = session.get_context(AGENT_SELECTION_KEY)
        assert stored["reasons"] == [FALLBACK_DUE_TO_ERROR]
        assert stored["fallback"] is True
        assert stored["confidence"] == 0.0

    @pytest.mark.asyncio
    async def test_no_signal_falls_back_to_command_agent(self, provider, session, resolver):
        coordinator = ExecutionCoordinator(resolver=resolver)
        options = ExecutionOptions(args=["zzz qqq"])
        outcome = await coordinator.execute_command(
            "implement", _resolved(_command(), provider), options, session
        )
        assert outcome.result.agent == "lead"
        stored = session.get_context(AGENT_SELECTION_KEY)
        assert stored["selected_agent"] == "lead"
        assert stored["fallback"] is True
        assert stored["confidence"] == 0.0

    @pytest.mark.asyncio
    async def test_manual_override_wins(self, provider, session):
        resolver = MagicMock()
        analytics = SelectionAnalytics()
        coordinator = ExecutionCoordinator(resolver=resolver, analytics=analytics)
        outcome = await coordinator.execute_command(
            "implement",
            _resolved(_command(), provider),
            ExecutionOptions(args=["Setup Terraform"], flags={"agent": "qa"}),
            session,
        )
        resolver.resolve_agent.assert_not_called()
        assert outcome.result.agent == "qa"
        assert analytics.events[0].manual_override

    @pytest.mark.asyncio
    async def test_default_gate_resolves_implement_only(self, provider, session, resolver):
        spy = MagicMock(wraps=resolver)
        coordinator = ExecutionCoordinator(resolver=spy, config=ConductorConfig())
        options = ExecutionOptions(args=["Setup Terraform infrastructure"])
        review = await coordinator.execute_command(
            "review-code", _resolved(_command(name="review-code"), provider), options, session
        )
        spy.resolve_agent.assert_not_called()
        assert review.result.agent == "lead"

        implement = await coordinator.execute_command(
            "implement", _resolved(_command(), provider), options, session
        )
        spy.resolve_agent.assert_called_once()
        assert implement.result.agent == "platform-engineer"

    @pytest.mark.asyncio
    async def test_enabled_gate_resolves_every_command(self, provider, session, resolver):
        config = ConductorConfig(
            dynamic_agent_selection=True, dynamic_agent_selection_implement_only=True
        )
        coordinator = ExecutionCoordinator(resolver=resolver, config=config)
        outcome = await coordinator.execute_command(
            "review-code",
            _resolved(_command(name="review-code"), provider),
            ExecutionOptions(args=["Setup Terraform infrastructure"]),
            session,
        )
        assert outcome.result.agent == "platform-engineer"

    @pytest.mark.asyncio
    async def test_low_confidence_is_warned(
        self, provider, session, resolver, caplog: pytest.LogCaptureFixture
    ):
        caplog.set_level(logging.WARNING, logger="conductor")
        coordinator = ExecutionCoordinator(
            resolver=resolver, config=ConductorConfig(low_confidence_threshold=0.99)
        )
        await coordinator.execute_command(
            "implement",
            _resolved(_command(), provider),
            ExecutionOptions(args=["Setup Terraform infrastructure"]),
            session,
        )
        assert "Low confidence" in caplog.text

    @pytest.mark.asyncio
    async def test_selection_recorded_in_analytics(self, provider, session, resolver):
        analytics = SelectionAnalytics()
        coordinator = ExecutionCoordinator(resolver=resolver, analytics=analytics)
        await coordinator.execute_command(
            "implement",
            _resolved(_command(), provider),
            ExecutionOptions(args=["Setup Terraform infrastructure"]),
            session,
        )
        assert [e.selected_agent for e in analytics.events] == ["platform-engineer"]
        assert not analytics.events[0].manual_override

    @pytest.mark.asyncio
    async def test_dynamic_command_without_resolver_keeps_command_agent(self, provider, session):
        outcome = await ExecutionCoordinator().execute_command(
            "implement",
            _resolved(_command(), provider),
            ExecutionOptions(args=["Setup Terraform infrastructure"]),
            session,
        )
        assert outcome.result.success
        assert outcome.result.agent == "lead"
        assert session.get_context(AGENT_SELECTION_KEY) is None


@pytest.mark.unit
class TestStrategyHandoff:
    @pytest.mark.asyncio
    async def test_selection_visible_to_strategy(self, provider, session, resolver):
        spy = SelectionSpyStrategy()
        strategies = StrategyRegistry()
        strategies.register("test", "pipeline", spy)
        coordinator = ExecutionCoordinator(resolver=resolver, strategies=strategies)
        await coordinator.execute_command(
            "implement",
            _resolved(_command(), provider),
            ExecutionOptions(args=["Setup Terraform infrastructure"]),
            session,
        )
        assert spy.seen["selected_agent"] == "platform-engineer"

    @pytest.mark.asyncio
    async def test_strategy_error_propagates_after_selection_is_stored(
        self, provider, session, resolver
    ):
        spy = SelectionSpyStrategy(fail=True)
        strategies = StrategyRegistry()
        strategies.register("*", "*", spy)
        coordinator = ExecutionCoordinator(resolver=resolver, strategies=strategies)
        with pytest.raises(StrategyExecutionError):
            await coordinator.execute_command(
                "implement",
                _resolved(_command(), provider),
                ExecutionOptions(args=["Setup Terraform infrastructure"]),
                session,
            )
        assert session.get_context(AGENT_SELECTION_KEY)["selected_agent"] == "platform-engineer"

    @pytest.mark.asyncio
    async def test_missing_strategy_propagates(self, provider, session):
        coordinator = ExecutionCoordinator(strategies=StrategyRegistry())
        with pytest.raises(StrategyExecutionError):
            await coordinator.execute_command(
                "implement", _resolved(_command(), provider), ExecutionOptions(), session
            )

    @pytest.mark.asyncio
    async def test_context_creation_error_propagates(self, session):
        coordinator = ExecutionCoordinator()
        with pytest.raises(ContextCreationError):
            await coordinator.execute_command(
                "implement", _resolved(_command(), object()), ExecutionOptions(), session
            )


@pytest.mark.unit
class TestCancellation:
    @pytest.mark.asyncio
    async def test_preset_cancel_event_stops_the_run(self, provider, session):
        cancel = asyncio.Event()
        cancel.set()
        outcome = await ExecutionCoordinator().execute_command(
            "implement",
            _resolved(_command(dynamic=False), provider),
            ExecutionOptions(args=["Add login"], cancel_event=cancel),
            session,
        )
        assert not outcome.result.success
        assert outcome.result.error_kind == ErrorKind.CANCELLED
        assert provider.calls == []
        assert not session.get_session().commands[-1].success

    @pytest.mark.asyncio
    async def test_cancel_during_run_skips_later_stages(self, provider, session):
        cancel = asyncio.Event()
        provider.script = {"plan": [lambda: (cancel.set(), {"plan_out": "done"})[1]]}
        outcome = await ExecutionCoordinator().execute_command(
            "implement",
            _resolved(_command(dynamic=False), provider),
            ExecutionOptions(cancel_event=cancel),
            session,
        )
        assert outcome.result.error_kind == ErrorKind.CANCELLED
        assert provider.count("build") == 0
        assert session.get_stage_outputs() == {"plan": {"plan_out": "done"}}

    @pytest.mark.asyncio
    async def test_expired_deadline_cancels_single_prompt_command(self, provider, session):
        command = CommandDefinition(name="review", agent="lead")
        outcome = await ExecutionCoordinator().execute_command(
            "review",
            _resolved(command, provider),
            ExecutionOptions(args=["src/app.ts"], deadline=time.monotonic() - 1),
            session,
        )
        assert outcome.result.error_kind == ErrorKind.CANCELLED
        assert provider.calls == []


@pytest.mark.unit
class TestHistory:
    @pytest.mark.asyncio
    async def test_result_recorded_in_session(self, provider, session):
        coordinator = ExecutionCoordinator()
        outcome = await coordinator.execute_command(
            "implement",
            _resolved(_command(dynamic=False), provider),
            ExecutionOptions(args=["Add login"], flags={"dry": True}),
            session,
        )
        assert outcome.session_manager is session
        assert outcome.start_time > 0
        state = session.get_session()
        assert state.last_command == "implement"
        entry = state.commands[-1]
        assert entry.success
        assert entry.agent == "lead"
        assert entry.args == ["Add login"]
        assert entry.outputs == {"plan_out": "plan-result", "build_out": "build-result"}
        assert session.get_context(STAGE_OUTPUTS_KEY) == {
            "plan": {"plan_out": "plan-result"},
            "build": {"build_out": "build-result"},
        }

    @pytest.mark.asyncio
    async def test_failed_run_is_recorded(self, provider, session):
        provider.script = {"build": [RuntimeError("compile error")]}
        coordinator = ExecutionCoordinator()
        outcome = await coordinator.execute_command(
            "implement", _resolved(_command(dynamic=False), provider), ExecutionOptions(), session
        )
        assert not outcome.result.success
        entry = session.get_session().commands[-1]
        assert not entry.success
        assert "compile error" in (entry.error or "")
        assert session.get_stage_outputs() == {"plan": {"plan_out": "plan-result"}}


@pytest.mark.unit
class TestExtractTaskDescription:
    def test_prefers_first_argument(self, session: SessionManager):
        options = ExecutionOptions(args=["Add login", "extra"])
        assert extract_task_description("implement", options, session) == "Add login"

    def test_falls_back_to_plan_then_task(self, session: SessionManager):
        session.set_context("task.description", "Harden auth")
        assert extract_task_description("implement", ExecutionOptions(), session) == "Harden auth"
        session.set_context("planSummary.description", "Ship login")
        assert extract_task_description("implement", ExecutionOptions(), session) == "Ship login"

    def test_last_resort_is_command_name(self, session: SessionManager):
        assert extract_task_description("implement", ExecutionOptions(), session) == "implement"
