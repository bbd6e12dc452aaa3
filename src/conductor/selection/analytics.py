"""Agent selection analytics: in-memory event log with best-effort remote reporting."""

from __future__ import annotations

import logging

import httpx

from conductor.selection.models import AgentSelection, AgentSelectionEvent

logger = logging.getLogger(__name__)


class SelectionAnalytics:
    """Records every agent selection and summarises them."""

    def __init__(self, endpoint: str | None = None) -> None:
        self._endpoint = endpoint
        self._events: list[AgentSelectionEvent] = []

    @property
    def events(self) -> list[AgentSelectionEvent]:
        return list(self._events)

    def record(
        self,
        *,
        session_id: str,
        command: str,
        selected_agent: str,
        selection: AgentSelection | None = None,
        manual_override: bool = False,
    ) -> AgentSelectionEvent:
        event = AgentSelectionEvent(
            session_id=session_id,
            command=command,
            selected_agent=selected_agent,
            confidence=selection.confidence if selection else 1.0,
            fallback_used=selection.fallback if selection else False,
            manual_override=manual_override,
            reasons=list(selection.reasons) if selection else [],
        )
        self._events.append(event)
        if self._endpoint:
            self._send_event(event)
        return event

    def metrics(self) -> dict[str, object]:
        """Totals, averages, rates, and per-agent / per-command distributions."""
        total = len(self._events)
        if total == 0:
            return {
                "total_selections": 0,
                "average_confidence": 0.0,
                "fallback_rate": 0.0,
                "manual_override_rate": 0.0,
                "agent_distribution": {},
                "command_distribution": {},
            }
        agents: dict[str, int] = {}
        commands: dict[str, int] = {}
        for event in self._events:
            agents[event.selected_agent] = agents.get(event.selected_agent, 0) + 1
            commands[event.command] = commands.get(event.command, 0) + 1
        return {
            "total_selections": total,
            "average_confidence": sum(e.confidence for e in self._events) / total,
            "fallback_rate": sum(1 for e in self._events if e.fallback_used) / total,
            "manual_override_rate": sum(1 for e in self._events if e.manual_override) / total,
            "agent_distribution": agents,
            "command_distribution": commands,
        }

    def clear(self) -> None:
        self._events.clear()

    def _send_event(self, event: AgentSelectionEvent) -> None:
        try:
            with httpx.Client(timeout=5) as client:
                client.post(f"{self._endpoint}/api/agent-selections", json=event.model_dump())
        except Exception as e:
            logger.debug(f"Failed to report agent selection: {e}")
