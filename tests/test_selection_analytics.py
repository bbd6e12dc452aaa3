"""Tests for selection/analytics.py: event recording, metrics, remote reporting."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from conductor.selection.analytics import SelectionAnalytics
from conductor.selection.models import AgentSelection


def _selection(agent: str, confidence: float, fallback: bool = False) -> AgentSelection:
    return AgentSelection(
        selected_agent=agent, confidence=confidence, reasons=["infrastructure"], fallback=fallback
    )


@pytest.mark.unit
class TestRecord:
    def test_records_event_from_selection(self):
        analytics = SelectionAnalytics()
        event = analytics.record(
            session_id="s1",
            command="implement",
            selected_agent="platform-engineer",
            selection=_selection("platform-engineer", 0.8),
        )
        assert event.confidence == 0.8
        assert event.reasons == ["infrastructure"]
        assert not event.manual_override
        assert analytics.events == [event]

    def test_manual_override_has_full_confidence(self):
        event = SelectionAnalytics().record(
            session_id="s1", command="implement", selected_agent="lead", manual_override=True
        )
        assert event.manual_override
        assert event.confidence == 1.0


@pytest.mark.unit
class TestMetrics:
    def test_empty(self):
        metrics = SelectionAnalytics().metrics()
        assert metrics["total_selections"] == 0
        assert metrics["fallback_rate"] == 0.0

    def test_aggregates(self):
        analytics = SelectionAnalytics()
        analytics.record(
            session_id="s1",
            command="implement",
            selected_agent="platform-engineer",
            selection=_selection("platform-engineer", 0.8),
        )
        analytics.record(
            session_id="s1",
            command="review-code",
            selected_agent="lead",
            selection=_selection("lead", 0.0, fallback=True),
        )
        metrics = analytics.metrics()
        assert metrics["total_selections"] == 2
        assert metrics["average_confidence"] == pytest.approx(0.4)
        assert metrics["fallback_rate"] == 0.5
        assert metrics["agent_distribution"] == {"platform-engineer": 1, "lead": 1}
        assert metrics["command_distribution"] == {"implement": 1, "review-code": 1}

    def test_clear(self):
        analytics = SelectionAnalytics()
        analytics.record(session_id="s1", command="c", selected_agent="lead")
        analytics.clear()
        assert analytics.events == []


@pytest.mark.unit
class TestRemoteReporting:
    def test_posts_event_when_endpoint_configured(self):
        analytics = SelectionAnalytics(endpoint="http://127.0.0.1:41777")
        with patch("conductor.selection.analytics.httpx") as mock_httpx:
            mock_client = MagicMock()
            mock_httpx.Client.return_value.__enter__ = MagicMock(return_value=mock_client)
            mock_httpx.Client.return_value.__exit__ = MagicMock(return_value=False)
            analytics.record(session_id="s1", command="implement", selected_agent="lead")
            mock_client.post.assert_called_once()
            url = mock_client.post.call_args[0][0]
            assert url == "http://127.0.0.1:41777/api/agent-selections"
            assert mock_client.post.call_args[1]["json"]["selected_agent"] == "lead"

    def test_reporting_failure_is_not_raised(self):
        analytics = SelectionAnalytics(endpoint="http://127.0.0.1:1")
        with patch("conductor.selection.analytics.httpx") as mock_httpx:
            mock_httpx.Client.side_effect = OSError("connection refused")
            event = analytics.record(session_id="s1", command="implement", selected_agent="lead")
        assert analytics.events == [event]

    def test_no_endpoint_no_request(self):
        with patch("conductor.selection.analytics.httpx") as mock_httpx:
            SelectionAnalytics().record(session_id="s1", command="c", selected_agent="lead")
            mock_httpx.Client.assert_not_called()
