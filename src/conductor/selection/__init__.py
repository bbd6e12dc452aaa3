"""Dynamic agent selection: classify, analyze, match, resolve."""

from conductor.selection.analytics import SelectionAnalytics
from conductor.selection.classifier import TaskClassifier
from conductor.selection.context import ContextAnalyzer
from conductor.selection.matcher import CapabilityMatcher
from conductor.selection.models import (
    AgentCandidate,
    AgentSelection,
    AgentSelectionEvent,
    Alternative,
    SignalSource,
    TaskSignal,
)
from conductor.selection.resolver import DynamicAgentResolver, ResolutionError

__all__ = [
    "AgentCandidate",
    "AgentSelection",
    "AgentSelectionEvent",
    "Alternative",
    "CapabilityMatcher",
    "ContextAnalyzer",
    "DynamicAgentResolver",
    "ResolutionError",
    "SelectionAnalytics",
    "SignalSource",
    "TaskClassifier",
    "TaskSignal",
]
