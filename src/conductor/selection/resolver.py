"""Dynamic agent resolver: classifier + context analyzer + matcher -> AgentSelection."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from conductor.config import DEFAULT_ALTERNATIVES_CAP
from conductor.registry.loader import CapabilityRegistry, RegistryLoadError
from conductor.selection.classifier import TaskClassifier
from conductor.selection.context import ContextAnalyzer, SessionReader
from conductor.selection.matcher import CapabilityMatcher
from conductor.selection.models import AgentSelection, Alternative, SignalSource, TaskSignal

logger = logging.getLogger(__name__)

NO_SIGNAL_REASON = "no task or context signal matched a registered capability"


class ResolutionError(Exception):
    """Agent selection failed for a reason other than a weak match."""


def merge_signals(*groups: list[TaskSignal]) -> list[TaskSignal]:
    """Union signal groups, summing weights per tag and capping at 1.0."""
    weights: dict[str, float] = {}
    sources: dict[str, SignalSource] = {}
    for group in groups:
        for signal in group:
            weights[signal.tag] = min(1.0, weights.get(signal.tag, 0.0) + signal.weight)
            sources.setdefault(signal.tag, signal.source)
    merged = [TaskSignal(tag=t, weight=w, source=sources[t]) for t, w in weights.items()]
    merged.sort(key=lambda s: (-s.weight, s.tag))
    return merged


class DynamicAgentResolver:
    def __init__(
        self,
        registry: CapabilityRegistry,
        classifier: TaskClassifier | None = None,
        analyzer: ContextAnalyzer | None = None,
        matcher: CapabilityMatcher | None = None,
        alternatives_cap: int = DEFAULT_ALTERNATIVES_CAP,
    ) -> None:
        self._registry = registry
        self._classifier = classifier or TaskClassifier()
        self._analyzer = analyzer or ContextAnalyzer(self._classifier.keywords)
        self._matcher = matcher or CapabilityMatcher()
        self._alternatives_cap = alternatives_cap

    @property
    def registry(self) -> CapabilityRegistry:
        return self._registry

    def resolve_agent(
        self,
        task_description: str,
        session: SessionReader,
        allowed_candidates: Iterable[str] | None = None,
    ) -> AgentSelection:
        """Pick the best-scoring role for a task.

        A weak or absent match is not an error: the selection comes back with
        ``selected_agent=None`` and confidence 0 so the caller can fall back.
        """
        if not self._registry.initialized:
            raise RegistryLoadError("Capability registry not initialized; call initialize() first")

        try:
            task_signals = self._classifier.classify(task_description)
            context_signals = self._analyzer.analyze(session)
        except RegistryLoadError:
            raise
        except Exception as e:
            raise ResolutionError(f"Failed to analyze task signals: {e}") from e

        signals = merge_signals(task_signals, context_signals)
        candidates = self._matcher.match(signals, self._registry, allowed_candidates)
        scored = [c for c in candidates if c.score > 0]
        cap = self._alternatives_cap

        if not scored:
            logger.debug(f"No capability matched task {task_description[:60]!r}")
            return AgentSelection(
                selected_agent=None,
                confidence=0.0,
                reasons=[NO_SIGNAL_REASON],
                alternatives=[Alternative(role=c.role, score=c.score) for c in candidates[:cap]],
                fallback=True,
            )

        winner = scored[0]
        total = sum(c.score for c in scored)
        confidence = min(1.0, winner.score / total)
        reasons: list[str] = []
        for signal in winner.matched_signals:
            if signal.tag not in reasons:
                reasons.append(signal.tag)

        return AgentSelection(
            selected_agent=winner.role,
            confidence=confidence,
            reasons=reasons,
            alternatives=[Alternative(role=c.role, score=c.score) for c in candidates[1 : 1 + cap]],
        )

    def explain(self, selection: AgentSelection) -> list[str]:
        """Human-readable reasons using the registry's domain and criteria descriptions."""
        lines: list[str] = []
        for reason in selection.reasons:
            description = None
            if self._registry.initialized:
                description = self._registry.domain_description(
                    reason
                ) or self._registry.criterion_description(reason)
            lines.append(f"{reason}: {description}" if description else reason)
        return lines
