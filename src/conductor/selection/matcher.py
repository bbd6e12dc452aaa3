"""Capability matcher: score every registered role against a set of signals."""

from __future__ import annotations

from collections.abc import Iterable

from conductor.registry.loader import CapabilityRegistry
from conductor.selection.models import AgentCandidate, TaskSignal

# Scaled priority bonus for matched roles; only ever breaks otherwise-equal sums.
PRIORITY_EPSILON = 1e-6


def rank_key(candidate: AgentCandidate) -> tuple[float, int, str]:
    return (-candidate.score, -candidate.priority, candidate.role)


class CapabilityMatcher:
    def match(
        self,
        signals: list[TaskSignal],
        registry: CapabilityRegistry,
        allowed: Iterable[str] | None = None,
    ) -> list[AgentCandidate]:
        """Score each record by the summed weight of signals it covers.

        Roles without any matched signal score exactly 0 and stay in the list.
        Ordered by score desc, then priority desc, then role asc.
        """
        records = registry.records()
        if allowed is not None:
            allowed_roles = set(allowed)
            records = [r for r in records if r.role in allowed_roles]
        max_priority = max((r.priority for r in records), default=0)

        candidates: list[AgentCandidate] = []
        for record in records:
            tags = record.tags
            matched = [s for s in signals if s.tag in tags]
            score = sum(s.weight for s in matched)
            if matched and max_priority > 0:
                score += record.priority / max_priority * PRIORITY_EPSILON
            candidates.append(
                AgentCandidate(
                    role=record.role,
                    score=score,
                    priority=record.priority,
                    matched_signals=sorted(matched, key=lambda s: (-s.weight, s.tag)),
                )
            )
        candidates.sort(key=rank_key)
        return candidates
