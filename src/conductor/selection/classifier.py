"""Task classifier: free-text task description to weighted domain/keyword signals."""

from __future__ import annotations

import re

from conductor.registry.keywords import DomainKeywordRegistry
from conductor.selection.models import SignalSource, TaskSignal

_TOKEN_RE = re.compile(r"[a-z0-9@][a-z0-9.+#/_@-]*")


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens with trailing punctuation stripped."""
    tokens = (t.rstrip("./-") for t in _TOKEN_RE.findall(text.lower()))
    return [t for t in tokens if t]


def _count(keyword: str, tokens: list[str], padded: str) -> int:
    if " " in keyword:
        return padded.count(f" {keyword} ")
    return tokens.count(keyword)


class TaskClassifier:
    """Keyword-density classifier over a DomainKeywordRegistry."""

    def __init__(self, keywords: DomainKeywordRegistry | None = None) -> None:
        self._keywords = keywords or DomainKeywordRegistry()

    @property
    def keywords(self) -> DomainKeywordRegistry:
        return self._keywords

    def classify(self, description: str) -> list[TaskSignal]:
        """Emit one signal per matched domain plus one per matched keyword.

        Weight is match count over token count, capped at 1.0. Keywords that
        are themselves domain names only contribute to the domain signal.
        """
        tokens = tokenize(description)
        if not tokens:
            return []
        padded = f" {' '.join(tokens)} "
        total = len(tokens)

        domain_weights: dict[str, float] = {}
        keyword_weights: dict[str, float] = {}
        table = self._keywords.all_keywords()
        for domain, words in table.items():
            matches = 0
            for word in words:
                occurrences = _count(word, tokens, padded)
                if not occurrences:
                    continue
                matches += occurrences
                if word not in table:
                    keyword_weights[word] = min(1.0, occurrences / total)
            if matches:
                domain_weights[domain] = min(1.0, matches / total)

        signals = [
            TaskSignal(tag=tag, weight=weight, source=SignalSource.TASK)
            for tag, weight in (*domain_weights.items(), *keyword_weights.items())
        ]
        signals.sort(key=lambda s: (-s.weight, s.tag))
        return signals
