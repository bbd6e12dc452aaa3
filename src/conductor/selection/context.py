"""Context analyzer: session target files and dependencies to weighted signals."""

from __future__ import annotations

import posixpath
from typing import Any, Protocol

from conductor.registry.keywords import DomainKeywordRegistry
from conductor.selection.models import SignalSource, TaskSignal

DEPENDENCY_WEIGHT = 0.5

_FRONTEND_SEGMENTS = {"frontend", "client", "ui", "components", "pages", "views", "web"}
_BACKEND_SEGMENTS = {"api", "server", "backend", "routes", "controllers", "services", "db"}
_KUBERNETES_SEGMENTS = {"k8s", "kubernetes", "helm", "charts", "manifests", "deploy"}
_SECURITY_MARKERS = ("auth", "security", "crypto", "policy", "policies")
_DESIGN_EXTENSIONS = (".fig", ".sketch", ".xd")

_DEPENDENCY_ALIASES = {
    "next": "next.js",
    "pg": "postgresql",
    "postgres": "postgresql",
    "mongoose": "mongodb",
    "ioredis": "redis",
    "jsonwebtoken": "jwt",
    "react-dom": "react",
}


class SessionReader(Protocol):
    def get_context(self, key: str) -> Any: ...


def _file_tags(path: str) -> set[str]:
    """Domain and selection-criteria tags implied by a single file path."""
    p = path.strip().lower().replace("\\", "/")
    if not p:
        return set()
    name = posixpath.basename(p)
    segments = set(p.split("/")[:-1])
    tags: set[str] = set()

    if name.endswith((".tf", ".tfvars")):
        tags |= {"infrastructure", "terraform-files"}
    elif name.startswith("dockerfile") or name.startswith("docker-compose"):
        tags |= {"infrastructure", "docker-files"}
    elif name.endswith((".yaml", ".yml")):
        tags.add("infrastructure")
        if segments & _KUBERNETES_SEGMENTS or name.startswith(("deployment", "ingress")):
            tags.add("kubernetes-manifests")
        if ".github" in segments or name.startswith(".gitlab-ci"):
            tags.add("cloud-config")
    elif name.endswith((".tsx", ".jsx")):
        tags |= {"typescript-frontend-react", "component-files"}
        if name.endswith(".tsx"):
            tags.add("typescript-files")
    elif name.endswith(".d.ts"):
        tags |= {"typescript-core", "typescript-files"}
    elif name.endswith((".ts", ".mts", ".cts", ".js", ".mjs", ".cjs")):
        if name.endswith((".ts", ".mts", ".cts")):
            tags.add("typescript-files")
        if segments & _FRONTEND_SEGMENTS:
            tags.add("typescript-frontend-general")
        elif segments & _BACKEND_SEGMENTS:
            tags.add("typescript-backend-general")
            if "api" in segments or "routes" in segments:
                tags.add("api-files")
        else:
            tags.add("typescript-core")
    elif name.endswith((".css", ".scss", ".html", ".vue", ".svelte")):
        tags |= {"typescript-frontend-general", "component-files"}
    elif name.endswith(".md"):
        tags.add("documentation-files")
    elif name.endswith(_DESIGN_EXTENSIONS):
        tags |= {"ui-ux-designer", "design-files"}

    if any(marker in part for part in (*segments, name) for marker in _SECURITY_MARKERS):
        tags |= {"security", "security-files"}
        if "polic" in p:
            tags.add("policy-files")
    if ".test." in name or ".spec." in name or segments & {"tests", "__tests__", "e2e"}:
        tags.add("test-files")
    return tags


def normalize_dependency(name: str) -> str:
    """``@prisma/client`` -> ``prisma``; ``react@18`` -> ``react``."""
    dep = name.strip().lower()
    if dep.startswith("@"):
        dep = dep[1:].split("/", 1)[0]
    else:
        dep = dep.split("@", 1)[0]
    return _DEPENDENCY_ALIASES.get(dep, dep)


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for item in value:
        if isinstance(item, str):
            items.append(item)
        elif isinstance(item, dict) and isinstance(item.get("name"), str):
            items.append(item["name"])
    return items


def _nested(session: SessionReader, key: str, field: str) -> object:
    parent = session.get_context(key)
    if isinstance(parent, dict):
        return parent.get(field)
    return None


class ContextAnalyzer:
    """Reads ``targetFiles`` and ``dependencies`` from session context."""

    def __init__(self, keywords: DomainKeywordRegistry | None = None) -> None:
        self._keywords = keywords or DomainKeywordRegistry()

    def target_files(self, session: SessionReader) -> list[str]:
        files = _string_list(session.get_context("targetFiles"))
        if not files:
            files = _string_list(_nested(session, "implementationScope", "targetFiles"))
        return files

    def dependencies(self, session: SessionReader) -> list[str]:
        deps = _string_list(session.get_context("dependencies"))
        if not deps:
            deps = _string_list(_nested(session, "planSummary", "dependencies"))
        return deps

    def analyze(self, session: SessionReader) -> list[TaskSignal]:
        """Signals from session context; missing or mistyped keys yield nothing."""
        signals = self._file_signals(self.target_files(session))
        signals.extend(self._dependency_signals(self.dependencies(session)))
        signals.sort(key=lambda s: (-s.weight, s.tag, s.source))
        return signals

    def _file_signals(self, files: list[str]) -> list[TaskSignal]:
        if not files:
            return []
        counts: dict[str, int] = {}
        for path in files:
            for tag in _file_tags(path):
                counts[tag] = counts.get(tag, 0) + 1
        total = len(files)
        return [
            TaskSignal(tag=tag, weight=min(1.0, count / total), source=SignalSource.FILES)
            for tag, count in counts.items()
        ]

    def _dependency_signals(self, deps: list[str]) -> list[TaskSignal]:
        weights: dict[str, float] = {}
        for raw in deps:
            dep = normalize_dependency(raw)
            if not dep:
                continue
            for tag in (dep, *self._keywords.find_domains(dep)):
                weights[tag] = min(1.0, weights.get(tag, 0.0) + DEPENDENCY_WEIGHT)
        return [
            TaskSignal(tag=tag, weight=weight, source=SignalSource.DEPENDENCIES)
            for tag, weight in weights.items()
        ]
