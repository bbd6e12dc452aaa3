"""Domain keyword table used to classify free-text tasks."""

from __future__ import annotations

DEFAULT_DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "infrastructure": (
        "terraform", "kubernetes", "docker", "aws", "gcp", "azure", "infrastructure",
        "deployment", "ci/cd", "pipeline", "container", "k8s", "helm", "argo",
        "monitoring", "logging", "metrics", "prometheus", "grafana",
    ),
    "security": (
        "security", "auth", "authentication", "authorization", "oauth", "jwt",
        "encryption", "ssl", "tls", "vulnerability", "threat", "compliance", "owasp",
        "cis", "gdpr", "hipaa", "penetration", "audit",
    ),
    "typescript-backend-general": (
        "api", "backend", "server", "database", "sql", "nosql", "mongodb", "postgresql",
        "mysql", "redis", "rest", "graphql", "trpc", "express", "nestjs", "fastify",
        "middleware", "routes", "controllers", "services", "orm", "prisma", "typeorm",
        "migration", "dto", "validation", "zod",
    ),
    "typescript-core": (
        "typescript", "type", "interface", "generic", "utility", "decorator", "module",
        "import", "export", "compiler", "strict", "config", "build", "bundle",
        "transpile", "lint", "eslint", "prettier",
    ),
    "typescript-frontend-general": (
        "frontend", "ui", "component", "html", "css", "javascript", "dom", "responsive",
        "accessibility", "aria", "wcag", "svelte", "vue", "angular", "lit",
        "web components",
    ),
    "typescript-frontend-react": (
        "react", "next.js", "component", "hook", "state", "props", "jsx", "tsx",
        "redux", "zustand", "context", "router", "navigation", "form",
        "react-hook-form", "tanstack query", "axios", "fetch",
    ),
    "ui-ux-designer": (
        "design", "ui", "ux", "mockup", "wireframe", "prototype", "figma", "sketch",
        "adobe", "user experience", "usability", "interaction", "visual design",
        "branding", "color", "typography",
    ),
}


class DomainKeywordRegistry:
    """Mutable keyword-to-domain table seeded from DEFAULT_DOMAIN_KEYWORDS."""

    def __init__(self) -> None:
        self._keywords: dict[str, set[str]] = {}
        self.reset()

    def reset(self) -> None:
        self._keywords = {domain: set(words) for domain, words in DEFAULT_DOMAIN_KEYWORDS.items()}

    def domains(self) -> list[str]:
        return list(self._keywords)

    def keywords(self, domain: str) -> list[str]:
        return sorted(self._keywords.get(domain, set()))

    def all_keywords(self) -> dict[str, list[str]]:
        return {domain: sorted(words) for domain, words in self._keywords.items()}

    def register_keywords(self, domain: str, words: list[str]) -> None:
        """Add keywords to a domain without removing existing ones."""
        self._keywords.setdefault(domain, set()).update(w.lower() for w in words)

    def set_keywords(self, domain: str, words: list[str]) -> None:
        """Replace every keyword of a domain."""
        self._keywords[domain] = {w.lower() for w in words}

    def find_domains(self, keyword: str) -> list[str]:
        keyword = keyword.lower()
        return [domain for domain, words in self._keywords.items() if keyword in words]
