"""CapabilityRegistry: load and query agent capability records."""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path

from pydantic import ValidationError

from conductor.registry.models import CapabilityRecord, CapabilitySource

logger = logging.getLogger(__name__)

BUNDLED_SOURCE = "agent-capabilities.json"


class RegistryLoadError(Exception):
    """Capability source missing, malformed, or registry used before initialize()."""


class CapabilityRegistry:
    """Read-only registry of agent capabilities, populated by ``initialize()``.

    Queries before initialization raise RegistryLoadError; ``all_records()``
    is the exception and returns an empty list so listings degrade quietly.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._records: dict[str, CapabilityRecord] = {}
        self._selection_criteria: dict[str, str] = {}
        self._task_domains: dict[str, str] = {}
        self._initialized = False

    @classmethod
    def from_bytes(cls, raw: bytes | str) -> CapabilityRegistry:
        """Build an initialized registry from a raw capability document."""
        registry = cls()
        registry._populate(_parse(raw, source="<bytes>"))
        return registry

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Load the capability source. A second call is a no-op."""
        if self._initialized:
            return
        if self._path is not None:
            try:
                raw = self._path.read_bytes()
            except OSError as e:
                raise RegistryLoadError(f"Cannot read capability source {self._path}: {e}") from e
            source = str(self._path)
        else:
            source = BUNDLED_SOURCE
            try:
                raw = resources.files("conductor.registry").joinpath(source).read_bytes()
            except OSError as e:
                raise RegistryLoadError(f"Cannot read capability source {source}: {e}") from e
        self._populate(_parse(raw, source=source))
        logger.debug(f"Capability registry loaded from {source}: {len(self._records)} roles")

    def reload(self) -> None:
        """Drop loaded records and read the source again."""
        self._initialized = False
        self._records = {}
        self.initialize()

    def _populate(self, data: CapabilitySource) -> None:
        records: dict[str, CapabilityRecord] = {}
        for role, entry in data.capabilities.items():
            try:
                records[role] = CapabilityRecord.model_validate({**entry, "role": role})
            except ValidationError as e:
                raise RegistryLoadError(f"Invalid capability record for {role!r}: {e}") from e
        self._records = records
        self._selection_criteria = dict(data.selection_criteria)
        self._task_domains = dict(data.task_domains)
        self._initialized = True

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RegistryLoadError("Capability registry not initialized; call initialize() first")

    # -- Queries ------------------------------------------------------------

    def get(self, role: str) -> CapabilityRecord | None:
        self._require_initialized()
        return self._records.get(role)

    def has(self, role: str) -> bool:
        self._require_initialized()
        return role in self._records

    def roles(self) -> list[str]:
        self._require_initialized()
        return sorted(self._records)

    def records(self) -> list[CapabilityRecord]:
        self._require_initialized()
        return list(self._records.values())

    def all_records(self) -> list[CapabilityRecord]:
        if not self._initialized:
            return []
        return list(self._records.values())

    def max_priority(self) -> int:
        self._require_initialized()
        return max((r.priority for r in self._records.values()), default=0)

    def find_by_domain(self, domain: str) -> list[CapabilityRecord]:
        """Records serving ``domain``, highest priority first."""
        self._require_initialized()
        domain = domain.lower()
        matches = [r for r in self._records.values() if domain in r.domains]
        return sorted(matches, key=lambda r: (-r.priority, r.role))

    def find_by_criteria(self, criteria: list[str]) -> list[CapabilityRecord]:
        """Records meeting any of ``criteria``, most criteria matched first."""
        self._require_initialized()
        wanted = {c.lower() for c in criteria}
        scored = [
            (len(wanted & r.selection_criteria), r)
            for r in self._records.values()
            if wanted & r.selection_criteria
        ]
        scored.sort(key=lambda pair: (-pair[0], -pair[1].priority, pair[1].role))
        return [r for _, r in scored]

    def domain_description(self, domain: str) -> str | None:
        self._require_initialized()
        return self._task_domains.get(domain)

    def criterion_description(self, criterion: str) -> str | None:
        self._require_initialized()
        return self._selection_criteria.get(criterion)

    def stats(self) -> dict[str, object]:
        """Return role count, distinct domains, and per-domain role counts."""
        self._require_initialized()
        per_domain: dict[str, int] = {}
        for record in self._records.values():
            for domain in record.domains:
                per_domain[domain] = per_domain.get(domain, 0) + 1
        return {
            "total_roles": len(self._records),
            "domains": sorted(per_domain),
            "roles_per_domain": dict(sorted(per_domain.items())),
            "selection_criteria": sorted(self._selection_criteria),
        }


def _parse(raw: bytes | str, *, source: str) -> CapabilitySource:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RegistryLoadError(f"Malformed capability source {source}: {e}") from e
    try:
        return CapabilitySource.model_validate(data)
    except ValidationError as e:
        raise RegistryLoadError(f"Malformed capability source {source}: {e}") from e
