"""Capability registry: agent roles, their domains, and task keywords."""

from conductor.registry.keywords import DomainKeywordRegistry
from conductor.registry.loader import CapabilityRegistry, RegistryLoadError
from conductor.registry.models import CapabilityRecord

__all__ = [
    "CapabilityRecord",
    "CapabilityRegistry",
    "DomainKeywordRegistry",
    "RegistryLoadError",
]
