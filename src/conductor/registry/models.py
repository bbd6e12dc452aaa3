"""Pydantic models for the capability registry."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_CRITERIA_ALIAS = AliasChoices("selectionCriteria", "selection_criteria")


class CapabilityRecord(BaseModel):
    """What one agent role is good at."""

    model_config = ConfigDict(frozen=True)

    role: str
    domains: frozenset[str] = Field(default_factory=frozenset)
    expertise: frozenset[str] = Field(default_factory=frozenset)
    priority: int = 0
    selection_criteria: frozenset[str] = Field(
        default_factory=frozenset, validation_alias=_CRITERIA_ALIAS
    )

    @field_validator("domains", "expertise", "selection_criteria", mode="before")
    @classmethod
    def _lowercase_tags(cls, value: object) -> object:
        if isinstance(value, list | tuple | set | frozenset):
            return frozenset(str(tag).strip().lower() for tag in value if str(tag).strip())
        return value

    @property
    def tags(self) -> frozenset[str]:
        """Every tag a task signal may match against."""
        return self.domains | self.expertise | self.selection_criteria


class CapabilitySource(BaseModel):
    """Raw shape of a capability source document."""

    capabilities: dict[str, dict[str, object]]
    selection_criteria: dict[str, str] = Field(
        default_factory=dict, validation_alias=_CRITERIA_ALIAS
    )
    task_domains: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("taskDomains", "task_domains")
    )
