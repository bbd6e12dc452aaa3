"""Stage dependency analysis, pipeline validation, and parallel wave grouping."""

from __future__ import annotations

import re

from conductor.pipeline.models import StageSpec

STAGE_REF_RE = re.compile(r"\$STAGE_([A-Za-z0-9_-]+)\.([A-Za-z0-9_.-]+)")


def stage_references(stage: StageSpec) -> set[str]:
    """Stage ids named by ``$STAGE_<id>.<key>`` references in the stage inputs."""
    refs: set[str] = set()
    for value in stage.inputs.values():
        if isinstance(value, str):
            refs.update(m.group(1) for m in STAGE_REF_RE.finditer(value))
    return refs


def stage_dependencies(stage: StageSpec) -> set[str]:
    return set(stage.depends_on) | stage_references(stage)


def validate_pipeline(stages: list[StageSpec]) -> list[str]:
    """Return human-readable problems; an empty list means the pipeline is runnable."""
    errors: list[str] = []
    seen: set[str] = set()
    for stage in stages:
        if stage.stage in seen:
            errors.append(f"Duplicate stage id: {stage.stage}")
        seen.add(stage.stage)

    for stage in stages:
        for dep in sorted(set(stage.depends_on)):
            if dep not in seen:
                errors.append(f"Stage {stage.stage} depends on unknown stage {dep}")
            elif dep == stage.stage:
                errors.append(f"Stage {stage.stage} depends on itself")

    if not errors:
        try:
            build_waves(stages)
        except ValueError as e:
            errors.append(str(e))
    return errors


def build_waves(stages: list[StageSpec]) -> list[list[StageSpec]]:
    """Group stages by dependency level, keeping declared order inside each wave.

    References to stages outside the pipeline (outputs of earlier commands)
    do not constrain ordering.
    """
    ids = {s.stage for s in stages}
    pending = {s.stage: stage_dependencies(s) & ids for s in stages}
    done: set[str] = set()
    waves: list[list[StageSpec]] = []
    remaining = list(stages)
    while remaining:
        wave = [s for s in remaining if pending[s.stage] <= done]
        if not wave:
            cycle = ", ".join(s.stage for s in remaining)
            raise ValueError(f"Dependency cycle between stages: {cycle}")
        waves.append(wave)
        done.update(s.stage for s in wave)
        remaining = [s for s in remaining if s.stage not in done]
    return waves
