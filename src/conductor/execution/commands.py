"""Command definition loading and provider resolution."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from conductor.config import ConductorConfig
from conductor.execution.coordinator import ResolvedCommand
from conductor.pipeline.models import CommandDefinition
from conductor.pipeline.provider import DryRunProvider, HttpProvider, Provider


class CommandNotFoundError(Exception):
    """No usable command definition for the requested name."""


def load_command(name: str, commands_dir: Path) -> CommandDefinition:
    """Read ``<commands_dir>/<name>.json`` into a CommandDefinition."""
    path = commands_dir / f"{name}.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise CommandNotFoundError(f"Unknown command: {name} (looked in {commands_dir})") from e
    except (json.JSONDecodeError, OSError) as e:
        raise CommandNotFoundError(f"Unreadable command definition {path}: {e}") from e
    if not isinstance(data, dict):
        raise CommandNotFoundError(f"Command definition {path} is not a JSON object")
    data.setdefault("name", name)
    try:
        return CommandDefinition.model_validate(data)
    except ValidationError as e:
        raise CommandNotFoundError(f"Invalid command definition {path}: {e}") from e


def list_commands(commands_dir: Path) -> list[str]:
    if not commands_dir.exists():
        return []
    return sorted(p.stem for p in commands_dir.glob("*.json"))


def resolve_command(
    name: str,
    config: ConductorConfig,
    *,
    project_root: Path | None = None,
    provider: Provider | None = None,
    dry_run: bool = False,
) -> ResolvedCommand:
    """Load a command and pair it with the provider that will execute it."""
    root = project_root or Path.cwd()
    command = load_command(name, root / config.commands_dir)
    if provider is not None:
        return ResolvedCommand(command=command, provider=provider, provider_name="custom")
    if dry_run or not config.provider_url:
        return ResolvedCommand(command=command, provider=DryRunProvider(), provider_name="dry-run")
    return ResolvedCommand(
        command=command, provider=HttpProvider(config.provider_url), provider_name="http"
    )
