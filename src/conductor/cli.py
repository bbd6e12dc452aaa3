"""CLI entry point for conductor."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, cast

from conductor import __version__
from conductor.config import CONFIG_FILENAME, ConductorConfig, load_config
from conductor.execution.commands import CommandNotFoundError, list_commands, resolve_command
from conductor.execution.coordinator import ExecutionCoordinator, ExecutionOptions
from conductor.execution.strategy import StrategyRegistry
from conductor.pipeline.cache import SqliteCacheStore
from conductor.pipeline.engine import PipelineEngine
from conductor.registry.loader import CapabilityRegistry, RegistryLoadError
from conductor.selection.analytics import SelectionAnalytics
from conductor.selection.resolver import DynamicAgentResolver
from conductor.session.manager import SessionManager, SessionStore
from conductor.session.state import InvalidSessionIdError, resolve_session_id

logger = logging.getLogger(__name__)


def _parse_flags(pairs: list[str]) -> dict[str, Any]:
    flags: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not key:
            continue
        flags[key] = value if sep else True
    return flags


def _load_config(args: argparse.Namespace) -> ConductorConfig:
    path = cast(Path | None, args.config) or Path.cwd() / CONFIG_FILENAME
    return load_config(path)


def _open_session(config: ConductorConfig, args: argparse.Namespace) -> SessionManager:
    try:
        session_id = resolve_session_id(cast(str | None, args.session))
    except InvalidSessionIdError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    return SessionStore(config.sessions_dir).get_session(session_id)


def _build_resolver(config: ConductorConfig) -> DynamicAgentResolver:
    registry = CapabilityRegistry(Path(config.registry_path) if config.registry_path else None)
    try:
        registry.initialize()
    except RegistryLoadError as e:
        logger.warning(f"Capability registry unavailable: {e}")
    return DynamicAgentResolver(registry, alternatives_cap=config.alternatives_cap)


def _cmd_run(args: argparse.Namespace) -> None:
    config = _load_config(args)
    command_name = cast(str, args.name)
    try:
        resolved = resolve_command(command_name, config, dry_run=cast(bool, args.dry_run))
    except CommandNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    flags = _parse_flags(cast(list[str], args.flag))
    if args.agent:
        flags["agent"] = args.agent

    session = _open_session(config, args)
    config.cache_db_path.parent.mkdir(parents=True, exist_ok=True)
    cache = SqliteCacheStore(str(config.cache_db_path), ttl_seconds=config.cache_ttl_seconds)
    analytics = SelectionAnalytics(config.analytics_url) if config.analytics_enabled else None
    coordinator = ExecutionCoordinator(
        resolver=_build_resolver(config),
        strategies=StrategyRegistry.default(PipelineEngine(cache)),
        analytics=analytics,
        config=config,
    )
    options = ExecutionOptions(
        args=cast(list[str], args.args), flags=flags, model=cast(str | None, args.model)
    )
    try:
        execution = asyncio.run(
            coordinator.execute_command(command_name, resolved, options, session)
        )
    finally:
        cache.close()

    result = execution.result
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    if not result.success:
        sys.exit(1)


def _cmd_explain(args: argparse.Namespace) -> None:
    config = _load_config(args)
    resolver = _build_resolver(config)
    if not resolver.registry.initialized:
        print("Error: capability registry could not be loaded", file=sys.stderr)
        sys.exit(1)
    session = _open_session(config, args)
    if args.files:
        session.set_context("targetFiles", list(args.files))

    selection = resolver.resolve_agent(cast(str, args.task), session)
    print(f"Selected:   {selection.selected_agent or '(none, fallback required)'}")
    print(f"Confidence: {selection.confidence:.2f}")
    for line in resolver.explain(selection):
        print(f"  - {line}")
    if selection.alternatives:
        print("Alternatives:")
        for alt in selection.alternatives:
            print(f"  {alt.role}: {alt.score:.3f}")


def _cmd_commands(args: argparse.Namespace) -> None:
    config = _load_config(args)
    names = list_commands(Path.cwd() / config.commands_dir)
    if not names:
        print("No commands found.")
        return
    for name in names:
        print(name)


def _cmd_sessions(args: argparse.Namespace) -> None:
    config = _load_config(args)
    for session_id in SessionStore(config.sessions_dir).list_sessions():
        print(session_id)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="conductor",
        description="Run multi-stage prompt commands with dynamic agent selection",
    )
    _ = parser.add_argument(
        "-V", "--version", action="version", version=f"conductor {__version__}"
    )
    _ = parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    _ = parser.add_argument(
        "--config", type=Path, help=f"Config file (default: ./{CONFIG_FILENAME})"
    )
    subparsers = parser.add_subparsers(dest="command")

    run_p = subparsers.add_parser("run", help="Execute a command")
    _ = run_p.add_argument("name", help="Command name")
    _ = run_p.add_argument("args", nargs="*", help="Positional command arguments")
    _ = run_p.add_argument("--session", help="Session ID (default: $CONDUCTOR_SESSION_ID)")
    _ = run_p.add_argument("--agent", help="Force a specific agent role")
    _ = run_p.add_argument("--model", help="Model override")
    _ = run_p.add_argument(
        "--flag", action="append", default=[], metavar="KEY=VALUE", help="Command flag"
    )
    _ = run_p.add_argument(
        "--dry-run", action="store_true", dest="dry_run", help="Trace stages without a provider"
    )

    explain_p = subparsers.add_parser("explain", help="Show which agent a task would select")
    _ = explain_p.add_argument("task", help="Free-text task description")
    _ = explain_p.add_argument("--session", help="Session ID for context signals")
    _ = explain_p.add_argument("--files", nargs="*", help="Target files to consider")

    _ = subparsers.add_parser("commands", help="List available commands")
    _ = subparsers.add_parser("sessions", help="List stored sessions")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    dispatch = {
        "run": _cmd_run,
        "explain": _cmd_explain,
        "commands": _cmd_commands,
        "sessions": _cmd_sessions,
    }
    command = cast(str | None, args.command)
    handler = dispatch.get(command) if command is not None else None
    if handler:
        handler(args)
    else:
        parser.print_help()
        sys.exit(1)
