"""ExecutionContext: per-invocation state shared by a command's stages."""

from __future__ import annotations

import asyncio
import os
import re
from typing import TYPE_CHECKING, Any

from conductor.pipeline.errors import ContextCreationError
from conductor.pipeline.models import StageSpec
from conductor.session.manager import SessionManager

if TYPE_CHECKING:
    from conductor.pipeline.provider import Provider

_VARIABLE_RE = re.compile(r"\$(ARG|STAGE|CONTEXT|ENV)_([A-Za-z0-9_.-]+)")


def _flag_variants(key: str) -> set[str]:
    kebab = re.sub(r"([a-z])([A-Z])", r"\1-\2", key).lower()
    snake = re.sub(r"([a-z])([A-Z])", r"\1_\2", key).replace("-", "_").lower()
    return {key, kebab, snake}


def _lookup_path(node: Any, path: list[str]) -> Any:
    for part in path:
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


class ExecutionContext:
    """Holds args, flags, the chosen agent, the provider, and accumulated stage outputs."""

    def __init__(
        self,
        *,
        command_name: str,
        agent_role: str,
        provider_name: str,
        provider: Provider,
        session_manager: SessionManager,
        args: list[str] | None = None,
        flags: dict[str, Any] | None = None,
        model: str | None = None,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> None:
        self.command_name = command_name
        self.agent_role = agent_role
        self.provider_name = provider_name
        self.provider = provider
        self.session_manager = session_manager
        self.args = list(args or [])
        self.flags = dict(flags or {})
        self.model = model
        self.cancel_event = cancel_event
        self.deadline = deadline
        self._stage_outputs: dict[str, dict[str, Any]] = session_manager.get_stage_outputs()
        self._variables = self._build_arg_variables()

    @classmethod
    def create(
        cls,
        *,
        command_name: str,
        agent_role: str | None,
        provider_name: str,
        provider: object,
        session_manager: SessionManager,
        args: list[str] | None = None,
        flags: dict[str, Any] | None = None,
        model: str | None = None,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> ExecutionContext:
        """Validate inputs and build a context; raises ContextCreationError."""
        if not agent_role:
            raise ContextCreationError(f"No agent resolved for command {command_name!r}")
        if not callable(getattr(provider, "invoke", None)):
            raise ContextCreationError(f"Provider {provider_name!r} has no invoke()")
        if session_manager is None:
            raise ContextCreationError("A session manager is required")
        return cls(
            command_name=command_name,
            agent_role=agent_role,
            provider_name=provider_name,
            provider=provider,  # type: ignore[arg-type]
            session_manager=session_manager,
            args=args,
            flags=flags,
            model=model,
            cancel_event=cancel_event,
            deadline=deadline,
        )

    @property
    def session_id(self) -> str:
        return self.session_manager.session_id

    def _build_arg_variables(self) -> dict[str, Any]:
        variables: dict[str, Any] = {str(i): arg for i, arg in enumerate(self.args, start=1)}
        for key, value in self.flags.items():
            for variant in _flag_variants(key):
                variables.setdefault(variant, value)
        return variables

    # -- Session access -----------------------------------------------------

    def get_context(self, key: str) -> Any:
        return self.session_manager.get_context(key)

    def set_context(self, key: str, value: Any) -> None:
        self.session_manager.set_context(key, value)

    def get_all_context(self) -> dict[str, Any]:
        return self.session_manager.get_all_context()

    # -- Stage outputs ------------------------------------------------------

    def get_stage_outputs(self) -> dict[str, dict[str, Any]]:
        return {k: dict(v) for k, v in self._stage_outputs.items()}

    def record_stage(self, stage_id: str, outputs: dict[str, Any]) -> None:
        self._stage_outputs[stage_id] = dict(outputs)

    def resolve_inputs(self, stage: StageSpec) -> dict[str, Any]:
        """Substitute ``$ARG_``, ``$STAGE_``, ``$CONTEXT_`` and ``$ENV_`` references.

        A value that is a single reference resolves to the raw referenced
        value; references embedded in longer strings are interpolated.
        """
        return {key: self._resolve_value(value) for key, value in stage.inputs.items()}

    def _resolve_value(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        whole = _VARIABLE_RE.fullmatch(value)
        if whole:
            return self._lookup(whole.group(1), whole.group(2))

        def _sub(match: re.Match[str]) -> str:
            resolved = self._lookup(match.group(1), match.group(2))
            return "" if resolved is None else str(resolved)

        return _VARIABLE_RE.sub(_sub, value)

    def _lookup(self, scope: str, name: str) -> Any:
        if scope == "ARG":
            return self._variables.get(name)
        if scope == "STAGE":
            stage_id, _, key_path = name.partition(".")
            outputs = self._stage_outputs.get(stage_id)
            if not key_path:
                return outputs
            return _lookup_path(outputs, key_path.split("."))
        if scope == "CONTEXT":
            return self.get_context(name)
        return os.environ.get(name)
