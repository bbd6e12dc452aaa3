"""SessionManager: context access and command history over a persisted Session."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from conductor.session.models import Session, SessionCommand, _now_iso
from conductor.session.state import list_session_ids, read_state, session_file, write_state

logger = logging.getLogger(__name__)

STAGE_OUTPUTS_KEY = "_stageOutputs"
AGENT_SELECTION_KEY = "dynamicAgentSelection"


class SessionManager:
    """Owns one Session. Context keys accept dotted paths (``planSummary.description``)."""

    def __init__(self, session: Session, path: Path | None = None) -> None:
        self._session = session
        self._path = path

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def path(self) -> Path | None:
        return self._path

    def get_session(self) -> Session:
        return self._session

    # -- Context ------------------------------------------------------------

    def get_context(self, key: str) -> Any:
        node: Any = self._session.context
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def get_all_context(self) -> dict[str, Any]:
        return copy.deepcopy(self._session.context)

    def set_context(self, key: str, value: Any) -> None:
        """Replace the value at ``key``, creating intermediate dicts."""
        parts = key.split(".")
        node = self._session.context
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
        self._touch()

    def update_context(self, key: str, value: Any) -> None:
        """Shallow-merge dict values into an existing dict at ``key``; otherwise set."""
        existing = self.get_context(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            self.set_context(key, {**existing, **value})
        else:
            self.set_context(key, value)

    def get_stage_outputs(self) -> dict[str, dict[str, Any]]:
        outputs = self._session.context.get(STAGE_OUTPUTS_KEY)
        if not isinstance(outputs, dict):
            return {}
        return {k: dict(v) for k, v in outputs.items() if isinstance(v, dict)}

    def record_stage_outputs(self, outputs: dict[str, dict[str, Any]]) -> None:
        if outputs:
            self.update_context(STAGE_OUTPUTS_KEY, outputs)

    # -- History ------------------------------------------------------------

    def add_command(self, entry: SessionCommand) -> None:
        self._session.commands.append(entry)
        self._session.last_command = entry.command
        self._session.current_command = None
        self._touch()

    def start_command(self, command: str) -> None:
        self._session.current_command = command
        self._touch()

    def save(self) -> None:
        if self._path is None:
            return
        write_state(self._path, self._session.model_dump(mode="json"))

    def _touch(self) -> None:
        self._session.updated_at = _now_iso()


class SessionStore:
    """Directory of ``<session_id>.json`` files."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def path_for(self, session_id: str) -> Path:
        return session_file(self._root, session_id)

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).exists()

    def get_session(self, session_id: str) -> SessionManager:
        """Load a session, creating a fresh one if missing or unreadable."""
        path = self.path_for(session_id)
        data = read_state(path)
        session: Session | None = None
        if data:
            try:
                session = Session.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Discarding unreadable session {session_id}: {e}")
        if session is None:
            session = Session(session_id=session_id)
        return SessionManager(session, path)

    def list_sessions(self) -> list[str]:
        return list_session_ids(self._root)
