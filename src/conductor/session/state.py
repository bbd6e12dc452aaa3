"""On-disk layout of session files: ids, paths, atomic JSON documents."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"
SESSION_ID_ENV = "CONDUCTOR_SESSION_ID"

# Ids become file names, so no separators or leading dots.
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


class InvalidSessionIdError(ValueError):
    """Session id cannot be used as a file name."""


def validate_session_id(session_id: str) -> str:
    if not _SESSION_ID_RE.match(session_id):
        raise InvalidSessionIdError(f"Invalid session id: {session_id!r}")
    return session_id


def resolve_session_id(explicit: str | None = None) -> str:
    """Explicit id, else $CONDUCTOR_SESSION_ID, else ``default``."""
    return validate_session_id(explicit or os.environ.get(SESSION_ID_ENV) or DEFAULT_SESSION_ID)


def session_file(root: Path, session_id: str) -> Path:
    return root / f"{validate_session_id(session_id)}.json"


def list_session_ids(root: Path) -> list[str]:
    if not root.is_dir():
        return []
    return sorted(p.stem for p in root.glob("*.json") if _SESSION_ID_RE.match(p.stem))


def write_state(path: Path, data: dict[str, Any]) -> None:
    """Replace ``path`` with ``data`` as JSON; readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, default=str)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_state(path: Path) -> dict[str, Any]:
    """Load a JSON object. Missing, corrupt, or non-object files read as ``{}``."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        logger.warning(f"Cannot read session file {path}: {e}")
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Corrupt session file {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}
