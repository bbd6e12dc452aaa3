"""Sessions: shared context and command history across command invocations."""

from conductor.session.manager import (
    AGENT_SELECTION_KEY,
    STAGE_OUTPUTS_KEY,
    SessionManager,
    SessionStore,
)
from conductor.session.models import Session, SessionCommand, SessionStatus

__all__ = [
    "AGENT_SELECTION_KEY",
    "STAGE_OUTPUTS_KEY",
    "Session",
    "SessionCommand",
    "SessionManager",
    "SessionStatus",
    "SessionStore",
]
