"""
Conversation session core.

- models: Session, Turn and the enums they use
- store: in-memory registry of live sessions
- lifecycle: state-gated conversation operations
- sweeper: periodic eviction of idle sessions
- ports: contracts of the external collaborators
"""

from simpatient.session.lifecycle import (
    ProcessResult,
    SessionLifecycle,
    SessionPolicy,
    StartResult,
)
from simpatient.session.models import Role, Session, SessionState, Turn, VoiceGender
from simpatient.session.store import SessionStore
from simpatient.session.sweeper import ExpirySweeper

__all__ = [
    "ExpirySweeper",
    "ProcessResult",
    "Role",
    "Session",
    "SessionLifecycle",
    "SessionPolicy",
    "SessionState",
    "SessionStore",
    "StartResult",
    "Turn",
    "VoiceGender",
]
