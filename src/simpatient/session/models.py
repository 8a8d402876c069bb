"""
Value types of the session core.

``Session`` objects handed out by the store are immutable snapshots; the
store is the only place that builds new ones.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Tuple

from simpatient.errors import ValidationError


class Role(str, Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


class VoiceGender(str, Enum):
    """Selects the synthesis voice for a whole session."""

    MALE = "Male"
    FEMALE = "Female"

    @classmethod
    def parse(cls, value: Any) -> "VoiceGender":
        """Parse ``value`` case-insensitively; raise ValidationError otherwise."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        raise ValidationError(
            f"Invalid gender {value!r}: expected one of "
            f"{', '.join(m.value for m in cls)}"
        )


class SessionState(str, Enum):
    INITIALIZED = "initialized"
    ACTIVE = "active"


@dataclass(frozen=True)
class Turn:
    """One utterance in a transcript."""

    role: Role
    content: str

    def to_message(self) -> Dict[str, str]:
        """Chat-completion message dict."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class Session:
    """Snapshot of a live conversation session."""

    id: str
    voice_gender: VoiceGender
    case_reference: str
    transcript: Tuple[Turn, ...]
    state: SessionState
    last_activity: float
    created_at: datetime

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    def visible_history(self) -> List[Turn]:
        """Transcript without system instructions."""
        return [turn for turn in self.transcript if turn.role is not Role.SYSTEM]

    def messages(self) -> List[Dict[str, str]]:
        return [turn.to_message() for turn in self.transcript]
