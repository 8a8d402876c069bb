"""
Contracts of the external collaborators the session core depends on.

These abstract away the concrete services (case database, speech-to-text,
chat model, text-to-speech) so the lifecycle can run against any backend,
including in-process fakes.
"""

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from simpatient.session.models import Turn, VoiceGender


@runtime_checkable
class CaseResolver(Protocol):
    """Looks up the clinical case a session is bound to."""

    async def resolve_case(self, case_reference: str) -> Optional[Any]:
        """
        Return the case description.

        A missing case is reported by raising CaseNotFound or by returning
        None; both fail session initialization with CaseNotFound.
        """
        ...


@runtime_checkable
class Transcriber(Protocol):
    """Speech-to-text."""

    async def transcribe(self, audio: bytes) -> str:
        """Return the text spoken in ``audio``. Raises TranscriptionError."""
        ...


@runtime_checkable
class ChatCompleter(Protocol):
    """Produces the next assistant utterance."""

    async def complete(self, transcript: Sequence[Turn]) -> str:
        """Return the reply to ``transcript`` (system instructions included)."""
        ...


@runtime_checkable
class SpeechSynthesizer(Protocol):
    """Text-to-speech."""

    async def synthesize(self, text: str, voice_gender: VoiceGender) -> bytes:
        """Return encoded audio for ``text`` spoken in the session's voice."""
        ...
