"""
Session lifecycle management.

Gates every conversation operation against the session's current state
before anything is mutated:

    (none) --initialize--> Initialized --start--> Active --process--> Active
    any state --stop--> (deleted)

Checks always run in the same order: missing input, session existence,
session state, and only then the external collaborators. Nothing is called
upstream for a request that is already doomed.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, List, Optional, Type

from simpatient.errors import (
    CaseLookupError,
    CaseNotFound,
    CompletionError,
    PayloadTooLarge,
    SessionAlreadyActive,
    SessionNotActive,
    SessionNotFound,
    SimPatientError,
    SynthesisError,
    TranscriptionError,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)
from simpatient.logger import get_logger
from simpatient.prompts import PATIENT_GREETING, build_patient_prompt
from simpatient.session.models import Role, Session, Turn, VoiceGender
from simpatient.session.ports import (
    CaseResolver,
    ChatCompleter,
    SpeechSynthesizer,
    Transcriber,
)
from simpatient.session.store import SessionStore

logger = get_logger(__name__)


@dataclass
class SessionPolicy:
    """Configurable session expiry and upstream policy."""

    idle_timeout_seconds: float = 30 * 60
    sweep_interval_seconds: float = 5 * 60
    history_keeps_alive: bool = False  # passive reads don't refresh activity
    upstream_timeout_seconds: float = 60.0
    max_audio_bytes: int = 50 * 1024 * 1024

    @classmethod
    def from_settings(cls, settings) -> "SessionPolicy":
        return cls(
            idle_timeout_seconds=settings.session_idle_timeout_seconds,
            sweep_interval_seconds=settings.session_sweep_interval_seconds,
            history_keeps_alive=settings.session_history_keeps_alive,
            upstream_timeout_seconds=settings.upstream_timeout_seconds,
            max_audio_bytes=settings.max_audio_bytes,
        )

    def check_audio_size(self, size: int) -> None:
        """Raise PayloadTooLarge when an upload of ``size`` bytes exceeds the limit."""
        if size > self.max_audio_bytes:
            raise PayloadTooLarge(
                f"Audio file too large (limit {self.max_audio_bytes} bytes)"
            )


@dataclass(frozen=True)
class StartResult:
    text: str
    audio: bytes


@dataclass(frozen=True)
class ProcessResult:
    transcription: str
    response_text: str
    audio: bytes


class SessionLifecycle:
    """Runs the conversation operations against the session store.

    Args:
        store: The session store (shared with the expiry sweeper).
        cases: Resolves case references during initialize.
        transcriber: Speech-to-text for process.
        chat: Produces the patient's replies.
        speech: Text-to-speech for start and process.
        policy: Timeouts and limits.
        greeting: Opening line spoken by the patient on start.
    """

    def __init__(
        self,
        store: SessionStore,
        cases: CaseResolver,
        transcriber: Transcriber,
        chat: ChatCompleter,
        speech: SpeechSynthesizer,
        policy: Optional[SessionPolicy] = None,
        greeting: str = PATIENT_GREETING,
    ):
        self.store = store
        self.policy = policy or SessionPolicy()
        self.greeting = greeting
        self.cases = cases
        self.transcriber = transcriber
        self.chat = chat
        self.speech = speech

    @property
    def active_sessions(self) -> int:
        return len(self.store)

    async def initialize(self, gender: Any, case_reference: Any) -> Session:
        """Create an Initialized session bound to an existing case."""
        if not gender or not case_reference:
            raise ValidationError("Missing required parameters: gender and osce_id")

        voice_gender = VoiceGender.parse(gender)
        case_reference = str(case_reference).strip()
        logger.info(
            f"Initializing session for case {case_reference}, gender: {voice_gender.value}"
        )

        case_description = await self._call_upstream(
            self.cases.resolve_case(case_reference), CaseLookupError, "Case lookup"
        )
        if case_description is None:
            raise CaseNotFound()
        system_turn = Turn(Role.SYSTEM, build_patient_prompt(case_description))
        session = self.store.create(voice_gender, case_reference, system_turn)

        logger.info(f"Session initialized: {session.id}")
        return session

    async def start(self, session_id: Any) -> StartResult:
        """Speak the greeting and move the session to Active."""
        session_id = self._require_session_id(session_id)

        async with self.store.lock(session_id):
            session = self.store.require(session_id)
            if session.is_active:
                raise SessionAlreadyActive()

            logger.info(f"Starting voice session: {session_id}")
            self.store.touch(session_id)

            audio = await self._call_upstream(
                self.speech.synthesize(self.greeting, session.voice_gender),
                SynthesisError,
                "Speech synthesis",
            )
            self.store.activate(session_id, Turn(Role.ASSISTANT, self.greeting))

        logger.info(f"Initial greeting generated for session: {session_id}")
        return StartResult(text=self.greeting, audio=audio)

    async def process(self, session_id: Any, audio: Optional[bytes]) -> ProcessResult:
        """
        Run one conversational turn: transcribe, reply, synthesize.

        The user and assistant turns are committed together once every
        upstream call has succeeded, so a failed turn leaves the transcript
        exactly as it was.
        """
        session_id = self._require_session_id(session_id)
        if not audio:
            raise ValidationError("No audio file provided")
        self.policy.check_audio_size(len(audio))

        async with self.store.lock(session_id):
            session = self.store.require(session_id)
            if not session.is_active:
                raise SessionNotActive()

            logger.info(
                f"Processing audio for session: {session_id}, size: {len(audio)} bytes"
            )
            self.store.touch(session_id)

            transcription = await self._call_upstream(
                self.transcriber.transcribe(audio),
                TranscriptionError,
                "Transcription",
            )
            transcription = (transcription or "").strip()
            if not transcription:
                raise TranscriptionError("Transcription returned no text")
            logger.info(f"Transcription: {transcription}")

            user_turn = Turn(Role.USER, transcription)
            reply = await self._call_upstream(
                self.chat.complete(list(session.transcript) + [user_turn]),
                CompletionError,
                "Chat completion",
            )
            reply = (reply or "").strip()
            if not reply:
                raise CompletionError("Chat completion returned no text")
            logger.info(f"AI Response: {reply}")

            audio_out = await self._call_upstream(
                self.speech.synthesize(reply, session.voice_gender),
                SynthesisError,
                "Speech synthesis",
            )
            self.store.append_turns(session_id, user_turn, Turn(Role.ASSISTANT, reply))

        logger.info(f"Audio response generated for session: {session_id}")
        return ProcessResult(
            transcription=transcription, response_text=reply, audio=audio_out
        )

    async def history(self, session_id: Any) -> List[Turn]:
        """Return the visible transcript (system instructions excluded)."""
        session_id = self._require_session_id(session_id)
        session = self.store.require(session_id)
        if self.policy.history_keeps_alive:
            self.store.touch(session_id)
        return session.visible_history()

    async def stop(self, session_id: Any) -> None:
        """End the session. Any later operation on it fails with SessionNotFound."""
        session_id = self._require_session_id(session_id)
        if not self.store.delete(session_id):
            raise SessionNotFound("Session not found")
        logger.info(f"Stopped voice session: {session_id}")

    # -- Internal ------------------------------------------------------------

    @staticmethod
    def _require_session_id(session_id: Any) -> str:
        if not session_id or not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("Missing required parameter: session_id")
        return session_id.strip()

    async def _call_upstream(
        self,
        awaitable: Awaitable,
        error_cls: Type[UpstreamError],
        what: str,
    ) -> Any:
        """Await a collaborator call, mapping failures onto the error taxonomy."""
        timeout = self.policy.upstream_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"{what} timed out after {timeout:g}s")
            raise UpstreamTimeout(f"{what} timed out after {timeout:g}s")
        except SimPatientError:
            raise
        except Exception as e:
            logger.error(f"{what} failed: {e}")
            raise error_cls(f"{what} failed: {e}") from e
