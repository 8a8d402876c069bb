"""
In-memory session store.

The store is the single owner of live session state. Every mutation happens
inside one short critical section guarded by a store-wide mutex, and callers
only ever receive immutable ``Session`` snapshots.

Besides the map mutex, each session has an ``asyncio.Lock`` that callers hold
across a whole multi-step operation (e.g. transcribe -> complete -> synthesize
-> commit) so mutations of one session are serialized in arrival order while
other sessions proceed independently.
"""

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from simpatient.errors import SessionAlreadyActive, SessionNotActive, SessionNotFound
from simpatient.logger import get_logger
from simpatient.session.models import (
    Role,
    Session,
    SessionState,
    Turn,
    VoiceGender,
)

logger = get_logger(__name__)

MAX_ID_ATTEMPTS = 5


@dataclass
class _SessionRecord:
    id: str
    voice_gender: VoiceGender
    case_reference: str
    transcript: List[Turn]
    state: SessionState
    last_activity: float
    created_at: datetime

    def snapshot(self) -> Session:
        return Session(
            id=self.id,
            voice_gender=self.voice_gender,
            case_reference=self.case_reference,
            transcript=tuple(self.transcript),
            state=self.state,
            last_activity=self.last_activity,
            created_at=self.created_at,
        )


class SessionStore:
    """Authoritative registry of live sessions.

    Args:
        clock: Monotonic time source in seconds, used for ``last_activity``.
        id_factory: Generates candidate session ids.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._clock = clock
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._sessions: Dict[str, _SessionRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._mutex = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def ids(self) -> List[str]:
        with self._mutex:
            return list(self._sessions)

    # -- Creation / lookup ---------------------------------------------------

    def create(
        self,
        voice_gender: VoiceGender,
        case_reference: str,
        system_turn: Turn,
    ) -> Session:
        """Store a new Initialized session and return its snapshot."""
        if system_turn.role is not Role.SYSTEM:
            raise ValueError("The first transcript turn must be a system turn")

        with self._mutex:
            for _ in range(MAX_ID_ATTEMPTS):
                session_id = self._id_factory()
                if session_id not in self._sessions:
                    break
                logger.warning(f"Session id collision on {session_id}, retrying")
            else:
                raise RuntimeError(
                    f"Could not allocate a unique session id after {MAX_ID_ATTEMPTS} attempts"
                )

            record = _SessionRecord(
                id=session_id,
                voice_gender=voice_gender,
                case_reference=case_reference,
                transcript=[system_turn],
                state=SessionState.INITIALIZED,
                last_activity=self._clock(),
                created_at=datetime.now(timezone.utc),
            )
            self._sessions[session_id] = record
            self._locks[session_id] = asyncio.Lock()
            return record.snapshot()

    def get(self, session_id: str) -> Optional[Session]:
        """Return a snapshot, or None. Does not refresh activity."""
        with self._mutex:
            record = self._sessions.get(session_id)
            return record.snapshot() if record else None

    def require(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    # -- Mutation --------------------------------------------------------------

    def touch(self, session_id: str) -> None:
        with self._mutex:
            self._record(session_id).last_activity = self._clock()

    def activate(self, session_id: str, greeting: Turn) -> Session:
        """Move an Initialized session to Active and append the greeting."""
        with self._mutex:
            record = self._record(session_id)
            if record.state is not SessionState.INITIALIZED:
                raise SessionAlreadyActive()
            record.state = SessionState.ACTIVE
            record.transcript.append(greeting)
            record.last_activity = self._clock()
            return record.snapshot()

    def append_turns(self, session_id: str, *turns: Turn) -> Session:
        """Append turns to an Active session in one step."""
        with self._mutex:
            record = self._record(session_id)
            if record.state is not SessionState.ACTIVE:
                raise SessionNotActive()
            record.transcript.extend(turns)
            record.last_activity = self._clock()
            return record.snapshot()

    def delete(self, session_id: str) -> bool:
        """Remove a session. Returns False if it was already gone."""
        with self._mutex:
            return self._delete_locked(session_id)

    # -- Concurrency helpers -------------------------------------------------

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock serializing multi-step operations."""
        with self._mutex:
            if session_id not in self._sessions:
                raise SessionNotFound()
            return self._locks[session_id]

    def is_busy(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return bool(lock and lock.locked())

    # -- Expiry ----------------------------------------------------------------

    def evict_idle(self, idle_timeout: float, now: Optional[float] = None) -> List[str]:
        """
        Delete sessions idle for longer than ``idle_timeout`` seconds.

        Sessions with an operation in flight are skipped; they are
        re-examined on the next sweep.

        Returns:
            Ids of the evicted sessions.
        """
        now = self._clock() if now is None else now
        evicted = []
        with self._mutex:
            for session_id, record in list(self._sessions.items()):
                if now - record.last_activity <= idle_timeout:
                    continue
                if self.is_busy(session_id):
                    logger.debug(f"Skipping busy idle session: {session_id}")
                    continue
                self._delete_locked(session_id)
                evicted.append(session_id)
        return evicted

    # -- Internal ----------------------------------------------------------------

    def _record(self, session_id: str) -> _SessionRecord:
        record = self._sessions.get(session_id)
        if record is None:
            raise SessionNotFound()
        return record

    def _delete_locked(self, session_id: str) -> bool:
        self._locks.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None
