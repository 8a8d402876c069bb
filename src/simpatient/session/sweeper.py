"""
Expiry sweeper: periodic eviction of idle sessions.

Runs as an asyncio task next to the request handlers. Each tick removes
sessions whose last accepted operation is older than the idle threshold.
An evicted session looks exactly like a stopped one to later callers.
"""

import asyncio
from datetime import datetime
from typing import List, Optional

from simpatient.logger import get_logger
from simpatient.session.store import SessionStore

logger = get_logger(__name__)


class ExpirySweeper:
    """
    Evicts sessions idle longer than ``idle_timeout_seconds``, every
    ``interval_seconds``. Failures are logged and never stop the loop.
    """

    def __init__(
        self,
        store: SessionStore,
        idle_timeout_seconds: float = 30 * 60,
        interval_seconds: float = 5 * 60,
    ):
        if idle_timeout_seconds <= 0 or interval_seconds <= 0:
            raise ValueError("Idle timeout and sweep interval must be positive")
        if interval_seconds >= idle_timeout_seconds:
            raise ValueError("Sweep interval must be shorter than the idle timeout")

        self.store = store
        self.idle_timeout_seconds = idle_timeout_seconds
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._last_run_at: Optional[datetime] = None
        self._last_evicted = 0
        self._total_evicted = 0
        self._last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"ExpirySweeper started (every {self.interval_seconds:g}s, "
            f"idle limit {self.idle_timeout_seconds:g}s)"
        )

    async def stop(self) -> None:
        """Stop the sweep loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("ExpirySweeper stopped.")

    def sweep_once(self, now: Optional[float] = None) -> List[str]:
        """Evict idle sessions now and return their ids."""
        evicted = self.store.evict_idle(self.idle_timeout_seconds, now=now)
        self._last_run_at = datetime.now()
        self._last_evicted = len(evicted)
        self._total_evicted += len(evicted)
        for session_id in evicted:
            logger.info(f"Cleaned up inactive session: {session_id}")
        return evicted

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "idle_timeout_seconds": self.idle_timeout_seconds,
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
            "last_evicted": self._last_evicted,
            "total_evicted": self._total_evicted,
            "last_error": self._last_error,
        }

    # -- Internal ------------------------------------------------------------

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

            try:
                self.sweep_once()
                self._last_error = None
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")
                self._last_error = str(e)
