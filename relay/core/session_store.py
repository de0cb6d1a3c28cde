"""Ephemeral server-side session memory.

Nothing about a conversation is kept on the server beyond the request that
carries it. Each in-flight request owns exactly one session entry, which is
removed when the request finishes. A background sweep evicts any entry older
than the TTL, so a request that never reached its cleanup cannot leave data
behind for long.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from typing import Callable, Dict, Iterator, Optional

from relay.models import ChatInput, SessionRecord


logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60


class SessionStore:
    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: Dict[str, SessionRecord] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def create(self, payload: ChatInput, model_name: str) -> str:
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = SessionRecord(
            session_id=session_id,
            payload=payload,
            model_name=model_name,
            created_at=self._clock(),
        )
        return session_id

    def delete(self, session_id: str) -> None:
        # Unknown ids are ignored so callers can delete unconditionally.
        self._sessions.pop(session_id, None)

    def sweep(self, now: Optional[float] = None, ttl: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        ttl = self.ttl if ttl is None else ttl
        expired = [
            session_id
            for session_id, record in self._sessions.items()
            if now - record.created_at > ttl
        ]
        for session_id in expired:
            del self._sessions[session_id]
        return len(expired)

    @contextlib.contextmanager
    def scoped(self, payload: ChatInput, model_name: str) -> Iterator[str]:
        """Create a session for the duration of a ``with`` block.

        The session is deleted on every exit from the block, including
        exceptions raised inside it.
        """
        session_id = self.create(payload, model_name)
        try:
            yield session_id
        finally:
            self.delete(session_id)

    # Periodic sweep

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        if self.running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        logger.info(
            "Session sweep started: ttl=%ss interval=%ss", self.ttl, self.sweep_interval
        )

    async def stop(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Session sweep stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                logger.info("Session sweep evicted %s expired session(s)", removed)
