"""TTL-bounded per-session state cache with per-session serialization."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, TypeVar

from difficulty.exceptions import StoreUnavailableError
from difficulty.models import SessionDifficultyState, TransparencyPreference
from shared.config.app_config import (
    DDA_DEFAULT_TRANSPARENCY,
    DDA_SESSION_TTL_SECONDS,
    DDA_STORE_TIMEOUT_MS,
)
from shared.config.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class StoreResult(Generic[T]):
    value: T
    degraded: bool = False
    reason: str | None = None
    persist: bool = True


@dataclass
class _Entry:
    state: SessionDifficultyState
    expires_at: float


class InMemorySessionStore:
    """Holds one ``SessionDifficultyState`` per session id.

    Every read-modify-write runs inside :meth:`session`, which holds that
    session's lock for the duration of the block. Lock acquisition is bounded
    by ``timeout_ms``; on timeout the caller receives a fresh neutral state
    flagged as degraded and nothing is persisted.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DDA_SESSION_TTL_SECONDS,
        timeout_ms: int = DDA_STORE_TIMEOUT_MS,
        default_preference: TransparencyPreference | str = DDA_DEFAULT_TRANSPARENCY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._timeout = timeout_ms / 1000.0
        self._default_preference = TransparencyPreference(default_preference)
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._available = True

    @property
    def timeout_ms(self) -> int:
        return round(self._timeout * 1000)

    @property
    def available(self) -> bool:
        return self._available

    @property
    def default_preference(self) -> TransparencyPreference:
        return self._default_preference

    def set_available(self, available: bool) -> None:
        self._available = available

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def _acquire(self, session_id: str) -> threading.Lock | None:
        # purge_expired may evict an idle lock between lookup and acquire;
        # only the lock still registered for the session counts.
        deadline = time.monotonic() + self._timeout
        while True:
            lock = self._lock_for(session_id)
            if not lock.acquire(timeout=max(deadline - time.monotonic(), 0.0)):
                return None
            with self._guard:
                if self._locks.get(session_id) is lock:
                    return lock
            lock.release()

    def _fresh(self, session_id: str) -> SessionDifficultyState:
        now = self._now_ms()
        return SessionDifficultyState(
            session_id=session_id,
            transparency_preference=self._default_preference,
            created_at_ms=now,
            updated_at_ms=now,
        )

    def _load(self, session_id: str) -> SessionDifficultyState:
        if not self._available:
            raise StoreUnavailableError("session store offline")
        with self._guard:
            entry = self._entries.get(session_id)
            if entry is not None and entry.expires_at <= self._clock():
                del self._entries[session_id]
                entry = None
        if entry is None:
            return self._fresh(session_id)
        return entry.state.model_copy(deep=True)

    def _save(self, state: SessionDifficultyState) -> None:
        if not self._available:
            raise StoreUnavailableError("session store offline")
        state.version += 1
        state.updated_at_ms = self._now_ms()
        with self._guard:
            self._entries[state.session_id] = _Entry(
                state=state.model_copy(deep=True),
                expires_at=self._clock() + self._ttl,
            )

    @contextmanager
    def session(self, session_id: str, *, write: bool = True) -> Iterator[StoreResult[SessionDifficultyState]]:
        """Yield the session's state; persist it on clean exit when ``write``.

        The caller can clear ``persist`` on the yielded result to skip the save
        when nothing changed, leaving version and TTL untouched.
        """
        lock = self._acquire(session_id)
        if lock is None:
            logger.warning("Session store lock timeout for session=%s; running degraded", session_id)
            yield StoreResult(self._fresh(session_id), degraded=True, reason="timeout")
            return

        try:
            try:
                result = StoreResult(self._load(session_id))
            except StoreUnavailableError as exc:
                logger.warning("Session store unavailable for session=%s: %s", session_id, exc)
                result = StoreResult(self._fresh(session_id), degraded=True, reason="unavailable")

            yield result

            if write and result.persist and not result.degraded:
                try:
                    self._save(result.value)
                except StoreUnavailableError as exc:
                    logger.warning("Session store save failed for session=%s: %s", session_id, exc)
                    result.degraded = True
                    result.reason = "unavailable"
        finally:
            lock.release()

    def get(self, session_id: str) -> StoreResult[SessionDifficultyState]:
        with self.session(session_id, write=False) as result:
            return result

    def active_sessions(self) -> int:
        now = self._clock()
        with self._guard:
            return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    def tracked_locks(self) -> int:
        with self._guard:
            return len(self._locks)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._guard:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
            idle = [
                key for key, lock in self._locks.items() if key not in self._entries and not lock.locked()
            ]
            for key in idle:
                del self._locks[key]
        if expired or idle:
            logger.info("Purged %d expired sessions and %d idle locks", len(expired), len(idle))
        return len(expired)
