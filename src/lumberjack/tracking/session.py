# src/lumberjack/tracking/session.py
"""Session lifecycle.

A Session is valid while both hold:
- ``now - last_activity < inactivity_timeout`` (default 30 minutes)
- ``now - start_time < max_session_length`` (default 60 minutes)

Once either window elapses, ``get_or_create_session()`` mints a new session
with a fresh UUID v4 and a freshly drawn replay decision. ``has_replay`` is
decided once per session and never changes.

Persistence is best effort: the session is written to a SessionStore on
every mutation and recovered on construction. Any storage failure (missing
file, permissions, corrupt JSON) is logged and treated as "no session".
"""

from __future__ import annotations

import json
import random
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import structlog

from lumberjack.core.clock import DEFAULT_CLOCK, Clock

logger = structlog.get_logger(__name__)

SESSION_STORAGE_KEY = "lumberjack_session"
DEFAULT_INACTIVITY_TIMEOUT = 30 * 60.0
DEFAULT_MAX_SESSION_LENGTH = 60 * 60.0


class Session:
    """A user session. Times are wall-clock epoch seconds.

    Only ``last_activity`` is mutable, and only through SessionManager.
    """

    __slots__ = ("_has_replay", "_id", "_start_time", "last_activity")

    def __init__(self, id: str, start_time: float, last_activity: float, has_replay: bool) -> None:
        self._id = id
        self._start_time = start_time
        self._has_replay = has_replay
        self.last_activity = last_activity

    @property
    def id(self) -> str:
        return self._id

    @property
    def start_time(self) -> float:
        return self._start_time

    @property
    def has_replay(self) -> bool:
        return self._has_replay

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self._id,
            "start_time": self._start_time,
            "last_activity": self.last_activity,
            "has_replay": self._has_replay,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """Rebuild a stored session.

        Raises:
            ValueError: If the payload is not a well-formed session.
        """
        session_id = data["id"]
        if not isinstance(session_id, str):
            raise ValueError("session id must be a string")
        has_replay = data["has_replay"]
        if not isinstance(has_replay, bool):
            raise ValueError("has_replay must be a boolean")
        return cls(
            id=str(uuid.UUID(session_id)),
            start_time=float(data["start_time"]),
            last_activity=float(data["last_activity"]),
            has_replay=has_replay,
        )

    def __repr__(self) -> str:
        return f"Session(id={self._id!r}, start_time={self._start_time}, last_activity={self.last_activity}, has_replay={self._has_replay})"


class SessionStore(Protocol):
    """Storage for one serialized session."""

    def load(self) -> str | None: ...

    def save(self, payload: str) -> None: ...

    def clear(self) -> None: ...


class InMemorySessionStore:
    def __init__(self, payload: str | None = None) -> None:
        self.payload = payload

    def load(self) -> str | None:
        return self.payload

    def save(self, payload: str) -> None:
        self.payload = payload

    def clear(self) -> None:
        self.payload = None


class FileSessionStore:
    """JSON file keyed by SESSION_STORAGE_KEY, so one file can be shared."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> str | None:
        if not self._path.exists():
            return None
        document = json.loads(self._path.read_text(encoding="utf-8"))
        value = document.get(SESSION_STORAGE_KEY)
        return value if isinstance(value, str) else None

    def save(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({SESSION_STORAGE_KEY: payload}), encoding="utf-8")

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class SessionManager:
    """Owns the current Session."""

    def __init__(
        self,
        *,
        enable_replay: bool = True,
        replay_sample_rate: float = 0.1,
        inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT,
        max_session_length: float = DEFAULT_MAX_SESSION_LENGTH,
        store: SessionStore | None = None,
        clock: Clock | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._enable_replay = enable_replay
        self._replay_sample_rate = replay_sample_rate
        self._inactivity_timeout = inactivity_timeout
        self._max_session_length = max_session_length
        self._store = store
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._rng = rng
        self._session: Session | None = None
        self._recover()

    def is_valid(self, session: Session, now: float | None = None) -> bool:
        if now is None:
            now = self._clock.time()
        if now - session.last_activity >= self._inactivity_timeout:
            return False
        return now - session.start_time < self._max_session_length

    def get_or_create_session(self) -> Session:
        """Return the current session if valid, otherwise start a new one.

        A valid session's activity is bumped and persisted.
        """
        now = self._clock.time()
        session = self._session
        if session is not None and self.is_valid(session, now):
            self._touch(session, now)
            return session
        return self._create(now)

    def get_current_session(self) -> Session | None:
        return self._session

    def update_activity(self) -> None:
        """Bump last_activity, never past start_time + max_session_length."""
        if self._session is not None:
            self._touch(self._session, self._clock.time())

    def destroy_session(self) -> None:
        self._session = None
        if self._store is None:
            return
        try:
            self._store.clear()
        except Exception as e:
            logger.warning("Failed to clear session storage", error=str(e))

    def session_duration(self) -> float:
        """Seconds since the current session started (0 without a session)."""
        if self._session is None:
            return 0.0
        return self._clock.time() - self._session.start_time

    def session_remaining_time(self) -> float:
        """Seconds until the current session reaches its maximum length."""
        if self._session is None:
            return 0.0
        return max(0.0, self._max_session_length - self.session_duration())

    def _touch(self, session: Session, now: float) -> None:
        session.last_activity = min(now, session.start_time + self._max_session_length)
        self._save()

    def _create(self, now: float) -> Session:
        has_replay = self._enable_replay and self._rng() < self._replay_sample_rate
        self._session = Session(id=str(uuid.uuid4()), start_time=now, last_activity=now, has_replay=has_replay)
        logger.debug("Session started", session_id=self._session.id, has_replay=has_replay)
        self._save()
        return self._session

    def _recover(self) -> None:
        if self._store is None:
            return
        try:
            payload = self._store.load()
            if payload is None:
                return
            session = Session.from_dict(json.loads(payload))
            if self.is_valid(session):
                self._session = session
            else:
                self._store.clear()
        except Exception as e:
            # Corrupt or unreadable storage means "no session to recover"
            logger.warning("Failed to recover session", error=str(e))

    def _save(self) -> None:
        if self._store is None or self._session is None:
            return
        try:
            self._store.save(json.dumps(self._session.to_dict()))
        except Exception as e:
            logger.warning("Failed to save session", error=str(e))
