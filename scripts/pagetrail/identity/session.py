"""
Session lifecycle: ABSENT -> ACTIVE, ACTIVE -> EXPIRED -> ACTIVE.

The session record lives in the context cache without a TTL; expiry is
decided by comparing last_activity against the configured timeout whenever
an id is requested. Activity refreshes are debounced so bursts of
interaction cost one store write.
"""

import asyncio
import re
import sys
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..storage.store import ContextCache, SESSION_KEY, decode_record
from .device import random_base36


# Sessions written before the structured record were a bare id
_LEGACY_SESSION_RE = re.compile(r'^session_[0-9a-z]+$')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Session:
    """Persisted session record."""
    session_id: str
    start_time: str
    last_activity: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


class SessionManager:
    """Produces session ids and keeps last_activity fresh."""

    def __init__(
        self,
        cache: ContextCache,
        timeout_ms: int = 30 * 60 * 1000,
        debounce_delay_ms: int = 2000,
        clock: Callable[[], datetime] = _utcnow,
        debug: bool = False
    ):
        """
        Initialize session manager.

        Args:
            cache: Context cache holding the session record
            timeout_ms: Idle time after which a session expires
            debounce_delay_ms: Quiet period before an activity write
            clock: Returns the current aware datetime, injectable for tests
            debug: Print expiry/migration decisions to stderr
        """
        self.cache = cache
        self.timeout = timedelta(milliseconds=timeout_ms)
        self.debounce_delay = debounce_delay_ms / 1000.0
        self.clock = clock
        self.debug = debug
        self._update_timer: Optional[asyncio.TimerHandle] = None

    def get_session_id(self) -> str:
        """
        Return the current session id, creating a new session when none is
        stored, the stored one is corrupted, or it has been idle too long.
        """
        raw = self.cache.read_raw(SESSION_KEY)
        if raw is None:
            return self.create_session().session_id

        record = decode_record(raw)
        if record is None:
            if _LEGACY_SESSION_RE.match(raw):
                self._debug("Migrating legacy session format")
                return self.migrate_legacy_session(raw).session_id
            print("Warning: Discarding corrupted session record", file=sys.stderr)
            return self.create_session().session_id

        session_id = record.get("session_id")
        last_activity = _parse_timestamp(record.get("last_activity"))
        if not session_id or last_activity is None:
            return self.create_session().session_id

        if self.clock() - last_activity < self.timeout:
            return session_id

        self._debug("Session expired, creating new session")
        return self.create_session().session_id

    def create_session(self) -> Session:
        now = self.clock().isoformat()
        session = Session(
            session_id="session_" + random_base36(),
            start_time=now,
            last_activity=now,
        )
        self._save(session)
        return session

    def migrate_legacy_session(self, legacy_id: str) -> Session:
        """Wrap a bare legacy id in a structured record; start time restarts now."""
        now = self.clock().isoformat()
        session = Session(session_id=legacy_id, start_time=now, last_activity=now)
        self._save(session)
        return session

    def update_session_activity(self):
        """
        Schedule a last_activity write debounce_delay after the latest call.

        Without a running event loop the write happens immediately.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.update_session_activity_now()
            return

        if self._update_timer is not None:
            self._update_timer.cancel()
        self._update_timer = loop.call_later(self.debounce_delay, self._fire_update)

    def _fire_update(self):
        self._update_timer = None
        self.update_session_activity_now()

    def update_session_activity_now(self):
        """Write last_activity = now, creating a session if needed."""
        record = self.cache.read_record(SESSION_KEY)
        if record is None or not record.get("session_id"):
            self.create_session()
            return
        record["last_activity"] = self.clock().isoformat()
        self.cache.write_record(SESSION_KEY, record)

    def flush_pending(self):
        """Run a pending debounced write right away (used on shutdown)."""
        if self._update_timer is not None:
            self._update_timer.cancel()
            self._update_timer = None
            self.update_session_activity_now()

    @property
    def has_pending_update(self) -> bool:
        return self._update_timer is not None

    def _save(self, session: Session):
        self.cache.write_record(SESSION_KEY, session.to_dict())

    def _debug(self, message: str):
        if self.debug:
            print(f"Debug: {message}", file=sys.stderr)
