"""
Persistent key-value storage for identity and cached context.

Two views share one backing KeyValueStore with independent TTL policies:
- IdentityStore: long-lived plain-string ids (device, user, group)
- ContextCache: short-lived base64(JSON) records (session, geo info)

The file backend keeps every entry with its own expiry and uses an exclusive
file lock around read-modify-write cycles.
"""

import base64
import binascii
import fcntl
import json
import sys
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional


DAY_SECONDS = 24 * 60 * 60

DEVICE_ID_KEY = "pagetrail_device_id"
USER_ID_KEY = "pagetrail_user_id"
GROUP_ID_KEY = "pagetrail_group_id"
SESSION_KEY = "pagetrail_session"
LOCATION_KEY = "pagetrail_location_info"

DEVICE_ID_TTL = 730 * DAY_SECONDS
USER_ID_TTL = 365 * DAY_SECONDS
GROUP_ID_TTL = 365 * DAY_SECONDS
LOCATION_TTL = DAY_SECONDS


class KeyValueStore(ABC):
    """String key-value store with optional per-key expiry (seconds)."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value, or None if absent or expired."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: Optional[float] = None):
        """Store value; ttl=None means no expiry."""

    @abstractmethod
    def delete(self, key: str):
        """Remove key if present."""

    @abstractmethod
    def items(self) -> Dict[str, str]:
        """Return all live entries."""

    def clear(self):
        """Remove every entry."""
        for key in list(self.items()):
            self.delete(key)


class MemoryKeyValueStore(KeyValueStore):
    """In-process store; entries vanish with the process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, tuple] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires = entry
        if expires is not None and expires <= self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: Optional[float] = None):
        expires = self._clock() + ttl if ttl is not None else None
        self._entries[key] = (value, expires)

    def delete(self, key: str):
        self._entries.pop(key, None)

    def items(self) -> Dict[str, str]:
        live = {}
        for key in list(self._entries):
            value = self.get(key)
            if value is not None:
                live[key] = value
        return live


class FileKeyValueStore(KeyValueStore):
    """
    JSON file store, one object per key: {"value": str, "expires": float|null}.

    Every operation re-reads the file so several engines sharing a path see
    each other's writes; last write wins.
    """

    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        """
        Initialize store.

        Args:
            path: Path to the JSON file (created on first write)
            clock: Epoch-seconds clock, injectable for tests
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    def _read(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Warning: Unreadable store at {self.path}, starting empty: {e}",
                  file=sys.stderr)
            return {}
        return data if isinstance(data, dict) else {}

    def _update(self, mutate: Callable[[Dict[str, dict]], None]):
        with open(self.path, 'a+') as f:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                f.seek(0)
                raw = f.read()
                try:
                    data = json.loads(raw) if raw.strip() else {}
                except json.JSONDecodeError:
                    data = {}
                if not isinstance(data, dict):
                    data = {}
                mutate(data)
                f.seek(0)
                f.truncate()
                f.write(json.dumps(data, ensure_ascii=False))
                f.flush()
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    def _live(self, entry) -> bool:
        if not isinstance(entry, dict) or not isinstance(entry.get("value"), str):
            return False
        expires = entry.get("expires")
        return expires is None or expires > self._clock()

    def get(self, key: str) -> Optional[str]:
        entry = self._read().get(key)
        return entry["value"] if self._live(entry) else None

    def set(self, key: str, value: str, ttl: Optional[float] = None):
        expires = self._clock() + ttl if ttl is not None else None

        def mutate(data):
            # Expired entries are dropped on every write
            for k in [k for k, e in data.items() if not self._live(e)]:
                del data[k]
            data[key] = {"value": value, "expires": expires}

        self._update(mutate)

    def delete(self, key: str):
        self._update(lambda data: data.pop(key, None))

    def items(self) -> Dict[str, str]:
        return {k: e["value"] for k, e in self._read().items() if self._live(e)}

    def clear(self):
        self._update(lambda data: data.clear())


def encode_record(record: dict) -> str:
    """JSON-serialize and base64-encode a composite record."""
    return base64.b64encode(json.dumps(record).encode("utf-8")).decode("ascii")


def decode_record(raw: str) -> Optional[dict]:
    """
    Decode a base64(JSON) record.

    Returns:
        The record dict, or None if the value is not a valid encoded object
    """
    try:
        data = json.loads(base64.b64decode(raw, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


class IdentityStore:
    """Long-lived plain-string identifiers."""

    def __init__(self, backend: KeyValueStore):
        self.backend = backend

    def _write(self, key: str, value: str, ttl: float):
        if not value:
            return
        try:
            self.backend.set(key, value, ttl)
        except OSError as e:
            print(f"Warning: Could not store {key}: {e}", file=sys.stderr)

    def get_device_id(self) -> Optional[str]:
        return self.backend.get(DEVICE_ID_KEY)

    def set_device_id(self, device_id: str):
        self._write(DEVICE_ID_KEY, device_id, DEVICE_ID_TTL)

    def get_user_id(self) -> Optional[str]:
        return self.backend.get(USER_ID_KEY)

    def set_user_id(self, user_id: str):
        self._write(USER_ID_KEY, user_id, USER_ID_TTL)

    def get_group_id(self) -> Optional[str]:
        return self.backend.get(GROUP_ID_KEY)

    def set_group_id(self, group_id: str):
        self._write(GROUP_ID_KEY, group_id, GROUP_ID_TTL)


class ContextCache:
    """
    Short-lived composite records stored as base64(JSON).

    A record that fails to decode is reported as absent and removed, so the
    caller regenerates it.
    """

    def __init__(self, backend: KeyValueStore):
        self.backend = backend

    def read_raw(self, key: str) -> Optional[str]:
        return self.backend.get(key)

    def read_record(self, key: str) -> Optional[dict]:
        """
        Read and decode a record.

        Args:
            key: Store key

        Returns:
            Decoded record, or None when missing or corrupted
        """
        raw = self.backend.get(key)
        if raw is None:
            return None
        record = decode_record(raw)
        if record is None:
            print(f"Warning: Discarding corrupted cache entry {key}", file=sys.stderr)
            self.remove(key)
        return record

    def write_record(self, key: str, record: dict, ttl: Optional[float] = None):
        try:
            self.backend.set(key, encode_record(record), ttl)
        except (OSError, TypeError, ValueError) as e:
            print(f"Warning: Could not store {key}: {e}", file=sys.stderr)

    def remove(self, key: str):
        try:
            self.backend.delete(key)
        except OSError as e:
            print(f"Warning: Could not remove {key}: {e}", file=sys.stderr)
