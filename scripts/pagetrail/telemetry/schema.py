"""
Event schemas for pagetrail.

Typed envelope (name, user, timestamp, context) around an open property bag.
Records are immutable once queued; the device id is stamped into a copy at
flush time.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class EventContext:
    """Identity/session context attached to every event."""
    group_id: Optional[str] = None
    device_id: Optional[str] = None
    session_id: Optional[str] = None
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EventContext":
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("event context must be an object")
        return cls(
            group_id=data.get("group_id"),
            device_id=data.get("device_id"),
            session_id=data.get("session_id"),
            source=data.get("source"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, keeping device_id even when null."""
        result: Dict[str, Any] = {}
        if self.group_id is not None:
            result["group_id"] = self.group_id
        result["device_id"] = self.device_id
        if self.session_id is not None:
            result["session_id"] = self.session_id
        if self.source is not None:
            result["source"] = self.source
        return result


@dataclass(frozen=True)
class EventRecord:
    """A single telemetry event as sent to the collection endpoint."""
    event_name: str
    user_id: str = ""
    timestamp: str = field(default_factory=utc_timestamp)
    properties: Dict[str, Any] = field(default_factory=dict)
    context: EventContext = field(default_factory=EventContext)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventRecord":
        """
        Validate and build a record from a caller-supplied dictionary.

        Args:
            data: Event with event_name, optional user_id, timestamp,
                  properties and context

        Returns:
            EventRecord

        Raises:
            ValueError: If the envelope is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"event must be an object, got {type(data).__name__}")

        event_name = data.get("event_name")
        if not isinstance(event_name, str) or not event_name.strip():
            raise ValueError("event_name is required")

        user_id = data.get("user_id") or ""
        if not isinstance(user_id, str):
            raise ValueError("user_id must be a string")

        timestamp = data.get("timestamp") or utc_timestamp()
        try:
            datetime.fromisoformat(str(timestamp).replace('Z', '+00:00'))
        except ValueError:
            raise ValueError(f"timestamp is not ISO-8601: {timestamp!r}")

        properties = data.get("properties") or {}
        if not isinstance(properties, dict):
            raise ValueError("properties must be an object")

        record = cls(
            event_name=event_name,
            user_id=user_id,
            timestamp=timestamp,
            properties=dict(properties),
            context=EventContext.from_dict(data.get("context")),
        )
        if not record.is_serializable():
            raise ValueError(
                f"event {event_name!r} contains values that cannot be sent as JSON"
            )
        return record

    def is_serializable(self) -> bool:
        """True when the wire form encodes as strict JSON (no NaN/Infinity)."""
        try:
            json.dumps(self.to_dict(), allow_nan=False)
        except (TypeError, ValueError):
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary."""
        return {
            "event_name": self.event_name,
            "user_id": self.user_id,
            "timestamp": self.timestamp,
            "properties": dict(self.properties),
            "context": self.context.to_dict(),
        }

    def with_device_id(self, device_id: Optional[str]) -> "EventRecord":
        """Copy with context.device_id replaced."""
        return replace(self, context=replace(self.context, device_id=device_id))
