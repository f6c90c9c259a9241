#!/usr/bin/env python3
"""
Tests for event envelope validation.
"""

from datetime import datetime

import pytest

from pagetrail.telemetry.schema import EventContext, EventRecord


def test_from_dict_accepts_minimal_event():
    record = EventRecord.from_dict({"event_name": "feature_used"})
    assert record.user_id == ""
    assert record.properties == {}
    assert record.context == EventContext()
    assert record.timestamp


def test_from_dict_keeps_envelope_and_properties():
    record = EventRecord.from_dict({
        "event_name": "invite_sent",
        "user_id": "u-1",
        "timestamp": "2024-03-01T10:00:00.000Z",
        "properties": {"invitee_role": "admin", "nested": {"a": 1}},
        "context": {"group_id": "acct-1"},
    })
    wire = record.to_dict()
    assert wire["context"] == {"group_id": "acct-1", "device_id": None}
    assert wire["properties"]["nested"] == {"a": 1}
    assert wire["timestamp"] == "2024-03-01T10:00:00.000Z"


@pytest.mark.parametrize("bad", [
    {},
    {"event_name": ""},
    {"event_name": "x", "properties": ["not", "a", "map"]},
    {"event_name": "x", "timestamp": "yesterday"},
    {"event_name": "x", "user_id": 42},
    {"event_name": "x", "context": "nope"},
    {"event_name": "x", "properties": {"at": datetime(2024, 5, 1)}},
    {"event_name": "x", "properties": {"ratio": float("nan")}},
    {"event_name": "x", "properties": {"nested": {"tags": {"a", "b"}}}},
])
def test_from_dict_rejects_malformed_envelopes(bad):
    with pytest.raises(ValueError):
        EventRecord.from_dict(bad)


def test_with_device_id_returns_stamped_copy():
    record = EventRecord(event_name="page_visit", context=EventContext(session_id="s1"))
    stamped = record.with_device_id("device_1")

    assert stamped.context.device_id == "device_1"
    assert stamped.context.session_id == "s1"
    assert record.context.device_id is None
