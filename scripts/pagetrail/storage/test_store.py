#!/usr/bin/env python3
"""
Tests for the key-value backends and the identity/context views.

Run with: python3 -m pytest scripts/pagetrail/storage/test_store.py -v
"""

import json
import tempfile
import unittest
from pathlib import Path

from pagetrail.storage.store import (
    ContextCache,
    FileKeyValueStore,
    IdentityStore,
    MemoryKeyValueStore,
    LOCATION_KEY,
    SESSION_KEY,
    decode_record,
    encode_record,
)


class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMemoryKeyValueStore(unittest.TestCase):
    """Test the in-memory backend."""

    def test_set_and_get(self):
        store = MemoryKeyValueStore()
        store.set("a", "1")
        self.assertEqual(store.get("a"), "1")
        self.assertIsNone(store.get("missing"))

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        store = MemoryKeyValueStore(clock=clock)
        store.set("geo", "x", ttl=60)

        clock.now += 59
        self.assertEqual(store.get("geo"), "x")

        clock.now += 1
        self.assertIsNone(store.get("geo"))
        self.assertEqual(store.items(), {})

    def test_clear(self):
        store = MemoryKeyValueStore()
        store.set("a", "1")
        store.set("b", "2", ttl=10)
        store.clear()
        self.assertEqual(store.items(), {})


class TestFileKeyValueStore(unittest.TestCase):
    """Test the JSON file backend."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "nested" / "store.json"
        self.clock = FakeClock()

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_values_survive_a_new_instance(self):
        FileKeyValueStore(self.path, clock=self.clock).set("pagetrail_user_id", "u-1", ttl=100)

        reopened = FileKeyValueStore(self.path, clock=self.clock)
        self.assertEqual(reopened.get("pagetrail_user_id"), "u-1")

    def test_expired_entries_are_ignored_and_pruned(self):
        store = FileKeyValueStore(self.path, clock=self.clock)
        store.set("short", "x", ttl=10)
        store.set("long", "y", ttl=1000)

        self.clock.now += 11
        self.assertIsNone(store.get("short"))

        store.set("other", "z")
        with open(self.path) as f:
            raw = json.load(f)
        self.assertNotIn("short", raw)
        self.assertIn("long", raw)

    def test_unreadable_file_reads_as_empty(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("{not json")

        store = FileKeyValueStore(self.path, clock=self.clock)
        self.assertIsNone(store.get("anything"))

        store.set("a", "1")
        self.assertEqual(store.get("a"), "1")

    def test_delete_and_clear(self):
        store = FileKeyValueStore(self.path, clock=self.clock)
        store.set("a", "1")
        store.set("b", "2")
        store.delete("a")
        self.assertEqual(store.items(), {"b": "2"})
        store.clear()
        self.assertEqual(store.items(), {})


class TestRecordEncoding(unittest.TestCase):
    """Test base64(JSON) record helpers."""

    def test_encode_then_decode(self):
        record = {"session_id": "session_abc", "last_activity": "2024-01-01T00:00:00+00:00"}
        self.assertEqual(decode_record(encode_record(record)), record)

    def test_garbage_decodes_to_none(self):
        self.assertIsNone(decode_record("%%%not-base64%%%"))
        self.assertIsNone(decode_record("bm90IGpzb24="))  # base64("not json")
        self.assertIsNone(decode_record("WzEsMl0="))  # base64("[1,2]")


class TestIdentityStore(unittest.TestCase):
    """Test long-lived identifiers."""

    def test_round_trips_ids(self):
        ids = IdentityStore(MemoryKeyValueStore())
        ids.set_device_id("device_x")
        ids.set_user_id("user-1")
        ids.set_group_id("acct-9")

        self.assertEqual(ids.get_device_id(), "device_x")
        self.assertEqual(ids.get_user_id(), "user-1")
        self.assertEqual(ids.get_group_id(), "acct-9")

    def test_empty_values_are_not_written(self):
        ids = IdentityStore(MemoryKeyValueStore())
        ids.set_user_id("")
        self.assertIsNone(ids.get_user_id())


class TestContextCache(unittest.TestCase):
    """Test short-lived composite records."""

    def test_corrupted_record_is_reported_absent_and_removed(self):
        backend = MemoryKeyValueStore()
        backend.set(LOCATION_KEY, "!!corrupted!!")
        cache = ContextCache(backend)

        self.assertIsNone(cache.read_record(LOCATION_KEY))
        self.assertIsNone(backend.get(LOCATION_KEY))

    def test_write_then_read(self):
        cache = ContextCache(MemoryKeyValueStore())
        cache.write_record(SESSION_KEY, {"session_id": "session_1"})
        self.assertEqual(cache.read_record(SESSION_KEY), {"session_id": "session_1"})
        self.assertIsNotNone(cache.read_raw(SESSION_KEY))


if __name__ == "__main__":
    unittest.main()
