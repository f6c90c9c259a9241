#!/usr/bin/env python3
"""
Tests for the pagetrail operator CLI.
"""

import json
import os
import tempfile
from pathlib import Path
from unittest import mock

import httpx
import pytest

from pagetrail.cli import collect_status, main, read_events, send_events
from pagetrail.engine import Engine
from pagetrail.storage.store import (
    ContextCache,
    FileKeyValueStore,
    IdentityStore,
    LOCATION_KEY,
    SESSION_KEY,
)


def seed_store(path: Path):
    backend = FileKeyValueStore(path)
    identity = IdentityStore(backend)
    identity.set_device_id("device_cli")
    identity.set_user_id("u-1")
    cache = ContextCache(backend)
    cache.write_record(SESSION_KEY, {
        "session_id": "session_abc",
        "start_time": "2024-05-01T12:00:00+00:00",
        "last_activity": "2024-05-01T12:05:00+00:00",
    })
    cache.write_record(LOCATION_KEY, {"city": "Lisbon", "country": "PT"})


def test_read_events_skips_malformed_lines():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "events.jsonl"
        path.write_text(
            '{"event_name": "a"}\n'
            '\n'
            '{broken\n'
            '["not", "an", "object"]\n'
            '{"event_name": "b", "properties": {"x": 1}}\n'
        )
        events = read_events(path)

    assert [e["event_name"] for e in events] == ["a", "b"]


def test_collect_status_reads_store():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "store.json"
        seed_store(path)
        status = collect_status(path)

    assert status["device_id"] == "device_cli"
    assert status["user_id"] == "u-1"
    assert status["group_id"] is None
    assert status["session"]["session_id"] == "session_abc"
    assert status["location"]["city"] == "Lisbon"


def test_status_json_output(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "store.json"
        seed_store(path)
        code = main(["status", "--store", str(path), "--json"])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["device_id"] == "device_cli"


def test_status_text_output_on_empty_store(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        code = main(["status", "--store", str(Path(tmpdir) / "missing.json")])

    out = capsys.readouterr().out
    assert code == 0
    assert "Device ID:  (none)" in out
    assert "Location:   (not cached)" in out


def test_reset_clears_store():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "store.json"
        seed_store(path)
        assert main(["reset", "--store", str(path)]) == 0
        assert FileKeyValueStore(path).items() == {}


@mock.patch.dict(os.environ, {}, clear=True)
def test_send_without_api_key_fails():
    with tempfile.TemporaryDirectory() as tmpdir:
        events = Path(tmpdir) / "events.jsonl"
        events.write_text('{"event_name": "a"}\n')
        assert main(["send", str(events)]) == 2


@mock.patch.dict(os.environ, {"PAGETRAIL_API_KEY": "k", "PAGETRAIL_SOURCE": "cli"}, clear=True)
def test_send_missing_file_fails():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert main(["send", str(Path(tmpdir) / "absent.jsonl")]) == 2


@pytest.mark.asyncio
async def test_send_events_delivers_through_engine():
    bodies = []

    def handler(request):
        if request.url.path == "/api/track":
            bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    engine = Engine({"api_key": "k", "source": "cli", "api_endpoint": "https://c.test/api",
                     "geo_ip_service_url": "https://geo.test/json"},
                    http_client=client)

    failures = await send_events(engine, [{"event_name": "a"}, {"event_name": "b"}])

    assert failures == 0
    assert [e["event_name"] for e in bodies[0]] == ["a", "b"]
    await client.aclose()
