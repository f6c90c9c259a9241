#!/usr/bin/env python3
"""
Operator CLI for pagetrail.

Usage:
    pagetrail status --store ~/.pagetrail/store.json [--json]
    pagetrail send events.jsonl --config pagetrail.json [--store PATH]
    pagetrail reset --store ~/.pagetrail/store.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .engine import Engine
from .errors import ConfigurationError
from .storage.store import (
    ContextCache,
    FileKeyValueStore,
    IdentityStore,
    LOCATION_KEY,
    SESSION_KEY,
)


DEFAULT_STORE_PATH = Path.home() / ".pagetrail" / "store.json"


def read_events(path: Path) -> List[dict]:
    """
    Read one event object per line, skipping malformed lines.

    Args:
        path: JSONL file

    Returns:
        List of event dictionaries
    """
    events = []
    with open(path, 'r') as f:
        for line_num, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                print(f"Warning: Malformed JSON at {path}:{line_num}: {e}", file=sys.stderr)
                continue
            if not isinstance(entry, dict):
                print(f"Warning: Skipping non-object at {path}:{line_num}", file=sys.stderr)
                continue
            events.append(entry)
    return events


def collect_status(store_path: Path) -> dict:
    """Persisted identity, session and geo state from a file store."""
    backend = FileKeyValueStore(store_path)
    identity = IdentityStore(backend)
    cache = ContextCache(backend)
    return {
        "store_path": str(store_path),
        "device_id": identity.get_device_id(),
        "user_id": identity.get_user_id(),
        "group_id": identity.get_group_id(),
        "session": cache.read_record(SESSION_KEY),
        "location": cache.read_record(LOCATION_KEY),
    }


def print_status(status: dict):
    print("=" * 50)
    print("PAGETRAIL STATUS")
    print("=" * 50)
    print(f"Store:      {status['store_path']}")
    print(f"Device ID:  {status['device_id'] or '(none)'}")
    print(f"User ID:    {status['user_id'] or '(none)'}")
    print(f"Group ID:   {status['group_id'] or '(none)'}")

    session = status["session"]
    if session:
        print(f"Session:    {session.get('session_id')}")
        print(f"  started:  {session.get('start_time')}")
        print(f"  active:   {session.get('last_activity')}")
    else:
        print("Session:    (none)")

    location = status["location"]
    if location:
        place = ", ".join(v for v in (location.get("city"), location.get("region"),
                                      location.get("country")) if v)
        print(f"Location:   {place or '(unknown)'}")
    else:
        print("Location:   (not cached)")


async def send_events(engine: Engine, events: List[dict]) -> int:
    """Track events through the engine and flush; returns failures seen."""
    async with engine:
        await engine.device.resolve()
        engine.track(events)
        await engine.flush()
        return len(engine.queue.errors)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="pagetrail telemetry engine tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="Show persisted identity state")
    status_parser.add_argument("--store", type=Path, default=DEFAULT_STORE_PATH,
                               help="Path to the file store")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    send_parser = subparsers.add_parser("send", help="Replay a JSONL file of events")
    send_parser.add_argument("file", type=Path, help="JSONL file, one event per line")
    send_parser.add_argument("--config", type=Path, help="JSON options file")
    send_parser.add_argument("--store", type=Path, help="Path to the file store")

    reset_parser = subparsers.add_parser("reset", help="Clear the persisted store")
    reset_parser.add_argument("--store", type=Path, default=DEFAULT_STORE_PATH,
                              help="Path to the file store")

    args = parser.parse_args(argv)

    if args.command == "status":
        status = collect_status(args.store)
        if args.json:
            print(json.dumps(status, indent=2))
        else:
            print_status(status)
        return 0

    if args.command == "reset":
        FileKeyValueStore(args.store).clear()
        print(f"Cleared {args.store}")
        return 0

    overrides = {"storage_path": str(args.store)} if args.store else None
    try:
        config = load_config(args.config, overrides)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        events = read_events(args.file)
    except OSError as e:
        print(f"Error: Cannot read {args.file}: {e}", file=sys.stderr)
        return 2

    try:
        failures = asyncio.run(send_events(Engine(config), events))
    except ValueError as e:
        print(f"Error: Invalid event: {e}", file=sys.stderr)
        return 2

    if failures:
        print(f"Failed to deliver {len(events)} events ({failures} failed batch(es))",
              file=sys.stderr)
        return 1
    print(f"Sent {len(events)} events")
    return 0


if __name__ == "__main__":
    sys.exit(main())
