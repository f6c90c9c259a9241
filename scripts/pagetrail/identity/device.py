"""
Device identity resolution.

Resolves a stable device id once per engine: a persisted id wins, otherwise
the injected fingerprint probe is awaited, otherwise a random id is
generated. Readiness is monotonic.
"""

import asyncio
import random
import string
import sys
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..storage.store import IdentityStore


FingerprintProbe = Callable[[], Awaitable[str]]

_BASE36 = string.digits + string.ascii_lowercase


def random_base36(length: int = 13) -> str:
    """Random lowercase base36 fragment."""
    return "".join(random.choices(_BASE36, k=length))


def generate_device_id() -> str:
    """Fallback device id: 'device_' + two base36 fragments."""
    return "device_" + random_base36() + random_base36()


class DeviceState(Enum):
    UNRESOLVED = "unresolved"
    PROBING = "probing"
    FAILED = "failed"
    READY = "ready"


class DeviceIdentityResolver:
    """
    Single-shot device id resolver.

    State transitions:
        UNRESOLVED -> READY                   (persisted id)
        UNRESOLVED -> PROBING -> READY        (probe result)
        UNRESOLVED -> PROBING -> FAILED -> READY  (random fallback)
    """

    def __init__(
        self,
        store: IdentityStore,
        probe: Optional[FingerprintProbe] = None,
        probe_timeout: Optional[float] = None,
        debug: bool = False
    ):
        """
        Initialize resolver.

        Args:
            store: Identity store holding the persisted device id
            probe: Async fingerprinting callable returning a visitor id
            probe_timeout: Seconds to wait for the probe (None = no limit)
            debug: Print resolution steps to stderr
        """
        self.store = store
        self.probe = probe
        self.probe_timeout = probe_timeout
        self.debug = debug

        self.state = DeviceState.UNRESOLVED
        self._device_id: Optional[str] = None
        self._callbacks: List[Callable[[str], None]] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def ready(self) -> bool:
        return self.state is DeviceState.READY

    @property
    def device_id(self) -> Optional[str]:
        """Resolved id, or None until ready."""
        return self._device_id if self.ready else None

    def on_ready(self, callback: Callable[[str], None]):
        """Register a callback fired once with the resolved id."""
        if self.ready:
            callback(self._device_id)
        else:
            self._callbacks.append(callback)

    def start(self) -> asyncio.Task:
        """Schedule resolution on the running loop (idempotent)."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.resolve())
        return self._task

    async def resolve(self) -> str:
        """
        Resolve the device id.

        Only the first call does any work; later calls return the result.

        Returns:
            The device id
        """
        if self.state is not DeviceState.UNRESOLVED:
            if self._task is not None and not self._task.done() \
                    and self._task is not asyncio.current_task():
                return await self._task
            return self._device_id

        existing = self.store.get_device_id()
        if existing:
            self._debug(f"Using existing device ID from store: {existing}")
            self._mark_ready(existing)
            return existing

        self.state = DeviceState.PROBING
        try:
            device_id = await self._run_probe()
            self._debug(f"Fingerprint probe resolved device ID: {device_id}")
        except Exception as e:
            self.state = DeviceState.FAILED
            print(f"Warning: Failed to resolve device fingerprint: {e}", file=sys.stderr)
            device_id = generate_device_id()
            self._debug(f"Using fallback random device ID: {device_id}")

        self.store.set_device_id(device_id)
        self._mark_ready(device_id)
        return device_id

    async def _run_probe(self) -> str:
        if self.probe is None:
            raise RuntimeError("fingerprint probe unavailable")
        if self.probe_timeout is not None:
            visitor_id = await asyncio.wait_for(self.probe(), timeout=self.probe_timeout)
        else:
            visitor_id = await self.probe()
        if not visitor_id or not isinstance(visitor_id, str):
            raise ValueError(f"probe returned an unusable visitor id: {visitor_id!r}")
        return visitor_id

    def _mark_ready(self, device_id: str):
        self._device_id = device_id
        self.state = DeviceState.READY
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(device_id)

    def _debug(self, message: str):
        if self.debug:
            print(f"Debug: {message}", file=sys.stderr)
