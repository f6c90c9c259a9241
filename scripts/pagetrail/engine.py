"""
The pagetrail engine: one explicit handle that wires storage, identity,
sessions, consent, capture and delivery together and exposes the public
calls host code uses.

Usage:
    async with Engine({"api_key": "...", "source": "product"},
                      adapter=adapter) as engine:
        engine.track({"event_name": "feature_used", "properties": {...}})
        await engine.set_user("user-123", "jane@example.com")
"""

import asyncio
import sys
from typing import Any, Dict, Iterable, List, Optional, Union

import httpx

from .config import EngineConfig
from .delivery.queue import EventQueue
from .delivery.transport import CollectorClient
from .errors import DeliveryError, NotInitializedError
from .identity.device import DeviceIdentityResolver, FingerprintProbe
from .identity.geo import GeoContextFetcher
from .identity.profile import Identity, IdentityProfile
from .identity.session import SessionManager
from .storage.store import (
    ContextCache,
    FileKeyValueStore,
    IdentityStore,
    KeyValueStore,
    MemoryKeyValueStore,
)
from .telemetry.capture import EventCapture
from .telemetry.consent import ConsentCategory, ConsentGate
from .telemetry.platform import PlatformAdapter
from .telemetry.redaction import PIIScrubber
from .telemetry.schema import EventRecord, utc_timestamp


EventInput = Union[EventRecord, Dict[str, Any]]


class Engine:
    """Telemetry capture and delivery engine."""

    def __init__(
        self,
        config: Union[EngineConfig, Dict[str, Any]],
        adapter: Optional[PlatformAdapter] = None,
        store: Optional[KeyValueStore] = None,
        fingerprint_probe: Optional[FingerprintProbe] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Build the engine. Nothing is captured or sent until start().

        Args:
            config: EngineConfig or a dict of options (camelCase accepted)
            adapter: Platform adapter for auto-capture (optional)
            store: Key-value backend; defaults to a file store at
                   config.storage_path, else an in-memory store
            fingerprint_probe: Async callable returning a device fingerprint
            http_client: Shared httpx client; the engine creates and owns one if None

        Raises:
            ConfigurationError: If api_key or source is missing, or options are invalid
        """
        if not isinstance(config, EngineConfig):
            config = EngineConfig.from_dict(config)
        self.config = config.validate()
        self.adapter = adapter

        if store is None:
            store = FileKeyValueStore(config.storage_path) if config.storage_path \
                else MemoryKeyValueStore()
        self.store = store
        self.identity_store = IdentityStore(store)
        self.context_cache = ContextCache(store)

        self._http = http_client or httpx.AsyncClient(timeout=config.request_timeout_sec)
        self._owns_http = http_client is None

        probe_timeout = config.probe_timeout_ms / 1000.0 if config.probe_timeout_ms else None
        self.device = DeviceIdentityResolver(
            self.identity_store,
            probe=fingerprint_probe,
            probe_timeout=probe_timeout,
            debug=config.debug,
        )
        self.profile = IdentityProfile(self.identity_store, self.device)
        self.geo = GeoContextFetcher(
            self.context_cache,
            config.geo_ip_service_url,
            client=self._http,
            timeout=config.request_timeout_sec,
            debug=config.debug,
        )
        self.session = SessionManager(
            self.context_cache,
            timeout_ms=config.session_timeout_ms,
            debounce_delay_ms=config.debounce_delay_ms,
            debug=config.debug,
        )
        self.consent = ConsentGate(
            respect_do_not_track=config.respect_do_not_track,
            enable_consent=config.enable_consent,
            default_consent=config.default_consent,
            dnt_signal=self._do_not_track,
        )
        self.collector = CollectorClient(
            config.api_key,
            config.api_endpoint,
            client=self._http,
            scrubber=PIIScrubber(enabled=config.pii_redaction),
            attempts=config.retry_attempts,
            retry_delay=config.retry_delay_ms / 1000.0,
            timeout=config.request_timeout_sec,
            debug=config.debug,
        )
        self.queue = EventQueue(
            self.device,
            self.collector.send_events,
            batch_size=config.batch_size,
            batch_interval=config.batch_interval_ms / 1000.0,
            debug=config.debug,
        )
        self.device.on_ready(lambda device_id: self.queue.process_if_ready())
        self.capture = EventCapture(
            self.profile,
            self.device,
            self.session,
            self.consent,
            self.geo,
            self.queue.enqueue,
            source=config.source,
        )

        self._ready = asyncio.Event()
        self._geo_task: Optional[asyncio.Task] = None
        self._device_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "Engine":
        """
        Begin device resolution and geo lookup, and install auto-capture
        when tracking is allowed. Sets the readiness signal.
        """
        if self._ready.is_set():
            return self

        self._device_task = self.device.start()
        self._geo_task = asyncio.get_running_loop().create_task(self.geo.fetch())

        if self.adapter is not None and self.consent.should_track():
            self.capture.install(
                self.adapter,
                track_clicks=self.config.track_clicks,
                track_forms=self.config.track_forms,
            )

        self._ready.set()
        return self

    def init(self, user_id: str = "", source: str = ""):
        """Optionally set the user id and/or override the source after construction."""
        if user_id:
            self.profile.set_user_id(user_id)
        if source:
            self.set_source(source)

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def wait_until_ready(self):
        await self._ready.wait()

    async def flush(self):
        """Send everything queued and wait for in-flight deliveries."""
        await self.queue.drain()

    async def close(self):
        """
        Persist pending session activity, flush the queue and release the
        HTTP client. Unfinished background lookups are cancelled.
        """
        self.session.flush_pending()
        await self.queue.drain()
        self.queue.close()
        if len(self.queue):
            print(f"Warning: Closing with {len(self.queue)} undelivered event(s) discarded",
                  file=sys.stderr)

        for task in (self._device_task, self._geo_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "Engine":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Public calls
    # ------------------------------------------------------------------

    def track(self, events: Union[EventInput, Iterable[EventInput]]):
        """
        Queue one or more events for batched delivery.

        Args:
            events: EventRecord, event dict, or a list of either

        Raises:
            NotInitializedError: If the engine has no API key
            ValueError: If an event envelope is malformed
        """
        if not self.collector.api_key:
            raise NotInitializedError()

        if isinstance(events, (EventRecord, dict)):
            events = [events]
        records = [
            event if isinstance(event, EventRecord) else EventRecord.from_dict(event)
            for event in events
        ]
        if records:
            self.queue.enqueue(records)

    async def identify(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]]) -> Any:
        """
        Send identification data to /identify.

        The user id of the last element is stored before sending.

        Returns:
            Response body, or None if delivery failed
        """
        return await self._send_profile_call("/identify", payload, "user_id")

    async def group(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]]) -> Any:
        """Send account data to /group; the group id of the last element is stored."""
        return await self._send_profile_call("/group", payload, "group_id")

    async def _send_profile_call(self, path: str, payload, id_field: str) -> Any:
        if not self.collector.api_key:
            raise NotInitializedError()

        items = payload if isinstance(payload, list) else [payload]
        if items:
            last = items[-1]
            value = last.get(id_field) or (last.get("userId") if id_field == "user_id" else None)
            if value:
                if id_field == "user_id":
                    self.profile.set_user_id(value)
                else:
                    self.profile.set_group_id(value)

        try:
            return await self.collector.post(path, items)
        except DeliveryError as e:
            print(f"Warning: Failed to send {path.lstrip('/')} data: {e}", file=sys.stderr)
            return None

    async def set_user(
        self,
        user_id: str,
        email: str = "",
        properties: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Set the current user and identify them once.

        The identify call is skipped when the stored user id already matches.

        Returns:
            Response body, or None when skipped, rejected or failed
        """
        if not user_id:
            print("Warning: set_user: user_id is required", file=sys.stderr)
            return None

        should_identify = self.identity_store.get_user_id() != user_id
        self.profile.set_user_id(user_id)

        if not should_identify:
            self._debug(f"Skipping identify call - user already set: {user_id}")
            return None

        payload = [{
            "user_id": user_id,
            "traits": {
                "user_email": email,
                "user_name": email,
                **(properties or {}),
            },
            "timestamp": utc_timestamp(),
        }]
        return await self.identify(payload)

    async def set_group(
        self,
        group_id: str,
        domain: str = "",
        name: str = "",
        properties: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Set the current account and send a group call once.

        Returns:
            Response body, or None when skipped, rejected or failed
        """
        if not group_id:
            print("Warning: set_group: group_id is required", file=sys.stderr)
            return None

        should_group = self.identity_store.get_group_id() != group_id
        self.profile.set_group_id(group_id)

        if not should_group:
            self._debug(f"Skipping group call - group already set: {group_id}")
            return None

        payload = [{
            "group_id": group_id,
            "user_id": self.profile.current_user_id(),
            "traits": {
                "group_type": "Account",
                "account_domain": domain,
                "account_name": name,
                **(properties or {}),
            },
            "timestamp": utc_timestamp(),
        }]
        return await self.group(payload)

    def set_consent(self, category: Union[ConsentCategory, str], granted: bool):
        self.consent.set_consent(category, granted)

    def set_source(self, source: str):
        self.config.source = source
        self.capture.source = source

    def get_device_id(self) -> Optional[str]:
        return self.device.device_id

    @property
    def identity(self) -> Identity:
        return self.profile.snapshot()

    @property
    def interaction_history(self) -> List[Dict[str, Any]]:
        return list(self.capture.interaction_history)

    def enable_debug_mode(self):
        """Print identity decisions, queue deferrals and outgoing batches to stderr."""
        self.config.debug = True
        for component in (self.device, self.geo, self.session, self.collector, self.queue):
            component.debug = True
        print("Debug: pagetrail debug mode enabled", file=sys.stderr)

    def _do_not_track(self) -> bool:
        if self.config.do_not_track:
            return True
        return self.adapter.do_not_track() if self.adapter is not None else False

    def _debug(self, message: str):
        if self.config.debug:
            print(f"Debug: {message}", file=sys.stderr)
