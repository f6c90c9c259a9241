"""
Automatic capture of page visits, clicks and form lifecycle events.

Each flow checks the consent gate before doing any enrichment work, builds
an EventRecord with identity/session context and hands it to the queue.
"""

import math
import sys
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Hashable, List, Optional, Set

from ..identity.device import DeviceIdentityResolver
from ..identity.geo import GeoContextFetcher
from ..identity.profile import IdentityProfile
from ..identity.session import SessionManager
from .consent import ConsentCategory, ConsentGate
from .platform import (
    ClickEvent,
    ElementInfo,
    FieldInfo,
    FormInfo,
    PageInfo,
    PlatformAdapter,
)
from .schema import EventContext, EventRecord, utc_timestamp


UTM_PARAMETERS = ("utm_campaign", "utm_medium", "utm_source", "utm_term", "utm_content")

CLICK_THROTTLE_MS = 300
MAX_HISTORY_LENGTH = 20
MAX_HIERARCHY_CACHE = 512
MAX_TRACKED_FORMS = 64


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def element_selector(element: ElementInfo) -> str:
    """TAG#id.class1.class2 for a single element."""
    selector = element.tag
    if element.element_id:
        selector += f"#{element.element_id}"
    classes = element.class_name.split() if isinstance(element.class_name, str) else []
    if classes:
        selector += "." + ".".join(classes)
    return selector


@dataclass
class _FormState:
    form: FormInfo
    start_ms: float
    filled_fields: Set[str] = field(default_factory=set)
    abandonment_reported: bool = False


class EventCapture:
    """Builds enriched events from platform notifications."""

    def __init__(
        self,
        profile: IdentityProfile,
        device: DeviceIdentityResolver,
        session: SessionManager,
        consent: ConsentGate,
        geo: GeoContextFetcher,
        enqueue: Callable[[List[EventRecord]], None],
        source: str = "",
        clock_ms: Callable[[], float] = _monotonic_ms
    ):
        """
        Initialize capture layer.

        Args:
            profile: User/group ids
            device: Device id resolver (id may still be None)
            session: Session manager
            consent: DNT/consent gate
            geo: Geolocation context for page visits
            enqueue: Receives captured records
            source: Logical channel label added to every context
            clock_ms: Monotonic milliseconds, used for throttling and form timing
        """
        self.profile = profile
        self.device = device
        self.session = session
        self.consent = consent
        self.geo = geo
        self.enqueue = enqueue
        self.source = source
        self.clock_ms = clock_ms

        self.interaction_history: Deque[Dict[str, Any]] = deque(maxlen=MAX_HISTORY_LENGTH)
        self._sequence = 0
        self._last_click_ms: Optional[float] = None
        self._hierarchy_cache: "OrderedDict[Hashable, str]" = OrderedDict()
        self._forms: "OrderedDict[Hashable, _FormState]" = OrderedDict()

    def install(
        self,
        adapter: PlatformAdapter,
        track_clicks: bool = False,
        track_forms: bool = False
    ):
        """Subscribe to the adapter's page, click and form notifications."""
        adapter.on_page_change(lambda kind: self.capture_page_visit(adapter.current_page()))
        if track_clicks:
            adapter.on_click(lambda event: self.capture_click(event, adapter.current_page()))
        if track_forms:
            adapter.on_form_lifecycle(
                on_submit=lambda form: self.capture_form_submit(form, adapter.current_page()),
                on_input=self.record_form_input,
                on_hidden=lambda: self.capture_form_abandonment(adapter.current_page()),
            )

    # ------------------------------------------------------------------
    # Page visits
    # ------------------------------------------------------------------

    def capture_page_visit(self, page: PageInfo) -> Optional[EventRecord]:
        if not self.consent.is_tracking_allowed(ConsentCategory.FUNCTIONAL):
            return None

        properties = {
            "page_title": page.title,
            "page_url": page.url,
            "page_path": page.path,
            "page_referrer": page.referrer or None,
            "language": page.language or None,
        }
        properties.update(self.geo.info.to_properties())
        properties.update(self._utm_parameters(page))

        return self._emit("page_visit", properties)

    # ------------------------------------------------------------------
    # Clicks
    # ------------------------------------------------------------------

    def capture_click(self, event: ClickEvent, page: PageInfo) -> Optional[EventRecord]:
        if not self.consent.is_tracking_allowed(ConsentCategory.ANALYTICS):
            return None

        now = self.clock_ms()
        if self._last_click_ms is not None and now - self._last_click_ms < CLICK_THROTTLE_MS:
            return None
        self._last_click_ms = now

        target = event.target
        properties = {
            "page_title": page.title,
            "page_url": page.url,
            "element_text": (target.text or "").strip() or None,
            "element_tag": target.tag or None,
            "element_id": target.element_id or None,
            "element_href": target.href or None,
            "element_aria_label": target.aria_label or None,
            "element_class": target.class_name or None,
            "element_hierarchy": self.element_hierarchy(target),
            "element_position_left": target.left or None,
            "element_position_top": target.top or None,
            "element_selector": element_selector(target),
            "viewport_height": event.viewport.height,
            "viewport_width": event.viewport.width,
            "referrer": page.referrer or None,
        }
        properties.update(self._utm_parameters(page))

        return self._emit("element_click", properties)

    def element_hierarchy(self, element: ElementInfo) -> str:
        """
        Ancestor path from the root down to element, e.g.
        'HTML > BODY > DIV#app > BUTTON.primary'. Cached per element handle.
        """
        cached = self._hierarchy_cache.get(element.handle)
        if cached is not None:
            self._hierarchy_cache.move_to_end(element.handle)
            return cached

        path = []
        current: Optional[ElementInfo] = element
        while current is not None:
            path.append(element_selector(current))
            current = current.parent
        result = " > ".join(reversed(path))

        self._hierarchy_cache[element.handle] = result
        if len(self._hierarchy_cache) > MAX_HIERARCHY_CACHE:
            self._hierarchy_cache.popitem(last=False)
        return result

    def forget_element(self, handle: Hashable):
        """Drop a cached hierarchy once the host discards the element."""
        self._hierarchy_cache.pop(handle, None)

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def record_form_input(self, form: FormInfo, field_info: FieldInfo):
        """Track which fields of a form currently hold a value."""
        state = self._forms.get(form.handle)
        if state is None:
            state = _FormState(form=form, start_ms=self.clock_ms())
            self._forms[form.handle] = state
            if len(self._forms) > MAX_TRACKED_FORMS:
                self._forms.popitem(last=False)
        else:
            self._forms.move_to_end(form.handle)
        state.form = form
        state.abandonment_reported = False

        key = field_info.key
        if field_info.value.strip():
            state.filled_fields.add(key)
        else:
            state.filled_fields.discard(key)

    def capture_form_submit(self, form: FormInfo, page: PageInfo) -> Optional[EventRecord]:
        record = self.capture_form_event(form, "submit", page)
        # A submitted form is finished; later input starts a fresh interaction
        self._forms.pop(form.handle, None)
        return record

    @property
    def tracked_form_count(self) -> int:
        return len(self._forms)

    def capture_form_abandonment(self, page: PageInfo) -> List[EventRecord]:
        """Report every touched, unsubmitted form as abandoned."""
        records = []
        for state in list(self._forms.values()):
            if state.abandonment_reported or not state.filled_fields:
                continue
            record = self.capture_form_event(state.form, "abandoned", page)
            if record is not None:
                state.abandonment_reported = True
                records.append(record)
        return records

    def capture_form_event(self, form: FormInfo, kind: str, page: PageInfo) -> Optional[EventRecord]:
        if not self.consent.is_tracking_allowed(ConsentCategory.ANALYTICS):
            return None

        state = self._forms.get(form.handle)
        filled = len(state.filled_fields) if state else 0
        total_fields = form.trackable_field_count

        properties = {
            "page_title": page.title,
            "page_url": page.url,
            "form_id": form.form_id or None,
            "form_name": form.name or None,
            "form_action": form.action or None,
            "form_fields": total_fields,
            "form_completion": form_completion(filled, total_fields),
            "interaction_time": int(self.clock_ms() - state.start_ms) if state else None,
        }

        return self._emit(f"form_{kind}", properties)

    # ------------------------------------------------------------------
    # Shared enrichment
    # ------------------------------------------------------------------

    def _utm_parameters(self, page: PageInfo) -> Dict[str, Optional[str]]:
        if not self.consent.is_tracking_allowed(ConsentCategory.MARKETING):
            return {}
        params = page.query_params()
        return {name: params.get(name) or None for name in UTM_PARAMETERS}

    def _emit(self, event_name: str, properties: Dict[str, Any]) -> EventRecord:
        # Session is validated before the activity refresh is scheduled
        session_id = self.session.get_session_id()
        self.session.update_session_activity()

        device_id = self.device.device_id
        if device_id is None and self.device.debug:
            print(f"Debug: Device ID not ready, {event_name} will be queued", file=sys.stderr)

        record = EventRecord(
            event_name=event_name,
            user_id=self.profile.current_user_id(),
            timestamp=utc_timestamp(),
            properties=properties,
            context=EventContext(
                group_id=self.profile.current_group_id(),
                device_id=device_id,
                session_id=session_id,
                source=self.source,
            ),
        )
        self.enqueue([record])
        self._add_to_history(event_name, properties)
        return record

    def _add_to_history(self, event_type: str, details: Dict[str, Any]):
        self._sequence += 1
        self.interaction_history.append({
            "type": event_type,
            "details": dict(details),
            "timestamp": utc_timestamp(),
            "sequence": self._sequence,
        })


def form_completion(filled: int, total: int) -> int:
    """Percentage of trackable fields filled; the denominator is at least 1."""
    return math.floor(filled / max(total, 1) * 100 + 0.5)
