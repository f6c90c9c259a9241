"""
Platform adapter interface for auto-capture.

The capture layer never talks to a DOM directly. A host integration
implements PlatformAdapter and forwards navigation, click and form
lifecycle notifications; ManualPlatformAdapter is a ready-made adapter that
host code (or tests) drives by calling its methods.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Optional
from urllib.parse import parse_qs, urlsplit


PageChangeKind = str  # "load", "popstate", "push" or "replace"

NON_TRACKABLE_FIELD_TYPES = ("submit", "button", "reset")


@dataclass
class PageInfo:
    """The page being viewed."""
    url: str
    title: str = ""
    referrer: Optional[str] = None
    language: Optional[str] = None

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    def query_params(self) -> Dict[str, str]:
        """First value of every query-string parameter."""
        return {k: v[0] for k, v in parse_qs(urlsplit(self.url).query).items()}


@dataclass
class Viewport:
    width: int = 0
    height: int = 0


@dataclass
class ElementInfo:
    """
    A clicked element. handle must be stable for the element's lifetime;
    it keys the ancestor-path cache.
    """
    handle: Hashable
    tag: str
    element_id: str = ""
    class_name: str = ""
    text: str = ""
    href: Optional[str] = None
    aria_label: Optional[str] = None
    left: Optional[float] = None
    top: Optional[float] = None
    parent: Optional["ElementInfo"] = None


@dataclass
class ClickEvent:
    target: ElementInfo
    viewport: Viewport = field(default_factory=Viewport)


@dataclass
class FieldInfo:
    """A form control."""
    name: str = ""
    field_id: str = ""
    type: str = "text"
    value: str = ""

    @property
    def key(self) -> str:
        return self.name or self.field_id


@dataclass
class FormInfo:
    handle: Hashable
    form_id: str = ""
    name: str = ""
    action: Optional[str] = None
    fields: List[FieldInfo] = field(default_factory=list)

    @property
    def trackable_field_count(self) -> int:
        return len([f for f in self.fields if f.type not in NON_TRACKABLE_FIELD_TYPES])


class PlatformAdapter(ABC):
    """Capability interface the capture layer subscribes to."""

    @abstractmethod
    def on_page_change(self, callback: Callable[[PageChangeKind], None]):
        """Call callback on initial load, back/forward, push and replace navigation."""

    @abstractmethod
    def on_click(self, callback: Callable[[ClickEvent], None]):
        """Call callback for every click."""

    @abstractmethod
    def on_form_lifecycle(
        self,
        on_submit: Callable[[FormInfo], None],
        on_input: Callable[[FormInfo, FieldInfo], None],
        on_hidden: Callable[[], None]
    ):
        """Call on_submit/on_input for form events and on_hidden when the page is hidden."""

    @abstractmethod
    def current_page(self) -> PageInfo:
        """The page currently displayed."""

    def do_not_track(self) -> bool:
        """True when the user agent signals do-not-track."""
        return False


class ManualPlatformAdapter(PlatformAdapter):
    """Adapter driven explicitly by host code."""

    def __init__(self, page: Optional[PageInfo] = None, do_not_track: bool = False):
        self.page = page or PageInfo(url="about:blank")
        self.dnt = do_not_track
        self._page_callbacks: List[Callable] = []
        self._click_callbacks: List[Callable] = []
        self._submit_callbacks: List[Callable] = []
        self._input_callbacks: List[Callable] = []
        self._hidden_callbacks: List[Callable] = []

    def on_page_change(self, callback):
        self._page_callbacks.append(callback)

    def on_click(self, callback):
        self._click_callbacks.append(callback)

    def on_form_lifecycle(self, on_submit, on_input, on_hidden):
        self._submit_callbacks.append(on_submit)
        self._input_callbacks.append(on_input)
        self._hidden_callbacks.append(on_hidden)

    def current_page(self) -> PageInfo:
        return self.page

    def do_not_track(self) -> bool:
        return self.dnt

    def load(self, page: Optional[PageInfo] = None):
        """Initial page load."""
        self._change(page, "load")

    def navigate(self, page: PageInfo, kind: PageChangeKind = "push"):
        """Programmatic history navigation ('push' or 'replace')."""
        if kind not in ("push", "replace"):
            raise ValueError(f"navigation kind must be 'push' or 'replace', got {kind!r}")
        self._change(page, kind)

    def back(self, page: PageInfo):
        """Back/forward navigation."""
        self._change(page, "popstate")

    def click(self, event: ClickEvent):
        for callback in self._click_callbacks:
            callback(event)

    def input(self, form: FormInfo, field: FieldInfo):
        for callback in self._input_callbacks:
            callback(form, field)

    def submit(self, form: FormInfo):
        for callback in self._submit_callbacks:
            callback(form)

    def hide(self):
        """Page visibility changed to hidden."""
        for callback in self._hidden_callbacks:
            callback()

    def _change(self, page: Optional[PageInfo], kind: PageChangeKind):
        if page is not None:
            self.page = page
        for callback in self._page_callbacks:
            callback(kind)
