"""
pagetrail: client-side telemetry capture and delivery.

Captures page visits, clicks and form lifecycle events, resolves device,
user, session and account identifiers, and delivers batched events to an
HTTP collection endpoint under do-not-track and consent rules.
"""

from .config import EngineConfig, load_config
from .engine import Engine
from .errors import (
    PagetrailError,
    ConfigurationError,
    NotInitializedError,
    DeliveryError,
)
from .telemetry import (
    EventRecord,
    EventContext,
    ConsentCategory,
    PageInfo,
    Viewport,
    ElementInfo,
    ClickEvent,
    FieldInfo,
    FormInfo,
    PlatformAdapter,
    ManualPlatformAdapter,
)
from .storage import MemoryKeyValueStore, FileKeyValueStore

__all__ = [
    # Engine
    'Engine',
    'EngineConfig',
    'load_config',
    # Errors
    'PagetrailError',
    'ConfigurationError',
    'NotInitializedError',
    'DeliveryError',
    # Events
    'EventRecord',
    'EventContext',
    'ConsentCategory',
    # Platform
    'PageInfo',
    'Viewport',
    'ElementInfo',
    'ClickEvent',
    'FieldInfo',
    'FormInfo',
    'PlatformAdapter',
    'ManualPlatformAdapter',
    # Storage
    'MemoryKeyValueStore',
    'FileKeyValueStore',
]

__version__ = '1.0.0'
