"""
Telemetry package for pagetrail.

Provides event schemas, consent gating, the platform adapter interface,
automatic capture and PII scrubbing.
"""

from .schema import EventContext, EventRecord, utc_timestamp
from .consent import Consent, ConsentCategory, ConsentGate
from .platform import (
    PageInfo,
    Viewport,
    ElementInfo,
    ClickEvent,
    FieldInfo,
    FormInfo,
    PlatformAdapter,
    ManualPlatformAdapter,
)
from .capture import EventCapture, element_selector, form_completion
from .redaction import PIIScrubber, RedactionReport

__all__ = [
    # Schemas
    'EventContext',
    'EventRecord',
    'utc_timestamp',
    # Consent
    'Consent',
    'ConsentCategory',
    'ConsentGate',
    # Platform
    'PageInfo',
    'Viewport',
    'ElementInfo',
    'ClickEvent',
    'FieldInfo',
    'FormInfo',
    'PlatformAdapter',
    'ManualPlatformAdapter',
    # Capture
    'EventCapture',
    'element_selector',
    'form_completion',
    # Redaction
    'PIIScrubber',
    'RedactionReport',
]
