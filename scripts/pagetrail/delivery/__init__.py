"""
Delivery package for pagetrail.

Batches queued events and sends them to the collection endpoint.
"""

from .queue import EventQueue
from .transport import CollectorClient

__all__ = [
    'EventQueue',
    'CollectorClient',
]
