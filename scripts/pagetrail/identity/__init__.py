"""
Identity package for pagetrail.

Resolves the device id, tracks user/group ids, manages sessions and fetches
coarse geolocation context.
"""

from .device import (
    DeviceIdentityResolver,
    DeviceState,
    FingerprintProbe,
    generate_device_id,
    random_base36,
)
from .profile import Identity, IdentityProfile
from .geo import GeoInfo, GeoContextFetcher
from .session import Session, SessionManager

__all__ = [
    'DeviceIdentityResolver',
    'DeviceState',
    'FingerprintProbe',
    'generate_device_id',
    'random_base36',
    'Identity',
    'IdentityProfile',
    'GeoInfo',
    'GeoContextFetcher',
    'Session',
    'SessionManager',
]
