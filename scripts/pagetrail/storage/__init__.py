"""
Storage package for pagetrail.

Provides the key-value backends and the identity/context views built on them.
"""

from .store import (
    KeyValueStore,
    MemoryKeyValueStore,
    FileKeyValueStore,
    IdentityStore,
    ContextCache,
    encode_record,
    decode_record,
    DEVICE_ID_KEY,
    USER_ID_KEY,
    GROUP_ID_KEY,
    SESSION_KEY,
    LOCATION_KEY,
    LOCATION_TTL,
)

__all__ = [
    'KeyValueStore',
    'MemoryKeyValueStore',
    'FileKeyValueStore',
    'IdentityStore',
    'ContextCache',
    'encode_record',
    'decode_record',
    'DEVICE_ID_KEY',
    'USER_ID_KEY',
    'GROUP_ID_KEY',
    'SESSION_KEY',
    'LOCATION_KEY',
    'LOCATION_TTL',
]
