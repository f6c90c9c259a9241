"""
User and group identity held by an engine, mirrored into the identity store.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from ..storage.store import IdentityStore
from .device import DeviceIdentityResolver


@dataclass(frozen=True)
class Identity:
    """Point-in-time view of every identifier the engine knows."""
    device_id: Optional[str]
    device_id_ready: bool
    user_id: str
    group_id: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


class IdentityProfile:
    """Mutable user/group ids; every change is written through to the store."""

    def __init__(self, store: IdentityStore, device: DeviceIdentityResolver):
        self.store = store
        self.device = device
        self.user_id = store.get_user_id() or ""
        self.group_id = store.get_group_id() or ""

    def set_user_id(self, user_id: str):
        self.user_id = user_id
        self.store.set_user_id(user_id)

    def set_group_id(self, group_id: str):
        self.group_id = group_id
        self.store.set_group_id(group_id)

    def current_user_id(self) -> str:
        """Instance value, else the persisted value, else ''."""
        return self.user_id or self.store.get_user_id() or ""

    def current_group_id(self) -> str:
        return self.group_id or self.store.get_group_id() or ""

    def snapshot(self) -> Identity:
        return Identity(
            device_id=self.device.device_id,
            device_id_ready=self.device.ready,
            user_id=self.current_user_id(),
            group_id=self.current_group_id(),
        )
