"""Device schemas - stored records, upsert requests and masked views."""
from datetime import datetime
from enum import Enum
from typing import Optional

from .base import CamelModel


class DeviceStatus(str, Enum):
    """Delivery status of a device."""
    ACTIVE = "ACTIVE"
    STOPPED = "STOPPED"


class Device(CamelModel):
    """A registered recipient and its encryption material."""
    token: str  # platform-issued identifier, primary key
    key: str = ""  # delivery key assigned by the upstream service
    name: str = ""
    algorithm: str = ""
    mode: str = ""
    padding: str = ""
    secret: str = ""
    iv: str = ""
    status: str = DeviceStatus.ACTIVE.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        status = self.status.strip().upper()
        return status in ("", DeviceStatus.ACTIVE.value)


class DeviceUpsert(CamelModel):
    """Create/update payload. Empty strings mean "not supplied"."""
    token: str = ""
    key: str = ""
    name: str = ""
    algorithm: str = ""
    mode: str = ""
    padding: str = ""
    secret: str = ""
    iv: str = ""
    status: str = ""
    register_key: str = ""  # legacy key forwarded to upstream registration


class DeviceView(CamelModel):
    """Device with identifiers and key material masked for listing."""
    token: str
    name: str = ""
    key: str = ""
    algorithm: str = ""
    mode: str = ""
    padding: str = ""
    secret: str = ""
    iv: str = ""
    status: str = ""
