"""Credential store contract shared by every persistence backend."""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List

from ..schemas.device import Device
from ..schemas.notice_log import NoticeLog


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialStore(ABC):
    """Key/value persistence for device records and the notice log.

    Implementations stamp ``updated_at`` on every write and set
    ``created_at`` only when it is absent. List calls return snapshots:
    later mutations are not reflected in lists already returned.
    Every method may raise ``IOFailure`` on a backend error; lookups raise
    ``NotFound`` when nothing matches.
    """

    @abstractmethod
    async def upsert_device(self, device: Device) -> Device:
        """Insert or replace a device by token; returns the stored copy."""

    @abstractmethod
    async def get_device(self, token: str) -> Device:
        """Fetch a device by platform token."""

    @abstractmethod
    async def get_device_by_key(self, key: str) -> Device:
        """Fetch a device by delivery key."""

    @abstractmethod
    async def list_devices(self) -> List[Device]:
        """All devices."""

    @abstractmethod
    async def list_active_devices(self) -> List[Device]:
        """Devices whose status is ACTIVE (an empty status counts as ACTIVE)."""

    @abstractmethod
    async def append_log(self, entry: NoticeLog) -> NoticeLog:
        """Store a log entry under the next id; safe to call concurrently."""

    @abstractmethod
    async def list_logs(self) -> List[NoticeLog]:
        """Every log entry in id order."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> "CredentialStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
