"""In-process credential store used for tests and ephemeral deployments."""
import asyncio
from typing import Dict, List

from ..exceptions import IOFailure, NotFound
from ..schemas.device import Device
from ..schemas.notice_log import NoticeLog
from .base import CredentialStore, utcnow


class MemoryCredentialStore(CredentialStore):
    """Dict-backed store. Records are copied on the way in and out."""

    def __init__(self):
        self._devices: Dict[str, Device] = {}
        self._logs: List[NoticeLog] = []
        self._next_log_id = 1
        self._lock = asyncio.Lock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise IOFailure("store is closed")

    async def upsert_device(self, device: Device) -> Device:
        async with self._lock:
            self._check_open()
            if device.key:
                for other in self._devices.values():
                    if other.key == device.key and other.token != device.token:
                        raise IOFailure(f"device key {device.key} is already in use")
            now = utcnow()
            if device.created_at is None:
                device.created_at = now
            device.updated_at = now
            self._devices[device.token] = device.model_copy(deep=True)
            return device.model_copy(deep=True)

    async def get_device(self, token: str) -> Device:
        async with self._lock:
            self._check_open()
            device = self._devices.get(token)
            if device is None:
                raise NotFound(f"device {token} not found")
            return device.model_copy(deep=True)

    async def get_device_by_key(self, key: str) -> Device:
        async with self._lock:
            self._check_open()
            for device in self._devices.values():
                if key and device.key == key:
                    return device.model_copy(deep=True)
            raise NotFound(f"device key {key} not found")

    async def list_devices(self) -> List[Device]:
        async with self._lock:
            self._check_open()
            return [d.model_copy(deep=True) for d in self._devices.values()]

    async def list_active_devices(self) -> List[Device]:
        async with self._lock:
            self._check_open()
            return [d.model_copy(deep=True) for d in self._devices.values() if d.is_active]

    async def append_log(self, entry: NoticeLog) -> NoticeLog:
        async with self._lock:
            self._check_open()
            now = utcnow()
            if entry.created_at is None:
                entry.created_at = now
            entry.updated_at = now
            entry.id = self._next_log_id
            self._next_log_id += 1
            self._logs.append(entry.model_copy(deep=True))
            return entry.model_copy(deep=True)

    async def list_logs(self) -> List[NoticeLog]:
        async with self._lock:
            self._check_open()
            return [entry.model_copy(deep=True) for entry in self._logs]

    async def close(self) -> None:
        self._closed = True
