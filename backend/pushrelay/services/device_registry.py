"""Device registry - owns the device record lifecycle.

Upserts merge into the existing record, generate missing key material,
validate lengths before anything is persisted, and obtain a delivery key
from the upstream service when the device has none yet.
"""
import logging
from typing import List, Optional

from ..config import Settings
from ..exceptions import (
    InvalidCredential,
    NotFound,
    RegistrationFailed,
    TransportFailure,
    UpstreamUnavailable,
    ValidationError,
)
from ..schemas.device import Device, DeviceStatus, DeviceUpsert, DeviceView
from ..storage.base import CredentialStore
from ..utils.masking import mask_value, short
from .crypto import CryptoEngine, is_valid_key_length
from .upstream_client import RegisterResponse, UpstreamPushClient

logger = logging.getLogger(__name__)

# Legacy spellings accepted on input
_STATUS_ALIASES = {"STOP": DeviceStatus.STOPPED.value}


def normalize_status(status: Optional[str]) -> str:
    """Upper-case a status; empty or unknown values become ACTIVE."""
    value = (status or "").strip().upper()
    value = _STATUS_ALIASES.get(value, value)
    if value not in (DeviceStatus.ACTIVE.value, DeviceStatus.STOPPED.value):
        return DeviceStatus.ACTIVE.value
    return value


def _first_non_empty(*values: str) -> str:
    for value in values:
        if value and value.strip():
            return value
    return ""


class DeviceRegistry:
    """Create, update and (de)activate devices."""

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings,
        crypto: Optional[CryptoEngine] = None,
        upstream: Optional[UpstreamPushClient] = None,
    ):
        self.store = store
        self.settings = settings
        self.crypto = crypto or CryptoEngine()
        self.upstream = upstream

    async def upsert(self, request: DeviceUpsert) -> Device:
        """Insert or merge a device and persist it.

        A supplied secret/IV replaces the stored one; an omitted one keeps
        the stored value, or is generated when the device has none.

        Raises:
            ValidationError: token missing, or the key belongs to another device
            InvalidCredential: secret or IV has an invalid length
            UpstreamUnavailable: a delivery key is needed but no client is configured
            RegistrationFailed: upstream registration failed or returned no key
        """
        token = request.token.strip()
        if not token:
            raise ValidationError("token is required")

        try:
            device = await self.store.get_device(token)
            created = False
        except NotFound:
            device = Device(token=token)
            created = True

        if request.name.strip():
            device.name = request.name
        if request.status.strip() or created:
            device.status = normalize_status(request.status)
        else:
            device.status = normalize_status(device.status)
        device.algorithm = _first_non_empty(request.algorithm, device.algorithm, self.settings.crypto_default_algorithm)
        device.mode = _first_non_empty(request.mode, device.mode, self.settings.crypto_default_mode)
        device.padding = _first_non_empty(request.padding, device.padding, self.settings.crypto_default_padding)

        if request.secret:
            device.secret = request.secret
        elif not device.secret:
            device.secret = self.crypto.generate_secret(self.settings.crypto_key_bytes)

        if request.iv:
            device.iv = request.iv
        elif not device.iv:
            device.iv = self.crypto.generate_secret(self.settings.crypto_iv_bytes)

        if request.key.strip():
            device.key = request.key.strip()

        self._validate_credentials(device)

        if not device.key:
            device.key = await self._obtain_delivery_key(token, request.register_key)
        await self._ensure_key_available(token, device.key)

        stored = await self.store.upsert_device(device)
        logger.info(f"Device {'registered' if created else 'updated'}: {short(token)} -> {short(stored.key)}")
        return stored

    async def generate_config(self, request: DeviceUpsert) -> Device:
        """Upsert for the setup flow, which must name the device and its key."""
        if not request.name.strip():
            raise ValidationError("device name is required")
        if not request.key.strip():
            raise ValidationError("device key is required")
        return await self.upsert(request)

    async def update_status(self, token: str, status: str) -> Device:
        """Activate or stop a device. Raises NotFound for an unknown token."""
        device = await self.store.get_device(token)
        device.status = normalize_status(status)
        stored = await self.store.upsert_device(device)
        logger.info(f"Device {short(token)} status -> {stored.status}")
        return stored

    async def register_from_upstream(self, token: str, legacy_key: str = "") -> RegisterResponse:
        """Forward a platform registration and cache the returned key.

        An empty key in the response is passed back without touching the store.
        """
        if self.upstream is None:
            raise UpstreamUnavailable("upstream client not configured")
        if not token or not token.strip():
            raise ValidationError("device token is required")

        response = await self.upstream.register(token, legacy_key or None)
        data = response.data
        if data is None or not data.delivery_key:
            return response

        cached_token = data.device_token or token
        try:
            device = await self.store.get_device(cached_token)
        except NotFound:
            device = Device(token=cached_token)
        device.key = data.delivery_key
        if not device.status:
            device.status = DeviceStatus.ACTIVE.value
        await self.store.upsert_device(device)
        return response

    async def get(self, token: str) -> Device:
        return await self.store.get_device(token)

    async def list_devices(self) -> List[Device]:
        return await self.store.list_devices()

    async def list_views(self) -> List[DeviceView]:
        """All devices with identifiers and key material masked."""
        return [to_view(device) for device in await self.store.list_devices()]

    def _validate_credentials(self, device: Device) -> None:
        if not is_valid_key_length(device.secret):
            raise InvalidCredential("secret must be 16, 24 or 32 bytes")
        if len(device.iv.encode("utf-8")) != self.settings.crypto_iv_bytes:
            raise InvalidCredential(f"iv must be {self.settings.crypto_iv_bytes} bytes")

    async def _ensure_key_available(self, token: str, key: str) -> None:
        # A delivery key belongs to at most one device
        try:
            owner = await self.store.get_device_by_key(key)
        except NotFound:
            return
        if owner.token != token:
            raise ValidationError(f"device key {key} already belongs to another device")

    async def _obtain_delivery_key(self, token: str, legacy_key: str) -> str:
        if self.upstream is None:
            raise UpstreamUnavailable("upstream client not configured, cannot register device")
        try:
            response = await self.upstream.register(token, legacy_key or None)
        except TransportFailure as e:
            raise RegistrationFailed(f"register failed: {e}") from e
        if response.data is None or not response.data.delivery_key:
            raise RegistrationFailed("register failed: empty device key")
        return response.data.delivery_key


def to_view(device: Device) -> DeviceView:
    return DeviceView(
        token=mask_value(device.token),
        name=device.name,
        key=mask_value(device.key),
        algorithm=device.algorithm,
        mode=device.mode,
        padding=device.padding,
        secret=mask_value(device.secret),
        iv=mask_value(device.iv),
        status=device.status,
    )
