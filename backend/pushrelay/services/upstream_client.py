"""HTTP client for the upstream push-delivery service."""
import logging
from typing import Any, Optional
from urllib.parse import quote, urlsplit

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import TransportFailure
from ..utils.masking import short

logger = logging.getLogger(__name__)

UPSTREAM_SUCCESS_CODE = 200


class UpstreamResponse(BaseModel):
    """Standard upstream envelope; ``code == 200`` is the only success."""
    code: int
    message: str = ""
    timestamp: int = 0
    data: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return self.code == UPSTREAM_SUCCESS_CODE


class RegisterData(BaseModel):
    """Payload of a registration response."""
    key: str = ""
    device_key: str = ""
    device_token: str = ""

    @property
    def delivery_key(self) -> str:
        return self.device_key or self.key


class RegisterResponse(UpstreamResponse):
    data: Optional[RegisterData] = None


class UpstreamPushClient:
    """Thin async wrapper over the upstream HTTP API.

    One ``httpx.AsyncClient`` is shared by every call; close it with
    ``aclose()`` (or ``async with``) on shutdown.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("upstream base url is required")
        if not urlsplit(base_url).scheme:
            raise ValueError("upstream base url must include scheme")
        self.base_url = base_url.rstrip("/")
        self._token = token
        headers = {"API-TOKEN": token} if token else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def device_endpoint(self, device_key: str) -> str:
        """Push URL for a delivery key, recorded in the notice log."""
        return f"{self.base_url}/{device_key}"

    async def ping(self) -> UpstreamResponse:
        """Health probe."""
        return await self._request("GET", "/ping", UpstreamResponse, what="ping")

    async def register(self, device_token: str, key: Optional[str] = None) -> RegisterResponse:
        """Announce a device token and obtain its delivery key.

        Args:
            device_token: Platform-issued token
            key: Previously assigned key to keep, if any
        """
        params = {"devicetoken": device_token}
        if key:
            params["key"] = key
        response = await self._request("GET", "/register", RegisterResponse, what="register", params=params)
        logger.info(f"Upstream registration for {short(device_token)}: code={response.code}")
        return response

    async def push(self, device_key: str, ciphertext: str, iv: str) -> UpstreamResponse:
        """Submit an encrypted payload for one device."""
        return await self._request(
            "POST",
            f"/{quote(device_key, safe='')}",
            UpstreamResponse,
            what="push",
            json={"ciphertext": ciphertext, "iv": iv},
        )

    async def _request(self, method: str, path: str, model, what: str, **kwargs):
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportFailure(f"{what} failed: {e}") from e

        if response.status_code != 200:
            raise TransportFailure(f"{what} http status {response.status_code} {response.reason_phrase}")

        try:
            return model.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise TransportFailure(f"{what} returned an invalid body: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "UpstreamPushClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
