"""Device registration and lifecycle endpoints."""
import logging

from fastapi import APIRouter, Depends, Query

from ..dependencies import RelayServices, get_services
from ..exceptions import NotFound, RelayError
from ..schemas.device import DeviceStatus, DeviceUpsert
from ..schemas.status import BasicResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["devices"])


@router.get("/register")
async def register_device(
    devicetoken: str = Query(""),
    key: str = Query(""),
    services: RelayServices = Depends(get_services),
):
    """Forward a client registration upstream and cache the delivery key.

    The client app calls this on launch; the upstream response is returned as is.
    """
    try:
        response = await services.registry.register_from_upstream(devicetoken, key)
    except RelayError as e:
        logger.warning(f"Registration failed: {e}")
        return BasicResponse.error(str(e))
    return response.model_dump()


@router.post("/device/gen", response_model=BasicResponse)
async def generate_device(
    request: DeviceUpsert,
    services: RelayServices = Depends(get_services),
):
    """Create or update a named device, generating missing key material."""
    try:
        device = await services.registry.generate_config(request)
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("device saved", device)


@router.get("/device/query", response_model=BasicResponse)
async def query_device(
    device_token: str = Query("", alias="deviceToken"),
    services: RelayServices = Depends(get_services),
):
    """Full device record, including key material, for client setup."""
    if not device_token:
        return BasicResponse.error("deviceToken is required")
    try:
        device = await services.registry.get(device_token)
    except NotFound:
        return BasicResponse.error("device not found")
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("ok", device)


@router.get("/device/queryAll", response_model=BasicResponse)
async def query_all_devices(services: RelayServices = Depends(get_services)):
    """All devices, masked."""
    try:
        views = await services.registry.list_views()
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("ok", views)


@router.get("/device/active", response_model=BasicResponse)
async def activate_device(
    device_token: str = Query("", alias="deviceToken"),
    services: RelayServices = Depends(get_services),
):
    return await _change_status(services, device_token, DeviceStatus.ACTIVE, "device activated")


@router.get("/device/stop", response_model=BasicResponse)
async def stop_device(
    device_token: str = Query("", alias="deviceToken"),
    services: RelayServices = Depends(get_services),
):
    """Exclude a device from broadcasts that do not name it. Records are never deleted."""
    return await _change_status(services, device_token, DeviceStatus.STOPPED, "device stopped")


async def _change_status(services: RelayServices, token: str, status: DeviceStatus, msg: str) -> BasicResponse:
    if not token:
        return BasicResponse.error("deviceToken is required")
    try:
        await services.registry.update_status(token, status.value)
    except NotFound:
        return BasicResponse.error("device not found")
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success(msg)
