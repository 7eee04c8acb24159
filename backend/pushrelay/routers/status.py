"""Status endpoints - upstream reachability and device counts."""
import hmac
import logging

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from ..dependencies import RelayServices, get_services
from ..exceptions import RelayError
from ..schemas.status import BasicResponse, StatusEndpoint

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])


async def upstream_online(services: RelayServices) -> bool:
    """Whether the upstream service answers its health probe with code 200."""
    if services.upstream is None:
        return False
    try:
        response = await services.upstream.ping()
    except RelayError as e:
        logger.debug(f"Upstream ping failed: {e}")
        return False
    return response.ok


@router.get("/ping")
async def ping_upstream(services: RelayServices = Depends(get_services)):
    """Proxy the upstream health probe."""
    if services.upstream is None:
        return JSONResponse(
            status_code=503,
            content=BasicResponse.error("upstream client not configured").model_dump(by_alias=True),
        )
    try:
        response = await services.upstream.ping()
    except RelayError as e:
        return JSONResponse(status_code=502, content=BasicResponse.error(str(e)).model_dump(by_alias=True))
    return response.model_dump()


@router.get("/status/endpoint", response_model=StatusEndpoint)
async def status_endpoint(
    api_token: str = Header("", alias="API-TOKEN"),
    services: RelayServices = Depends(get_services),
):
    """Device counts and upstream state, for holders of the upstream token."""
    expected = services.settings.upstream_token.strip()
    if not expected or not hmac.compare_digest(api_token.encode(), expected.encode()):
        return StatusEndpoint(status="unauthorized")

    try:
        devices = await services.registry.list_devices()
    except RelayError as e:
        logger.error(f"Status endpoint could not list devices: {e}")
        return StatusEndpoint(status="error")

    active = sum(1 for d in devices if d.is_active)
    return StatusEndpoint(
        status="online" if await upstream_online(services) else "offline",
        active_device_num=active,
        all_device_num=len(devices),
    )
