"""Notice endpoints - plaintext in, encrypted fan-out behind."""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ..dependencies import RelayServices, get_services
from ..exceptions import NoTargetsResolved, RelayError
from ..schemas.notice import BroadcastResponse, NoticeRequest, NoticeSummary
from ..schemas.status import BasicResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notice", tags=["notices"])


@router.get("", response_model=BasicResponse)
async def notice_from_query(
    title: str = "",
    subtitle: str = "",
    body: str = "",
    group: str = "",
    url: str = "",
    services: RelayServices = Depends(get_services),
):
    """Broadcast to every ACTIVE device from query parameters."""
    request = NoticeRequest(title=title, subtitle=subtitle, body=body, group=group, url=url)
    return await dispatch_notice(services, request)


@router.get("/{title}/{body}", response_model=BasicResponse)
async def notice_from_path(
    title: str,
    body: str,
    group: str = "",
    url: str = "",
    services: RelayServices = Depends(get_services),
):
    request = NoticeRequest(title=title, body=body, group=group, url=url)
    return await dispatch_notice(services, request)


@router.get("/{title}/{subtitle}/{body}", response_model=BasicResponse)
async def notice_from_path_with_subtitle(
    title: str,
    subtitle: str,
    body: str,
    group: str = "",
    url: str = "",
    services: RelayServices = Depends(get_services),
):
    request = NoticeRequest(
        title=title,
        subtitle=subtitle,
        body=body,
        group=group,
        url=url,
    )
    return await dispatch_notice(services, request)


@router.post("", response_model=BasicResponse)
async def notice_from_body(
    request: NoticeRequest,
    services: RelayServices = Depends(get_services),
):
    """Broadcast a JSON notice, optionally to explicit device keys."""
    return await dispatch_notice(services, request)


async def dispatch_notice(
    services: RelayServices,
    request: NoticeRequest,
    timeout: Optional[float] = None,
) -> BasicResponse:
    """Run a broadcast and wrap the outcome in the response envelope.

    The wait is bounded by ``request_timeout_seconds``; pushes already in
    flight keep running after the caller gives up.
    """
    timeout = timeout if timeout is not None else services.settings.request_timeout_seconds
    try:
        summary, results = await asyncio.wait_for(
            services.dispatcher.broadcast(request),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Broadcast still running after {timeout}s, responding without results")
        return BasicResponse.error("timed out waiting for delivery results")
    except NoTargetsResolved as e:
        response = BasicResponse.error(str(e))
        response.data = BroadcastResponse(summary=NoticeSummary(), results=e.results)
        return response
    except RelayError as e:
        return BasicResponse.error(str(e))

    return BasicResponse.success("sent", BroadcastResponse(summary=summary, results=results))
