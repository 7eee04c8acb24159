"""Admin API used by the dashboard - raw JSON rather than the envelope."""
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import RelayServices, get_services
from ..exceptions import NotFound, RelayError
from ..schemas.device import Device, DeviceUpsert
from ..schemas.notice import NoticeStatus
from ..schemas.notice_log import NoticeLogFilter
from ..schemas.status import AdminSummary, BasicResponse, RecentLog
from ..utils.masking import mask_value
from .status import upstream_online

router = APIRouter(prefix="/admin", tags=["admin"])

RECENT_LOG_COUNT = 5


@router.get("/summary", response_model=BasicResponse)
async def get_summary(services: RelayServices = Depends(get_services)):
    """Dashboard overview: device counts, today's deliveries, latest logs."""
    try:
        devices = await services.registry.list_devices()
    except RelayError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        logs = await services.log_query.filtered_logs(NoticeLogFilter())
    except RelayError:
        logs = []

    today_start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    today = [log for log in logs if log.created_at and log.created_at >= today_start]

    recent = [
        RecentLog(
            title=log.title,
            group=log.group,
            status=log.status,
            device_key=mask_value(log.device_key),
            time=log.created_at.strftime("%m-%d %H:%M") if log.created_at else "",
        )
        for log in logs[:RECENT_LOG_COUNT]
    ]

    summary = AdminSummary(
        status="online" if await upstream_online(services) else "offline",
        active=sum(1 for d in devices if d.is_active),
        total=len(devices),
        today_sent=len(today),
        today_success=sum(1 for log in today if log.status.upper() == NoticeStatus.SUCCESS.value),
        recent_logs=recent,
    )
    return BasicResponse.success("ok", summary)


@router.get("/devices", response_model=List[Device])
async def list_devices(services: RelayServices = Depends(get_services)):
    try:
        return await services.registry.list_devices()
    except RelayError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/devices/{token}", response_model=Device)
async def get_device(token: str, services: RelayServices = Depends(get_services)):
    try:
        return await services.registry.get(token)
    except NotFound:
        raise HTTPException(status_code=404, detail="Device not found")
    except RelayError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/devices", response_model=Device)
async def upsert_device(request: DeviceUpsert, services: RelayServices = Depends(get_services)):
    """Create or update a device without the name/key requirements of /device/gen."""
    try:
        return await services.registry.upsert(request)
    except RelayError as e:
        raise HTTPException(status_code=400, detail=str(e))
