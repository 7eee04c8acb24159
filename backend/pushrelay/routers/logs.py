"""Notice log reporting endpoints."""
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query

from ..dependencies import RelayServices, get_services
from ..exceptions import RelayError
from ..schemas.notice_log import NoticeLogFilter
from ..schemas.status import BasicResponse

router = APIRouter(prefix="/api/notice/log", tags=["logs"])

TIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d")


def parse_time(value: Optional[str]) -> Optional[datetime]:
    """Parse RFC3339, ``YYYY-MM-DD HH:MM:SS`` or ``YYYY-MM-DD``; naive means UTC.

    Unparseable input is ignored (no bound) rather than rejected.
    """
    value = (value or "").strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in TIME_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def time_range(
    begin_time: Optional[str] = Query(None, alias="beginTime"),
    end_time: Optional[str] = Query(None, alias="endTime"),
) -> Tuple[Optional[datetime], Optional[datetime]]:
    return parse_time(begin_time), parse_time(end_time)


@router.get("/list", response_model=BasicResponse)
async def list_logs(
    device_key: str = Query("", alias="deviceKey"),
    group: str = "",
    status: str = "",
    page: int = 1,
    page_size: int = Query(10, alias="pageSize"),
    bounds: Tuple[Optional[datetime], Optional[datetime]] = Depends(time_range),
    services: RelayServices = Depends(get_services),
):
    """Filtered, newest-first page of notice logs."""
    log_filter = NoticeLogFilter(
        device_key=device_key,
        group=group,
        status=status,
        begin_time=bounds[0],
        end_time=bounds[1],
        page=page,
        page_size=page_size,
    )
    try:
        result = await services.log_query.query(log_filter)
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("ok", result)


@router.get("/count/date", response_model=BasicResponse)
async def count_by_date(
    date_type: str = Query("day", alias="dateType"),
    bounds: Tuple[Optional[datetime], Optional[datetime]] = Depends(time_range),
    services: RelayServices = Depends(get_services),
):
    try:
        data = await services.log_query.count_by_date(date_type, *bounds)
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("ok", data)


@router.get("/count/status", response_model=BasicResponse)
async def count_by_status(
    bounds: Tuple[Optional[datetime], Optional[datetime]] = Depends(time_range),
    services: RelayServices = Depends(get_services),
):
    try:
        data = await services.log_query.count_by_status(*bounds)
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("ok", data)


@router.get("/count/group", response_model=BasicResponse)
async def count_by_group(
    bounds: Tuple[Optional[datetime], Optional[datetime]] = Depends(time_range),
    services: RelayServices = Depends(get_services),
):
    try:
        data = await services.log_query.count_by_group(*bounds)
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("ok", data)


@router.get("/count/device", response_model=BasicResponse)
async def count_by_device(
    bounds: Tuple[Optional[datetime], Optional[datetime]] = Depends(time_range),
    services: RelayServices = Depends(get_services),
):
    try:
        data = await services.log_query.count_by_device(*bounds)
    except RelayError as e:
        return BasicResponse.error(str(e))
    return BasicResponse.success("ok", data)
