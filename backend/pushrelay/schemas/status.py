"""Status and response-envelope schemas."""
from typing import Any, List, Optional

from .base import CamelModel

SUCCESS_CODE = "000000"
ERROR_CODE = "999999"


class BasicResponse(CamelModel):
    """Response envelope used by the notice and device endpoints."""
    code: str
    msg: str
    data: Optional[Any] = None

    @classmethod
    def success(cls, msg: str, data: Any = None) -> "BasicResponse":
        return cls(code=SUCCESS_CODE, msg=msg, data=data)

    @classmethod
    def error(cls, msg: str, code: str = ERROR_CODE) -> "BasicResponse":
        return cls(code=code, msg=msg)


class StatusEndpoint(CamelModel):
    """Upstream availability plus device counts."""
    status: str  # online, offline, unauthorized, error
    active_device_num: int = 0
    all_device_num: int = 0


class RecentLog(CamelModel):
    """Abbreviated log line for the dashboard summary."""
    title: str
    group: str
    status: str
    device_key: str  # masked
    time: str


class AdminSummary(CamelModel):
    """Dashboard overview data."""
    status: str
    active: int
    total: int
    today_sent: int
    today_success: int
    recent_logs: List[RecentLog]
