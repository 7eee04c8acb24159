"""Pydantic schemas for domain records and API request/response models."""
from .device import (
    Device,
    DeviceStatus,
    DeviceUpsert,
    DeviceView,
)
from .notice import (
    BroadcastResponse,
    NoticeRequest,
    NoticeResult,
    NoticeStatus,
    NoticeSummary,
)
from .notice_log import (
    NoticeLog,
    NoticeLogFilter,
    NoticeLogPage,
)
from .status import (
    AdminSummary,
    BasicResponse,
    RecentLog,
    StatusEndpoint,
)

__all__ = [
    "Device",
    "DeviceStatus",
    "DeviceUpsert",
    "DeviceView",
    "BroadcastResponse",
    "NoticeRequest",
    "NoticeResult",
    "NoticeStatus",
    "NoticeSummary",
    "NoticeLog",
    "NoticeLogFilter",
    "NoticeLogPage",
    "AdminSummary",
    "BasicResponse",
    "RecentLog",
    "StatusEndpoint",
]
