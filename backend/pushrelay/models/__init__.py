"""Database models."""
from .device import DeviceRecord
from .notice_log import NoticeLogRecord

__all__ = ["DeviceRecord", "NoticeLogRecord"]
