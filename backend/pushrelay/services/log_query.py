"""Notice log queries - filtering, pagination and aggregate counts."""
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..schemas.notice_log import NoticeLog, NoticeLogFilter, NoticeLogPage
from ..storage.base import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

DATE_FORMATS = {
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
    "year": "%Y",
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # Naive datetimes are taken to be UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _counts(counter: Counter, label: str) -> List[Dict[str, object]]:
    return [{label: key, "count": counter[key]} for key in sorted(counter)]


class LogQueryEngine:
    """Read-only reporting over the notice log."""

    def __init__(self, store: CredentialStore):
        self.store = store

    async def query(self, log_filter: NoticeLogFilter) -> NoticeLogPage:
        """Filtered, newest-first page of log entries.

        Out-of-range pages return an empty ``data`` list rather than an error.
        """
        logs = await self.filtered_logs(log_filter)
        total = len(logs)

        page_size = log_filter.page_size
        if page_size <= 0:
            page_size = DEFAULT_PAGE_SIZE
        page_size = min(page_size, MAX_PAGE_SIZE)
        page = max(log_filter.page, 1)

        start = min((page - 1) * page_size, total)
        end = min(start + page_size, total)
        pages = (total + page_size - 1) // page_size

        return NoticeLogPage(
            data=logs[start:end],
            total=total,
            pages=pages,
            page_num=page,
            page_size=page_size,
        )

    async def count_by_date(
        self,
        date_type: str = "day",
        begin: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Dict[str, object]]:
        """Counts per calendar day, month or year (UTC), oldest first."""
        fmt = DATE_FORMATS.get((date_type or "").lower(), DATE_FORMATS["day"])
        logs = await self.filtered_logs(NoticeLogFilter(begin_time=begin, end_time=end))
        counter = Counter(_utc(log.created_at).strftime(fmt) for log in logs if log.created_at)
        return _counts(counter, "date")

    async def count_by_status(self, begin: Optional[datetime] = None, end: Optional[datetime] = None):
        logs = await self.filtered_logs(NoticeLogFilter(begin_time=begin, end_time=end))
        counter = Counter((log.status or "UNKNOWN") for log in logs)
        return _counts(counter, "status")

    async def count_by_group(self, begin: Optional[datetime] = None, end: Optional[datetime] = None):
        logs = await self.filtered_logs(NoticeLogFilter(begin_time=begin, end_time=end))
        counter = Counter((log.group.strip() or "DEFAULT") for log in logs)
        return _counts(counter, "group")

    async def count_by_device(self, begin: Optional[datetime] = None, end: Optional[datetime] = None):
        """Counts per device display name, falling back to the delivery key."""
        logs = await self.filtered_logs(NoticeLogFilter(begin_time=begin, end_time=end))
        names: Dict[str, str] = {}
        try:
            for device in await self.store.list_devices():
                if device.key:
                    names[device.key] = device.name or device.key
        except Exception as e:
            # Counting still works on raw keys
            logger.warning(f"Device names unavailable for log stats: {e}")
        counter = Counter((names.get(log.device_key) or log.device_key) for log in logs)
        return _counts(counter, "device")

    async def filtered_logs(self, log_filter: NoticeLogFilter) -> List[NoticeLog]:
        """Apply equality and inclusive time filters, newest first."""
        begin = _utc(log_filter.begin_time)
        end = _utc(log_filter.end_time)
        matches = []
        for log in await self.store.list_logs():
            if log_filter.device_key and log.device_key.lower() != log_filter.device_key.lower():
                continue
            if log_filter.group and log.group.lower() != log_filter.group.lower():
                continue
            if log_filter.status and log.status.lower() != log_filter.status.lower():
                continue
            created = _utc(log.created_at)
            if begin is not None and (created is None or created < begin):
                continue
            if end is not None and (created is None or created > end):
                continue
            matches.append(log)
        matches.sort(key=lambda log: (_utc(log.created_at) or _EPOCH, log.id), reverse=True)
        return matches
