"""Notice log schemas - audit records, query filters and pages."""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class NoticeLog(CamelModel):
    """Append-only record of one push attempt."""
    id: int = 0  # assigned by the store on append
    device_key: str = ""
    url: str = ""
    title: str = ""
    body: str = ""
    group: str = ""
    result: str = ""
    status: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NoticeLogFilter(CamelModel):
    """Equality and time-range filters plus pagination."""
    device_key: str = ""
    group: str = ""
    status: str = ""
    begin_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    page: int = 1
    page_size: int = 10


class NoticeLogPage(CamelModel):
    """Paginated log response."""
    data: List[NoticeLog] = Field(default_factory=list)
    total: int
    pages: int
    page_num: int
    page_size: int
