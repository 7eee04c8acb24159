"""Notice schemas - broadcast request, per-device results and summary."""
from enum import Enum
from typing import List

from pydantic import Field

from .base import CamelModel


class NoticeStatus(str, Enum):
    """Terminal outcome of one device dispatch."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class NoticeRequest(CamelModel):
    """Plaintext notice to encrypt and fan out."""
    title: str = ""
    subtitle: str = ""
    body: str = ""
    group: str = ""
    url: str = ""
    icon: str = ""
    image: str = ""
    # Explicit targets; empty means every ACTIVE device
    device_keys: List[str] = Field(default_factory=list)


class NoticeResult(CamelModel):
    """Outcome for one resolved device or one failed key lookup."""
    device_key: str = ""
    status: NoticeStatus
    message: str = ""


class NoticeSummary(CamelModel):
    """Aggregate counts for one broadcast."""
    send_num: int = 0
    success_num: int = 0


class BroadcastResponse(CamelModel):
    """Summary plus itemized results returned to callers."""
    summary: NoticeSummary
    results: List[NoticeResult] = Field(default_factory=list)
