"""NoticeLog model - append-only audit of push attempts."""
from sqlalchemy import Column, DateTime, Integer, String, Text

from ..database import Base


class NoticeLogRecord(Base):
    """Record of one push attempt for one device."""

    __tablename__ = "notice_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_key = Column(String, nullable=False, index=True)
    url = Column(String, nullable=True)  # upstream delivery endpoint
    title = Column(String, nullable=True)
    body = Column(Text, nullable=True)
    group = Column("group_name", String, nullable=True)
    result = Column(Text, nullable=True)  # upstream or error message
    status = Column(String, nullable=False)  # SUCCESS, FAILED
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
