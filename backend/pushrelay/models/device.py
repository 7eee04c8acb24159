"""Device model - registered recipients and their encryption material."""
from sqlalchemy import Column, DateTime, String

from ..database import Base


class DeviceRecord(Base):
    """Registered device keyed by its platform token."""

    __tablename__ = "devices"

    token = Column(String, primary_key=True)
    # Delivery key assigned upstream; unique when set
    key = Column(String, unique=True, nullable=True, index=True)
    name = Column(String, nullable=True)
    algorithm = Column(String, nullable=True)
    mode = Column(String, nullable=True)
    padding = Column(String, nullable=True)
    secret = Column(String, nullable=True)
    iv = Column(String, nullable=True)
    status = Column(String, nullable=False, default="ACTIVE")  # ACTIVE, STOPPED
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
