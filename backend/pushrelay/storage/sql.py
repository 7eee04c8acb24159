"""SQLAlchemy-backed credential store (SQLite by default, PostgreSQL optional)."""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..database import create_engine, create_session_factory, ensure_sqlite_directory, init_db
from ..exceptions import IOFailure, NotFound
from ..models import DeviceRecord, NoticeLogRecord
from ..schemas.device import Device, DeviceStatus
from ..schemas.notice_log import NoticeLog
from ..utils.db_utils import retry_on_lock
from .base import CredentialStore, utcnow

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _device_from_row(row: DeviceRecord) -> Device:
    return Device(
        token=row.token,
        key=row.key or "",
        name=row.name or "",
        algorithm=row.algorithm or "",
        mode=row.mode or "",
        padding=row.padding or "",
        secret=row.secret or "",
        iv=row.iv or "",
        status=row.status or "",
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _log_from_row(row: NoticeLogRecord) -> NoticeLog:
    return NoticeLog(
        id=row.id,
        device_key=row.device_key,
        url=row.url or "",
        title=row.title or "",
        body=row.body or "",
        group=row.group or "",
        result=row.result or "",
        status=row.status,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class SqlCredentialStore(CredentialStore):
    """Store devices and notice logs in a relational database.

    Call ``init()`` once before use to create missing tables.
    """

    def __init__(self, database_url: str, engine: Optional[AsyncEngine] = None):
        self.database_url = database_url
        if engine is None:
            ensure_sqlite_directory(database_url)
            engine = create_engine(database_url)
        self._engine = engine
        self._session_factory = create_session_factory(engine)

    async def init(self) -> None:
        try:
            await init_db(self._engine)
        except SQLAlchemyError as e:
            raise IOFailure(f"initialise database: {e}") from e

    async def upsert_device(self, device: Device) -> Device:
        now = utcnow()
        if device.created_at is None:
            device.created_at = now
        device.updated_at = now

        async def _write():
            async with self._session_factory() as session:
                row = await session.get(DeviceRecord, device.token)
                if row is None:
                    row = DeviceRecord(token=device.token, created_at=device.created_at)
                    session.add(row)
                row.key = device.key or None
                row.name = device.name
                row.algorithm = device.algorithm
                row.mode = device.mode
                row.padding = device.padding
                row.secret = device.secret
                row.iv = device.iv
                row.status = device.status
                row.updated_at = device.updated_at
                await session.commit()

        try:
            await retry_on_lock(_write)
        except SQLAlchemyError as e:
            raise IOFailure(f"upsert device: {e}") from e
        return device.model_copy(deep=True)

    async def get_device(self, token: str) -> Device:
        row = await self._fetch_one(select(DeviceRecord).where(DeviceRecord.token == token))
        if row is None:
            raise NotFound(f"device {token} not found")
        return _device_from_row(row)

    async def get_device_by_key(self, key: str) -> Device:
        if not key:
            raise NotFound("device key is empty")
        row = await self._fetch_one(select(DeviceRecord).where(DeviceRecord.key == key))
        if row is None:
            raise NotFound(f"device key {key} not found")
        return _device_from_row(row)

    async def list_devices(self) -> List[Device]:
        rows = await self._fetch_all(select(DeviceRecord).order_by(DeviceRecord.created_at))
        return [_device_from_row(row) for row in rows]

    async def list_active_devices(self) -> List[Device]:
        rows = await self._fetch_all(
            select(DeviceRecord)
            .where(or_(
                DeviceRecord.status == DeviceStatus.ACTIVE.value,
                DeviceRecord.status == "",
                DeviceRecord.status.is_(None),
            ))
            .order_by(DeviceRecord.created_at)
        )
        return [_device_from_row(row) for row in rows]

    async def append_log(self, entry: NoticeLog) -> NoticeLog:
        now = utcnow()
        if entry.created_at is None:
            entry.created_at = now
        entry.updated_at = now

        async def _write() -> int:
            async with self._session_factory() as session:
                row = NoticeLogRecord(
                    device_key=entry.device_key,
                    url=entry.url,
                    title=entry.title,
                    body=entry.body,
                    group=entry.group,
                    result=entry.result,
                    status=entry.status,
                    created_at=entry.created_at,
                    updated_at=entry.updated_at,
                )
                session.add(row)
                await session.commit()
                return row.id

        try:
            entry.id = await retry_on_lock(_write)
        except SQLAlchemyError as e:
            raise IOFailure(f"append notice log: {e}") from e
        return entry.model_copy(deep=True)

    async def list_logs(self) -> List[NoticeLog]:
        rows = await self._fetch_all(select(NoticeLogRecord).order_by(NoticeLogRecord.id))
        return [_log_from_row(row) for row in rows]

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Database connections closed")

    async def _fetch_one(self, stmt):
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise IOFailure(str(e)) from e

    async def _fetch_all(self, stmt):
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise IOFailure(str(e)) from e
