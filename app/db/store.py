# app/db/store.py
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import NotFound
from app.core.logging import get_logger
from app.db.models import AccessToken
from app.db.session import bounded

logger = get_logger(__name__)

T = TypeVar("T")

SORTING_COLUMNS = {
    "id": AccessToken.id,
    "subject": AccessToken.subject,
    "binding_context": AccessToken.binding_context,
    "enabled": AccessToken.enabled,
    "expires_at": AccessToken.expires_at,
}
DEFAULT_SORT = "expires_at,desc"
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class CredentialRecord:
    id: str
    subject: str
    binding_context: str
    enabled: bool
    expires_at: datetime


@dataclass(frozen=True)
class Page(Generic[T]):
    content: list[T]
    size: int
    page: int  # 1-based
    total_elements: int
    total_pages: int


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(row: AccessToken) -> CredentialRecord:
    return CredentialRecord(
        id=row.id,
        subject=row.subject,
        binding_context=row.binding_context,
        enabled=row.enabled,
        expires_at=as_utc(row.expires_at),
    )


def _order_by(sort: str | None):
    """Parse ``column[,asc|desc]``; unknown columns fall back to the default."""
    column, _, direction = (sort or "").partition(",")
    if column.strip() not in SORTING_COLUMNS:
        column, _, direction = DEFAULT_SORT.partition(",")
    attr = SORTING_COLUMNS[column.strip()]
    if direction.strip().lower() == "desc":
        return attr.desc()
    return attr.asc()


class CredentialStore:
    """Durable records behind every issued token, keyed by credential id.

    Records come back as frozen snapshots. The only mutation after creation
    is ``disable``.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession], timeout: float = 5.0) -> None:
        self._sessions = sessions
        self._timeout = timeout

    def _run(self, op: str, coro):
        return bounded(op, coro, self._timeout)

    async def create(self, subject: str, binding_context: str, expires_at: datetime) -> CredentialRecord:
        async def _create() -> CredentialRecord:
            row = AccessToken(
                id=str(uuid.uuid4()),
                subject=subject,
                binding_context=binding_context,
                enabled=True,
                expires_at=expires_at,
            )
            async with self._sessions() as s:
                s.add(row)
                await s.commit()
            return _to_record(row)

        return await self._run("create", _create())

    async def get(self, id: str) -> CredentialRecord:
        async def _get() -> AccessToken | None:
            async with self._sessions() as s:
                return await s.get(AccessToken, id)

        row = await self._run("get", _get())
        if row is None:
            raise NotFound(f"no credential with id {id}")
        return _to_record(row)

    async def disable(self, id: str) -> CredentialRecord:
        """Set enabled=false; an already disabled record is left untouched."""

        async def _disable() -> tuple[AccessToken | None, int]:
            async with self._sessions() as s:
                async with s.begin():
                    res = await s.execute(
                        update(AccessToken)
                        .where(AccessToken.id == id, AccessToken.enabled.is_(True))
                        .values(enabled=False)
                        .execution_options(synchronize_session=False)
                    )
                    row = await s.get(AccessToken, id, populate_existing=True)
                return row, res.rowcount

        row, changed = await self._run("disable", _disable())
        if row is None:
            raise NotFound(f"no credential with id {id}")
        if changed:
            logger.info("credential_disabled", credential_id=id, subject=row.subject)
        return _to_record(row)

    async def find_by_subject(
        self,
        subject: str,
        page: int = 1,
        size: int = 20,
        sort: str | None = None,
    ) -> Page[CredentialRecord]:
        page = max(page, 1)
        size = min(max(size, 1), MAX_PAGE_SIZE)

        async def _find() -> tuple[list[AccessToken], int]:
            async with self._sessions() as s:
                total = await s.scalar(
                    select(func.count()).select_from(AccessToken).where(AccessToken.subject == subject)
                )
                res = await s.execute(
                    select(AccessToken)
                    .where(AccessToken.subject == subject)
                    .order_by(_order_by(sort), AccessToken.id)
                    .offset((page - 1) * size)
                    .limit(size)
                )
                return list(res.scalars().all()), total or 0

        rows, total = await self._run("find_by_subject", _find())
        return Page(
            content=[_to_record(r) for r in rows],
            size=size,
            page=page,
            total_elements=total,
            total_pages=math.ceil(total / size) if total else 0,
        )
