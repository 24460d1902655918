# app/core/identity.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import NotFound
from app.core.logging import get_logger
from app.db.models import Role, User, user_role
from app.db.session import bounded

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    enabled: bool
    roles: frozenset[str]


class IdentityResolver(Protocol):
    async def load_roles(self, subject: str) -> Identity:
        """Raises NotFound when the subject is unknown."""
        ...


class UserDirectory:
    """SQL-backed users and roles.

    Roles are joined on every call, nothing is cached.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession], timeout: float = 5.0) -> None:
        self._sessions = sessions
        self._timeout = timeout
        self._hasher = PasswordHasher(type=Type.ID)
        # verified against when the username is unknown, so both paths cost a hash
        self._dummy_hash = self._hasher.hash("not-a-real-password")

    def _run(self, op: str, coro):
        return bounded(op, coro, self._timeout)

    async def _find_user(self, username: str) -> User | None:
        async with self._sessions() as s:
            res = await s.execute(select(User).where(User.username == username))
            return res.scalar_one_or_none()

    async def load_roles(self, subject: str) -> Identity:
        async def _load() -> tuple[User | None, list[str]]:
            async with self._sessions() as s:
                user = (await s.execute(select(User).where(User.username == subject))).scalar_one_or_none()
                if user is None:
                    return None, []
                res = await s.execute(
                    select(Role.name)
                    .join(user_role, user_role.c.role_id == Role.id)
                    .where(user_role.c.user_id == user.id)
                )
                return user, list(res.scalars().all())

        user, names = await self._run("load_roles", _load())
        if user is None:
            raise NotFound(f"no user named {subject}")
        return Identity(enabled=user.enabled, roles=frozenset(names))

    async def check_password(self, username: str, password: str) -> bool:
        user = await self._run("check_password", self._find_user(username))
        stored = user.password_hash if user is not None else self._dummy_hash
        try:
            ok = self._hasher.verify(stored, password)
        except (InvalidHash, VerificationError):
            ok = False
        if not ok or user is None:
            logger.warning("password_check_failed", username=username)
            return False
        return True

    async def create_user(
        self,
        username: str,
        password: str,
        roles: Iterable[str] = (),
        enabled: bool = True,
    ) -> None:
        """Create a user, creating any missing roles on the way."""
        role_names = sorted(set(roles))
        password_hash = self._hasher.hash(password)

        async def _create() -> None:
            async with self._sessions() as s:
                async with s.begin():
                    existing = {}
                    if role_names:
                        res = await s.execute(select(Role).where(Role.name.in_(role_names)))
                        existing = {r.name: r for r in res.scalars().all()}
                    user_roles = [existing.get(name) or Role(name=name) for name in role_names]
                    s.add(User(
                        username=username,
                        password_hash=password_hash,
                        enabled=enabled,
                        roles=user_roles,
                    ))

        await self._run("create_user", _create())
        logger.info("user_created", username=username, roles=role_names)
