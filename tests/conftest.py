# tests/conftest.py
import asyncio
import base64
import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# --- Make 'app' importable from the repo root ---
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

PASSWORD = "correct horse battery staple"
USERS = {
    "alice": ["VIEWER"],
    "admin.user": ["ADMIN"],
    "editor.user": ["EDITOR"],
    "bob": [],
}
DISABLED_USER = "locked.user"


def _prepare_test_env() -> Path:
    tmp = (ROOT / ".pytest_tmp").absolute()
    tmp.mkdir(exist_ok=True)

    db_path = tmp / "test.sqlite3"
    if db_path.exists():
        db_path.unlink()
    os.environ["DB_URL"] = f"sqlite+aiosqlite:///{db_path.as_posix()}"

    # random 256-bit key per run
    os.environ["TOKEN_SECRET"] = base64.b64encode(os.urandom(32)).decode()
    os.environ["JWT_ALG"] = "HS256"
    os.environ["TOKEN_TTL"] = "3600"
    os.environ["BINDING_CONTEXT_HEADER"] = "User-Agent"
    os.environ["LOG_JSON"] = "false"
    return tmp


# Settings are read on first import of app.*, so this has to run first
TMP_DIR = _prepare_test_env()

from app.core.crypto import TokenSigner  # noqa: E402
from app.core.identity import UserDirectory  # noqa: E402
from app.core.tokens import TokenAuthority  # noqa: E402
from app.db.session import make_engine, init_models  # noqa: E402
from app.db.store import CredentialStore  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402


async def _seed_users(db_url: str) -> None:
    engine = make_engine(db_url)
    await init_models(engine)
    directory = UserDirectory(async_sessionmaker(engine, expire_on_commit=False))
    for username, roles in USERS.items():
        await directory.create_user(username, PASSWORD, roles)
    await directory.create_user(DISABLED_USER, PASSWORD, ["VIEWER"], enabled=False)
    await engine.dispose()


@pytest.fixture(scope="session")
def client():
    """
    Test client over an ephemeral environment:
    - SQLite database in .pytest_tmp/test.sqlite3, seeded with USERS
    - random signing secret
    """
    asyncio.run(_seed_users(os.environ["DB_URL"]))
    from app.main import app
    # 'with' runs the lifespan: tables, signer and services on app.state
    with TestClient(app) as c:
        yield c


@pytest.fixture
def signer():
    return TokenSigner(os.urandom(32))


@pytest.fixture
async def sessions(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{(tmp_path / 'unit.sqlite3').as_posix()}")
    await init_models(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


class _SlowSession:
    def __init__(self, session, delay):
        self._session = session
        self._delay = delay

    async def __aenter__(self):
        await asyncio.sleep(self._delay)
        return await self._session.__aenter__()

    async def __aexit__(self, *exc):
        return await self._session.__aexit__(*exc)


class SlowSessions:
    """Session factory whose sessions take ``delay`` seconds to open."""

    def __init__(self, sessions, delay: float = 1.0):
        self._sessions = sessions
        self._delay = delay

    def __call__(self):
        return _SlowSession(self._sessions(), self._delay)


@pytest.fixture
def slow_sessions(sessions):
    return SlowSessions(sessions)


@pytest.fixture
def store(sessions):
    return CredentialStore(sessions)


@pytest.fixture
def directory(sessions):
    return UserDirectory(sessions)


@pytest.fixture
def authority(signer, store):
    return TokenAuthority(signer, store, ttl=timedelta(hours=1))
