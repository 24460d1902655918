# tests/test_store.py
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.errors import NotFound, StoreUnavailable
from app.db.session import make_engine
from app.db.models import AccessToken
from app.db.store import CredentialStore


def _in(hours: float) -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0) + timedelta(hours=hours)


async def test_create_returns_enabled_record_with_generated_id(store):
    expires = _in(1)
    record = await store.create("alice", "agentA", expires)

    assert len(record.id) == 36
    assert record.subject == "alice"
    assert record.binding_context == "agentA"
    assert record.enabled is True
    assert record.expires_at == expires

    fetched = await store.get(record.id)
    assert fetched == record


async def test_ids_are_unique(store):
    ids = {(await store.create("alice", "agentA", _in(1))).id for _ in range(20)}
    assert len(ids) == 20


async def test_get_unknown_id_raises_not_found(store):
    with pytest.raises(NotFound):
        await store.get("00000000-0000-0000-0000-000000000000")


async def test_disable_is_sticky_and_idempotent(store):
    record = await store.create("alice", "agentA", _in(1))

    disabled = await store.disable(record.id)
    assert disabled.enabled is False
    assert (await store.get(record.id)).enabled is False

    again = await store.disable(record.id)
    assert again.enabled is False
    assert again.expires_at == record.expires_at


async def test_disable_unknown_id_raises_not_found(store):
    with pytest.raises(NotFound):
        await store.disable("missing")


async def test_disable_only_touches_one_record(store):
    first = await store.create("alice", "agentA", _in(1))
    second = await store.create("alice", "agentB", _in(1))

    await store.disable(first.id)
    assert (await store.get(second.id)).enabled is True


async def test_find_by_subject_paginates(store):
    for i in range(5):
        await store.create("alice", f"agent-{i}", _in(i + 1))
    await store.create("bob", "agent-x", _in(1))

    page = await store.find_by_subject("alice", page=1, size=2)
    assert page.total_elements == 5
    assert page.total_pages == 3
    assert page.page == 1
    assert [r.binding_context for r in page.content] == ["agent-4", "agent-3"]

    last = await store.find_by_subject("alice", page=3, size=2)
    assert [r.binding_context for r in last.content] == ["agent-0"]
    assert all(r.subject == "alice" for r in last.content)


async def test_find_by_subject_sorting(store):
    for i in range(3):
        await store.create("alice", f"agent-{i}", _in(i + 1))

    asc = await store.find_by_subject("alice", sort="binding_context,asc")
    assert [r.binding_context for r in asc.content] == ["agent-0", "agent-1", "agent-2"]

    # not an allowed column, falls back to expires_at desc
    fallback = await store.find_by_subject("alice", sort="password,asc")
    assert [r.binding_context for r in fallback.content] == ["agent-2", "agent-1", "agent-0"]


async def test_find_by_subject_empty(store):
    page = await store.find_by_subject("nobody")
    assert page.content == []
    assert page.total_elements == 0
    assert page.total_pages == 0


async def test_database_failure_is_store_unavailable(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{(tmp_path / 'missing' / 'x.sqlite3').as_posix()}")
    broken = CredentialStore(async_sessionmaker(engine, expire_on_commit=False))
    try:
        with pytest.raises(StoreUnavailable):
            await broken.get("any")
        with pytest.raises(StoreUnavailable):
            await broken.create("alice", "agentA", _in(1))
    finally:
        await engine.dispose()


async def test_slow_database_times_out_as_store_unavailable(slow_sessions):
    slow = CredentialStore(slow_sessions, timeout=0.05)

    with pytest.raises(StoreUnavailable) as exc:
        await slow.get("any")
    assert exc.value.reason == "get: timed out"

    with pytest.raises(StoreUnavailable) as exc:
        await slow.create("alice", "agentA", _in(1))
    assert exc.value.reason == "create: timed out"


async def test_created_at_is_set_by_the_database(store, sessions):
    record = await store.create("alice", "agentA", _in(1))

    async with sessions() as s:
        row = await s.get(AccessToken, record.id)
    assert row.created_at is not None
