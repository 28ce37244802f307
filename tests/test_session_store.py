"""
tests/test_session_store.py - SessionStore locking and commit semantics
"""

import asyncio
from datetime import timedelta

import pytest

from wandermate.errors import ConcurrencyTimeout
from wandermate.interfaces.session_store import SessionStore
from wandermate.schemas.agent_schemas import AutonomyLevel, Reply, Turn, TurnOutcome, utc_now


def make_turn(index: int, text: str = "hello") -> Turn:
    return Turn(
        index=index,
        input_text=text,
        outcome=TurnOutcome.COMPLETED,
        reply=Reply(text="ok"),
    )


@pytest.fixture
def store():
    return SessionStore(lock_timeout=0.2)


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, store):
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_get_or_create_uses_defaults(self):
        store = SessionStore(default_autonomy=AutonomyLevel.MANUAL, default_language="hi")
        session = await store.get_or_create("s1")

        assert session.session_id == "s1"
        assert session.autonomy_level == AutonomyLevel.MANUAL
        assert session.language == "hi"
        assert session.turns == []
        assert await store.get("s1") is not None

    @pytest.mark.asyncio
    async def test_generated_session_id(self, store):
        session = await store.get_or_create()
        assert session.session_id.startswith("sess_")

    @pytest.mark.asyncio
    async def test_with_lock_without_create_raises_for_unknown(self, store):
        with pytest.raises(KeyError):
            await store.with_lock("nope", lambda s: None, create=False)


class TestWithLock:
    @pytest.mark.asyncio
    async def test_mutation_committed_on_success(self, store):
        def mutate(session):
            session.autonomy_level = AutonomyLevel.AUTONOMOUS
            session.append_turn(make_turn(session.next_turn_index))
            return "done"

        assert await store.with_lock("s1", mutate) == "done"
        session = await store.get("s1")
        assert session.autonomy_level == AutonomyLevel.AUTONOMOUS
        assert len(session.turns) == 1

    @pytest.mark.asyncio
    async def test_async_callback_supported(self, store):
        async def mutate(session):
            await asyncio.sleep(0)
            session.language = "hi"

        await store.with_lock("s1", mutate)
        assert (await store.get("s1")).language == "hi"

    @pytest.mark.asyncio
    async def test_failed_callback_discards_changes(self, store):
        await store.get_or_create("s1")

        def explode(session):
            session.autonomy_level = AutonomyLevel.AUTONOMOUS
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await store.with_lock("s1", explode)

        assert (await store.get("s1")).autonomy_level == AutonomyLevel.ASSISTED
        assert not store.is_locked("s1")

    @pytest.mark.asyncio
    async def test_read_copy_is_not_live(self, store):
        session = await store.get_or_create("s1")
        session.language = "hi"
        assert (await store.get("s1")).language == "en"

    @pytest.mark.asyncio
    async def test_busy_session_times_out(self, store):
        started = asyncio.Event()
        release = asyncio.Event()

        async def hold(session):
            started.set()
            await release.wait()

        holder = asyncio.create_task(store.with_lock("s1", hold))
        await started.wait()

        with pytest.raises(ConcurrencyTimeout) as exc_info:
            await store.with_lock("s1", lambda s: None)
        assert exc_info.value.session_id == "s1"

        release.set()
        await holder
        assert not store.is_locked("s1")
        assert store._locks == {}

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_serialized(self):
        store = SessionStore(lock_timeout=5.0)

        async def append(session):
            index = session.next_turn_index
            await asyncio.sleep(0.01)
            session.append_turn(make_turn(index, f"msg {index}"))

        await asyncio.gather(*(store.with_lock("s1", append) for _ in range(5)))

        session = await store.get("s1")
        assert [t.index for t in session.turns] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_other_sessions_not_blocked(self, store):
        release = asyncio.Event()
        started = asyncio.Event()

        async def hold(session):
            started.set()
            await release.wait()

        holder = asyncio.create_task(store.with_lock("a", hold))
        await started.wait()

        await store.with_lock("b", lambda s: None)
        release.set()
        await holder

    @pytest.mark.asyncio
    async def test_locks_forgotten_after_use(self, store):
        for i in range(20):
            await store.with_lock(f"s{i}", lambda s: None)

        assert store._locks == {}
        assert len(store) == 20

    @pytest.mark.asyncio
    async def test_cancelled_caller_still_commits_started_save(self, store):
        saving = asyncio.Event()
        original_save = store._save

        async def slow_save(session):
            saving.set()
            await asyncio.sleep(0.05)
            await original_save(session)

        store._save = slow_save

        def mutate(session):
            session.language = "hi"

        task = asyncio.create_task(store.with_lock("s1", mutate))
        await saving.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.1)
        assert (await store.get("s1")).language == "hi"
        assert store._locks == {}


class TestEviction:
    @pytest.mark.asyncio
    async def test_evicts_idle_sessions(self):
        store = SessionStore(ttl_hours=1)
        await store.get_or_create("old")

        evicted = await store.evict_expired(now=utc_now() + timedelta(hours=2))

        assert evicted == 1
        assert await store.get("old") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_keeps_recent_sessions(self):
        store = SessionStore(ttl_hours=1)
        await store.get_or_create("fresh")

        assert await store.evict_expired() == 0
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.get_or_create("s1")
        await store.delete("s1")
        assert await store.get("s1") is None
