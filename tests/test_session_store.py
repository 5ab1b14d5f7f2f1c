import asyncio
from datetime import datetime, timedelta, timezone

from triage.models import InboundMessage, Platform, Session, SessionStatus
from triage.session_store import SessionStore
from triage.states import transition

AT = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


def inbound(user_id="u1", platform="web", text="hi"):
    return InboundMessage.build(user_id, platform, text, "en", timestamp=AT)


def test_lock_serializes_holders_in_arrival_order(repo):
    store = SessionStore(repo)
    order = []

    async def worker(name, delay):
        async with store.locked("u1", Platform.WEB):
            order.append(f"{name}-in")
            await asyncio.sleep(delay)
            order.append(f"{name}-out")

    async def main():
        await asyncio.gather(worker("a", 0.05), worker("b", 0), worker("c", 0))

    asyncio.run(main())
    assert order == ["a-in", "a-out", "b-in", "b-out", "c-in", "c-out"]
    assert store.active_keys == 0


def test_different_keys_do_not_block_each_other(repo):
    store = SessionStore(repo)
    order = []

    async def worker(user_id, delay):
        async with store.locked(user_id, Platform.WEB):
            order.append(f"{user_id}-in")
            await asyncio.sleep(delay)
            order.append(f"{user_id}-out")

    async def main():
        await asyncio.gather(worker("slow", 0.05), worker("fast", 0))

    asyncio.run(main())
    assert order.index("fast-out") < order.index("slow-out")


def test_load_or_create_reuses_open_session(repo):
    store = SessionStore(repo)

    async def flow():
        first, created = await store.load_or_create(inbound())
        await store.save(first)
        second, created_again = await store.load_or_create(inbound())
        return first, created, second, created_again

    first, created, second, created_again = asyncio.run(flow())
    assert created and not created_again
    assert first.id == second.id


def test_terminal_session_is_replaced(repo):
    store = SessionStore(repo)
    old = Session(user_id="u1", platform=Platform.WEB)
    transition(old, SessionStatus.COMPLETED, AT)
    repo.save(old)

    session, created = asyncio.run(store.load_or_create(inbound()))
    assert created
    assert session.id != old.id
    assert session.status == SessionStatus.ACTIVE
    assert session.started_at == AT


def test_store_hands_out_copies(repo):
    store = SessionStore(repo)
    original = Session(user_id="u1", platform=Platform.WEB)
    repo.save(original)

    loaded = asyncio.run(store.load("u1", Platform.WEB))
    loaded.add_turn("user", "not saved")
    assert repo.get(original.id).history == []


def test_list_expired_only_returns_idle_waiting_sessions(repo):
    store = SessionStore(repo)
    idle = Session(user_id="idle", platform=Platform.SMS, last_activity_at=AT - timedelta(minutes=30))
    transition(idle, SessionStatus.WAITING, AT)
    fresh = Session(user_id="fresh", platform=Platform.SMS, last_activity_at=AT)
    transition(fresh, SessionStatus.WAITING, AT)
    busy = Session(user_id="busy", platform=Platform.SMS, last_activity_at=AT - timedelta(minutes=30))
    for s in (idle, fresh, busy):
        repo.save(s)

    expired = asyncio.run(store.list_expired(600, AT))
    assert [s.user_id for s in expired] == ["idle"]


def test_session_round_trips_through_its_document():
    session = Session(user_id="u1", platform=Platform.WHATSAPP, language="hi", location="Pune")
    session.add_turn("user", "नमस्ते", AT)
    transition(session, SessionStatus.WAITING, AT)
    restored = Session.model_validate(session.model_dump(by_alias=True))
    assert restored == session
