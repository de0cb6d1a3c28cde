import asyncio

import pytest
from pydantic import ValidationError

from relay.core.session_store import SessionStore
from relay.models import ChatTurn, MessageListInput, ThreadChatInput
from tests.fakes import FakeClock


def _payload() -> ThreadChatInput:
    return ThreadChatInput(chatRecordId="42", message="hello")


def test_create_stores_record_with_creation_time():
    clock = FakeClock(500.0)
    store = SessionStore(clock=clock)

    session_id = store.create(_payload(), "gpt-5")

    record = store.get(session_id)
    assert session_id in store
    assert record.model_name == "gpt-5"
    assert record.created_at == 500.0
    assert record.payload.message == "hello"


def test_session_ids_are_unique_128_bit_tokens():
    store = SessionStore()
    ids = {store.create(_payload(), "gpt-5") for _ in range(200)}
    assert len(ids) == 200
    assert all(len(session_id) == 32 for session_id in ids)


def test_records_are_immutable():
    store = SessionStore()
    record = store.get(store.create(_payload(), "gpt-5"))
    with pytest.raises(ValidationError):
        record.model_name = "other"


def test_delete_is_idempotent():
    store = SessionStore()
    keep = store.create(_payload(), "gpt-5")
    session_id = store.create(_payload(), "gpt-5")

    store.delete(session_id)
    store.delete(session_id)
    store.delete("never-created")

    assert session_id not in store
    assert keep in store
    assert len(store) == 1


def test_sweep_removes_only_expired_sessions():
    clock = FakeClock()
    store = SessionStore(ttl=60, clock=clock)
    old = store.create(_payload(), "gpt-5")
    clock.advance(30)
    young = store.create(_payload(), "gpt-5")
    clock.advance(31)

    removed = store.sweep()

    assert removed == 1
    assert old not in store
    assert young in store


def test_sweep_keeps_session_exactly_at_ttl():
    clock = FakeClock()
    store = SessionStore(ttl=60, clock=clock)
    session_id = store.create(_payload(), "gpt-5")
    assert store.sweep(now=clock.now + 60) == 0
    assert session_id in store


def test_sweep_accepts_explicit_now_and_ttl():
    clock = FakeClock(0.0)
    store = SessionStore(ttl=1800, clock=clock)
    store.create(_payload(), "gpt-5")
    assert store.sweep(now=10.0, ttl=5.0) == 1
    assert len(store) == 0


def test_scoped_session_removed_on_success_and_error():
    store = SessionStore()
    payload = MessageListInput(messages=[ChatTurn(role="user", content="hi")])

    with store.scoped(payload, "gpt-4o") as session_id:
        assert session_id in store
    assert session_id not in store

    with pytest.raises(RuntimeError):
        with store.scoped(payload, "gpt-4o") as session_id:
            assert session_id in store
            raise RuntimeError("boom")
    assert session_id not in store
    assert len(store) == 0


def test_periodic_sweep_evicts_abandoned_sessions():
    clock = FakeClock()
    store = SessionStore(ttl=60, sweep_interval=0.01, clock=clock)

    async def scenario():
        abandoned = store.create(_payload(), "gpt-5")
        store.start()
        store.start()
        assert store.running
        await asyncio.sleep(0.03)
        assert abandoned in store

        clock.advance(61)
        await asyncio.sleep(0.05)
        assert abandoned not in store

        await store.stop()
        assert not store.running

    asyncio.run(scenario())


def test_stop_without_start_is_noop():
    asyncio.run(SessionStore().stop())
