"""Tests for the retention engine (policies, windows, schedule, persistence)."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import CHAT_ID, TOPIC, FakeGateway, ref
from schemas.retention import RetentionPolicy, TopicKey
from services.retention.engine import RetentionEngine
from services.retention.interfaces import DeleteOutcome
from services.retention.snapshot_store import SnapshotStore


T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_count_cap_evicts_oldest(
    engine: RetentionEngine, gateway: FakeGateway
) -> None:
    await engine.apply_policy_command(TOPIC, minutes=0, max_messages=2)

    results = [
        await engine.on_message_arrived(ref(i), T0 + timedelta(seconds=i))
        for i in (1, 2, 3)
    ]

    assert [r.evicted for r in results] == [[], [], [ref(1)]]
    assert results[2].outcomes == {ref(1): DeleteOutcome.SUCCESS}
    assert gateway.deleted == [(CHAT_ID, 1)]
    assert engine.window(TOPIC) == [ref(2), ref(3)]
    assert engine.stats()["scheduled"] == 0


@pytest.mark.asyncio
async def test_time_policy_schedules_and_sweep_finds_due(
    engine: RetentionEngine,
) -> None:
    await engine.apply_policy_command(TOPIC, minutes=10, max_messages=0)
    result = await engine.on_message_arrived(ref(1), T0)

    assert result.scheduled_at == T0 + timedelta(minutes=10)
    assert engine.window(TOPIC) == []
    assert await engine.sweep_due(T0 + timedelta(minutes=5), 50) == []

    due = await engine.sweep_due(T0 + timedelta(minutes=11), 50)
    assert [entry.ref for entry in due] == [ref(1)]

    await engine.complete_deletion(ref(1))
    assert engine.scheduled_for(ref(1)) is None
    assert await engine.sweep_due(T0 + timedelta(minutes=11), 50) == []


@pytest.mark.asyncio
async def test_no_policy_means_nothing_is_tracked(
    engine: RetentionEngine, gateway: FakeGateway
) -> None:
    result = await engine.on_message_arrived(ref(1), T0)

    assert result.scheduled_at is None
    assert result.evicted == []
    assert engine.stats() == {"policies": 0, "scheduled": 0, "tracked": 0}
    assert gateway.deleted == []


@pytest.mark.asyncio
async def test_both_rules_apply_and_eviction_cancels_schedule(
    engine: RetentionEngine,
) -> None:
    await engine.apply_policy_command(TOPIC, minutes=60, max_messages=1)

    await engine.on_message_arrived(ref(1), T0)
    await engine.on_message_arrived(ref(2), T0 + timedelta(minutes=1))

    assert engine.scheduled_for(ref(1)) is None
    assert engine.scheduled_for(ref(2)) is not None
    assert engine.window(TOPIC) == [ref(2)]


@pytest.mark.asyncio
async def test_policy_is_scoped_to_topic(engine: RetentionEngine) -> None:
    await engine.apply_policy_command(TOPIC, minutes=5)
    main_stream = ref(10, thread_id=0)

    await engine.on_message_arrived(main_stream, T0)

    assert engine.get_policy(TopicKey(chat_id=CHAT_ID)) == RetentionPolicy()
    assert engine.scheduled_for(main_stream) is None


@pytest.mark.asyncio
async def test_pinned_message_is_never_swept(
    engine: RetentionEngine, gateway: FakeGateway
) -> None:
    await engine.apply_policy_command(TOPIC, minutes=1, max_messages=5)
    await engine.on_message_arrived(ref(1), T0)

    assert await engine.on_message_pinned(ref(1)) is True

    assert engine.window(TOPIC) == []
    assert await engine.sweep_due(T0 + timedelta(days=365), 50) == []
    assert gateway.deleted == []
    # Pinning something unknown is a no-op.
    assert await engine.on_message_pinned(ref(99)) is False


@pytest.mark.asyncio
async def test_pinned_message_does_not_count_towards_cap(
    engine: RetentionEngine, gateway: FakeGateway
) -> None:
    await engine.apply_policy_command(TOPIC, max_messages=2)
    await engine.on_message_arrived(ref(1), T0)
    await engine.on_message_pinned(ref(1))

    await engine.on_message_arrived(ref(2), T0)
    await engine.on_message_arrived(ref(3), T0)

    assert gateway.deleted == []
    assert engine.window(TOPIC) == [ref(2), ref(3)]


@pytest.mark.asyncio
async def test_lowering_cap_trims_window_immediately(
    engine: RetentionEngine, gateway: FakeGateway
) -> None:
    await engine.apply_policy_command(TOPIC, max_messages=5)
    for i in (1, 2, 3, 4):
        await engine.on_message_arrived(ref(i), T0)

    await engine.apply_policy_command(TOPIC, max_messages=2)

    assert engine.window(TOPIC) == [ref(3), ref(4)]
    assert gateway.deleted == [(CHAT_ID, 1), (CHAT_ID, 2)]


@pytest.mark.asyncio
async def test_disabling_cap_stops_tracking_without_deleting(
    engine: RetentionEngine, gateway: FakeGateway
) -> None:
    await engine.apply_policy_command(TOPIC, minutes=5, max_messages=3)
    await engine.on_message_arrived(ref(1), T0)

    await engine.apply_policy_command(TOPIC, max_messages=0)

    assert engine.window(TOPIC) == []
    assert gateway.deleted == []
    # The time rule is still in force for already scheduled messages.
    assert engine.scheduled_for(ref(1)) is not None
    assert engine.get_policy(TOPIC) == RetentionPolicy(minutes=5)


@pytest.mark.asyncio
async def test_disabling_time_rule_keeps_existing_schedule(
    engine: RetentionEngine,
) -> None:
    await engine.apply_policy_command(TOPIC, minutes=5)
    await engine.on_message_arrived(ref(1), T0)

    await engine.apply_policy_command(TOPIC, minutes=0)
    await engine.on_message_arrived(ref(2), T0)

    assert engine.scheduled_for(ref(1)) is not None
    assert engine.scheduled_for(ref(2)) is None
    assert len(engine.snapshot().policies) == 0


@pytest.mark.asyncio
async def test_failed_delete_outcomes_still_conclude(
    engine: RetentionEngine, gateway: FakeGateway
) -> None:
    gateway.delete_outcomes[(CHAT_ID, 1)] = DeleteOutcome.FORBIDDEN
    await engine.apply_policy_command(TOPIC, max_messages=1)

    await engine.on_message_arrived(ref(1), T0)
    result = await engine.on_message_arrived(ref(2), T0)

    assert result.outcomes == {ref(1): DeleteOutcome.FORBIDDEN}
    assert engine.window(TOPIC) == [ref(2)]


@pytest.mark.asyncio
async def test_state_survives_restart(
    gateway: FakeGateway, snapshot_store: SnapshotStore
) -> None:
    engine = RetentionEngine.from_store(gateway, snapshot_store)
    await engine.apply_policy_command(TOPIC, minutes=10, max_messages=3)
    await engine.on_message_arrived(ref(1), T0)
    await engine.on_message_arrived(ref(2), T0)

    restarted = RetentionEngine.from_store(gateway, snapshot_store)

    assert restarted.get_policy(TOPIC) == RetentionPolicy(minutes=10, max_messages=3)
    assert restarted.window(TOPIC) == [ref(1), ref(2)]
    assert restarted.scheduled_for(ref(2)) is not None
    assert restarted.snapshot() == engine.snapshot()


@pytest.mark.asyncio
async def test_every_mutation_is_persisted(
    engine: RetentionEngine, state_path: Path
) -> None:
    await engine.apply_policy_command(TOPIC, max_messages=2)
    document = json.loads(state_path.read_text(encoding="utf-8"))
    assert document["policies"] == [
        {"chat_id": CHAT_ID, "thread_id": 42, "minutes": 0, "max_messages": 2}
    ]

    await engine.on_message_arrived(ref(1), T0)
    document = json.loads(state_path.read_text(encoding="utf-8"))
    assert document["windows"][0]["messages"][0]["message_id"] == 1


@pytest.mark.asyncio
async def test_persist_failure_keeps_memory_state(
    engine: RetentionEngine, caplog: pytest.LogCaptureFixture
) -> None:
    with patch.object(SnapshotStore, "save", side_effect=OSError("read-only fs")):
        policy = await engine.apply_policy_command(TOPIC, minutes=3)
        await engine.on_message_arrived(ref(1), T0)

    assert policy == RetentionPolicy(minutes=3)
    assert engine.scheduled_for(ref(1)) is not None
    assert engine.persist_failures == 2
    assert "Failed to save state snapshot" in caplog.text

    # The next successful write catches up.
    assert await engine.flush() is True


@pytest.mark.asyncio
async def test_engine_without_store_works_in_memory(gateway: FakeGateway) -> None:
    engine = RetentionEngine(gateway)
    await engine.apply_policy_command(TOPIC, max_messages=1)
    await engine.on_message_arrived(ref(1), T0)
    await engine.on_message_arrived(ref(2), T0)

    assert gateway.deleted == [(CHAT_ID, 1)]
    assert await engine.flush() is True


@pytest.mark.asyncio
async def test_from_snapshot_restores_without_store(gateway: FakeGateway) -> None:
    source = RetentionEngine(gateway)
    await source.apply_policy_command(TOPIC, minutes=2, max_messages=2)
    await source.on_message_arrived(ref(1), T0)

    copy = RetentionEngine.from_snapshot(gateway, source.snapshot())

    assert copy.snapshot() == source.snapshot()
    assert copy.stats() == {"policies": 1, "scheduled": 1, "tracked": 1}


@pytest.mark.asyncio
async def test_naive_timestamps_are_rejected(engine: RetentionEngine) -> None:
    await engine.apply_policy_command(TOPIC, minutes=5, max_messages=3)

    with pytest.raises(ValueError, match="timezone-aware"):
        await engine.on_message_arrived(ref(1), datetime(2024, 1, 1, 12, 0))
    with pytest.raises(ValueError, match="timezone-aware"):
        await engine.sweep_due(datetime(2024, 1, 2), 10)

    assert engine.stats() == {"policies": 1, "scheduled": 0, "tracked": 0}
