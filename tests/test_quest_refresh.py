# tests/test_quest_refresh.py

from __future__ import annotations

import random

import pytest

from anvil_guard.core.calendar import LocalCalendar
from anvil_guard.quests.quest_manager import QuestManager
from anvil_guard.quests.quest_models import QuestType
from anvil_guard.workers.base import WorkResult, run_with_retry
from anvil_guard.workers.quest_refresh import QuestRefreshWorker

from .fakes import DAY, HOUR, T0, FakeClock


def _count(quests, quest_type: QuestType) -> int:
    return sum(1 for q in quests if q.quest_type is quest_type)


@pytest.mark.asyncio
async def test_refresh_is_idempotent_within_a_day(state) -> None:
    worker = state.workers["quest_refresh"]

    assert await worker.run() is WorkResult.SUCCESS
    assert await worker.run() is WorkResult.SUCCESS

    active = state.quest_store.list_active(T0)
    assert _count(active, QuestType.DAILY) == 3
    assert _count(active, QuestType.WEEKLY_STEP) == 6
    assert _count(active, QuestType.WEEKLY_BOSS) == 1
    assert {q.week_chain_id for q in active if q.week_chain_id} == {"week_2026_42"}


@pytest.mark.asyncio
async def test_next_day_replaces_dailies_but_keeps_the_week(state, clock) -> None:
    worker = state.workers["quest_refresh"]
    await worker.run()

    clock.advance(DAY)
    await worker.run()

    active = state.quest_store.list_active(clock.wall())
    assert _count(active, QuestType.DAILY) == 3
    assert _count(active, QuestType.WEEKLY_STEP) + _count(active, QuestType.WEEKLY_BOSS) == 7


@pytest.mark.asyncio
async def test_missed_monday_still_generates_the_week(state, clock) -> None:
    # First run of the week happens on Sunday.
    clock.advance(4 * DAY)
    await state.workers["quest_refresh"].run()

    active = state.quest_store.list_active(clock.wall())
    chain = sorted((q for q in active if q.week_chain_id), key=lambda q: q.week_chain_step)
    assert [q.week_chain_step for q in chain] == list(range(7))
    assert chain[-1].quest_type is QuestType.WEEKLY_BOSS
    assert all(q.expires_at == T0 + 4 * DAY + 12 * HOUR for q in chain)


def test_daily_generation_uses_injected_rng(state) -> None:
    manager = QuestManager(state.quest_store, LocalCalendar("UTC"), rng=random.Random(7))

    assert manager.generate_daily_quests(T0) is True
    assert manager.generate_daily_quests(T0 + HOUR) is False
    assert len({q.title for q in state.quest_store.get_daily_quests_since(T0 - 12 * HOUR)}) == 3


def test_cleanup_removes_expired_uncompleted_quests(state) -> None:
    state.quests.generate_daily_quests(T0)

    assert state.quests.cleanup_expired_quests(T0) == 0
    assert state.quests.cleanup_expired_quests(T0 + DAY) == 3


class _ExplodingQuests:
    def __init__(self) -> None:
        self.calls = 0

    def cleanup_expired_quests(self, now_ts: float) -> int:
        self.calls += 1
        raise RuntimeError("disk full")


@pytest.mark.asyncio
async def test_failure_is_retried_three_times_then_terminal() -> None:
    quests = _ExplodingQuests()
    worker = QuestRefreshWorker(quests, FakeClock(), backoff_seconds=0)
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    result = await run_with_retry(worker, worker.retry_policy, sleep=fake_sleep)

    assert result is WorkResult.FAILURE
    assert quests.calls == 4
    assert len(delays) == 3


@pytest.mark.asyncio
async def test_worker_reports_retry_then_failure_by_attempt() -> None:
    worker = QuestRefreshWorker(_ExplodingQuests(), FakeClock())

    assert await worker.run(0) is WorkResult.RETRY
    assert await worker.run(2) is WorkResult.RETRY
    assert await worker.run(3) is WorkResult.FAILURE
