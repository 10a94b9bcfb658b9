# tests/test_enforcement.py

from __future__ import annotations

import pytest

from anvil_guard.workers.base import WorkResult
from anvil_guard.workers.enforcement import EnforcementWorker

from .fakes import DAY, HOUR, T0


def _overdue(state, **kw) -> int:
    return state.task_store.add_task(title="late", created_at=T0 - DAY, deadline=T0 - HOUR, **kw)


@pytest.mark.asyncio
async def test_overdue_without_grace_triggers_penalty(state) -> None:
    _overdue(state)

    assert await state.workers["enforcement"].run() is WorkResult.SUCCESS

    assert state.penalty.is_penalty_active() is True
    assert state.penalty.get_violation_count() == 1


@pytest.mark.asyncio
async def test_grace_day_covers_the_rest_of_the_day(state, clock) -> None:
    _overdue(state)
    state.bonus.add_grace_day()
    worker = state.workers["enforcement"]

    await worker.run()
    clock.advance(6 * HOUR)
    await worker.run()

    assert state.penalty.is_penalty_active() is False
    assert state.bonus.get_grace_days() == 0

    # Next day the cover is gone and there is no grace left.
    clock.advance(DAY)
    await worker.run()
    assert state.penalty.is_penalty_active() is True


@pytest.mark.asyncio
async def test_exempted_overdue_task_is_not_escalated(state) -> None:
    _overdue(state)
    state.bonus.complete_bonus_task(state.bonus.add_bonus_task(title="Run"))

    await state.workers["enforcement"].run()

    assert state.penalty.is_penalty_active() is False


@pytest.mark.asyncio
async def test_hard_violation_ignores_exemptions(state) -> None:
    _overdue(state, is_hard=True)
    state.bonus.complete_bonus_task(state.bonus.add_bonus_task(title="Run"))

    await state.workers["enforcement"].run()

    assert state.penalty.is_penalty_active() is True


@pytest.mark.asyncio
async def test_active_penalty_is_not_stacked(state) -> None:
    _overdue(state)
    worker = state.workers["enforcement"]

    await worker.run()
    await worker.run()

    assert state.penalty.get_violation_count() == 1


@pytest.mark.asyncio
async def test_clearing_all_tasks_clears_the_penalty(state) -> None:
    task_id = _overdue(state)
    worker = state.workers["enforcement"]
    await worker.run()

    state.task_store.complete_task(task_id, T0)
    await worker.run()

    assert state.penalty.is_penalty_active() is False


@pytest.mark.asyncio
async def test_clock_rollback_is_penalized(state, clock) -> None:
    state.task_store.add_task(title="future", created_at=T0, deadline=T0 + DAY)
    state.penalty.observe()
    clock.wall_ts -= 3 * HOUR

    await state.workers["enforcement"].run()

    assert state.penalty.is_penalty_active() is True


@pytest.mark.asyncio
async def test_clock_rollback_penalty_can_be_disabled(state, clock, settings) -> None:
    state.penalty.observe()
    clock.wall_ts -= 3 * HOUR
    worker = EnforcementWorker(
        state.task_store,
        state.penalty,
        state.bonus,
        clock,
        state.calendar,
        penalty_seconds=settings.penalty_seconds,
        penalize_clock_tamper=False,
    )

    await worker.run()

    assert state.penalty.is_penalty_active() is False
    assert state.penalty.snapshot().tamper_count == 1


@pytest.mark.asyncio
async def test_stale_grace_days_expire(state, clock) -> None:
    state.bonus.add_grace_day(earned_at=T0 - 8 * DAY)

    await state.workers["enforcement"].run()

    assert state.bonus.get_grace_days() == 0
