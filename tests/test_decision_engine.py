# tests/test_decision_engine.py

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from anvil_guard.core.decision import BlockReason, DecisionEngine
from anvil_guard.errors import StoreUnavailableError

from .fakes import DAY, HOUR, T0, BrokenTaskRepo


def _add(state, *, hours: float, created_hours_ago: float = 1, **kw) -> int:
    return state.task_store.add_task(
        title=kw.pop("title", "task"),
        created_at=T0 - created_hours_ago * HOUR,
        deadline=T0 + hours * HOUR,
        **kw,
    )


def test_no_tasks_is_not_blocked_even_with_penalty(state) -> None:
    state.penalty.trigger_penalty(3600)

    verdict = state.engine.evaluate()

    assert verdict.blocked is False
    assert verdict.reason is BlockReason.NO_TASKS


def test_only_daily_tasks_never_block(state) -> None:
    _add(state, hours=-0.5, is_daily=True)

    assert state.engine.is_blocked() is False


def test_five_open_tasks_in_good_standing_are_not_blocked(state) -> None:
    for i in range(5):
        _add(state, hours=10 + i, title=f"t{i}")

    verdict = state.engine.evaluate()
    assert verdict.blocked is False
    assert verdict.reason is BlockReason.CLEAR


def test_penalty_blocks_halfway_through_its_window(state, clock) -> None:
    for i in range(5):
        _add(state, hours=48, title=f"t{i}")
    state.penalty.trigger_penalty(3600)

    clock.advance(1800)

    verdict = state.engine.evaluate()
    assert verdict.blocked is True
    assert verdict.reason is BlockReason.PENALTY


def test_hardness_violation_blocks_before_the_deadline(state) -> None:
    # Due in 30h, but hardness level 2 means it had to be done 48h ahead.
    _add(state, hours=30, is_hard=True, hardness_level=2)

    verdict = state.engine.evaluate()
    assert verdict.blocked is True
    assert verdict.reason is BlockReason.HARDNESS


def test_hard_tasks_ignore_exemptions(state) -> None:
    _add(state, hours=-1, is_hard=True)
    bonus_id = state.bonus.add_bonus_task(title="Run 5k", scope="all")
    state.bonus.complete_bonus_task(bonus_id)

    assert state.engine.evaluate().reason is BlockReason.HARDNESS


def test_overdue_task_blocks(state) -> None:
    _add(state, hours=-1, created_hours_ago=5)

    verdict = state.engine.evaluate()
    assert verdict.blocked is True
    assert verdict.reason is BlockReason.OVERDUE


def test_exemption_covers_overdue_task_for_its_window(state, clock) -> None:
    _add(state, hours=-1, created_hours_ago=5)
    bonus_id = state.bonus.add_bonus_task(title="Clean the desk", scope="all")
    state.bonus.complete_bonus_task(bonus_id)

    assert state.engine.evaluate().reason is BlockReason.CLEAR

    clock.advance(2 * HOUR)
    assert state.engine.evaluate().reason is BlockReason.OVERDUE


def test_scoped_exemption_only_covers_its_target(state) -> None:
    overdue_id = _add(state, hours=-1, created_hours_ago=5, category="Work")
    _add(state, hours=-2, created_hours_ago=5, category="Home")

    bonus_id = state.bonus.add_bonus_task(title="Inbox zero", scope=f"task:{overdue_id}")
    state.bonus.complete_bonus_task(bonus_id)
    assert state.engine.evaluate().reason is BlockReason.OVERDUE

    bonus_id = state.bonus.add_bonus_task(title="Laundry", scope="category:home")
    state.bonus.complete_bonus_task(bonus_id)
    assert state.engine.evaluate().reason is BlockReason.CLEAR


def test_precedence_penalty_over_hardness(state) -> None:
    _add(state, hours=-1, is_hard=True)
    state.penalty.trigger_penalty()

    assert state.engine.evaluate().reason is BlockReason.PENALTY


def test_future_deadline_with_no_hardness_is_clear(state) -> None:
    _add(state, hours=2 * DAY / HOUR, is_hard=True, hardness_level=1)

    assert state.engine.is_blocked() is False


def test_get_blocking_tasks_deduplicates(state) -> None:
    hard_id = _add(state, hours=-1, is_hard=True)
    soft_id = _add(state, hours=-2, created_hours_ago=5)
    _add(state, hours=5)

    ids = [t.id for t in state.engine.get_blocking_tasks()]
    assert sorted(ids) == sorted([hard_id, soft_id])


def test_store_errors_propagate_instead_of_allowing(state, clock) -> None:
    engine = DecisionEngine(BrokenTaskRepo(), state.penalty, state.bonus, clock)

    with pytest.raises(StoreUnavailableError):
        engine.is_blocked()


def test_evaluate_performs_no_task_writes(state) -> None:
    task_id = _add(state, hours=-1)
    before = state.task_store.get_task(task_id)

    state.engine.evaluate()
    state.engine.evaluate()

    assert state.task_store.get_task(task_id) == before


def test_is_blocked_from_many_threads_while_workers_write(state) -> None:
    _add(state, hours=-1, title="late")
    enforcement = state.workers["enforcement"]

    def writer() -> None:
        for i in range(10):
            task_id = _add(state, hours=5 + i, title=f"new{i}")
            asyncio.run(enforcement.run())
            state.task_store.complete_task(task_id, T0)

    with ThreadPoolExecutor(max_workers=6) as pool:
        writing = pool.submit(writer)
        verdicts = list(pool.map(lambda _: state.engine.is_blocked(), range(100)))
        writing.result()

    assert verdicts == [True] * 100
    assert state.penalty.get_violation_count() == 1
    assert state.engine.evaluate().reason is BlockReason.PENALTY
