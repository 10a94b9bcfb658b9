# tests/test_commands.py

from __future__ import annotations

from anvil_guard.cli.bootstrap import create_initial_state
from anvil_guard.cli.commands import CommandRegistry, registry
from anvil_guard.connectors.console_connector import run_console_loop
from anvil_guard.connectors.notifier import LogNotifier

from .fakes import HOUR, T0


def test_command_registry_routes_and_aliases(state) -> None:
    reg = CommandRegistry()
    seen: list[list[str]] = []

    def handler(state, args):
        seen.append(args)
        return "ok"

    reg.register("ping", handler, "Ping", aliases=["p"])

    assert reg.handle(state, "/ping a b") == "ok"
    assert reg.handle(state, "/P") == "ok"
    assert seen == [["a", "b"], []]
    assert "/ping - Ping" in reg.build_help()


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_bad_arguments_become_error_replies(state) -> None:
    assert (registry.handle(state, "/done abc") or "").startswith("Error:")
    assert (registry.handle(state, "/bonus done 42") or "").startswith("Error:")


def test_add_done_and_status(state) -> None:
    assert registry.handle(state, "/add --hard=1 5 Finish slides") == "Task #1 added."
    task = state.task_store.get_task(1)
    assert task.title == "Finish slides"
    assert task.is_hard is True
    assert task.hardness_level == 1
    assert task.deadline == T0 + 5 * HOUR

    status = registry.handle(state, "/status") or ""
    assert "Blocked: YES (hardness)" in status

    assert registry.handle(state, "/done 1") == "Task #1 completed."
    assert registry.handle(state, "/done 1") == "Task #1 not found or already completed."
    assert "Blocked: no (no_tasks)" in (registry.handle(state, "/blocked") or "")


def test_hard_command_toggles_hardness(state) -> None:
    registry.handle(state, "/add 30 Long essay")

    assert registry.handle(state, "/hard 1 2") == "Task #1 is hard (level 2)."
    assert state.engine.is_blocked() is True

    assert registry.handle(state, "/hard 1 off") == "Task #1 is no longer hard."
    assert state.engine.is_blocked() is False


def test_penalty_and_bonus_commands(state) -> None:
    registry.handle(state, "/add 10 Essay")

    assert "active until" in (registry.handle(state, "/penalty start 30") or "")
    assert state.engine.is_blocked() is True
    assert registry.handle(state, "/penalty clear") == "Penalty cleared."
    assert registry.handle(state, "/penalty") == "Penalty: inactive"

    assert registry.handle(state, "/bonus add category:work Tidy desk") == "Bonus task #1 added."
    assert "Exemption [category:work]" in (registry.handle(state, "/bonus done 1") or "")
    assert "#1 Tidy desk [category:work] done" in (registry.handle(state, "/bonus") or "")
    assert registry.handle(state, "/grace") == "Grace days: 0"


def test_run_command_runs_a_worker(state) -> None:
    assert registry.handle(state, "/run midnight_contribution") == "midnight_contribution: success"
    assert state.contributions.count_contributions() == 1
    assert "Usage: /run" in (registry.handle(state, "/run nope") or "")


def test_bootstrap_wires_every_worker(state) -> None:
    assert set(state.workers) == {
        "daily_reset",
        "midnight_contribution",
        "reminder",
        "quest_refresh",
        "enforcement",
    }


def test_bootstrap_defaults_to_log_notifier(settings, clock) -> None:
    s = create_initial_state(settings=settings, clock=clock)

    assert isinstance(s.notifier, LogNotifier)


def test_console_loop_handles_commands_until_exit(state, monkeypatch, capsys) -> None:
    lines = iter(["/tasks", "hello", "/exit", "/status"])
    monkeypatch.setattr("builtins.input", lambda _prompt="": next(lines))

    run_console_loop(state)

    out = capsys.readouterr().out
    assert "No open tasks." in out
    assert "Commands start with '/'" in out
    assert "Status:" not in out
