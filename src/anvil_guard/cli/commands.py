# src/anvil_guard/cli/commands.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from ..core.state import AppState
from ..errors import AnvilError
from ..workers.base import RetryPolicy, run_with_retry

CommandHandler = Callable[[AppState, list[str]], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /status, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, args)
        except (ValueError, KeyError) as e:
            return f"Error: {e}"
        except AnvilError as e:
            logger.exception("Command /%s failed", name)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(state: AppState, ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=state.calendar.tz).strftime("%Y-%m-%d %H:%M")


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    verdict = state.engine.evaluate()
    snap = state.penalty.snapshot()
    return (
        "Status:\n"
        f"  Blocked: {'YES' if verdict.blocked else 'no'} ({verdict.reason.value})\n"
        f"  Open non-daily tasks: {state.task_store.count_all_incomplete_non_daily_tasks()}\n"
        f"  Penalty until: {_fmt_ts(state, snap.penalty_active_until)}"
        f" (violations={snap.violation_count}, tamper={snap.tamper_count})\n"
        f"  Grace days: {state.bonus.get_grace_days()}"
        f"  Bonus credits: {state.bonus.get_bonus_task_count()}/{state.bonus.get_required_bonus_for_grace()}\n"
        f"  Contributions: {state.contributions.count_contributions()}\n"
        f"  Timezone: {getattr(state.settings, 'timezone_name', 'UTC')}"
    )


def cmd_blocked(state: AppState, args: list[str]) -> str:
    verdict = state.engine.evaluate()
    lines = [f"Blocked: {'YES' if verdict.blocked else 'no'} ({verdict.reason.value})"]
    for task in state.engine.get_blocking_tasks():
        lines.append(f"  #{task.id} {task.title} (due {_fmt_ts(state, task.deadline)})")
    return "\n".join(lines)


def cmd_tasks(state: AppState, args: list[str]) -> str:
    tasks = state.task_store.get_all_incomplete_tasks()
    if not tasks:
        return "No open tasks."
    lines = ["Open tasks:"]
    for t in tasks:
        flags = "".join(
            [
                "D" if t.is_daily else "-",
                "H" if t.is_hard else "-",
                "R" if t.reminder_sent else "-",
            ]
        )
        lines.append(f"  #{t.id} [{flags}] {t.title} (due {_fmt_ts(state, t.deadline)}, {t.category})")
    return "\n".join(lines)


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add [--daily] [--hard[=N]] <hours> <title...>"""
    is_daily = False
    is_hard = False
    hardness = 0
    rest: list[str] = []
    for a in args:
        if a == "--daily":
            is_daily = True
        elif a.startswith("--hard"):
            is_hard = True
            _, _, level = a.partition("=")
            hardness = int(level) if level else 0
        else:
            rest.append(a)

    if len(rest) < 2:
        return "Usage: /add [--daily] [--hard[=N]] <hours> <title>"

    hours = float(rest[0])
    if hours <= 0:
        return "Hours must be positive."
    now = state.clock.wall()
    task_id = state.task_store.add_task(
        title=" ".join(rest[1:]),
        deadline=now + hours * 3600,
        created_at=now,
        is_daily=is_daily,
        is_hard=is_hard,
        hardness_level=hardness,
    )
    return f"Task #{task_id} added."


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task_id>"
    task_id = int(args[0])
    if state.task_store.complete_task(task_id, state.clock.wall()):
        return f"Task #{task_id} completed."
    return f"Task #{task_id} not found or already completed."


def cmd_hard(state: AppState, args: list[str]) -> str:
    """/hard <task_id> [level|off]"""
    if not args:
        return "Usage: /hard <task_id> [level|off]"
    task = state.task_store.get_task(int(args[0]))
    if task is None:
        return f"Task #{args[0]} not found."
    if task.is_daily:
        return "Daily tasks cannot be hard."

    if len(args) > 1 and args[1].lower() == "off":
        task.is_hard = False
        task.hardness_level = 0
    else:
        task.is_hard = True
        task.hardness_level = max(0, int(args[1])) if len(args) > 1 else task.hardness_level
    state.task_store.update(task)
    if not task.is_hard:
        return f"Task #{task.id} is no longer hard."
    return f"Task #{task.id} is hard (level {task.hardness_level})."


def cmd_penalty(state: AppState, args: list[str]) -> str:
    """/penalty [start <minutes> | clear]"""
    if not args:
        active = state.penalty.is_penalty_active()
        until = state.penalty.get_penalty_end_time()
        return f"Penalty: {'active until ' + _fmt_ts(state, until) if active else 'inactive'}"

    sub = args[0].lower()
    if sub == "start":
        minutes = float(args[1]) if len(args) > 1 else None
        until = state.penalty.trigger_penalty(minutes * 60 if minutes is not None else None)
        return f"Penalty active until {_fmt_ts(state, until)}."
    if sub == "clear":
        state.penalty.clear_penalty()
        return "Penalty cleared."
    return "Usage: /penalty [start <minutes> | clear]"


def cmd_bonus(state: AppState, args: list[str]) -> str:
    """/bonus list | add <scope> <title...> | done <id>"""
    sub = args[0].lower() if args else "list"

    if sub == "list":
        items = state.bonus.list_bonus_tasks()
        if not items:
            return "No bonus tasks."
        return "\n".join(
            f"  #{b.id} {b.title} [{b.scope}] {'done ' + _fmt_ts(state, b.completed_at) if b.completed_at else 'open'}"
            for b in items
        )
    if sub == "add":
        if len(args) < 3:
            return "Usage: /bonus add <scope> <title>"
        bonus_id = state.bonus.add_bonus_task(title=" ".join(args[2:]), scope=args[1])
        return f"Bonus task #{bonus_id} added."
    if sub == "done":
        if len(args) < 2:
            return "Usage: /bonus done <id>"
        ex = state.bonus.complete_bonus_task(int(args[1]))
        return f"Exemption [{ex.scope}] until {_fmt_ts(state, ex.expires_at)}."
    return "Usage: /bonus list | add <scope> <title> | done <id>"


def cmd_grace(state: AppState, args: list[str]) -> str:
    if args and args[0].lower() == "exchange":
        ok = state.bonus.try_exchange_bonus_for_grace()
        return "Exchanged bonus credits for a grace day." if ok else "Not enough bonus credits (or grace is full)."
    return f"Grace days: {state.bonus.get_grace_days()}"


def cmd_run(state: AppState, args: list[str]) -> str:
    """Run one worker now, on the background loop when one is running."""
    if not args or args[0] not in state.workers:
        return f"Usage: /run <{'|'.join(state.workers)}>"

    worker = state.workers[args[0]]
    policy = getattr(worker, "retry_policy", None) or RetryPolicy(max_attempts=1)
    coro = run_with_retry(worker, policy)

    loop = getattr(state, "loop", None)
    if loop is not None and loop.is_running():
        result = asyncio.run_coroutine_threadsafe(coro, loop).result(timeout=300)
    else:
        result = asyncio.run(coro)
    return f"{worker.name}: {result.value}"


registry.register("help", cmd_help, "Show this help", aliases=["h"])
registry.register("status", cmd_status, "Show blocking verdict, penalty and grace state")
registry.register("blocked", cmd_blocked, "Show the verdict and the tasks causing it")
registry.register("tasks", cmd_tasks, "List open tasks")
registry.register("add", cmd_add, "Add a task: /add [--daily] [--hard[=N]] <hours> <title>")
registry.register("done", cmd_done, "Complete a task: /done <id>")
registry.register("hard", cmd_hard, "Mark a task hard: /hard <id> [level|off]")
registry.register("penalty", cmd_penalty, "Penalty: /penalty [start <minutes> | clear]")
registry.register("bonus", cmd_bonus, "Bonus tasks: /bonus list | add <scope> <title> | done <id>")
registry.register("grace", cmd_grace, "Show grace days, /grace exchange to trade bonus credits")
registry.register("run", cmd_run, "Run a worker now: /run <name>")
