# src/anvil_guard/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the worker loop in a background thread with its own event loop,
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import threading
from dataclasses import dataclass

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..workers.base import RetryPolicy, run_worker_loop

logger = logging.getLogger(__name__)


@dataclass
class WorkerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    task: asyncio.Task

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.task.cancel)
        except RuntimeError:
            logger.debug("Worker loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_workers_in_background(state: AppState) -> WorkerBackgroundRunner | None:
    """
    Run the periodic workers in a background thread.

    The console REPL blocks on input(), the workers are async; the thread owns
    its own event loop, which is published as state.loop so console commands
    can schedule one-off runs onto it.
    """
    settings = state.settings
    policy = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
    )

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        task = loop.create_task(
            run_worker_loop(
                list(state.workers.values()),
                policy,
                interval_seconds=settings.worker_interval_seconds,
            )
        )
        holder["loop"] = loop
        holder["task"] = task
        state.loop = loop
        ready.set()

        try:
            with contextlib.suppress(asyncio.CancelledError):
                loop.run_until_complete(task)
        finally:
            state.loop = None
            close = getattr(state.notifier, "close", None)
            if close is not None:
                try:
                    loop.run_until_complete(close())
                except Exception:
                    logger.debug("Notifier close failed.", exc_info=True)
            loop.close()

    t = threading.Thread(target=runner, name="anvil-workers", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    task = holder.get("task")
    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(task, asyncio.Task):
        logger.error("Worker thread did not initialize properly.")
        return None

    logger.info(
        "Worker thread started (%d workers, every %.0fs).",
        len(state.workers),
        settings.worker_interval_seconds,
    )
    return WorkerBackgroundRunner(thread=t, loop=loop, task=task)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logging.getLogger("nio").setLevel(max(console_level, logging.INFO))

    logger.info("Starting %s...", getattr(settings, "app_name", "anvil"))

    state = create_initial_state(settings=settings)
    runner = start_workers_in_background(state)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
    except ValueError:
        # Not on the main thread (embedded use).
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
        else:
            logger.info("Console disabled. Running workers only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
