# src/anvil_guard/workers/base.py

"""
Worker scheduling.

Workers are idempotent state mutators run on a timer. Each run reports one of
SUCCESS / RETRY / FAILURE. `run_with_retry` re-invokes a worker that asked for
a retry, with exponential backoff, up to the policy's attempt budget; an
exhausted budget is reported as FAILURE and the next scheduled run starts
fresh. `run_worker_loop` is the periodic trigger.

To stop the loop, cancel the coroutine/task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

logger = logging.getLogger(__name__)


class WorkResult(StrEnum):
    SUCCESS = "success"
    RETRY = "retry"
    FAILURE = "failure"


class Worker(Protocol):
    name: str

    async def run(self, attempt: int = 0) -> WorkResult: ...


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 30.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return max(0.0, self.backoff_seconds) * (self.multiplier ** max(0, attempt))


Sleeper = Callable[[float], Awaitable[None]]


async def run_with_retry(
    worker: Worker,
    policy: RetryPolicy,
    *,
    sleep: Sleeper = asyncio.sleep,
) -> WorkResult:
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            result = await worker.run(attempt)
        except Exception:
            logger.exception("Worker %s raised (attempt %d/%d)", worker.name, attempt + 1, attempts)
            result = WorkResult.RETRY

        if result is not WorkResult.RETRY:
            logger.debug("Worker %s -> %s", worker.name, result.value)
            return result

        if attempt + 1 < attempts:
            delay = policy.delay_for(attempt)
            logger.info(
                "Worker %s asked for retry (attempt %d/%d), next in %.1fs",
                worker.name,
                attempt + 1,
                attempts,
                delay,
            )
            await sleep(delay)

    logger.error("Worker %s: retries exhausted, giving up until the next scheduled run", worker.name)
    return WorkResult.FAILURE


async def run_worker_loop(
    workers: Sequence[Worker],
    policy: RetryPolicy,
    *,
    interval_seconds: float = 900.0,
    sleep: Sleeper = asyncio.sleep,
) -> None:
    """
    Periodic trigger: run every worker in order, then sleep.

    Workers run sequentially so two maintenance passes never interleave
    their writes.
    """
    sleep_s = max(0.5, float(interval_seconds))
    while True:
        for worker in workers:
            # A worker may carry its own attempt budget.
            worker_policy = getattr(worker, "retry_policy", None) or policy
            await run_with_retry(worker, worker_policy, sleep=sleep)
        await sleep(sleep_s)
