"""
Report Work Queue
=================

At-least-once queue between the API (producer) and the generation workers
(consumers). Durability lives in the ``report_jobs`` table; a queue entry
only carries enough to run one attempt and can always be rebuilt from the
job record by an explicit retry.

Two transports share one interface:

- ``CeleryReportQueue``: Redis-backed Celery queue for real deployments.
- ``InMemoryReportQueue``: asyncio queue for single-process development
  and tests (used when the broker is ``memory://``).
"""

from __future__ import annotations

import abc
import asyncio
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Any, Awaitable, Callable

import redis
import redis.asyncio as aioredis

from app.core.celery_app import broker_enabled, celery_app
from app.core.config import settings
from app.models.base import generate_uuid


logger = logging.getLogger(__name__)


GENERATE_REPORT_TASK = "app.tasks.report_jobs.generate_report_task"

COMPLETED_HISTORY_KEY = "reports:queue:completed"
FAILED_HISTORY_KEY = "reports:queue:failed"


@dataclass(frozen=True)
class QueuePolicy:
    """Retry and retention policy attached to every queue entry."""

    max_attempts: int = 3
    backoff: str = "exponential"  # exponential | fixed
    base_delay: float = 5.0
    retain_completed: int = 100
    retain_failed: int = 50

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before re-delivering after failed ``attempt`` (1-based)."""
        if self.backoff == "fixed":
            return self.base_delay
        return self.base_delay * (2 ** max(0, attempt - 1))

    def is_final(self, attempt: int) -> bool:
        return attempt >= self.max_attempts

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "QueuePolicy":
        return cls(**(payload or {}))

    @classmethod
    def from_settings(cls) -> "QueuePolicy":
        return cls(
            max_attempts=settings.REPORT_QUEUE_MAX_ATTEMPTS,
            backoff=settings.REPORT_QUEUE_BACKOFF,
            base_delay=settings.REPORT_QUEUE_BACKOFF_BASE_SECONDS,
            retain_completed=settings.REPORT_QUEUE_RETAIN_COMPLETED,
            retain_failed=settings.REPORT_QUEUE_RETAIN_FAILED,
        )


@dataclass
class QueueEntry:
    job_id: str
    user_id: str
    report_type: str
    config: dict[str, Any]
    id: str = field(default_factory=generate_uuid)
    attempt: int = 1

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "QueueEntry":
        return cls(**payload)


@dataclass(frozen=True)
class QueueStats:
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.error is None

    @classmethod
    def unavailable(cls, error: str) -> "QueueStats":
        return cls(error=error)


EntryHandler = Callable[[QueueEntry, int, bool], Awaitable[Any]]


class RetryDelivery(Exception):
    """Raised by a handler to ask the transport for another attempt."""


class ReportQueue(abc.ABC):
    @abc.abstractmethod
    async def add(self, entry: QueueEntry, policy: QueuePolicy) -> None:
        ...

    @abc.abstractmethod
    async def remove(self, entry_id: str) -> bool:
        """Best-effort removal of a not-yet-claimed entry."""

    @abc.abstractmethod
    async def stats(self) -> QueueStats:
        """Never raises; degrades to ``QueueStats.unavailable``."""


class CeleryReportQueue(ReportQueue):
    def __init__(self, app=celery_app, *, queue_name: str | None = None, inspect_timeout: float = 1.0):
        self.app = app
        self.queue_name = queue_name or settings.REPORT_QUEUE_NAME
        self.inspect_timeout = inspect_timeout

    async def add(self, entry: QueueEntry, policy: QueuePolicy) -> None:
        await asyncio.to_thread(
            self.app.send_task,
            GENERATE_REPORT_TASK,
            kwargs={"entry": entry.to_payload(), "policy": policy.to_payload()},
            task_id=entry.id,
            queue=self.queue_name,
        )

    async def remove(self, entry_id: str) -> bool:
        # Workers drop revoked ids on receipt; a task already running keeps going.
        await asyncio.to_thread(self.app.control.revoke, entry_id)
        return True

    def _count_tasks(self, by_worker: dict | None) -> int:
        if not by_worker:
            return 0
        total = 0
        for tasks in by_worker.values():
            for task in tasks or []:
                request = task.get("request", task)
                if request.get("name") == GENERATE_REPORT_TASK:
                    total += 1
        return total

    async def stats(self) -> QueueStats:
        try:
            client = aioredis.Redis.from_url(str(self.app.conf.broker_url))
            try:
                waiting, completed, failed = await asyncio.gather(
                    client.llen(self.queue_name),
                    client.llen(COMPLETED_HISTORY_KEY),
                    client.llen(FAILED_HISTORY_KEY),
                )
            finally:
                await client.aclose()

            inspector = self.app.control.inspect(timeout=self.inspect_timeout)
            active = await asyncio.to_thread(inspector.active)
            scheduled = await asyncio.to_thread(inspector.scheduled)

            return QueueStats(
                waiting=int(waiting),
                active=self._count_tasks(active),
                completed=int(completed),
                failed=int(failed),
                delayed=self._count_tasks(scheduled),
            )
        except Exception as e:
            logger.warning("Report queue stats unavailable: %s", e)
            return QueueStats.unavailable(f"{type(e).__name__}: {e}")

    @staticmethod
    def record_outcome(entry: QueueEntry, *, succeeded: bool, policy: QueuePolicy) -> None:
        """Append to the bounded completed/failed history (called from the worker)."""
        key, keep = (
            (COMPLETED_HISTORY_KEY, policy.retain_completed)
            if succeeded
            else (FAILED_HISTORY_KEY, policy.retain_failed)
        )
        try:
            client = redis.Redis.from_url(str(celery_app.conf.broker_url))
            with client.pipeline() as pipe:
                pipe.lpush(key, entry.id)
                pipe.ltrim(key, 0, max(0, keep - 1))
                pipe.execute()
        except redis.RedisError as e:
            logger.warning("Could not record queue outcome for %s: %s", entry.id, e)


class InMemoryReportQueue(ReportQueue):
    """
    Asyncio queue with the same delivery semantics as the Celery transport:
    exclusive delivery per entry, delayed redelivery following the entry's
    policy, bounded outcome history.
    """

    def __init__(self, policy: QueuePolicy | None = None, *, concurrency: int = 1):
        self.policy = policy or QueuePolicy()
        self.concurrency = max(1, concurrency)
        self._ready: asyncio.Queue[str] = asyncio.Queue()
        self._entries: dict[str, QueueEntry] = {}
        self._policies: dict[str, QueuePolicy] = {}
        self._state: dict[str, str] = {}  # waiting | delayed | active
        self._timers: dict[str, asyncio.Task] = {}
        self._completed: deque[str] = deque(maxlen=self.policy.retain_completed)
        self._failed: deque[str] = deque(maxlen=self.policy.retain_failed)
        self._consumers: list[asyncio.Task] = []

    async def add(self, entry: QueueEntry, policy: QueuePolicy) -> None:
        self._entries[entry.id] = entry
        self._policies[entry.id] = policy
        self._state[entry.id] = "waiting"
        self._ready.put_nowait(entry.id)

    async def remove(self, entry_id: str) -> bool:
        state = self._state.get(entry_id)
        if state not in ("waiting", "delayed"):
            return False
        timer = self._timers.pop(entry_id, None)
        if timer is not None:
            timer.cancel()
        self._forget(entry_id)
        return True

    async def stats(self) -> QueueStats:
        states = list(self._state.values())
        return QueueStats(
            waiting=states.count("waiting"),
            active=states.count("active"),
            completed=len(self._completed),
            failed=len(self._failed),
            delayed=states.count("delayed"),
        )

    def _forget(self, entry_id: str) -> None:
        self._entries.pop(entry_id, None)
        self._policies.pop(entry_id, None)
        self._state.pop(entry_id, None)

    async def _redeliver_later(self, entry_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        self._timers.pop(entry_id, None)
        if entry_id in self._entries:
            self._state[entry_id] = "waiting"
            self._ready.put_nowait(entry_id)

    async def deliver_one(self, handler: EntryHandler, entry_id: str) -> None:
        entry = self._entries.get(entry_id)
        if entry is None or self._state.get(entry_id) != "waiting":
            # Removed while waiting.
            return

        policy = self._policies.get(entry_id, self.policy)
        self._state[entry_id] = "active"
        final = policy.is_final(entry.attempt)
        try:
            outcome = await handler(entry, entry.attempt, final)
        except RetryDelivery:
            if final:
                self._failed.append(entry_id)
                self._forget(entry_id)
                return
            delay = policy.delay_for(entry.attempt)
            entry.attempt += 1
            self._state[entry_id] = "delayed"
            self._timers[entry_id] = asyncio.create_task(self._redeliver_later(entry_id, delay))
            return
        except Exception:
            logger.exception("Report queue handler crashed for entry %s", entry_id)
            self._failed.append(entry_id)
            self._forget(entry_id)
            return

        # The handler settles permanent failures itself and reports them as an outcome.
        if outcome == "failed":
            self._failed.append(entry_id)
        else:
            self._completed.append(entry_id)
        self._forget(entry_id)

    async def _consume(self, handler: EntryHandler) -> None:
        while True:
            entry_id = await self._ready.get()
            try:
                await self.deliver_one(handler, entry_id)
            finally:
                self._ready.task_done()

    async def start(self, handler: EntryHandler) -> None:
        if self._consumers:
            return
        self._consumers = [
            asyncio.create_task(self._consume(handler), name=f"report-consumer-{i}")
            for i in range(self.concurrency)
        ]

    async def stop(self) -> None:
        for task in [*self._consumers, *self._timers.values()]:
            task.cancel()
        await asyncio.gather(*self._consumers, *self._timers.values(), return_exceptions=True)
        self._consumers = []
        self._timers.clear()

    async def join(self) -> None:
        """Wait until every entry currently ready has been handled."""
        await self._ready.join()


@lru_cache
def get_report_queue() -> ReportQueue:
    if broker_enabled():
        return CeleryReportQueue()
    return InMemoryReportQueue(QueuePolicy.from_settings(), concurrency=settings.REPORT_WORKER_CONCURRENCY)
