from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from app.services.report_queue import (
    GENERATE_REPORT_TASK,
    CeleryReportQueue,
    InMemoryReportQueue,
    QueueEntry,
    QueuePolicy,
    RetryDelivery,
)


def _entry(job_id: str = "job-1") -> QueueEntry:
    return QueueEntry(job_id=job_id, user_id="u1", report_type="student-progress", config={"format": "csv"})


def test_exponential_backoff_doubles_from_base():
    policy = QueuePolicy(base_delay=5)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [5, 10, 20]


def test_fixed_backoff():
    policy = QueuePolicy(backoff="fixed", base_delay=7)
    assert policy.delay_for(1) == policy.delay_for(3) == 7


def test_final_attempt():
    policy = QueuePolicy(max_attempts=3)
    assert not policy.is_final(2)
    assert policy.is_final(3)


def test_policy_and_entry_payloads_are_plain_dicts():
    policy = QueuePolicy(max_attempts=5, retain_failed=10)
    assert QueuePolicy.from_payload(policy.to_payload()) == policy
    assert QueuePolicy.from_payload(None) == QueuePolicy()

    entry = _entry()
    restored = QueueEntry.from_payload(entry.to_payload())
    assert restored == entry


@pytest.mark.asyncio
async def test_in_memory_redelivers_after_retry_request():
    queue = InMemoryReportQueue(QueuePolicy(base_delay=0.01, max_attempts=3))
    entry = _entry()
    await queue.add(entry, queue.policy)
    seen: list[tuple[int, bool]] = []

    async def handler(e, attempt, final):
        seen.append((attempt, final))
        if attempt == 1:
            raise RetryDelivery()

    await queue.deliver_one(handler, entry.id)
    assert (await queue.stats()).delayed == 1

    await asyncio.sleep(0.05)
    assert (await queue.stats()).waiting == 1

    await queue.deliver_one(handler, entry.id)

    assert seen == [(1, False), (2, False)]
    stats = await queue.stats()
    assert (stats.waiting, stats.delayed, stats.completed, stats.failed) == (0, 0, 1, 0)
    await queue.stop()


@pytest.mark.asyncio
async def test_in_memory_retry_on_final_attempt_counts_as_failed():
    queue = InMemoryReportQueue(QueuePolicy(max_attempts=1))
    entry = _entry()
    await queue.add(entry, queue.policy)

    async def handler(e, attempt, final):
        assert final is True
        raise RetryDelivery()

    await queue.deliver_one(handler, entry.id)

    stats = await queue.stats()
    assert (stats.completed, stats.failed, stats.delayed) == (0, 1, 0)


@pytest.mark.asyncio
async def test_in_memory_failed_outcome_counts_as_failed():
    queue = InMemoryReportQueue()
    done, failed = _entry("job-a"), _entry("job-b")
    await queue.add(done, queue.policy)
    await queue.add(failed, queue.policy)

    async def handler(e, attempt, final):
        return "failed" if e.job_id == "job-b" else "completed"

    await queue.deliver_one(handler, done.id)
    await queue.deliver_one(handler, failed.id)

    stats = await queue.stats()
    assert (stats.completed, stats.failed) == (1, 1)


@pytest.mark.asyncio
async def test_in_memory_handler_crash_counts_as_failed():
    queue = InMemoryReportQueue()
    entry = _entry()
    await queue.add(entry, queue.policy)

    async def handler(e, attempt, final):
        raise RuntimeError("bug")

    await queue.deliver_one(handler, entry.id)
    assert (await queue.stats()).failed == 1


@pytest.mark.asyncio
async def test_remove_only_affects_unclaimed_entries():
    queue = InMemoryReportQueue()
    waiting, running = _entry("job-a"), _entry("job-b")
    await queue.add(waiting, queue.policy)
    await queue.add(running, queue.policy)

    removed_while_active: list[bool] = []

    async def handler(e, attempt, final):
        removed_while_active.append(await queue.remove(e.id))

    await queue.deliver_one(handler, running.id)
    assert removed_while_active == [False]

    assert await queue.remove(waiting.id) is True
    assert await queue.remove("unknown") is False

    calls: list[str] = []

    async def never(e, attempt, final):
        calls.append(e.id)

    # A removed entry is skipped when its id comes up.
    await queue.deliver_one(never, waiting.id)
    assert calls == []
    assert (await queue.stats()).waiting == 0


@pytest.mark.asyncio
async def test_consumers_process_entries_until_stopped():
    queue = InMemoryReportQueue(concurrency=2)
    handled: list[str] = []

    async def handler(e, attempt, final):
        handled.append(e.job_id)

    await queue.start(handler)
    for i in range(3):
        await queue.add(_entry(f"job-{i}"), queue.policy)
    await asyncio.wait_for(queue.join(), timeout=2)
    await queue.stop()

    assert sorted(handled) == ["job-0", "job-1", "job-2"]
    assert (await queue.stats()).completed == 3


class _FakeCelery:
    def __init__(self, broker_url: str = "redis://localhost:6379/0"):
        self.conf = SimpleNamespace(broker_url=broker_url)
        self.sent: list[dict] = []
        self.revoked: list[str] = []
        self.control = SimpleNamespace(revoke=self.revoked.append)

    def send_task(self, name, kwargs=None, task_id=None, queue=None):
        self.sent.append({"name": name, "kwargs": kwargs, "task_id": task_id, "queue": queue})


@pytest.mark.asyncio
async def test_celery_queue_sends_task_with_entry_id():
    app = _FakeCelery()
    queue = CeleryReportQueue(app, queue_name="q.reports")
    entry = _entry()
    policy = QueuePolicy(max_attempts=4)

    await queue.add(entry, policy)
    await queue.remove(entry.id)

    assert app.sent == [
        {
            "name": GENERATE_REPORT_TASK,
            "kwargs": {"entry": entry.to_payload(), "policy": policy.to_payload()},
            "task_id": entry.id,
            "queue": "q.reports",
        }
    ]
    assert app.revoked == [entry.id]


@pytest.mark.asyncio
async def test_celery_queue_stats_degrade_when_broker_unusable():
    queue = CeleryReportQueue(_FakeCelery(broker_url="not-a-redis-url"))

    stats = await queue.stats()

    assert stats.available is False
    assert stats.error
    assert (stats.waiting, stats.active, stats.completed, stats.failed, stats.delayed) == (0, 0, 0, 0, 0)


def test_count_tasks_only_counts_report_generation():
    queue = CeleryReportQueue(_FakeCelery())
    by_worker = {
        "w1": [{"name": GENERATE_REPORT_TASK}, {"name": "other.task"}],
        "w2": [{"request": {"name": GENERATE_REPORT_TASK}}],
        "w3": None,
    }
    assert queue._count_tasks(by_worker) == 2
    assert queue._count_tasks(None) == 0
