from __future__ import annotations

import pytest

from app.models.base import utc_now
from app.models.report_job import ReportStatus
from app.services.report_job_store import ReportJobStore
from app.services.report_storage import KeyHints, build_report_key


BASE = "/api/v1/reports"


async def _generate(client, headers, **body):
    payload = {"type": "student-progress", **body}
    resp = await client.post(f"{BASE}/generate", json=payload, headers=headers)
    assert resp.status_code == 202, resp.text
    return resp.json()["job_id"]


@pytest.mark.asyncio
async def test_health_echoes_correlation_id(client):
    resp = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.headers["X-Correlation-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_identity_header_is_required(client):
    resp = await client.get(f"{BASE}/catalog")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_catalog_is_role_filtered(client, user_headers):
    resp = await client.get(f"{BASE}/catalog", headers={**user_headers, "X-User-Role": "teacher"})
    assert resp.status_code == 200

    types = {r["type"] for group in resp.json() for r in group["reports"]}
    assert "student-progress" in types
    assert "institution-performance" not in types


@pytest.mark.asyncio
async def test_report_config_and_unknown_type(client, user_headers):
    resp = await client.get(f"{BASE}/config/monthly-report-status", headers=user_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert {f["id"] for f in body["filters"] if f["required"]} == {"month", "year"}
    assert body["available_for"] == sorted(body["available_for"])

    resp = await client.get(f"{BASE}/config/nope", headers=user_headers)
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Report type 'nope' not found", "code": "not_found"}


@pytest.mark.asyncio
async def test_filter_values_endpoint(client, user_headers):
    resp = await client.get(f"{BASE}/filters/student-progress/academicYear", headers=user_headers)
    assert resp.status_code == 200
    assert len(resp.json()) == 5

    resp = await client.get(f"{BASE}/filters/student-progress/isActive", headers=user_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_generate_queues_job_and_status_is_pending(client, user_headers, fake_queue):
    job_id = await _generate(client, user_headers, columns=["name"], format="csv")

    assert fake_queue.entries[0].job_id == job_id
    assert fake_queue.entries[0].config["format"] == "csv"

    resp = await client.get(f"{BASE}/{job_id}/status", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"

    resp = await client.get(f"{BASE}/{job_id}", headers=user_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["configuration"]["filters"]["institutionId"] == "inst-1"
    assert body["requested_by"] == "u1"


@pytest.mark.asyncio
async def test_generate_rejects_bad_input(client, user_headers):
    resp = await client.post(
        f"{BASE}/generate", json={"type": "student-progress", "filters": {"bad key": 1}}, headers=user_headers
    )
    assert resp.status_code == 422

    resp = await client.post(f"{BASE}/generate", json={"type": "nope"}, headers=user_headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"

    resp = await client.post(
        f"{BASE}/generate", json={"type": "monthly-report-status", "filters": {"month": 1}}, headers=user_headers
    )
    assert resp.status_code == 400
    assert "year" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_generate_with_queue_down_is_503(client, user_headers, fake_queue):
    fake_queue.fail_add = True
    resp = await client.post(f"{BASE}/generate", json={"type": "student-progress"}, headers=user_headers)
    assert resp.status_code == 503
    assert resp.json()["code"] == "queue_unavailable"


@pytest.mark.asyncio
async def test_generate_sync_returns_processing(client, user_headers):
    resp = await client.post(f"{BASE}/generate-sync", json={"type": "student-progress"}, headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "processing"
    assert resp.json()["started_at"] is not None


@pytest.mark.asyncio
async def test_unknown_job_is_404(client, user_headers):
    for path in ("missing/status", "missing", "missing/download"):
        resp = await client.get(f"{BASE}/{path}", headers=user_headers)
        assert resp.status_code == 404, path
        assert resp.json()["detail"] == "Report not found"


@pytest.mark.asyncio
async def test_queue_views_and_history(client, user_headers, fake_queue):
    first = await _generate(client, user_headers)
    second = await _generate(client, user_headers)
    await client.post(f"{BASE}/{second}/cancel", headers=user_headers)

    resp = await client.get(f"{BASE}/queue/stats", headers=user_headers)
    assert resp.json()["waiting"] == 2
    assert resp.json()["available"] is True

    active = await client.get(f"{BASE}/queue/active", headers=user_headers)
    assert [j["id"] for j in active.json()] == [first]

    failed = await client.get(f"{BASE}/queue/failed", headers=user_headers)
    assert [j["id"] for j in failed.json()] == [second]

    history = await client.get(f"{BASE}/history", params={"page": 1, "limit": 1}, headers=user_headers)
    body = history.json()
    assert body["total"] == 2
    assert body["pages"] == 2
    assert len(body["items"]) == 1


@pytest.mark.asyncio
async def test_queue_stats_degrade(client, user_headers, fake_queue):
    fake_queue.fail_stats = True
    resp = await client.get(f"{BASE}/queue/stats", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["available"] is False
    assert resp.json()["waiting"] == 0


@pytest.mark.asyncio
async def test_cancel_retry_delete_lifecycle(client, user_headers, fake_queue):
    job_id = await _generate(client, user_headers)
    other = {**user_headers, "X-User-Id": "u2"}

    resp = await client.post(f"{BASE}/{job_id}/cancel", headers=other)
    assert resp.status_code == 403

    resp = await client.delete(f"{BASE}/{job_id}", headers=user_headers)
    assert resp.status_code == 409

    resp = await client.post(f"{BASE}/{job_id}/cancel", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancel_reason"] == "Cancelled by user"

    resp = await client.post(f"{BASE}/{job_id}/cancel", headers=user_headers)
    assert resp.status_code == 409

    resp = await client.post(f"{BASE}/{job_id}/retry", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"
    assert len(fake_queue.entries) == 2

    await client.post(f"{BASE}/{job_id}/cancel", headers=user_headers)
    resp = await client.delete(f"{BASE}/{job_id}", headers=user_headers)
    assert resp.status_code == 204

    resp = await client.get(f"{BASE}/{job_id}/status", headers=user_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_download_completed_report(client, user_headers, session_factory, blob_store):
    job_id = await _generate(client, user_headers, format="csv")

    resp = await client.get(f"{BASE}/{job_id}/download", headers=user_headers)
    assert resp.status_code == 409

    key = build_report_key(KeyHints("student-progress", "csv", "inst-1"))
    blob_store.blobs[key] = b"a,b\n1,2\n"
    async with session_factory() as session:
        store = ReportJobStore(session)
        await store.compare_and_set(job_id, {ReportStatus.PENDING.value}, ReportStatus.PROCESSING.value)
        await store.compare_and_set(
            job_id,
            {ReportStatus.PROCESSING.value},
            ReportStatus.COMPLETED.value,
            file_reference=key,
            file_size=8,
            total_records=1,
            completed_at=utc_now(),
        )
        await session.commit()

    resp = await client.get(f"{BASE}/{job_id}/download", headers=user_headers)
    assert resp.status_code == 200
    assert resp.content == b"a,b\n1,2\n"
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.headers["content-disposition"] == (
        f'attachment; filename="student-progress_{utc_now():%Y-%m-%d}.csv"'
    )


@pytest.mark.asyncio
async def test_storage_health(client, user_headers):
    resp = await client.get(f"{BASE}/storage/health", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json() == {"healthy": True, "backend": "memory"}


@pytest.mark.asyncio
async def test_metrics_exposes_report_counters(client, user_headers):
    await _generate(client, user_headers)
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "report_jobs_enqueued_total" in resp.text
    assert "http_requests_total" in resp.text
