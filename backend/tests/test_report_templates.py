from __future__ import annotations

import pytest

from app.services.report_errors import ReportForbiddenError, ReportNotFoundError
from app.services.report_template_service import ReportTemplateService


BASE = "/api/v1/reports/templates"


def _payload(**overrides):
    payload = {
        "name": "Weekly CSE progress",
        "report_type": "student-progress",
        "columns": ["name", "rollNumber"],
        "filters": {"branchId": "cse"},
        "sort_by": "name",
        "sort_order": "asc",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_save_and_list_visibility(db_session, catalog):
    service = ReportTemplateService(db_session, catalog)

    private = await service.save("u1", _payload())
    public = await service.save("u2", _payload(name="Shared", is_public=True))
    await service.save("u2", _payload(name="Hidden"))
    await service.save("u1", _payload(name="Placements", report_type="placement"))

    assert private.columns == ["name", "rollNumber"]
    assert private.created_by == "u1"

    visible = {t.id for t in await service.list("u1", report_type="student-progress")}
    assert visible == {private.id, public.id}
    assert len(await service.list("u1")) == 3


@pytest.mark.asyncio
async def test_save_unknown_report_type(db_session, catalog):
    with pytest.raises(ReportNotFoundError):
        await ReportTemplateService(db_session, catalog).save("u1", _payload(report_type="nope"))


@pytest.mark.asyncio
async def test_delete_is_owner_only(db_session, catalog):
    service = ReportTemplateService(db_session, catalog)
    template = await service.save("u1", _payload(is_public=True))

    with pytest.raises(ReportForbiddenError):
        await service.delete(template.id, "u2")
    with pytest.raises(ReportNotFoundError):
        await service.delete("missing", "u1")

    await service.delete(template.id, "u1")
    assert await service.list("u1") == []


@pytest.mark.asyncio
async def test_template_endpoints(client, user_headers):
    resp = await client.post(BASE, json=_payload(), headers=user_headers)
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["report_type"] == "student-progress"
    assert created["is_public"] is False

    # Not shadowed by the job routes.
    resp = await client.get(BASE, params={"report_type": "student-progress"}, headers=user_headers)
    assert resp.status_code == 200
    assert [t["id"] for t in resp.json()] == [created["id"]]

    other = {**user_headers, "X-User-Id": "u2"}
    assert (await client.get(BASE, headers=other)).json() == []
    assert (await client.delete(f"{BASE}/{created['id']}", headers=other)).status_code == 403

    assert (await client.delete(f"{BASE}/{created['id']}", headers=user_headers)).status_code == 204
    assert (await client.get(BASE, headers=user_headers)).json() == []


@pytest.mark.asyncio
async def test_template_endpoint_validation(client, user_headers):
    resp = await client.post(BASE, json=_payload(report_type="nope"), headers=user_headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"

    resp = await client.post(BASE, json=_payload(filters={"x": "<b>"}), headers=user_headers)
    assert resp.status_code == 422
