"""
HTTP tests for the project, stage and health endpoints.
"""

import pytest


# ── Helpers ──────────────────────────────────────────────────────────────


def _headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture()
def created(client, requester, approver, project_payload, dated_stages):
    body = project_payload(approver.id, requester.id)
    body["process_stages"] = dated_stages()
    res = client.post("/api/v1/projects", json=body, headers=_headers(requester))
    assert res.status_code == 201
    return res.get_json()


class TestProjectsAPI:
    def test_create_returns_stages_and_progress(self, created, requester):
        assert len(created["process_stages"]) == 14
        assert created["progress"] == 0
        assert created["current_process_stage"] == "contract"
        assert created["created_by"] == requester.id

    def test_create_without_mandatory_dates(self, client, requester, approver, project_payload):
        res = client.post("/api/v1/projects", json=project_payload(approver.id, requester.id))
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_BUSINESS_RULE"
        assert "contract" in body["details"]

    def test_create_without_body(self, client):
        res = client.post("/api/v1/projects", data="nope", content_type="text/plain")
        assert res.status_code == 400

    def test_get_and_missing(self, client, created, requester):
        res = client.get(f"/api/v1/projects/{created['id']}", headers=_headers(requester))
        assert res.status_code == 200
        assert res.get_json()["is_favorite"] is False

        res = client.get("/api/v1/projects/9999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_and_stats(self, client, created):
        res = client.get("/api/v1/projects?search=harbor&page_size=5")
        body = res.get_json()
        assert body["total"] == 1
        assert body["page_size"] == 5

        stats = client.get("/api/v1/projects/stats").get_json()
        assert stats["total"] == 1

    def test_update(self, client, created):
        res = client.put(f"/api/v1/projects/{created['id']}", json={"notes": "rush job", "is_urgent": True})
        assert res.status_code == 200
        assert res.get_json()["is_urgent"] is True

    def test_favorite_toggle(self, client, created, requester):
        url = f"/api/v1/projects/{created['id']}/favorite"
        assert client.post(url, headers=_headers(requester)).get_json()["is_favorite"] is True
        assert client.post(url, headers=_headers(requester)).get_json()["is_favorite"] is False
        assert client.post(url).status_code == 400

    def test_delete(self, client, created):
        assert client.delete(f"/api/v1/projects/{created['id']}").status_code == 200
        assert client.get(f"/api/v1/projects/{created['id']}").status_code == 404


class TestStagesAPI:
    def test_list_stages(self, client, created):
        body = client.get(f"/api/v1/projects/{created['id']}/stages").get_json()
        assert [s["stage_order"] for s in body["stages"]] == list(range(1, 15))
        assert body["resolved_stage"] == "contract"

    def test_patch_stage(self, client, created):
        res = client.patch(
            f"/api/v1/projects/{created['id']}/stages/design",
            json={"status": "delayed", "delay_reason": "steel shortage"},
        )
        assert res.status_code == 200
        assert res.get_json()["delay_reason"] == "steel shortage"

    def test_patch_stage_date_rule(self, client, created):
        res = client.patch(f"/api/v1/projects/{created['id']}/stages/contract", json={"end_date": None})
        assert res.status_code == 422

    def test_patch_empty_body(self, client, created):
        res = client.patch(f"/api/v1/projects/{created['id']}/stages/design", json={})
        assert res.status_code == 400

    def test_batch_patch(self, client, created):
        res = client.patch(
            f"/api/v1/projects/{created['id']}/stages",
            json={"updates": [{"stage_name": "contract", "status": "completed"},
                              {"stage_name": "design", "status": "in_progress"}]},
        )
        assert res.status_code == 200
        assert [s["status"] for s in res.get_json()] == ["completed", "in_progress"]

    def test_next_stage(self, client, created):
        body = client.post(f"/api/v1/projects/{created['id']}/stages/next").get_json()
        assert body["advanced_to"]["stage_name"] == "design"
        assert body["current_process_stage"] == "design"
        assert body["progress"] == 7


class TestHealthAPI:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"

    def test_unknown_route(self, client):
        assert client.get("/api/v1/nowhere").status_code == 404
