"""
HTTP tests for approval requests, activity logs, notifications and users.
"""

import pytest

from fabtrack.models import db
from fabtrack.models.history_log import HistoryLog


# ── Helpers ──────────────────────────────────────────────────────────────


def _as(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture()
def approval(client, project, requester, approver):
    res = client.post(
        f"/api/v1/projects/{project.id}/approval-requests",
        json={"approver_id": approver.id, "memo": "Confirm paint colour", "category": "production"},
        headers=_as(requester),
    )
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# APPROVALS
# ═════════════════════════════════════════════════════════════════════════


class TestApprovalsAPI:
    def test_create(self, approval):
        assert approval["status"] == "pending"
        assert approval["category"] == "production"

    def test_create_requires_user_and_approver(self, client, project, approver):
        url = f"/api/v1/projects/{project.id}/approval-requests"
        assert client.post(url, json={"approver_id": approver.id, "memo": "m"}).status_code == 400
        res = client.post(url, json={"memo": "m"}, headers=_as(approver))
        assert res.status_code == 400

    def test_respond_then_conflict(self, client, approval, approver):
        url = f"/api/v1/approval-requests/{approval['id']}/respond"
        res = client.post(url, json={"status": "approved", "response_memo": "fine"}, headers=_as(approver))
        assert res.status_code == 200
        assert res.get_json()["success"] is True

        res = client.post(url, json={"status": "rejected"}, headers=_as(approver))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["details"]["status"] == "approved"

    def test_respond_wrong_user(self, client, approval, requester):
        res = client.post(
            f"/api/v1/approval-requests/{approval['id']}/respond",
            json={"status": "approved"}, headers=_as(requester),
        )
        assert res.status_code == 403

    def test_create_with_bad_attachments(self, client, project, requester, approver):
        res = client.post(
            f"/api/v1/projects/{project.id}/approval-requests",
            json={"approver_id": approver.id, "memo": "m", "attachments": [{"file_name": "a.pdf"}]},
            headers=_as(requester),
        )
        assert res.status_code == 422
        assert client.get(f"/api/v1/projects/{project.id}/approval-requests").get_json() == []

    def test_respond_missing_status(self, client, approval, approver):
        res = client.post(f"/api/v1/approval-requests/{approval['id']}/respond", json={}, headers=_as(approver))
        assert res.status_code == 400

    def test_list_and_pending(self, client, approval, project, approver):
        rows = client.get(f"/api/v1/projects/{project.id}/approval-requests?status=pending").get_json()
        assert [r["id"] for r in rows] == [approval["id"]]

        pending = client.get("/api/v1/approvals/pending", headers=_as(approver)).get_json()
        assert len(pending["received"]) == 1

    def test_delete_requires_admin(self, client, approval, approver, admin):
        url = f"/api/v1/approval-requests/{approval['id']}"
        assert client.delete(url, headers=_as(approver)).status_code == 403
        assert client.delete(url, headers=_as(admin)).status_code == 200


# ═════════════════════════════════════════════════════════════════════════
# LOGS
# ═════════════════════════════════════════════════════════════════════════


class TestLogsAPI:
    def test_create_and_list(self, client, project, requester):
        res = client.post(
            f"/api/v1/projects/{project.id}/logs",
            json={"category": "loading", "content": "truck booked"},
            headers=_as(requester),
        )
        assert res.status_code == 201

        body = client.get(f"/api/v1/projects/{project.id}/logs").get_json()
        assert body["total"] == 1
        assert body["logs"][0]["content"] == "truck booked"

    def test_global_feed_filters(self, client, approval, approver):
        client.post(
            f"/api/v1/approval-requests/{approval['id']}/respond",
            json={"status": "rejected"}, headers=_as(approver),
        )
        body = client.get("/api/v1/logs?log_type=approval_response").get_json()
        assert body["total"] == 1
        assert body["logs"][0]["approval_status"] == "rejected"

        assert client.get("/api/v1/logs").get_json()["total"] == 2

    def test_user_logs(self, client, approval, requester):
        body = client.get(f"/api/v1/users/{requester.id}/logs").get_json()
        assert body["total"] == 1

    def test_delete_log(self, client, project, requester, approver):
        log_id = client.post(
            f"/api/v1/projects/{project.id}/logs",
            json={"category": "loading", "content": "x"}, headers=_as(requester),
        ).get_json()["id"]

        assert client.delete(f"/api/v1/logs/{log_id}", headers=_as(approver)).status_code == 403
        assert client.delete(f"/api/v1/logs/{log_id}", headers=_as(requester)).status_code == 200
        assert db.session.get(HistoryLog, log_id).is_deleted is True

    def test_add_attachments(self, client, project, requester, approver):
        log_id = client.post(
            f"/api/v1/projects/{project.id}/logs",
            json={"category": "loading", "content": "x"}, headers=_as(requester),
        ).get_json()["id"]
        files = [{"file_path": f"p/{project.id}/slip.pdf", "file_name": "slip.pdf", "file_size": 10}]
        url = f"/api/v1/logs/{log_id}/attachments"

        res = client.post(url, json={"attachments": files}, headers=_as(requester))
        assert res.status_code == 201
        body = res.get_json()
        assert len(body) == 1
        assert body[0]["uploaded_by"] == requester.id

        assert client.post(url, json={"attachments": files}, headers=_as(approver)).status_code == 403
        assert client.post(url, json={}, headers=_as(requester)).status_code == 400
        assert client.post(url, json={"attachments": [{"file_name": "x"}]}, headers=_as(requester)).status_code == 422
        assert len(db.session.get(HistoryLog, log_id).attachments) == 1


# ═════════════════════════════════════════════════════════════════════════
# NOTIFICATIONS & USERS
# ═════════════════════════════════════════════════════════════════════════


class TestNotificationsAPI:
    def test_bell(self, client, approval, approver):
        assert client.get("/api/v1/notifications/unread-count", headers=_as(approver)).get_json() == {
            "unread_count": 1,
        }
        items = client.get("/api/v1/notifications", headers=_as(approver)).get_json()["items"]
        nid = items[0]["id"]

        assert client.post(f"/api/v1/notifications/{nid}/read", headers=_as(approver)).status_code == 200
        assert client.get("/api/v1/notifications/unread-count", headers=_as(approver)).get_json()[
            "unread_count"] == 0
        assert client.delete(f"/api/v1/notifications/{nid}", headers=_as(approver)).status_code == 200

    def test_read_all_and_many(self, client, approval, approver):
        res = client.post("/api/v1/notifications/read-many", json={"ids": "1"}, headers=_as(approver))
        assert res.status_code == 400
        assert client.post("/api/v1/notifications/read-all", headers=_as(approver)).get_json()["marked_read"] == 1

    def test_requires_user(self, client):
        assert client.get("/api/v1/notifications").status_code == 400


class TestUsersAPI:
    def test_sign_up_and_approve(self, client, admin):
        res = client.post("/api/v1/users", json={"email": "w@fabworks.com", "name": "Welder"})
        assert res.status_code == 201
        uid = res.get_json()["id"]

        pending = client.get("/api/v1/users?status=pending").get_json()
        assert [u["id"] for u in pending] == [uid]

        res = client.post(f"/api/v1/users/{uid}/approve", headers=_as(admin))
        assert res.get_json()["approval_status"] == "approved"
        assert client.get(f"/api/v1/users/{uid}/status").get_json()["status"] == "approved"

    def test_reject_and_delete(self, client, admin, make_user):
        user = make_user("x@fabworks.com", approved=False)
        res = client.post(f"/api/v1/users/{user.id}/reject", json={"reason": "dup"}, headers=_as(admin))
        assert res.get_json()["rejection_reason"] == "dup"
        assert client.delete(f"/api/v1/users/{user.id}", headers=_as(admin)).status_code == 200

    def test_sign_up_validation(self, client):
        assert client.post("/api/v1/users", json={"email": "bad"}).status_code == 422
