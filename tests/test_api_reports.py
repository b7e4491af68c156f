"""
API tests — reports, job assets, review surface, notifications and health.

Requests authenticate with X-User-Id / X-User-Role headers (TRUST_ACTOR_HEADERS
is on in TestingConfig). Error bodies follow utils.errors:
    {"error", "code", "category", "retryable", "details"}
"""

import pytest
from sqlalchemy.exc import OperationalError

from neta_ops.services import report_store

JOB = "job-1001"


# ── Fixtures ────────────────────────────────────────────────────────────

@pytest.fixture()
def report(client, author_headers):
    res = client.post(
        f"/api/v1/jobs/{JOB}/reports",
        json={
            "title": "3-Low Voltage Cable Test ATS",
            "report_type": "low-voltage-cable-test",
            "report_data": {"x": 1},
        },
        headers=author_headers,
    )
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def submitted(client, author_headers, report):
    res = client.post(
        f"/api/v1/reports/{report['id']}/transition",
        json={"action": "submit"},
        headers=author_headers,
    )
    assert res.status_code == 200
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# REPORTS
# ═════════════════════════════════════════════════════════════════════════

class TestReportEndpoints:
    def test_create_returns_draft(self, report):
        assert report["status"] == "draft"
        assert report["current_version"] == 1
        assert report["created_by"] == "tech-1"
        assert report["available_actions"] == ["submit"]
        assert report["asset_id"] is None
        assert len(report["revision_history"]) == 1

    def test_create_requires_title(self, client, author_headers):
        res = client.post(
            f"/api/v1/jobs/{JOB}/reports",
            json={"report_type": "panelboard-report", "report_data": {}},
            headers=author_headers,
        )
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert body["category"] == "user"
        assert body["retryable"] is False

    def test_get_and_history(self, client, author_headers, report):
        res = client.get(f"/api/v1/reports/{report['id']}", headers=author_headers)
        assert res.status_code == 200
        assert res.get_json()["report_data"] == {"x": 1}

        res = client.get(f"/api/v1/reports/{report['id']}/history", headers=author_headers)
        assert res.status_code == 200
        history = res.get_json()
        assert history["current_version"] == 1
        assert [h["status"] for h in history["items"]] == ["draft"]

    def test_edit_draft(self, client, author_headers, report):
        res = client.put(
            f"/api/v1/reports/{report['id']}",
            json={"title": "3-LV Cable Test", "report_data": {"x": 2}},
            headers=author_headers,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["title"] == "3-LV Cable Test"
        assert body["report_data"] == {"x": 2}
        assert body["current_version"] == 1

    def test_edit_after_submit_conflicts(self, client, author_headers, submitted):
        res = client.put(
            f"/api/v1/reports/{submitted['id']}", json={"title": "late"}, headers=author_headers,
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_submit_links_asset(self, client, author_headers, submitted):
        assert submitted["status"] == "submitted"
        assert submitted["current_version"] == 2
        assert submitted["asset_id"] is not None

        res = client.get(f"/api/v1/assets/{submitted['asset_id']}", headers=author_headers)
        asset = res.get_json()
        assert asset["status"] == "ready_for_review"
        assert asset["report_id"] == submitted["id"]
        assert asset["job_ids"] == [JOB]

    def test_review_approve(self, client, reviewer_headers, submitted):
        res = client.post(
            f"/api/v1/reports/{submitted['id']}/review",
            json={"decision": "approved", "comments": "looks good", "expected_version": 2},
            headers=reviewer_headers,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "approved"
        assert body["review_comments"] == "looks good"
        assert body["available_actions"] == ["archive"]

    def test_reject_without_comments(self, client, reviewer_headers, submitted):
        res = client.post(
            f"/api/v1/reports/{submitted['id']}/transition",
            json={"action": "reject"},
            headers=reviewer_headers,
        )
        assert res.status_code == 422
        details = res.get_json()["details"]
        assert details["comments"] == "required"
        assert details["action"] == "reject"
        assert details["report_id"] == submitted["id"]

    def test_technician_cannot_approve(self, client, author_headers, submitted):
        res = client.post(
            f"/api/v1/reports/{submitted['id']}/transition",
            json={"action": "approve"},
            headers=author_headers,
        )
        assert res.status_code == 403
        body = res.get_json()
        assert body["code"] == "ERR_FORBIDDEN"
        assert body["details"]["required_permission"] == "report_approve"

    def test_anonymous_is_401(self, client, report):
        res = client.get(f"/api/v1/reports/{report['id']}")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_stale_version_is_retryable_conflict(self, client, reviewer_headers, submitted):
        res = client.post(
            f"/api/v1/reports/{submitted['id']}/transition",
            json={"action": "approve", "expected_version": 1},
            headers=reviewer_headers,
        )
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_CONCURRENT"
        assert body["category"] == "system"
        assert body["retryable"] is True
        assert body["details"]["current_version"] == 2

    def test_double_submit_conflicts(self, client, author_headers, submitted):
        res = client.post(
            f"/api/v1/reports/{submitted['id']}/transition",
            json={"action": "submit"},
            headers=author_headers,
        )
        assert res.status_code == 409
        details = res.get_json()["details"]
        assert details["current_status"] == "submitted"
        assert details["attempted_status"] == "submitted"

    def test_store_failure_is_503(self, client, reviewer_headers, submitted, monkeypatch):
        def _fail(*args, **kwargs):
            raise OperationalError("UPDATE technical_reports", {}, Exception("statement timeout"))

        monkeypatch.setattr(report_store, "append_revision", _fail)
        res = client.post(
            f"/api/v1/reports/{submitted['id']}/transition",
            json={"action": "approve"},
            headers=reviewer_headers,
        )
        assert res.status_code == 503
        body = res.get_json()
        assert body["code"] == "ERR_DEPENDENCY"
        assert body["category"] == "system"
        assert body["retryable"] is True
        assert body["details"]["action"] == "approve"

        monkeypatch.undo()
        res = client.get(f"/api/v1/reports/{submitted['id']}", headers=reviewer_headers)
        assert res.get_json()["status"] == "submitted"

    def test_missing_report(self, client, author_headers):
        res = client.get("/api/v1/reports/nope", headers=author_headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_bad_expected_version(self, client, reviewer_headers, submitted):
        res = client.post(
            f"/api/v1/reports/{submitted['id']}/transition",
            json={"action": "approve", "expected_version": "two"},
            headers=reviewer_headers,
        )
        assert res.status_code == 422

    def test_available_actions(self, client, reviewer_headers, submitted):
        res = client.get(f"/api/v1/reports/{submitted['id']}/actions", headers=reviewer_headers)
        assert res.get_json()["actions"] == ["approve", "reject", "archive"]

    def test_response_carries_request_id(self, client, author_headers, report):
        res = client.get(f"/api/v1/reports/{report['id']}", headers=author_headers)
        assert res.headers.get("X-Request-ID")


# ═════════════════════════════════════════════════════════════════════════
# JOB ASSETS
# ═════════════════════════════════════════════════════════════════════════

class TestAssetEndpoints:
    def _upload(self, client, headers, name, job_id=JOB):
        res = client.post(
            f"/api/v1/jobs/{job_id}/assets",
            json={"name": name, "file_url": f"https://files.example.com/{name}.pdf"},
            headers=headers,
        )
        assert res.status_code == 201
        return res.get_json()

    def test_list_tabs_and_folders(self, client, author_headers, submitted):
        self._upload(client, author_headers, "Site photos")

        res = client.get(f"/api/v1/jobs/{JOB}/assets?status=in_progress", headers=author_headers)
        body = res.get_json()
        assert body["total"] == 2

        res = client.get(f"/api/v1/jobs/{JOB}/assets?status=ready_for_review", headers=author_headers)
        assert [a["id"] for a in res.get_json()["items"]] == [submitted["asset_id"]]

        res = client.get(f"/api/v1/jobs/{JOB}/assets?group=folder", headers=author_headers)
        assert [f["folder"] for f in res.get_json()["folders"]] == ["3", "Other"]

    def test_report_refs_cannot_be_uploaded(self, client, author_headers):
        res = client.post(
            f"/api/v1/jobs/{JOB}/assets",
            json={"name": "Fake", "file_url": "report:job-1001/x/y"},
            headers=author_headers,
        )
        assert res.status_code == 422

    def test_link_then_detach_last_link_deletes(self, client, author_headers):
        asset = self._upload(client, author_headers, "Drawings")

        res = client.post(f"/api/v1/jobs/job-2002/assets/{asset['id']}/link", headers=author_headers)
        assert res.status_code == 201

        res = client.delete(f"/api/v1/jobs/{JOB}/assets/{asset['id']}", headers=author_headers)
        assert res.get_json() == {"asset_deleted": False, "delete_file": None}

        res = client.delete(f"/api/v1/jobs/job-2002/assets/{asset['id']}", headers=author_headers)
        assert res.get_json() == {
            "asset_deleted": True,
            "delete_file": "https://files.example.com/Drawings.pdf",
        }
        res = client.get(f"/api/v1/assets/{asset['id']}", headers=author_headers)
        assert res.status_code == 404

    def test_revert_needs_confirm(self, client, author_headers, submitted):
        url = f"/api/v1/jobs/{JOB}/assets/{submitted['asset_id']}/status"

        res = client.put(url, json={"status": "in_progress"}, headers=author_headers)
        assert res.status_code == 422

        res = client.put(url, json={"status": "in_progress", "confirm": True}, headers=author_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "in_progress"
        assert body["report_id"] is None

        res = client.get(f"/api/v1/reports/{submitted['id']}", headers=author_headers)
        assert res.status_code == 404

    def test_asset_cannot_be_approved_directly(self, client, author_headers, submitted):
        res = client.put(
            f"/api/v1/jobs/{JOB}/assets/{submitted['asset_id']}/status",
            json={"status": "approved"},
            headers=author_headers,
        )
        assert res.status_code == 409


# ═════════════════════════════════════════════════════════════════════════
# REVIEW SURFACE
# ═════════════════════════════════════════════════════════════════════════

class TestReviewEndpoints:
    def test_list_and_metrics(self, client, reviewer_headers, submitted):
        res = client.get(f"/api/v1/reviews/reports?job_id={JOB}&status=submitted", headers=reviewer_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == submitted["id"]
        assert body["items"][0]["asset_id"] == submitted["asset_id"]

        res = client.get(f"/api/v1/reviews/metrics?job_id={JOB}", headers=reviewer_headers)
        assert res.get_json()["submitted"] == 1

    def test_grouped(self, client, reviewer_headers, submitted):
        res = client.get(f"/api/v1/reviews/reports?job_id={JOB}&group=folder", headers=reviewer_headers)
        folders = res.get_json()["folders"]
        assert folders[0]["folder"] == "3"
        assert folders[0]["count"] == 1

    def test_invalid_filter(self, client, reviewer_headers):
        res = client.get("/api/v1/reviews/reports?start_date=soon", headers=reviewer_headers)
        assert res.status_code == 422

    def test_pending_and_print_queue(self, client, reviewer_headers, submitted):
        res = client.get("/api/v1/reviews/pending", headers=reviewer_headers)
        assert [r["id"] for r in res.get_json()["items"]] == [submitted["id"]]

        client.post(
            f"/api/v1/reports/{submitted['id']}/review",
            json={"decision": "approved"},
            headers=reviewer_headers,
        )
        res = client.get(f"/api/v1/jobs/{JOB}/print-queue", headers=reviewer_headers)
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["report"]["id"] == submitted["id"]


# ═════════════════════════════════════════════════════════════════════════
# NOTIFICATIONS
# ═════════════════════════════════════════════════════════════════════════

class TestNotificationEndpoints:
    def test_reviewer_inbox_and_author_inbox(self, client, author_headers, reviewer_headers, submitted):
        res = client.get("/api/v1/notifications?recipient=reviewers", headers=reviewer_headers)
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["payload"]["to"] == "submitted"

        client.post(
            f"/api/v1/reports/{submitted['id']}/review",
            json={"decision": "rejected", "comments": "bad data"},
            headers=reviewer_headers,
        )
        res = client.get("/api/v1/notifications", headers=author_headers)
        body = res.get_json()
        assert body["recipient"] == "tech-1"
        assert body["unread_count"] == 1
        nid = body["items"][0]["id"]

        res = client.patch(f"/api/v1/notifications/{nid}/read", headers=author_headers)
        assert res.get_json()["is_read"] is True

    def test_technician_cannot_read_reviewer_inbox(self, client, author_headers, submitted):
        res = client.get("/api/v1/notifications?recipient=reviewers", headers=author_headers)
        assert res.status_code == 403

    def test_read_all(self, client, reviewer_headers, submitted):
        res = client.post(
            "/api/v1/notifications/read-all", json={"recipient": "reviewers"}, headers=reviewer_headers,
        )
        assert res.get_json()["marked"] == 1

    def test_report_events(self, client, author_headers, submitted):
        res = client.get(f"/api/v1/reports/{submitted['id']}/events", headers=author_headers)
        assert res.get_json()["items"] == [
            {"reportId": submitted["id"], "from": "draft", "to": "submitted", "actorId": "tech-1"},
        ]


# ═════════════════════════════════════════════════════════════════════════
# HEALTH
# ═════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_unknown_route(self, client):
        res = client.get("/api/v1/does-not-exist")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
