"""
Tests: actor resolution from Supabase access tokens and trusted headers.
"""

import time

import jwt
import pytest

from neta_ops.middleware.actor_context import actor_from_claims, decode_access_token
from neta_ops.services.permission import Role

SECRET = "test-supabase-secret-with-at-least-32-bytes"


def _token(sub="tech-1", role=None, secret=SECRET, aud="authenticated", exp_offset=3600, **extra):
    claims = {"sub": sub, "aud": aud, "exp": int(time.time()) + exp_offset, **extra}
    if role is not None:
        claims["user_metadata"] = {"role": role, "full_name": "Field Tech"}
    return jwt.encode(claims, secret, algorithm="HS256")


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestDecode:
    def test_valid_token(self, app):
        with app.test_request_context():
            claims = decode_access_token(_token(role="Manager"))
        assert claims["sub"] == "tech-1"

    @pytest.mark.parametrize("token_kwargs", [
        {"secret": "another-secret-that-is-long-enough-for-hs256"},
        {"aud": "anon"},
        {"exp_offset": -60},
    ])
    def test_rejected_tokens(self, app, token_kwargs):
        with app.test_request_context():
            with pytest.raises(jwt.InvalidTokenError):
                decode_access_token(_token(**token_kwargs))


class TestClaims:
    @pytest.mark.parametrize("raw, expected", [
        ("Manager", Role.REVIEWER),
        ("supervisor", Role.REVIEWER),
        ("Admin", Role.ADMIN),
        ("Technician", Role.USER),
        (None, Role.USER),
    ])
    def test_role_mapping(self, raw, expected):
        claims = {"sub": "u-1"}
        if raw is not None:
            claims["user_metadata"] = {"role": raw}
        assert actor_from_claims(claims).role == expected

    def test_app_metadata_role_and_email_name(self):
        actor = actor_from_claims({
            "sub": "u-2", "email": "a@example.com", "app_metadata": {"role": "administrator"},
        })
        assert actor.role == Role.ADMIN
        assert actor.name == "a@example.com"


class TestRequestResolution:
    @pytest.fixture()
    def report_id(self, client):
        res = client.post(
            "/api/v1/jobs/job-1001/reports",
            json={"title": "Panelboard", "report_type": "panelboard-report"},
            headers=_bearer(_token()),
        )
        assert res.status_code == 201
        return res.get_json()["id"]

    def test_bearer_token_sets_actor(self, client, report_id):
        res = client.get(f"/api/v1/reports/{report_id}", headers=_bearer(_token()))
        body = res.get_json()
        assert body["created_by"] == "tech-1"
        assert body["available_actions"] == ["submit"]

    def test_reviewer_token_sees_review_actions(self, client, report_id):
        client.post(
            f"/api/v1/reports/{report_id}/transition", json={"action": "submit"}, headers=_bearer(_token()),
        )
        res = client.get(
            f"/api/v1/reports/{report_id}/actions", headers=_bearer(_token(sub="mgr-1", role="Manager")),
        )
        assert res.get_json()["actions"] == ["approve", "reject", "archive"]

    def test_invalid_token_is_anonymous(self, client, report_id):
        res = client.get(f"/api/v1/reports/{report_id}", headers=_bearer("not-a-jwt"))
        assert res.status_code == 401

    def test_token_wins_over_headers(self, client, report_id):
        headers = {**_bearer("not-a-jwt"), "X-User-Id": "tech-1"}
        res = client.get(f"/api/v1/reports/{report_id}", headers=headers)
        assert res.status_code == 401

    def test_headers_ignored_when_untrusted(self, app, client, report_id):
        app.config["TRUST_ACTOR_HEADERS"] = False
        try:
            res = client.get(f"/api/v1/reports/{report_id}", headers={"X-User-Id": "tech-1"})
        finally:
            app.config["TRUST_ACTOR_HEADERS"] = True
        assert res.status_code == 401
