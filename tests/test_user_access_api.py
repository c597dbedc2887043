"""API tests for the caller's own access snapshot and point checks."""

from datetime import timedelta

from docgate.core.config import settings
from docgate.core.timeutils import utcnow
from docgate.models.access_rule import TargetType


class TestSnapshot:

    def test_requires_auth(self, client):
        assert client.get("/api/user/access").status_code == 401

    def test_lists_only_valid_rules(self, client, make_user, make_rule, auth_headers):
        reader = make_user()
        now = utcnow()
        make_rule(reader, TargetType.DOCUMENT, "d-1")
        make_rule(reader, TargetType.FOLDER, "f-1", target_name="Finance")
        make_rule(reader, TargetType.TAG, "t-1", is_active=False)
        make_rule(reader, TargetType.CATEGORY, "c-1", start=now + timedelta(days=1), end=now + timedelta(days=2))

        resp = client.get("/api/user/access", headers=auth_headers(reader))
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_admin"] is False
        assert data["max_age_seconds"] == settings.access_snapshot_ttl_seconds
        assert sorted(r["target_id"] for r in data["rules"]) == ["d-1", "f-1"]
        assert data["accessible"] == {
            "documents": ["d-1"],
            "folders": ["f-1"],
            "tags": [],
            "categories": [],
        }

    def test_other_users_rules_not_visible(self, client, make_user, make_rule, auth_headers):
        reader, other = make_user(), make_user()
        make_rule(other, TargetType.FOLDER, "f-9")
        data = client.get("/api/user/access", headers=auth_headers(reader)).json()
        assert data["rules"] == []
        assert data["accessible"]["folders"] == []

    def test_admin_flag(self, client, make_user, auth_headers):
        data = client.get("/api/user/access", headers=auth_headers(make_user(role="admin"))).json()
        assert data["is_admin"] is True


class TestCheck:

    def test_requires_auth(self, client):
        resp = client.post("/api/user/access/check", json={"target_type": "folder", "target_id": "f-1"})
        assert resp.status_code == 401

    def test_granted_names_rule(self, client, make_user, make_rule, auth_headers):
        reader = make_user()
        rule = make_rule(reader, TargetType.FOLDER, "f-1", target_name="Finance")
        resp = client.post(
            "/api/user/access/check",
            json={"target_type": "folder", "target_id": "f-1"},
            headers=auth_headers(reader),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["has_access"] is True
        assert data["rule"]["id"] == rule.id
        assert data["rule"]["target_name"] == "Finance"

    def test_denied_is_a_result_not_an_error(self, client, make_user, auth_headers):
        resp = client.post(
            "/api/user/access/check",
            json={"target_type": "tag", "target_id": "t-1"},
            headers=auth_headers(make_user()),
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "has_access": False,
            "reason": "no valid access rule found",
            "reason_code": "no_valid_rule",
            "rule": None,
        }

    def test_document_through_folder(self, client, make_user, make_rule, auth_headers):
        reader = make_user()
        make_rule(reader, TargetType.FOLDER, "f-1")
        resp = client.post("/api/user/access/check", json={
            "target_type": "document",
            "target_id": "d-1",
            "document_metadata": {"folder_id": "f-1", "tag_ids": ["t-1"]},
        }, headers=auth_headers(reader))
        data = resp.json()
        assert data["has_access"] is True
        assert data["rule"]["target_type"] == "folder"

    def test_document_without_container_grant(self, client, make_user, auth_headers):
        resp = client.post("/api/user/access/check", json={
            "target_type": "document",
            "target_id": "d-1",
            "document_metadata": {"category_id": "c-1"},
        }, headers=auth_headers(make_user()))
        assert resp.json()["reason_code"] == "no_container_access"

    def test_admin_always_granted(self, client, make_user, auth_headers):
        resp = client.post(
            "/api/user/access/check",
            json={"target_type": "category", "target_id": "c-1"},
            headers=auth_headers(make_user(role="admin")),
        )
        assert resp.status_code == 200
        assert resp.json()["has_access"] is True

    def test_blank_target_rejected(self, client, make_user, auth_headers):
        resp = client.post(
            "/api/user/access/check",
            json={"target_type": "folder", "target_id": "  "},
            headers=auth_headers(make_user()),
        )
        assert resp.status_code == 422


class TestStorageFailure:

    def test_snapshot_lookup_failure_is_typed_500(self, client, make_user, make_rule, auth_headers, monkeypatch):
        from sqlalchemy.exc import OperationalError

        from docgate.repositories.access_rule_repository import AccessRuleRepository

        reader = make_user()
        make_rule(reader, TargetType.FOLDER, "f-1")

        def _broken_lookup(self, *args, **kwargs):
            raise OperationalError("SELECT ...", {}, Exception("connection reset"))

        monkeypatch.setattr(AccessRuleRepository, "find_rules", _broken_lookup)
        resp = client.get("/api/user/access", headers=auth_headers(reader))
        assert resp.status_code == 500
        assert resp.json()["error"] == "DATABASE_ERROR"
        assert "max_age_seconds" not in resp.json()
