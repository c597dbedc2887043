"""Tests for session tokens and the auth/user management endpoints."""

import json
import time

import pytest

from docgate.core.config import settings
from docgate.core.token_factory import create_token, decode_jwt, decode_token, encode_jwt
from docgate.models.user import AuditLog, User


class TestTokenFactory:

    def test_create_and_decode(self):
        token = create_token("7", "reader", "test-secret")
        payload = decode_token(token, "test-secret")
        assert payload is not None
        assert payload.sub == "7"
        assert payload.role == "reader"

    def test_wrong_secret_returns_none(self):
        token = create_token("7", "reader", "correct-secret")
        assert decode_token(token, "wrong-secret") is None

    def test_expired_token_returns_none(self):
        token = create_token("7", "reader", "secret", expires_hours=-1)
        assert decode_token(token, "secret") is None

    def test_malformed_token_returns_none(self):
        assert decode_token("not.a.token", "secret") is None
        assert decode_token("", "secret") is None

    def test_session_decoder_rejects_other_token_types(self):
        other = encode_jwt({"sub": "7", "typ": "access", "exp": int(time.time()) + 60}, "secret")
        assert decode_token(other, "secret") is None

    def test_audience_checked(self):
        token = encode_jwt({"sub": "7", "aud": "edms", "exp": int(time.time()) + 60}, "secret")
        assert decode_jwt(token, "secret", audience="edms")["sub"] == "7"
        assert decode_jwt(token, "secret", audience="other") is None

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            encode_jwt({"sub": "7"}, "")


class TestRegister:

    def _register(self, client, headers=None, **overrides):
        body = {"email": "Alice@Example.com", "password": "correct-horse", "name": "Alice"}
        body.update(overrides)
        return client.post("/api/auth/register", json=body, headers=headers or {})

    def test_first_user_becomes_admin(self, client):
        resp = self._register(client, role="reader")
        assert resp.status_code == 201
        assert resp.json()["role"] == "admin"
        assert resp.json()["email"] == "alice@example.com"

    def test_later_registration_requires_admin(self, client, make_user, auth_headers):
        make_user(role="admin")
        assert self._register(client).status_code == 403

        reader = make_user()
        assert self._register(client, headers=auth_headers(reader)).status_code == 403

    def test_admin_registers_reader(self, client, make_user, auth_headers):
        admin = make_user(role="admin")
        resp = self._register(client, headers=auth_headers(admin), email="bob@example.com", name="Bob")
        assert resp.status_code == 201
        assert resp.json()["role"] == "reader"

    def test_duplicate_email_rejected(self, client, make_user, auth_headers):
        admin = make_user(role="admin", email="alice@example.com")
        resp = self._register(client, headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["details"]["field"] == "email"

    def test_short_password_rejected(self, client):
        assert self._register(client, password="short").status_code == 422


class TestLogin:

    def test_login_returns_token_and_cookie(self, client, make_user):
        user = make_user(email="rita@example.com", password="correct-horse")
        resp = client.post("/api/auth/login", json={"email": "RITA@example.com", "password": "correct-horse"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["id"] == user.id
        assert decode_token(body["token"], settings.jwt_secret_key).sub == str(user.id)
        assert resp.cookies.get(settings.session_cookie_name) == body["token"]

    def test_wrong_password(self, client, make_user, db):
        user = make_user(email="rita@example.com", password="correct-horse")
        resp = client.post("/api/auth/login", json={"email": "rita@example.com", "password": "wrong-horse"})
        assert resp.status_code == 401
        entry = db.query(AuditLog).filter(AuditLog.action == "login_failed").one()
        assert entry.user_id == user.id

    def test_deactivated_account(self, client, make_user):
        make_user(email="rita@example.com", password="correct-horse", is_active=False)
        resp = client.post("/api/auth/login", json={"email": "rita@example.com", "password": "correct-horse"})
        assert resp.status_code == 401

    def test_logout_clears_cookie(self, client):
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert settings.session_cookie_name in resp.headers["set-cookie"]


class TestMe:

    def test_reader_permissions(self, client, make_user, auth_headers):
        reader = make_user(name="Rita")
        resp = client.get("/api/auth/me", headers=auth_headers(reader))
        assert resp.status_code == 200
        assert resp.json()["user"]["name"] == "Rita"
        assert resp.json()["permissions"] == ["read:document"]

    def test_admin_can_manage_permissions(self, client, make_user, auth_headers):
        data = client.get("/api/auth/me", headers=auth_headers(make_user(role="admin"))).json()
        assert "manage:permissions" in data["permissions"]

    def test_requires_auth(self, client):
        assert client.get("/api/auth/me").status_code == 401


class TestUserManagement:

    def test_list_users_admin_only(self, client, make_user, auth_headers):
        admin, reader = make_user(role="admin"), make_user()
        assert client.get("/api/auth/users", headers=auth_headers(reader)).status_code == 403
        data = client.get("/api/auth/users", headers=auth_headers(admin)).json()
        assert [u["id"] for u in data] == [admin.id, reader.id]

    def test_role_change_applies_to_existing_token(self, client, make_user, auth_headers, db):
        admin, reader = make_user(role="admin"), make_user()
        reader_headers = auth_headers(reader)
        assert client.get("/api/admin/access-rules", headers=reader_headers).status_code == 403

        resp = client.put(
            f"/api/auth/users/{reader.id}/role", json={"role": "admin"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 200
        assert client.get("/api/admin/access-rules", headers=reader_headers).status_code == 200

        entry = db.query(AuditLog).filter(AuditLog.action == "role_change").one()
        assert json.loads(entry.details) == {"from": "reader", "to": "admin"}

    def test_invalid_role_rejected(self, client, make_user, auth_headers):
        admin, reader = make_user(role="admin"), make_user()
        resp = client.put(
            f"/api/auth/users/{reader.id}/role", json={"role": "owner"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 400

    def test_deactivation_revokes_session(self, client, make_user, auth_headers, db):
        admin, reader = make_user(role="admin"), make_user()
        reader_headers = auth_headers(reader)
        assert client.get("/api/auth/me", headers=reader_headers).status_code == 200

        resp = client.put(f"/api/auth/users/{reader.id}/deactivate", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        assert client.get("/api/auth/me", headers=reader_headers).status_code == 401
        assert db.get(User, reader.id).is_active is False

    def test_unknown_user_is_404(self, client, make_user, auth_headers):
        admin = make_user(role="admin")
        resp = client.put("/api/auth/users/9999/deactivate", headers=auth_headers(admin))
        assert resp.status_code == 404
