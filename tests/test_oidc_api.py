"""API tests for the OIDC bridge: discovery, authorize, token, userinfo."""

import base64
from urllib.parse import parse_qs, unquote, urlsplit

import pytest

from docgate.core.config import settings
from docgate.core.token_factory import decode_jwt
from docgate.models.access_rule import TargetType

REDIRECT = "https://edms.example.com/oidc/callback/"


def _authorize(client, headers, **params):
    query = {
        "client_id": settings.oidc_client_id,
        "redirect_uri": REDIRECT,
        "response_type": "code",
        "state": "st-1",
        "nonce": "n-1",
    }
    query.update(params)
    return client.get("/api/oidc/authorize", params=query, headers=headers, follow_redirects=False)


def _code_from(resp):
    assert resp.status_code == 302
    return parse_qs(urlsplit(resp.headers["location"]).query)["code"][0]


class TestDiscovery:

    def test_issuer_defaults_to_request_origin(self, client):
        resp = client.get("/.well-known/openid-configuration")
        assert resp.status_code == 200
        data = resp.json()
        assert data["issuer"] == "http://testserver"
        assert data["token_endpoint"] == "http://testserver/api/oidc/token"
        assert data["id_token_signing_alg_values_supported"] == ["HS256"]
        assert "document_access_list" in data["claims_supported"]
        assert "folder_access_list" in data["claims_supported"]

    def test_configured_issuer_wins(self, client, monkeypatch):
        monkeypatch.setattr(settings, "oidc_issuer", "https://sso.example.com")
        data = client.get("/.well-known/openid-configuration").json()
        assert data["issuer"] == "https://sso.example.com"
        assert data["authorization_endpoint"] == "https://sso.example.com/api/oidc/authorize"


class TestAuthorize:

    def test_without_session_redirects_to_login(self, client):
        resp = _authorize(client, headers={})
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith(f"{settings.login_url}?callbackUrl=")
        callback = unquote(location.split("callbackUrl=", 1)[1])
        assert callback.startswith("http://testserver/api/oidc/authorize?")

    def test_with_session_redirects_with_code_and_state(self, client, make_user, auth_headers):
        user = make_user()
        resp = _authorize(client, auth_headers(user))
        location = urlsplit(resp.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == REDIRECT
        query = parse_qs(location.query)
        assert query["state"] == ["st-1"]
        assert query["code"]

    def test_unknown_client_is_rejected_not_redirected(self, client, make_user, auth_headers):
        resp = _authorize(client, auth_headers(make_user()), client_id="rogue")
        assert resp.status_code == 400
        assert resp.json()["error"] == "unauthorized_client"

    def test_missing_redirect_uri(self, client, make_user, auth_headers):
        resp = client.get(
            "/api/oidc/authorize",
            params={"client_id": settings.oidc_client_id},
            headers=auth_headers(make_user()),
            follow_redirects=False,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"


class TestTokenEndpoint:

    def test_full_flow_form_encoded(self, client, make_user, make_rule, auth_headers):
        reader = make_user()
        make_rule(reader, TargetType.DOCUMENT, "d-1")
        make_rule(reader, TargetType.DOCUMENT, "d-2")
        make_rule(reader, TargetType.FOLDER, "f-1")
        code = _code_from(_authorize(client, auth_headers(reader)))

        resp = client.post("/api/oidc/token", data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": REDIRECT,
            "client_id": settings.oidc_client_id,
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == settings.id_token_ttl_seconds
        claims = decode_jwt(body["id_token"], settings.id_token_secret, audience=settings.oidc_audience)
        assert claims["iss"] == "http://testserver"
        assert claims["nonce"] == "n-1"
        assert claims["access_scope"] == "restricted"
        assert claims["document_access_list"] == ["d-1", "d-2"]
        assert claims["folder_access_list"] == ["f-1"]

    def test_json_body_accepted(self, client, make_user, auth_headers):
        admin = make_user(role="admin")
        code = _code_from(_authorize(client, auth_headers(admin)))
        resp = client.post("/api/oidc/token", json={"grant_type": "authorization_code", "code": code})
        assert resp.status_code == 200
        claims = decode_jwt(resp.json()["id_token"], settings.id_token_secret)
        assert claims["access_scope"] == "global"

    def test_invalid_code_is_oauth_error(self, client):
        resp = client.post("/api/oidc/token", data={"grant_type": "authorization_code", "code": "nope"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_grant"
        assert "error_description" in resp.json()

    def test_unsupported_grant_type(self, client):
        resp = client.post("/api/oidc/token", data={"grant_type": "client_credentials"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "unsupported_grant_type"}

    def test_unknown_client_id(self, client):
        resp = client.post("/api/oidc/token", data={
            "grant_type": "authorization_code", "code": "x", "client_id": "rogue",
        })
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_client"


class TestClientAuthentication:

    @pytest.fixture(autouse=True)
    def _client_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "oidc_client_secret", "edms-secret")

    def _code(self, client, make_user, auth_headers):
        return _code_from(_authorize(client, auth_headers(make_user())))

    def test_missing_secret_rejected(self, client, make_user, auth_headers):
        code = self._code(client, make_user, auth_headers)
        resp = client.post("/api/oidc/token", data={
            "grant_type": "authorization_code", "code": code, "client_id": settings.oidc_client_id,
        })
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_client"

    def test_client_secret_post(self, client, make_user, auth_headers):
        code = self._code(client, make_user, auth_headers)
        resp = client.post("/api/oidc/token", data={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": settings.oidc_client_id,
            "client_secret": "edms-secret",
        })
        assert resp.status_code == 200

    def test_client_secret_basic(self, client, make_user, auth_headers):
        code = self._code(client, make_user, auth_headers)
        basic = base64.b64encode(f"{settings.oidc_client_id}:edms-secret".encode()).decode()
        resp = client.post(
            "/api/oidc/token",
            data={"grant_type": "authorization_code", "code": code},
            headers={"Authorization": f"Basic {basic}"},
        )
        assert resp.status_code == 200

    def test_wrong_secret_rejected(self, client, make_user, auth_headers):
        code = self._code(client, make_user, auth_headers)
        basic = base64.b64encode(f"{settings.oidc_client_id}:guess".encode()).decode()
        resp = client.post(
            "/api/oidc/token",
            data={"grant_type": "authorization_code", "code": code},
            headers={"Authorization": f"Basic {basic}"},
        )
        assert resp.status_code == 401


class TestUserInfo:

    def test_get_and_post_with_access_token(self, client, make_user, auth_headers):
        reader = make_user(name="Rita")
        code = _code_from(_authorize(client, auth_headers(reader)))
        access_token = client.post(
            "/api/oidc/token", data={"grant_type": "authorization_code", "code": code}
        ).json()["access_token"]

        for method in ("get", "post"):
            resp = getattr(client, method)(
                "/api/oidc/userinfo", headers={"Authorization": f"Bearer {access_token}"}
            )
            assert resp.status_code == 200
            assert resp.json()["sub"] == str(reader.id)
            assert resp.json()["groups"] == ["SSO_Restricted_Access"]

    def test_missing_token(self, client):
        resp = client.get("/api/oidc/userinfo")
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_token"

    def test_session_token_is_not_an_access_token(self, client, make_user, auth_headers):
        resp = client.get("/api/oidc/userinfo", headers=auth_headers(make_user()))
        assert resp.status_code == 401
