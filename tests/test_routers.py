"""HTTP-level tests: sign-in, page guards, admin approvals, logout."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from salesdesk.config import settings
from salesdesk.main import app
from salesdesk.services.approvals import ApprovalService
from salesdesk.services.profile_sync import ProfileSynchronizer
from salesdesk.services.session_registry import SessionRegistry

from tests.fakes import FakeIdentityClient


@pytest.fixture
def install_services(store, admin_principal, bob, carol):
    """Puts an in-memory registry on app.state; returns a factory taking the login mode."""
    accounts = {
        "token-admin": admin_principal,
        "token-bob": bob,
        "token-carol": carol,
        FakeIdentityClient.REDIRECT_SESSION: bob,
    }
    installed = []

    def _install(login_mode="popup"):
        registry = SessionRegistry(
            ProfileSynchronizer(store),
            identity_factory=lambda: FakeIdentityClient(accounts),
            login_mode=login_mode,
        )
        app.state.sessions = registry
        app.state.approvals = ApprovalService(store)
        installed.append(registry)
        return registry

    yield _install
    for registry in installed:
        registry.close_all()
    for name in ("sessions", "approvals", "scheduler"):
        if hasattr(app.state, name):
            delattr(app.state, name)


@pytest.fixture
def registry(install_services):
    return install_services()


def _browser():
    return TestClient(app)


def _sign_in(token):
    browser = _browser()
    response = browser.post("/auth/google", json={"id_token": token})
    assert response.status_code == 200, response.text
    return browser


class TestSignIn:
    def test_login_mode_popup(self, registry):
        response = _browser().get("/auth/login")

        assert response.json() == {"mode": "popup", "auth_uri": None}
        assert settings.session_cookie_name in response.cookies

    def test_popup_sign_in_creates_pending_employee(self, registry):
        browser = _browser()
        response = browser.post("/auth/google", json={"id_token": "token-bob"})

        body = response.json()
        assert body["authenticated"] is True
        assert body["profile"]["role"] == "employee"
        assert body["profile"]["approved"] is False
        assert browser.get("/auth/me").json()["principal"]["uid"] == "uid-bob"

    def test_benign_error_code_leaves_session_signed_out(self, registry):
        response = _browser().post("/auth/google", json={"error": "auth/popup-closed-by-user"})

        assert response.status_code == 200
        assert response.json()["authenticated"] is False

    def test_fatal_error_code_is_unauthorized(self, registry):
        response = _browser().post("/auth/google", json={"error": "auth/network-request-failed"})

        assert response.status_code == 401
        assert response.json()["code"] == "auth/network-request-failed"

    def test_empty_credential_is_rejected(self, registry):
        assert _browser().post("/auth/google", json={}).status_code == 422

    def test_store_outage_is_service_unavailable(self, registry, store):
        store.unavailable = True

        response = _browser().post("/auth/google", json={"id_token": "token-bob"})

        assert response.status_code == 503

    def test_redirect_flow(self, install_services):
        install_services("redirect")
        browser = _browser()

        start = browser.get("/auth/login").json()
        callback = browser.get("/auth/google/callback?code=abc", follow_redirects=False)

        assert start["mode"] == "redirect"
        assert start["auth_uri"].startswith("https://accounts.google.com/")
        assert callback.status_code == 303
        assert callback.headers["location"] == "/login?status=pending"
        assert browser.get("/auth/me").json()["principal"]["uid"] == "uid-bob"

    def test_redirect_flow_cancelled(self, install_services):
        install_services("redirect")
        browser = _browser()
        browser.get("/auth/login")

        callback = browser.get("/auth/google/callback?error=access_denied", follow_redirects=False)

        assert callback.headers["location"] == "/login"
        assert browser.get("/auth/me").json()["authenticated"] is False

    def test_logout_closes_session(self, registry, store):
        browser = _sign_in("token-bob")
        assert len(registry) == 1

        response = browser.post("/auth/logout")

        assert response.status_code == 200
        assert len(registry) == 0
        assert store.listener_count("users", "uid-bob") == 0
        assert browser.get("/auth/me").json()["authenticated"] is False

    def test_refresh_requires_sign_in(self, registry):
        assert _browser().post("/auth/me/refresh").status_code == 401

    def test_refresh_rereads_profile(self, registry, store):
        browser = _sign_in("token-bob")
        store.collections["users"]["uid-bob"]["displayName"] = "Bobby"

        response = browser.post("/auth/me/refresh")

        assert response.json()["profile"]["display_name"] == "Bobby"


class TestAccess:
    def test_anonymous_is_sent_to_login(self, registry):
        body = _browser().get("/access/admin").json()

        assert body["state"] == "redirecting"
        assert body["decision"] == {"kind": "redirect", "path": "/login", "reason": "unauthenticated"}

    def test_admin_allowed_on_admin_pages(self, registry):
        body = _sign_in("token-admin").get("/access/admin").json()

        assert body["state"] == "allowed"
        assert body["decision"]["kind"] == "allow"

    def test_employee_on_admin_page_goes_home(self, registry):
        body = _sign_in("token-bob").get("/access/admin").json()

        assert body["decision"]["path"] == "/"
        assert body["decision"]["reason"] == "wrong-role"

    def test_unknown_requirement(self, registry):
        assert _browser().get("/access/superuser").status_code == 422

    def test_navigation_follows_role_and_approval(self, registry, store):
        admin = _sign_in("token-admin")
        bob = _sign_in("token-bob")

        assert [s["title"] for s in admin.get("/access/navigation").json()] == ["Admin Panel"]
        assert bob.get("/access/navigation").json() == []

        store.remote_update("users", "uid-bob", {"approved": True})

        assert [s["title"] for s in bob.get("/access/navigation").json()] == ["Employee Panel"]

    def test_anonymous_navigation_is_empty(self, registry):
        assert _browser().get("/access/navigation").json() == []

    def test_no_decision_while_sign_in_is_loading(self, registry, bob, monkeypatch):
        monkeypatch.setattr(settings, "guard_decision_timeout_seconds", 0.01)
        browser = _browser()
        browser.get("/auth/login")
        session = registry.get(browser.cookies[settings.session_cookie_name])
        # identity has published the principal, ensure_profile has not finished
        session.principal, session.profile, session.loading = bob, None, True

        assert browser.get("/access/navigation").json() == []
        assert browser.get("/admin/approvals").status_code == 503
        assert browser.get("/access/admin").json()["state"] == "initializing"

    def test_no_decision_after_failed_sign_in(self, registry, store):
        browser = _browser()
        browser.get("/auth/login")
        store.unavailable = True
        assert browser.post("/auth/google", json={"id_token": "token-bob"}).status_code == 503
        store.unavailable = False

        assert browser.get("/admin/approvals").status_code == 503
        assert browser.get("/access/navigation").json() == []


class TestAdmin:
    def test_approval_reaches_the_employee_session(self, registry):
        admin = _sign_in("token-admin")
        bob = _sign_in("token-bob")
        assert bob.get("/access/employeeApproved").json()["decision"]["reason"] == "pending-approval"

        pending = admin.get("/admin/approvals").json()
        approved = admin.post("/admin/approvals/uid-bob")

        assert [p["uid"] for p in pending["profiles"]] == ["uid-bob"]
        assert approved.status_code == 200
        assert approved.json()["approved"] is True
        decision = bob.get("/access/employeeApproved").json()["decision"]
        assert decision == {"kind": "redirect", "path": "/employee/dashboard", "reason": "approved"}
        assert admin.get("/admin/approvals").json()["total"] == 0

    def test_withdrawing_approval(self, registry, store):
        admin = _sign_in("token-admin")
        bob = _sign_in("token-bob")
        admin.post("/admin/approvals/uid-bob")

        response = admin.delete("/admin/approvals/uid-bob")

        assert response.json()["approved"] is False
        assert bob.get("/access/employeeApproved").json()["decision"]["path"] == "/login?status=pending"

    def test_admin_profiles_cannot_be_unapproved(self, registry):
        admin = _sign_in("token-admin")

        response = admin.delete("/admin/approvals/uid-admin")

        assert response.status_code == 409

    def test_approving_unknown_uid(self, registry):
        assert _sign_in("token-admin").post("/admin/approvals/nobody").status_code == 404

    def test_anonymous_is_unauthorized(self, registry):
        response = _browser().get("/admin/approvals")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_employee_is_forbidden(self, registry):
        response = _sign_in("token-bob").get("/admin/approvals")

        assert response.status_code == 403
        assert response.json()["detail"] == "wrong-role"

    def test_allow_list_maintenance(self, registry):
        admin = _sign_in("token-admin")

        added = admin.post("/admin/allow-list", json={"email": "new.admin@co.com"})
        removed = admin.delete("/admin/allow-list/new.admin@co.com")

        assert added.status_code == 201
        assert added.json()["emails"] == ["admin@co.com", "new.admin@co.com"]
        assert removed.status_code == 204
        assert admin.get("/admin/allow-list").json()["emails"] == ["admin@co.com"]

    def test_allow_list_keeps_address_as_typed(self, registry, store):
        admin = _sign_in("token-admin")

        added = admin.post("/admin/allow-list", json={"email": "Ann@Corp.COM"})

        assert "Ann@Corp.COM" in added.json()["emails"]
        assert store.document("admins", "Ann@Corp.COM") is not None

    def test_allow_list_rejects_invalid_email(self, registry):
        response = _sign_in("token-admin").post("/admin/allow-list", json={"email": "not-an-email"})

        assert response.status_code == 422

    def test_bearer_token_without_session(self, registry, store):
        decoded = {"uid": "uid-admin", "email": "admin@co.com", "name": "Ada Admin"}
        with patch("salesdesk.core.security.decode_id_token", AsyncMock(return_value=decoded)):
            response = _browser().get(
                "/admin/allow-list", headers={"Authorization": "Bearer some-id-token"}
            )

        assert response.status_code == 200
        assert store.document("users", "uid-admin")["role"] == "admin"


class _EventStream:
    """Calls the ASGI app directly so the response can be read frame by frame."""

    def __init__(self, path, cookie):
        self.scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "query_string": b"",
            "root_path": "",
            "headers": [(b"host", b"testserver"), (b"cookie", cookie.encode())],
            "client": ("testclient", 50000),
            "server": ("testserver", 80),
        }
        self.status = None
        self.frames = []
        self._disconnected = asyncio.Event()
        self._frame_arrived = asyncio.Event()
        self.task = None

    async def _receive(self):
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message):
        if message["type"] == "http.response.start":
            self.status = message["status"]
        elif message["type"] == "http.response.body" and message.get("body"):
            self.frames.append(message["body"])
            self._frame_arrived.set()

    def open(self):
        self.task = asyncio.create_task(app(self.scope, self._receive, self._send))

    async def wait_for_frames(self, count):
        while len(self.frames) < count:
            self._frame_arrived.clear()
            await asyncio.wait_for(self._frame_arrived.wait(), 1)

    async def disconnect(self):
        self._disconnected.set()
        await asyncio.wait_for(self.task, 1)


@pytest.mark.asyncio
async def test_decision_stream_sends_distinct_decisions_until_disconnect(registry, store):
    browser = _sign_in("token-bob")
    cookie = f"{settings.session_cookie_name}={browser.cookies[settings.session_cookie_name]}"
    baseline = store.listener_count("users", "uid-bob")

    stream = _EventStream("/access/employeeApproved/events", cookie)
    stream.open()
    await stream.wait_for_frames(1)

    assert stream.status == 200
    assert stream.frames[0].startswith(b"event: decision\ndata: ")
    assert stream.frames[0].endswith(b"\n\n")
    assert b'"reason":"pending-approval"' in stream.frames[0]
    assert store.listener_count("users", "uid-bob") == baseline + 1

    store.remote_update("users", "uid-bob", {"displayName": "Bobby"})
    store.remote_update("users", "uid-bob", {"approved": True})
    await stream.wait_for_frames(2)
    await stream.disconnect()

    assert len(stream.frames) == 2
    assert b'"path":"/employee/dashboard"' in stream.frames[1]
    assert store.listener_count("users", "uid-bob") == baseline


def test_startup_schedules_expiry_and_shutdown_closes_sessions(registry):
    with TestClient(app) as browser:
        browser.post("/auth/google", json={"id_token": "token-bob"})
        scheduler = app.state.scheduler
        job = scheduler.get_job("sessions-expire-idle")
        assert job is not None
        assert len(registry) == 1

    assert not scheduler.running
    assert len(registry) == 0
