from app.config import settings
from tests.helpers import TEST_PASSWORD, login, manager_login


def test_login_success(client, seed_accounts):
    data = login(client, "emp1@company.com")
    assert data["state"] == "authenticated"
    assert data["auth_kind"] == "verified"
    assert data["user_id"] == seed_accounts["employee"].id
    assert data["is_manager"] is False
    assert data["display_name"] == "Jane Kim"
    assert data["profile"]["role"] == "employee"


def test_login_sets_viewer_cookie(client, seed_accounts):
    login(client, "emp1@company.com")
    assert client.cookies.get(settings.CLIENT_COOKIE_NAME)

    resp = client.get("/api/auth/session")
    assert resp.json()["state"] == "authenticated"
    assert resp.json()["email"] == "emp1@company.com"


def test_login_invalid_password(client, seed_accounts):
    client.get("/api/auth/session")
    resp = client.post("/api/auth/login", json={"email": "emp1@company.com", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid login credentials"

    notices = client.get("/api/notifications").json()
    assert notices[-1]["level"] == "error"


def test_login_missing_fields(client, seed_accounts):
    resp = client.post("/api/auth/login", json={"email": "emp1@company.com"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please fill in all fields"


def test_session_unauthenticated(client):
    resp = client.get("/api/auth/session")
    assert resp.status_code == 200
    data = resp.json()
    assert data["state"] == "unauthenticated"
    assert data["auth_kind"] is None
    assert data["is_manager"] is False


def test_manager_role_via_regular_login(client, seed_accounts):
    data = login(client, "boss@company.com")
    assert data["auth_kind"] == "verified"
    assert data["is_manager"] is True


def test_manager_login_bypass_skips_password_check(client, seed_accounts):
    data = manager_login(client, "anyone@company.com", password="not-checked")
    assert data["state"] == "authenticated"
    assert data["auth_kind"] == "manager_bypass"
    assert data["is_manager"] is True
    assert data["user_id"] is None
    assert data["email"] == "anyone@company.com"

    again = client.get("/api/auth/session").json()
    assert again["auth_kind"] == "manager_bypass"


def test_manager_login_with_bypass_disabled_requires_credentials(client, seed_accounts, monkeypatch):
    monkeypatch.setattr(settings, "MANAGER_BYPASS_ENABLED", False)

    resp = client.post("/api/auth/manager-login", json={"email": "boss@company.com", "password": "wrong"})
    assert resp.status_code == 401

    data = manager_login(client, "boss@company.com")
    assert data["auth_kind"] == "verified"
    assert data["is_manager"] is True


def test_viewers_do_not_share_sessions(make_client, seed_accounts):
    first = make_client()
    second = make_client()
    login(first, "emp1@company.com")

    assert second.get("/api/auth/session").json()["state"] == "unauthenticated"
    assert second.get("/api/tasks").status_code == 401


def test_logout_clears_session(client, seed_accounts):
    login(client, "emp1@company.com")
    resp = client.post("/api/auth/logout")
    assert resp.status_code == 200

    assert client.get("/api/auth/session").json()["state"] == "unauthenticated"
    assert client.get("/api/tasks").status_code == 401


def test_logout_clears_manager_bypass(client, seed_accounts):
    manager_login(client, "boss@company.com")
    client.post("/api/auth/logout")

    data = client.get("/api/auth/session").json()
    assert data["state"] == "unauthenticated"
    assert data["is_manager"] is False
    assert client.get("/api/manager/tasks").status_code == 401


def test_signup_creates_employee(client, db):
    resp = client.post("/api/auth/signup", json={"email": "new@company.com", "password": TEST_PASSWORD})
    assert resp.status_code == 200
    data = resp.json()
    assert data["state"] == "authenticated"
    assert data["profile"]["role"] == "employee"
    assert data["is_manager"] is False


def test_signup_duplicate_email(client, seed_accounts):
    resp = client.post("/api/auth/signup", json={"email": "emp1@company.com", "password": "x"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "User already registered"


def test_oauth_unsupported_on_local_backend(client):
    resp = client.post("/api/auth/oauth/google")
    assert resp.status_code == 400


def test_oauth_unknown_provider(client):
    resp = client.post("/api/auth/oauth/myspace")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Unsupported provider: myspace"


def test_missing_viewer_cookie_gets_fresh_context(client, seed_accounts):
    login(client, "emp1@company.com")
    client.cookies.clear()

    assert client.get("/api/auth/session").json()["state"] == "unauthenticated"


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["backend"] == settings.BACKEND


def test_anonymous_requests_do_not_accumulate_contexts(client, registry, seed_accounts):
    for _ in range(25):
        client.cookies.clear()
        assert client.get("/api/auth/session").json()["state"] == "unauthenticated"
    assert len(registry) == 0

    login(client, "emp1@company.com")
    assert len(registry) == 1

    client.post("/api/auth/logout")
    assert len(registry) == 0
