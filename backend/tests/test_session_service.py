"""Session/Identity 상태 전이와 관리자 우회 로그인 동작을 검증하는 테스트입니다."""

import pytest
from fastapi import HTTPException

from app.clients.base import SIGNED_OUT, AuthSession
from app.config import settings
from app.services.notification_service import Notifier
from app.services.session_service import (
    IS_MANAGER_KEY,
    USER_EMAIL_KEY,
    LocalStorage,
    SESSION_EXPIRED,
    LoginRoute,
    SessionState,
    UnverifiedManagerBypass,
    VerifiedSession,
    ViewerSession,
)
from app.services.viewer_context import ViewerContextRegistry, build_viewer_context
from tests.fakes import make_backend


@pytest.fixture
def backend():
    backend = make_backend()
    backend.auth.add_account("emp@example.com", "pw", "emp-1")
    backend.data.add_row("profiles", user_id="emp-1", role="employee", full_name="Jane Kim", avatar_url=None)
    return backend


def _session(backend, storage=None):
    notifier = Notifier()
    return ViewerSession(backend, storage or LocalStorage(), notifier), notifier


@pytest.mark.asyncio
async def test_initialize_without_session_is_unauthenticated(backend):
    session, _ = _session(backend)

    await session.initialize()

    assert session.state == SessionState.UNAUTHENTICATED
    assert session.auth is None
    assert backend.auth.calls == ["get_session"]


@pytest.mark.asyncio
async def test_initialize_restores_persisted_manager_bypass(backend):
    storage = LocalStorage({IS_MANAGER_KEY: "true", USER_EMAIL_KEY: "boss@example.com"})
    session, _ = _session(backend, storage)

    await session.initialize()

    assert session.state == SessionState.AUTHENTICATED
    assert isinstance(session.auth, UnverifiedManagerBypass)
    assert session.is_manager is True
    assert session.email == "boss@example.com"
    assert backend.auth.calls == []


@pytest.mark.asyncio
async def test_employee_sign_in_loads_profile(backend):
    session, notifier = _session(backend)
    await session.initialize()

    auth = await session.sign_in_with_password("emp@example.com", "pw")

    assert isinstance(auth, VerifiedSession)
    assert session.state == SessionState.AUTHENTICATED
    assert session.user_id == "emp-1"
    assert session.profile.full_name == "Jane Kim"
    assert session.is_manager is False
    assert session.display_name == "Jane Kim"
    assert notifier.drain()[-1].message == "Login successful"


@pytest.mark.asyncio
async def test_manager_role_comes_from_profile(backend):
    backend.auth.add_account("boss@example.com", "pw", "mgr-1")
    backend.data.add_row("profiles", user_id="mgr-1", role="manager", full_name=None, avatar_url=None)
    session, _ = _session(backend)

    await session.sign_in_with_password("boss@example.com", "pw")

    assert isinstance(session.auth, VerifiedSession)
    assert session.is_manager is True
    assert session.display_name == "boss"


@pytest.mark.asyncio
async def test_manager_route_uses_unverified_bypass(backend):
    storage = LocalStorage()
    session, _ = _session(backend, storage)

    auth = await session.sign_in_with_password("boss@example.com", "anything", LoginRoute.MANAGER)

    assert isinstance(auth, UnverifiedManagerBypass)
    assert session.is_manager is True
    assert session.user_id is None
    assert storage.get_item(IS_MANAGER_KEY) == "true"
    assert storage.get_item(USER_EMAIL_KEY) == "boss@example.com"
    assert "sign_in_with_password" not in backend.auth.calls


@pytest.mark.asyncio
async def test_manager_route_signs_in_normally_when_bypass_disabled(backend, monkeypatch):
    monkeypatch.setattr(settings, "MANAGER_BYPASS_ENABLED", False, raising=False)
    storage = LocalStorage()
    session, _ = _session(backend, storage)

    auth = await session.sign_in_with_password("emp@example.com", "pw", LoginRoute.MANAGER)

    assert isinstance(auth, VerifiedSession)
    assert session.is_manager is False
    assert storage.get_item(IS_MANAGER_KEY) is None


@pytest.mark.asyncio
async def test_missing_credentials_are_rejected_before_provider_call(backend):
    session, _ = _session(backend)

    with pytest.raises(HTTPException) as exc_info:
        await session.sign_in_with_password("", "pw")
    assert exc_info.value.status_code == 400
    with pytest.raises(HTTPException):
        await session.sign_up("new@example.com", "")

    assert backend.auth.calls == []


@pytest.mark.asyncio
async def test_invalid_credentials_raise_and_notify(backend):
    session, notifier = _session(backend)

    with pytest.raises(HTTPException) as exc_info:
        await session.sign_in_with_password("emp@example.com", "wrong")

    assert exc_info.value.status_code == 401
    assert session.state == SessionState.UNAUTHENTICATED
    assert notifier.latest_error() == "Invalid login credentials"


@pytest.mark.asyncio
async def test_sign_out_clears_bypass_markers_and_remote_session(backend):
    storage = LocalStorage()
    session, _ = _session(backend, storage)
    await session.sign_in_with_password("boss@example.com", "x", LoginRoute.MANAGER)

    await session.sign_out()

    assert session.state == SessionState.UNAUTHENTICATED
    assert session.auth is None
    assert session.is_manager is False
    assert storage.get_item(IS_MANAGER_KEY) is None
    assert storage.get_item(USER_EMAIL_KEY) is None
    assert backend.auth.calls[-1] == "sign_out"


@pytest.mark.asyncio
async def test_remote_sign_out_failure_still_clears_local_state(backend):
    session, notifier = _session(backend)
    await session.sign_in_with_password("emp@example.com", "pw")
    backend.auth.fail_sign_out = True

    with pytest.raises(HTTPException) as exc_info:
        await session.sign_out()

    assert exc_info.value.status_code == 502
    assert session.auth is None
    assert notifier.latest_error().startswith("Network error")


@pytest.mark.asyncio
async def test_provider_sign_out_event_resets_verified_session(backend):
    session, _ = _session(backend)
    await session.sign_in_with_password("emp@example.com", "pw")

    await backend.auth._emit(SIGNED_OUT, None)

    assert session.state == SessionState.UNAUTHENTICATED
    assert session.user_id is None


@pytest.mark.asyncio
async def test_oauth_start_passes_provider_options(backend):
    session, _ = _session(backend)

    url = await session.sign_in_with_oauth("Google")

    assert url.startswith("https://auth.example.test/authorize")
    assert backend.auth.last_oauth == {
        "provider": "google",
        "redirect_to": f"{settings.SITE_URL.rstrip('/')}/dashboard",
        "scopes": "profile email",
        "query_params": {"access_type": "offline", "prompt": "consent"},
    }


@pytest.mark.asyncio
async def test_oauth_rejects_unknown_provider(backend):
    session, _ = _session(backend)

    with pytest.raises(HTTPException) as exc_info:
        await session.sign_in_with_oauth("myspace")

    assert exc_info.value.status_code == 400
    assert backend.auth.calls == []


@pytest.mark.asyncio
async def test_first_social_login_creates_employee_profile(backend):
    session, _ = _session(backend)

    await session.complete_oauth("code-123")

    assert session.user_id == "oauth-user"
    assert session.profile.role == "employee"
    assert session.profile.full_name == "Social User"
    created = [p for p in backend.data.tables["profiles"] if p["user_id"] == "oauth-user"]
    assert len(created) == 1


@pytest.mark.asyncio
async def test_sign_up_requests_employee_role(backend):
    session, notifier = _session(backend)

    await session.sign_up("new@example.com", "pw")

    assert backend.auth.last_sign_up_metadata == {"role": "employee"}
    assert notifier.drain()[-1].message == "Account created successfully"


@pytest.mark.asyncio
async def test_viewer_context_sign_out_drops_task_cache(backend):
    context = build_viewer_context("client-1", backend)
    await context.session.sign_in_with_password("emp@example.com", "pw")
    await context.tasks.create_task("Cached")
    assert len(context.tasks.tasks) == 1

    await context.sign_out()

    assert context.tasks.tasks == []
    assert context.session.is_authenticated is False


@pytest.mark.asyncio
async def test_ensure_fresh_adopts_refreshed_session(backend):
    session = ViewerSession(backend, LocalStorage(), Notifier())
    await session.initialize()
    await session.sign_in_with_password("emp@example.com", "pw")
    refreshed = AuthSession(access_token="token-refreshed", user=backend.auth.session.user)
    backend.auth.session = refreshed

    assert await session.ensure_fresh() is True

    assert session.auth.session is refreshed
    assert session.profile.full_name == "Jane Kim"


@pytest.mark.asyncio
async def test_ensure_fresh_detects_expiry(backend):
    notifier = Notifier()
    session = ViewerSession(backend, LocalStorage(), notifier)
    await session.initialize()
    await session.sign_in_with_password("emp@example.com", "pw")
    notifier.drain()
    backend.auth.session = None

    assert await session.ensure_fresh() is False

    assert session.state == SessionState.UNAUTHENTICATED
    assert session.auth is None
    assert notifier.latest_error() == SESSION_EXPIRED


@pytest.mark.asyncio
async def test_ensure_fresh_skips_provider_for_bypass(backend):
    session = ViewerSession(backend, LocalStorage(), Notifier())
    await session.sign_in_with_password("boss@example.com", "x", LoginRoute.MANAGER)
    calls_before = list(backend.auth.calls)

    assert await session.ensure_fresh() is True
    assert backend.auth.calls == calls_before


async def _signed_in_context(registry, client_id):
    context = await registry.acquire(client_id)
    context.backend.auth.add_account("emp@example.com", "pw", "emp-1")
    await context.session.sign_in_with_password("emp@example.com", "pw")
    context.notifier.drain()
    await registry.release(context)
    return context


@pytest.mark.asyncio
async def test_registry_reuses_signed_in_context():
    registry = ViewerContextRegistry(make_backend)
    first = await _signed_in_context(registry, "client-a")

    again = await registry.acquire("client-a")
    await registry.release(again)
    other = await registry.acquire("client-b")
    await registry.release(other)

    assert again is first
    assert other is not first
    assert other.closed is True
    assert len(registry) == 1
    await registry.discard("client-a")
    assert len(registry) == 0
    assert first.closed is True


@pytest.mark.asyncio
async def test_registry_does_not_keep_anonymous_contexts():
    registry = ViewerContextRegistry(make_backend)

    for n in range(25):
        context = await registry.acquire(f"anon-{n}")
        await registry.release(context)

    assert len(registry) == 0


@pytest.mark.asyncio
async def test_registry_keeps_context_with_pending_notice():
    registry = ViewerContextRegistry(make_backend)
    context = await registry.acquire("client-a")
    context.notifier.error("Invalid login credentials")
    await registry.release(context)

    assert "client-a" in registry
    assert await registry.acquire("client-a") is context


@pytest.mark.asyncio
async def test_registry_evicts_least_recently_used_over_limit():
    registry = ViewerContextRegistry(make_backend, max_contexts=2)
    a = await _signed_in_context(registry, "client-a")
    await _signed_in_context(registry, "client-b")
    await registry.release(await registry.acquire("client-a"))
    await _signed_in_context(registry, "client-c")

    assert len(registry) == 2
    assert "client-a" in registry
    assert "client-b" not in registry
    assert a.closed is False


@pytest.mark.asyncio
async def test_registry_evicts_idle_contexts():
    now = [0.0]
    registry = ViewerContextRegistry(make_backend, idle_seconds=60, clock=lambda: now[0])
    stale = await _signed_in_context(registry, "client-a")
    now[0] = 30.0
    await _signed_in_context(registry, "client-b")

    now[0] = 61.0
    fresh = await registry.acquire("client-b")

    assert "client-a" not in registry
    assert stale.closed is True
    assert fresh.closed is False
    await registry.aclose()
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_registry_ignores_release_of_closed_context():
    registry = ViewerContextRegistry(make_backend)
    context = await _signed_in_context(registry, "client-a")
    await registry.discard("client-a")

    await registry.release(context)

    assert len(registry) == 0
