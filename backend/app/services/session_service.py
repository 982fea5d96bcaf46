"""Session/Identity 서비스 레이어입니다.

identity provider 세션과 프로필을 추적하고 manager 여부를 판단합니다. 인증은
두 가지 변형으로 명시적으로 표현합니다.

- VerifiedSession: identity provider가 발급한 실제 세션. profile.role로 manager 판단.
- UnverifiedManagerBypass: 관리자 전용 로그인 경로의 로컬 우회. 백엔드 검증이 없고
  viewer의 로컬 key/value 저장소(isManager/userEmail)로만 유지된다.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from fastapi import HTTPException

from app.clients.base import AuthSession, AuthUser, BackendClient, BackendError
from app.config import settings
from app.schemas.profile import UserProfileOut
from app.services.notification_service import Notifier
from app.utils.permissions import EMPLOYEE, is_manager_profile

logger = logging.getLogger(__name__)

IS_MANAGER_KEY = "isManager"
USER_EMAIL_KEY = "userEmail"
SESSION_EXPIRED = "Your session has expired. Please sign in again."


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"


class LoginRoute(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"


@dataclass(frozen=True)
class VerifiedSession:
    session: AuthSession
    profile: Optional[UserProfileOut] = None

    kind = "verified"

    @property
    def user(self) -> AuthUser:
        return self.session.user

    @property
    def is_manager(self) -> bool:
        return is_manager_profile(self.profile)


@dataclass(frozen=True)
class UnverifiedManagerBypass:
    email: str

    kind = "manager_bypass"
    is_manager = True


Authentication = Union[VerifiedSession, UnverifiedManagerBypass]


class LocalStorage:
    """브라우저 localStorage에 해당하는 viewer별 key/value 저장소입니다."""

    def __init__(self, initial: Optional[dict] = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class ViewerSession:
    def __init__(self, backend: BackendClient, storage: LocalStorage, notifier: Notifier):
        self._backend = backend
        self._storage = storage
        self._notifier = notifier
        self.state = SessionState.UNAUTHENTICATED
        self.auth: Optional[Authentication] = None
        self._subscription = backend.auth.on_auth_state_change(self._handle_auth_change)

    # ---- derived state ----

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED and self.auth is not None

    @property
    def is_loading(self) -> bool:
        return self.state == SessionState.LOADING

    @property
    def is_manager(self) -> bool:
        return self.is_authenticated and self.auth.is_manager

    @property
    def user_id(self) -> Optional[str]:
        if isinstance(self.auth, VerifiedSession):
            return self.auth.user.id
        return None

    @property
    def email(self) -> Optional[str]:
        if isinstance(self.auth, VerifiedSession):
            return self.auth.user.email
        if isinstance(self.auth, UnverifiedManagerBypass):
            return self.auth.email
        return None

    @property
    def profile(self) -> Optional[UserProfileOut]:
        if isinstance(self.auth, VerifiedSession):
            return self.auth.profile
        return None

    @property
    def display_name(self) -> str:
        if self.profile and self.profile.full_name:
            return self.profile.full_name
        if self.email:
            return self.email.split("@")[0]
        return "Employee"

    # ---- lifecycle ----

    async def initialize(self) -> None:
        self.state = SessionState.LOADING
        stored_is_manager = self._storage.get_item(IS_MANAGER_KEY) == "true"
        stored_email = self._storage.get_item(USER_EMAIL_KEY)
        if stored_is_manager and stored_email and settings.MANAGER_BYPASS_ENABLED:
            self.auth = UnverifiedManagerBypass(stored_email)
            self.state = SessionState.AUTHENTICATED
            return

        try:
            session = await self._backend.auth.get_session()
            if session is not None:
                await self._apply_session(session)
        except BackendError as exc:
            logger.error("[session] initial session lookup failed: %s", exc)
        finally:
            if self.state == SessionState.LOADING:
                self.state = SessionState.UNAUTHENTICATED

    async def ensure_fresh(self) -> bool:
        """원격 호출 전에 provider 세션을 다시 확인합니다. 만료되면 unauthenticated로 전환합니다."""
        if isinstance(self.auth, UnverifiedManagerBypass):
            return True
        if not isinstance(self.auth, VerifiedSession):
            return False
        try:
            session = await self._backend.auth.get_session()
        except BackendError as exc:
            logger.error("[session] session refresh failed: %s", exc)
            self._notifier.error(exc.message)
            return False
        if session is None:
            logger.info("[session] session expired user=%s", self.user_id)
            self.auth = None
            self.state = SessionState.UNAUTHENTICATED
            self._notifier.error(SESSION_EXPIRED)
            return False
        if session is not self.auth.session:
            # TOKEN_REFRESHED 핸들러가 놓친 갱신 세션을 반영한다.
            self.auth = VerifiedSession(session, self.auth.profile)
        return True

    def dispose(self) -> None:
        self._subscription.unsubscribe()

    async def _handle_auth_change(self, event: str, session: Optional[AuthSession]) -> None:
        logger.info("[session] auth state change event=%s", event)
        if session is not None:
            await self._apply_session(session)
            return
        if isinstance(self.auth, UnverifiedManagerBypass):
            return
        self.auth = None
        self.state = SessionState.UNAUTHENTICATED

    async def _apply_session(self, session: AuthSession) -> None:
        profile = await self._load_profile(session.user)
        self.auth = VerifiedSession(session, profile)
        self.state = SessionState.AUTHENTICATED

    async def _load_profile(self, user: AuthUser) -> Optional[UserProfileOut]:
        try:
            rows = await self._backend.data.select("profiles", filters={"user_id": user.id})
            if rows:
                return UserProfileOut.model_validate(rows[0])
            # 소셜 로그인 최초 진입: 기본 employee 프로필 생성
            row = await self._backend.data.insert(
                "profiles",
                {
                    "user_id": user.id,
                    "full_name": user.user_metadata.get("full_name"),
                    "avatar_url": user.user_metadata.get("avatar_url"),
                    "role": EMPLOYEE,
                },
            )
            return UserProfileOut.model_validate(row)
        except BackendError as exc:
            logger.error("[session] error fetching profile user=%s: %s", user.id, exc)
            return None

    # ---- operations ----

    @staticmethod
    def _require_credentials(email: str, password: str) -> tuple[str, str]:
        email = (email or "").strip()
        if not email or not password:
            raise HTTPException(status_code=400, detail="Please fill in all fields")
        return email, password

    async def sign_in_with_password(
        self, email: str, password: str, route: LoginRoute = LoginRoute.EMPLOYEE
    ) -> Authentication:
        email, password = self._require_credentials(email, password)

        if route == LoginRoute.MANAGER and settings.MANAGER_BYPASS_ENABLED:
            logger.warning("[session] unverified manager bypass sign-in email=%s", email)
            self._storage.set_item(IS_MANAGER_KEY, "true")
            self._storage.set_item(USER_EMAIL_KEY, email)
            self.auth = UnverifiedManagerBypass(email)
            self.state = SessionState.AUTHENTICATED
            self._notifier.success("Login successful")
            return self.auth

        try:
            session = await self._backend.auth.sign_in_with_password(email, password)
        except BackendError as exc:
            logger.warning("[session] login failed email=%s: %s", email, exc)
            self._notifier.error(exc.message)
            raise HTTPException(status_code=401, detail=exc.message)
        if not isinstance(self.auth, VerifiedSession) or self.auth.session is not session:
            await self._apply_session(session)
        self._notifier.success("Login successful")
        return self.auth

    async def sign_in_with_oauth(self, provider: str) -> str:
        provider = (provider or "").strip().lower()
        if provider not in settings.OAUTH_PROVIDERS:
            raise HTTPException(status_code=400, detail=f"Unsupported provider: {provider}")
        try:
            return await self._backend.auth.sign_in_with_oauth(
                provider,
                redirect_to=f"{settings.SITE_URL.rstrip('/')}/dashboard",
                scopes="profile email" if provider == "google" else "",
                query_params={"access_type": "offline", "prompt": "consent"},
            )
        except BackendError as exc:
            logger.warning("[session] %s login error: %s", provider, exc)
            self._notifier.error(exc.message or f"Failed to login with {provider}")
            raise HTTPException(status_code=400, detail=exc.message)

    async def complete_oauth(self, auth_code: str) -> Authentication:
        if not auth_code:
            raise HTTPException(status_code=400, detail="Missing authorization code")
        try:
            session = await self._backend.auth.exchange_code_for_session(auth_code)
        except BackendError as exc:
            logger.warning("[session] oauth code exchange failed: %s", exc)
            self._notifier.error(exc.message)
            raise HTTPException(status_code=401, detail=exc.message)
        if not isinstance(self.auth, VerifiedSession) or self.auth.session is not session:
            await self._apply_session(session)
        return self.auth

    async def sign_up(self, email: str, password: str) -> Optional[Authentication]:
        email, password = self._require_credentials(email, password)
        try:
            await self._backend.auth.sign_up(email, password, {"role": EMPLOYEE})
        except BackendError as exc:
            logger.warning("[session] sign-up failed email=%s: %s", email, exc)
            self._notifier.error(exc.message)
            raise HTTPException(status_code=400, detail=exc.message)
        self._notifier.success("Account created successfully")
        return self.auth

    async def sign_out(self) -> None:
        self._storage.remove_item(IS_MANAGER_KEY)
        self._storage.remove_item(USER_EMAIL_KEY)
        self.auth = None
        self.state = SessionState.UNAUTHENTICATED
        try:
            await self._backend.auth.sign_out()
        except BackendError as exc:
            logger.error("[session] remote sign-out failed: %s", exc)
            self._notifier.error(exc.message)
            raise HTTPException(status_code=502, detail=exc.message)
