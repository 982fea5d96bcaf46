"""외부 백엔드(identity provider + relational data store) 계약과 공용 타입입니다."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

AuthChangeCallback = Callable[[str, Optional["AuthSession"]], Awaitable[None]]


class BackendError(Exception):
    """원격 호출 실패. status_code가 None이면 네트워크 계층 오류입니다."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthUser":
        return cls(
            id=str(payload["id"]),
            email=payload.get("email"),
            user_metadata=dict(payload.get("user_metadata") or {}),
        )


@dataclass
class AuthSession:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= int(time.time())

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthSession":
        expires_at = payload.get("expires_at")
        if expires_at is None and payload.get("expires_in") is not None:
            expires_at = int(time.time()) + int(payload["expires_in"])
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=int(expires_at) if expires_at is not None else None,
            user=AuthUser.from_payload(payload["user"]),
        )


class Subscription:
    def __init__(self, emitter: "AuthEventEmitter", callback: AuthChangeCallback):
        self._emitter = emitter
        self.callback = callback

    def unsubscribe(self) -> None:
        self._emitter._listeners = [s for s in self._emitter._listeners if s is not self]


class AuthEventEmitter:
    """onAuthStateChange 구독자 관리. 두 identity provider 구현이 공유합니다."""

    def __init__(self) -> None:
        self._listeners: list[Subscription] = []

    def on_auth_state_change(self, callback: AuthChangeCallback) -> Subscription:
        subscription = Subscription(self, callback)
        self._listeners.append(subscription)
        return subscription

    async def _emit(self, event: str, session: Optional[AuthSession]) -> None:
        for subscription in list(self._listeners):
            try:
                await subscription.callback(event, session)
            except Exception as exc:
                logger.warning("[auth] state change listener failed on %s: %s", event, exc)


class IdentityProvider(Protocol):
    async def get_session(self) -> Optional[AuthSession]: ...

    def on_auth_state_change(self, callback: AuthChangeCallback) -> Subscription: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession: ...

    async def sign_in_with_oauth(
        self,
        provider: str,
        *,
        redirect_to: str,
        scopes: str = "",
        query_params: Optional[dict[str, str]] = None,
    ) -> str: ...

    async def exchange_code_for_session(self, auth_code: str) -> AuthSession: ...

    async def sign_up(
        self, email: str, password: str, metadata: Optional[dict[str, Any]] = None
    ) -> Optional[AuthSession]: ...

    async def sign_out(self) -> None: ...


class DataStore(Protocol):
    async def select(
        self,
        table: str,
        *,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        join_profiles: bool = False,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]: ...

    async def update(
        self, table: str, values: dict[str, Any], *, filters: dict[str, Any]
    ) -> list[dict[str, Any]]: ...


@dataclass
class BackendClient:
    """supabase-js 클라이언트처럼 auth/data 핸들을 한 번에 묶습니다."""

    auth: IdentityProvider
    data: DataStore
    _closer: Optional[Callable[[], Awaitable[None]]] = None

    async def aclose(self) -> None:
        if self._closer is not None:
            await self._closer()
