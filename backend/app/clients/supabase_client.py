"""Supabase 호환 REST 백엔드 클라이언트입니다.

Identity 호출은 GoTrue 엔드포인트(`/auth/v1`), 테이블 호출은 PostgREST
엔드포인트(`/rest/v1/<table>`)로 보냅니다.

  POST  /auth/v1/token?grant_type=password       - 이메일 로그인
  POST  /auth/v1/token?grant_type=refresh_token  - 세션 갱신
  POST  /auth/v1/token?grant_type=pkce           - OAuth 코드 교환
  POST  /auth/v1/signup                          - 가입
  POST  /auth/v1/logout                          - 원격 세션 종료
  GET   /auth/v1/authorize?provider=...          - OAuth 시작 URL

viewer 한 명당 인스턴스 하나를 만들며, 현재 세션은 인스턴스가 보관합니다.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic_core import to_jsonable_python

from app.clients.base import (
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    AuthEventEmitter,
    AuthSession,
    BackendClient,
    BackendError,
)

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {response.status_code}"


async def _send(http: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    try:
        response = await http.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise BackendError(_error_message(exc.response), exc.response.status_code) from exc
    except httpx.HTTPError as exc:
        raise BackendError(f"Network error: {exc}") from exc
    return response


def _pkce_pair() -> tuple[str, str]:
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


class SupabaseAuth(AuthEventEmitter):
    def __init__(self, http: httpx.AsyncClient, base_url: str, anon_key: str):
        super().__init__()
        self._http = http
        self._auth_url = f"{base_url.rstrip('/')}/auth/v1"
        self._anon_key = anon_key
        self._session: Optional[AuthSession] = None
        self._code_verifier: Optional[str] = None

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    def _headers(self, bearer: Optional[str] = None) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {bearer or self._anon_key}",
            "Content-Type": "application/json",
        }

    async def _token(self, grant_type: str, body: dict[str, Any]) -> AuthSession:
        response = await _send(
            self._http,
            "POST",
            f"{self._auth_url}/token",
            params={"grant_type": grant_type},
            json=body,
            headers=self._headers(),
        )
        return AuthSession.from_payload(response.json())

    async def get_session(self) -> Optional[AuthSession]:
        session = self._session
        if session is None or not session.is_expired:
            return session
        if not session.refresh_token:
            self._session = None
            await self._emit(SIGNED_OUT, None)
            return None
        try:
            refreshed = await self._token("refresh_token", {"refresh_token": session.refresh_token})
        except BackendError as exc:
            logger.warning("[auth] session refresh failed: %s", exc)
            self._session = None
            await self._emit(SIGNED_OUT, None)
            return None
        self._session = refreshed
        await self._emit(TOKEN_REFRESHED, refreshed)
        return refreshed

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        session = await self._token("password", {"email": email, "password": password})
        self._session = session
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_in_with_oauth(self, provider, *, redirect_to, scopes="", query_params=None) -> str:
        verifier, challenge = _pkce_pair()
        self._code_verifier = verifier
        params: dict[str, str] = {
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": challenge,
            "code_challenge_method": "s256",
        }
        if scopes:
            params["scopes"] = scopes
        params.update(query_params or {})
        return f"{self._auth_url}/authorize?{urlencode(params)}"

    async def exchange_code_for_session(self, auth_code: str) -> AuthSession:
        if not self._code_verifier:
            raise BackendError("No OAuth sign-in is in progress", 400)
        session = await self._token("pkce", {"auth_code": auth_code, "code_verifier": self._code_verifier})
        self._code_verifier = None
        self._session = session
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_up(self, email: str, password: str, metadata=None) -> Optional[AuthSession]:
        response = await _send(
            self._http,
            "POST",
            f"{self._auth_url}/signup",
            json={"email": email, "password": password, "data": dict(metadata or {})},
            headers=self._headers(),
        )
        body = response.json()
        # 이메일 확인이 켜져 있으면 세션 없이 user만 돌아온다.
        if not body.get("access_token"):
            user = body.get("user") or body
            logger.info("[auth] sign-up pending confirmation user=%s", user.get("id"))
            return None
        session = AuthSession.from_payload(body)
        self._session = session
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        token = self.access_token
        self._session = None
        await self._emit(SIGNED_OUT, None)
        if token:
            await _send(self._http, "POST", f"{self._auth_url}/logout", headers=self._headers(token))


class SupabaseDataStore:
    def __init__(self, http: httpx.AsyncClient, base_url: str, anon_key: str, auth: SupabaseAuth):
        self._http = http
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._anon_key = anon_key
        self._auth = auth

    def _headers(self, *, representation: bool = False) -> dict[str, str]:
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {self._auth.access_token or self._anon_key}",
            "Content-Type": "application/json",
        }
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    @staticmethod
    def _filter_params(filters: Optional[dict[str, Any]]) -> dict[str, str]:
        params = {}
        for key, value in (filters or {}).items():
            if value is None:
                params[key] = "is.null"
            elif isinstance(value, bool):
                params[key] = f"eq.{str(value).lower()}"
            else:
                params[key] = f"eq.{to_jsonable_python(value)}"
        return params

    async def select(self, table, *, filters=None, order_by=None, ascending=True, join_profiles=False):
        params = {"select": "*,profiles!inner(*)" if join_profiles else "*"}
        params.update(self._filter_params(filters))
        if order_by:
            direction = "asc" if ascending else "desc"
            params["order"] = f"{order_by}.{direction}.nullslast,created_at.asc,id.asc"
        response = await _send(self._http, "GET", f"{self._rest_url}/{table}", params=params, headers=self._headers())
        return response.json()

    async def insert(self, table, row):
        response = await _send(
            self._http,
            "POST",
            f"{self._rest_url}/{table}",
            json=[to_jsonable_python(row)],
            headers=self._headers(representation=True),
        )
        rows = response.json()
        if not rows:
            raise BackendError(f"insert into {table} returned no rows", response.status_code)
        return rows[0]

    async def update(self, table, values, *, filters):
        response = await _send(
            self._http,
            "PATCH",
            f"{self._rest_url}/{table}",
            params=self._filter_params(filters),
            json=to_jsonable_python(values),
            headers=self._headers(representation=True),
        )
        return response.json()


def create_supabase_client(
    base_url: str,
    anon_key: str,
    *,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BackendClient:
    if not base_url or not anon_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set for the supabase backend.")
    http = httpx.AsyncClient(timeout=timeout, transport=transport)
    auth = SupabaseAuth(http, base_url, anon_key)
    return BackendClient(
        auth=auth,
        data=SupabaseDataStore(http, base_url, anon_key, auth),
        _closer=http.aclose,
    )
