"""SQLAlchemy 기반 로컬 백엔드입니다. 호스팅 스토어의 row-level 접근 규칙을 같은 계약으로 재현합니다."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import Date, DateTime
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.clients.base import (
    SIGNED_IN,
    SIGNED_OUT,
    AuthEventEmitter,
    AuthSession,
    AuthUser,
    BackendClient,
    BackendError,
)
from app.models.auth_user import AuthUser as AuthUserRow
from app.models.profile import UserProfile
from app.models.task import Task
from app.services.auth_service import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from app.utils.permissions import ALL_ROLES, EMPLOYEE, MANAGER

logger = logging.getLogger(__name__)

TABLES = {
    "tasks": Task,
    "profiles": UserProfile,
}

# 소유자가 아닌 관리자가 task에 쓸 수 있는 컬럼
MANAGER_TASK_COLUMNS = {"feedback", "updated_at"}


def _aware(value: Any) -> Any:
    # SQLite는 tz 정보를 버리므로 UTC로 복원한다.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_row(obj: Any) -> dict[str, Any]:
    return {c.name: _aware(getattr(obj, c.name)) for c in obj.__table__.columns}


def _coerce(model: Any, values: dict[str, Any]) -> dict[str, Any]:
    columns = model.__table__.columns
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        if key not in columns:
            raise BackendError(f"column '{key}' does not exist on '{model.__tablename__}'", 400)
        column_type = columns[key].type
        if isinstance(value, str) and isinstance(column_type, DateTime):
            value = datetime.fromisoformat(value)
        elif isinstance(value, str) and isinstance(column_type, Date):
            value = date.fromisoformat(value)
        coerced[key] = value
    return coerced


def _model_for(table: str) -> Any:
    model = TABLES.get(table)
    if model is None:
        raise BackendError(f"relation '{table}' does not exist", 404)
    return model


class LocalAuth(AuthEventEmitter):
    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self._session_factory = session_factory
        self._session: Optional[AuthSession] = None

    def current_user_id(self) -> Optional[str]:
        if self._session is None:
            return None
        payload = decode_access_token(self._session.access_token)
        if not payload:
            return None
        return payload.get("sub")

    async def get_session(self) -> Optional[AuthSession]:
        if self._session is not None and self.current_user_id() is None:
            self._session = None
            await self._emit(SIGNED_OUT, None)
        return self._session

    def _issue(self, row: AuthUserRow) -> AuthSession:
        token, expires_at = create_access_token(row.id, row.email)
        return AuthSession(
            access_token=token,
            expires_at=expires_at,
            user=AuthUser(id=row.id, email=row.email, user_metadata=dict(row.user_metadata or {})),
        )

    def _verify(self, email: str, password: str) -> AuthSession:
        db: Session = self._session_factory()
        try:
            row = db.query(AuthUserRow).filter(AuthUserRow.email == email.strip().lower()).first()
            if row is None or not verify_password(password, row.password_hash):
                raise BackendError("Invalid login credentials", 400)
            return self._issue(row)
        finally:
            db.close()

    def _register(self, email: str, password: str, metadata: dict[str, Any]) -> AuthSession:
        db: Session = self._session_factory()
        try:
            normalized = email.strip().lower()
            if db.query(AuthUserRow).filter(AuthUserRow.email == normalized).first():
                raise BackendError("User already registered", 422)
            row = AuthUserRow(email=normalized, password_hash=hash_password(password), user_metadata=metadata)
            db.add(row)
            db.flush()
            # 가입 시 기본 employee 프로필 생성 (호스팅 스토어의 트리거 역할)
            db.add(UserProfile(user_id=row.id, full_name=metadata.get("full_name"), role=EMPLOYEE))
            db.commit()
            db.refresh(row)
            return self._issue(row)
        finally:
            db.close()

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        session = await run_in_threadpool(self._verify, email, password)
        self._session = session
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_in_with_oauth(self, provider, *, redirect_to, scopes="", query_params=None) -> str:
        raise BackendError(f"Unsupported provider: {provider} is not enabled on the local backend", 400)

    async def exchange_code_for_session(self, auth_code: str) -> AuthSession:
        raise BackendError("OAuth is not enabled on the local backend", 400)

    async def sign_up(self, email: str, password: str, metadata=None) -> Optional[AuthSession]:
        session = await run_in_threadpool(self._register, email, password, dict(metadata or {}))
        self._session = session
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        self._session = None
        await self._emit(SIGNED_OUT, None)


class LocalDataStore:
    def __init__(self, session_factory: sessionmaker, auth: LocalAuth):
        self._session_factory = session_factory
        self._auth = auth

    # ---- caller / row-level rules ----

    def _caller(self, db: Session) -> tuple[Optional[str], bool]:
        user_id = self._auth.current_user_id()
        if user_id is None:
            return None, False
        profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
        return user_id, bool(profile and profile.role == MANAGER)

    @staticmethod
    def _visible(query, model, user_id: str, is_manager: bool):
        if is_manager:
            return query
        return query.filter(model.user_id == user_id)

    def _select(self, table, filters, order_by, ascending, join_profiles):
        model = _model_for(table)
        db: Session = self._session_factory()
        try:
            user_id, is_manager = self._caller(db)
            if user_id is None:
                return []
            query = self._visible(db.query(model), model, user_id, is_manager)
            for key, value in _coerce(model, filters or {}).items():
                query = query.filter(getattr(model, key) == value)
            if join_profiles and model is Task:
                query = query.join(UserProfile, UserProfile.user_id == Task.user_id).add_entity(UserProfile)
            if order_by:
                column = getattr(model, order_by)
                query = query.order_by((column.asc() if ascending else column.desc()).nulls_last())
            if "created_at" in model.__table__.columns:
                query = query.order_by(model.created_at.asc())
            query = query.order_by(model.id.asc())

            if join_profiles and model is Task:
                rows = []
                for task, profile in query.all():
                    row = _to_row(task)
                    row["profiles"] = _to_row(profile)
                    rows.append(row)
                return rows
            return [_to_row(obj) for obj in query.all()]
        finally:
            db.close()

    def _insert(self, table, row):
        model = _model_for(table)
        db: Session = self._session_factory()
        try:
            user_id, _ = self._caller(db)
            if user_id is None:
                raise BackendError("JWT required", 401)
            values = _coerce(model, row)
            if values.get("user_id") != user_id:
                raise BackendError(f"new row violates row-level security policy for table \"{table}\"", 403)
            if model is UserProfile and values.get("role", EMPLOYEE) not in ALL_ROLES:
                raise BackendError(f"invalid input value for role: {values['role']}", 400)
            if model is UserProfile and values.get("role", EMPLOYEE) != EMPLOYEE:
                raise BackendError("profiles can only be created with the employee role", 403)
            obj = model(**values)
            db.add(obj)
            db.commit()
            db.refresh(obj)
            return _to_row(obj)
        except IntegrityError as exc:
            db.rollback()
            raise BackendError(f"constraint violation on \"{table}\": {exc.orig}", 400) from exc
        finally:
            db.close()

    def _update(self, table, values, filters):
        model = _model_for(table)
        db: Session = self._session_factory()
        try:
            user_id, is_manager = self._caller(db)
            if user_id is None:
                raise BackendError("JWT required", 401)
            changes = _coerce(model, values)
            query = self._visible(db.query(model), model, user_id, is_manager)
            for key, value in _coerce(model, filters).items():
                query = query.filter(getattr(model, key) == value)
            rows = query.all()
            for obj in rows:
                self._check_columns(model, obj, changes, user_id, is_manager)
                for key, value in changes.items():
                    setattr(obj, key, value)
            db.commit()
            return [_to_row(obj) for obj in rows]
        except IntegrityError as exc:
            db.rollback()
            raise BackendError(f"constraint violation on \"{table}\": {exc.orig}", 400) from exc
        finally:
            db.close()

    @staticmethod
    def _check_columns(model, obj, changes, user_id, is_manager):
        if model is UserProfile and "role" in changes:
            raise BackendError("permission denied for column role", 403)
        if model is not Task:
            return
        if obj.user_id == user_id:
            if "feedback" in changes:
                raise BackendError("permission denied for column feedback", 403)
            return
        if not is_manager or set(changes) - MANAGER_TASK_COLUMNS:
            raise BackendError("permission denied for table tasks", 403)

    # ---- DataStore ----

    async def select(self, table, *, filters=None, order_by=None, ascending=True, join_profiles=False):
        return await self._run(self._select, table, filters, order_by, ascending, join_profiles)

    async def insert(self, table, row):
        return await self._run(self._insert, table, row)

    async def update(self, table, values, *, filters):
        return await self._run(self._update, table, values, filters)

    async def _run(self, func, *args):
        try:
            return await run_in_threadpool(func, *args)
        except BackendError:
            raise
        except SQLAlchemyError as exc:
            logger.warning("[local-backend] %s failed: %s", func.__name__, exc)
            raise BackendError(str(exc), 500) from exc


def create_local_client(session_factory: sessionmaker) -> BackendClient:
    auth = LocalAuth(session_factory)
    return BackendClient(auth=auth, data=LocalDataStore(session_factory, auth))
