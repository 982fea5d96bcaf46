"""외부 백엔드 클라이언트 패키지입니다. 설정에 따라 supabase 또는 local 구현을 만듭니다."""

from typing import Optional

from sqlalchemy.orm import sessionmaker

from app.clients.base import BackendClient, BackendError
from app.config import Settings


def create_backend_client(settings: Settings, session_factory: Optional[sessionmaker] = None) -> BackendClient:
    backend = (settings.BACKEND or "local").strip().lower()
    if backend == "supabase":
        from app.clients.supabase_client import create_supabase_client

        return create_supabase_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            timeout=float(settings.SUPABASE_TIMEOUT_SECONDS),
        )
    if backend == "local":
        from app.clients.local_client import create_local_client

        if session_factory is None:
            from app.database import SessionLocal

            session_factory = SessionLocal
        return create_local_client(session_factory)
    raise RuntimeError(f"Unknown BACKEND '{settings.BACKEND}' (expected 'local' or 'supabase').")


__all__ = ["BackendClient", "BackendError", "create_backend_client"]
