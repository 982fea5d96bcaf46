"""환경 변수 기반 애플리케이션 설정을 중앙에서 관리합니다."""

from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Taskboard"

    # local: SQLAlchemy 기반 내장 백엔드 / supabase: 외부 BaaS(REST)
    BACKEND: str = "local"
    DATABASE_URL: str = "sqlite:///./taskboard.db"
    SECRET_KEY: str = "change-me-to-a-random-secret-key"
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:8000"]
    LOG_LEVEL: str = "INFO"

    # JWT (local backend access token, viewer cookie)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Supabase compatible backend
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_TIMEOUT_SECONDS: float = 10.0

    # OAuth redirect 기준 URL (프론트엔드 origin)
    SITE_URL: str = "http://localhost:5173"
    OAUTH_PROVIDERS: List[str] = ["google", "facebook", "github"]

    # 관리자 전용 로그인 경로의 로컬 우회 플래그. 검증된 세션이 아니므로 보안 경계가 아니다.
    MANAGER_BYPASS_ENABLED: bool = True
    CLIENT_COOKIE_NAME: str = "taskboard_client"
    # 보관할 viewer 컨텍스트 상한과 유휴 만료(초)
    VIEWER_CONTEXT_LIMIT: int = 1000
    VIEWER_CONTEXT_IDLE_SECONDS: int = 3600

    class Config:
        # 실행 cwd와 무관하게 backend/.env를 로드한다.
        env_file = str(Path(__file__).resolve().parents[1] / ".env")


settings = Settings()
