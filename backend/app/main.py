"""FastAPI 애플리케이션 진입점. 미들웨어, API 라우터, viewer 컨텍스트 레지스트리를 등록합니다."""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.clients import create_backend_client
from app.database import Base, engine
import app.models  # noqa: F401 - 모델 import로 metadata 등록
from app.routers import auth, tasks, manager, notifications
from app.services.viewer_context import ViewerContextRegistry

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=f"{settings.APP_NAME} 업무 관리 시스템",
    description="직원 업무 등록/완료와 관리자 피드백을 위한 task tracking API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.viewer_contexts = ViewerContextRegistry(
    lambda: create_backend_client(settings),
    max_contexts=settings.VIEWER_CONTEXT_LIMIT,
    idle_seconds=settings.VIEWER_CONTEXT_IDLE_SECONDS,
)

# Register all routers
app.include_router(auth.router)
app.include_router(tasks.router)
app.include_router(manager.router)
app.include_router(notifications.router)


@app.on_event("startup")
def ensure_schema():
    # 로컬 백엔드일 때만 테이블을 자동 생성합니다.
    if settings.BACKEND.strip().lower() != "local":
        logger.info("[startup] backend=%s, skipping local schema", settings.BACKEND)
        return
    Base.metadata.create_all(bind=engine)


@app.on_event("shutdown")
async def close_viewer_contexts():
    await app.state.viewer_contexts.aclose()


@app.get("/api/health")
def health_check():
    return {"status": "ok", "service": settings.APP_NAME, "backend": settings.BACKEND}
