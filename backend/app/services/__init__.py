"""서비스 레이어 패키지 초기화 모듈입니다."""

from app.services import (
    auth_service,
    notification_service,
    session_service,
    task_store,
    viewer_context,
)
