"""SQLAlchemy 모델 패키지 초기화 모듈입니다."""

from app.models.task import Task
from app.models.profile import UserProfile
from app.models.auth_user import AuthUser

__all__ = [
    "Task",
    "UserProfile",
    "AuthUser",
]
