"""로컬 백엔드 identity provider 계정 모델입니다."""

from sqlalchemy import Column, String, DateTime, JSON
from app.database import Base
from app.models.task import _uuid, _utcnow


class AuthUser(Base):
    __tablename__ = "auth_users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(200), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    user_metadata = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
