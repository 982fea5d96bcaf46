"""UserProfile 도메인의 SQLAlchemy 모델 정의입니다."""

from sqlalchemy import Column, String, DateTime
from app.database import Base
from app.models.task import _uuid, _utcnow


class UserProfile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), unique=True, nullable=False)
    full_name = Column(String(100))
    avatar_url = Column(String(500))
    role = Column(String(20), nullable=False, default="employee")  # employee/manager
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
