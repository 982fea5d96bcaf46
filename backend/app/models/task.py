"""Task 도메인의 SQLAlchemy 모델 정의입니다."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, Date, DateTime, Boolean, CheckConstraint, Index
from app.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    due_date = Column(Date)
    is_completed = Column(Boolean, nullable=False, default=False)
    feedback = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("length(trim(title)) > 0", name="ck_task_title_not_empty"),
        CheckConstraint(
            "(is_completed AND completed_at IS NOT NULL) OR (NOT is_completed AND completed_at IS NULL)",
            name="ck_task_completed_at",
        ),
        Index("idx_task_user", "user_id"),
        Index("idx_task_due_date", "due_date"),
    )
