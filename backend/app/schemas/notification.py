"""Notification(토스트) 응답 계약을 위한 Pydantic 스키마입니다."""

from pydantic import BaseModel
from datetime import datetime


class NoticeOut(BaseModel):
    level: str  # success/error
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}
