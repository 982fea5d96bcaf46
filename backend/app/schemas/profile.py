"""UserProfile 요청/응답 계약을 위한 Pydantic 스키마입니다."""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class UserProfileOut(BaseModel):
    id: str
    user_id: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str = "employee"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
