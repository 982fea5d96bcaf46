"""Auth 요청/응답 계약을 위한 Pydantic 스키마입니다."""

from pydantic import BaseModel
from typing import Optional
from app.schemas.profile import UserProfileOut


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class SignUpRequest(LoginRequest):
    pass


class OAuthStartOut(BaseModel):
    provider: str
    url: str


class SessionOut(BaseModel):
    state: str  # unauthenticated/loading/authenticated
    auth_kind: Optional[str] = None  # verified/manager_bypass
    user_id: Optional[str] = None
    email: Optional[str] = None
    is_manager: bool = False
    display_name: Optional[str] = None
    profile: Optional[UserProfileOut] = None
