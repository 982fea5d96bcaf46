"""Permissions 관련 공용 유틸리티 헬퍼입니다."""

from typing import Any, Optional


EMPLOYEE = "employee"
MANAGER = "manager"

ALL_ROLES = (EMPLOYEE, MANAGER)


def role_of(profile: Optional[Any]) -> Optional[str]:
    if profile is None:
        return None
    if isinstance(profile, dict):
        return profile.get("role")
    return getattr(profile, "role", None)


def is_manager_profile(profile: Optional[Any]) -> bool:
    return role_of(profile) == MANAGER
