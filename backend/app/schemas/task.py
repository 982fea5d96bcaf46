"""Task 요청/응답 계약을 위한 Pydantic 스키마입니다."""

from pydantic import AliasChoices, BaseModel, Field, computed_field, field_validator
from typing import Optional
from datetime import date, datetime
from app.schemas.notification import NoticeOut
from app.schemas.profile import UserProfileOut


class TaskBase(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None


class TaskCreate(TaskBase):
    pass


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None


class FeedbackRequest(BaseModel):
    feedback: str


class Task(TaskBase):
    """데이터 스토어가 돌려준 canonical task 레코드입니다."""

    id: str
    user_id: str
    is_completed: bool = False
    feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    # 관리자 조회 시 profiles 조인 결과
    owner: Optional[UserProfileOut] = Field(
        default=None,
        validation_alias=AliasChoices("owner", "profiles"),
    )

    model_config = {"from_attributes": True, "populate_by_name": True}

    @field_validator("owner", mode="before")
    @classmethod
    def _single_owner(cls, value):
        # PostgREST는 임베딩 관계에 따라 배열을 돌려줄 수 있다.
        if isinstance(value, list):
            return value[0] if value else None
        return value

    def is_overdue(self, today: Optional[date] = None) -> bool:
        if self.due_date is None or self.is_completed:
            return False
        return self.due_date < (today or date.today())


class TaskOut(Task):
    @computed_field
    @property
    def overdue(self) -> bool:
        return self.is_overdue()


class TaskListOut(BaseModel):
    tasks: list[TaskOut]
    is_loading: bool = False
    notices: list[NoticeOut] = []
