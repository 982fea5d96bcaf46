"""Task Store 서비스 레이어입니다. 현재 viewer의 task 캐시를 데이터 스토어와 동기화합니다.

모든 변경은 "원격 호출 → 성공 확인 → 로컬 캐시 반영" 순서로만 처리합니다.
원격 호출이 실패하면 캐시는 그대로 두고, 로그와 알림만 남깁니다.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from pydantic import ValidationError

from app.clients.base import BackendError, DataStore
from app.schemas.task import Task
from app.services.notification_service import Notifier
from app.services.session_service import ViewerSession

logger = logging.getLogger(__name__)

TASKS_TABLE = "tasks"
EDITABLE_FIELDS = ("title", "description", "due_date")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class TaskStore:
    def __init__(self, data: DataStore, session: ViewerSession, notifier: Notifier):
        self._data = data
        self._session = session
        self._notifier = notifier
        self.tasks: List[Task] = []
        self.is_loading = False

    def get(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def clear(self) -> None:
        self.tasks = []

    def _next_timestamp(self, task_id: str) -> datetime:
        # updated_at이 캐시된 값보다 뒤로 가지 않게 한다.
        now = _utcnow()
        cached = self.get(task_id)
        if cached is not None and cached.updated_at > now:
            return cached.updated_at
        return now

    def _merge(self, task_id: str, changes: dict[str, Any]) -> Optional[Task]:
        merged = None
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                merged = task.model_copy(update=changes)
                self.tasks[index] = merged
        return merged

    async def _load(self, **query) -> bool:
        self.is_loading = True
        try:
            rows = await self._data.select(TASKS_TABLE, order_by="due_date", ascending=True, **query)
            tasks = [Task.model_validate(row) for row in rows]
        except (BackendError, ValidationError) as exc:
            logger.error("[tasks] fetch failed query=%s: %s", query, exc)
            return False
        finally:
            self.is_loading = False
        self.tasks = tasks
        return True

    async def fetch_own_tasks(self) -> None:
        user_id = self._session.user_id
        if not user_id or not await self._session.ensure_fresh():
            return
        if not await self._load(filters={"user_id": user_id}):
            self._notifier.error("Failed to fetch tasks")

    async def fetch_all_tasks(self) -> None:
        if not self._session.is_authenticated or not self._session.is_manager:
            return
        if not await self._session.ensure_fresh():
            return
        if not await self._load(join_profiles=True):
            self._notifier.error("Failed to fetch employee tasks")

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        due_date: Optional[date] = None,
    ) -> Optional[Task]:
        title = (title or "").strip()
        if not title:
            self._notifier.error("Task title is required")
            return None
        user_id = self._session.user_id
        if not user_id:
            self._notifier.error("You must be signed in to create tasks")
            return None
        if not await self._session.ensure_fresh():
            return None

        payload = {
            "title": title,
            "description": _clean_optional_text(description),
            "due_date": due_date,
            "user_id": user_id,
            "is_completed": False,
        }
        self.is_loading = True
        try:
            row = await self._data.insert(TASKS_TABLE, payload)
            task = Task.model_validate(row)
        except (BackendError, ValidationError) as exc:
            logger.error("[tasks] error creating task user=%s: %s", user_id, exc)
            self._notifier.error("Failed to create task")
            return None
        finally:
            self.is_loading = False

        self.tasks.append(task)
        self._notifier.success("Task created successfully")
        return task

    async def _remote_update(self, task_id: str, values: dict[str, Any], action: str, **extra_filters) -> bool:
        if not await self._session.ensure_fresh():
            return False
        self.is_loading = True
        try:
            rows = await self._data.update(TASKS_TABLE, values, filters={"id": task_id, **extra_filters})
        except BackendError as exc:
            logger.error("[tasks] error on %s task=%s: %s", action, task_id, exc)
            self._notifier.error(f"Failed to {action}")
            return False
        finally:
            self.is_loading = False
        if not rows:
            logger.warning("[tasks] %s matched no rows task=%s", action, task_id)
            self._notifier.error(f"Failed to {action}")
            return False
        return True

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> Optional[Task]:
        changes = {key: value for key, value in fields.items() if key in EDITABLE_FIELDS}
        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                self._notifier.error("Task title cannot be empty")
                return None
            changes["title"] = title
        if "description" in changes:
            changes["description"] = _clean_optional_text(changes["description"])
        if not changes:
            return self.get(task_id)

        changes["updated_at"] = self._next_timestamp(task_id)
        if not await self._remote_update(task_id, changes, "update task"):
            return None
        self._notifier.success("Task updated successfully")
        return self._merge(task_id, changes)

    async def complete_task(self, task_id: str) -> Optional[Task]:
        cached = self.get(task_id)
        if cached is not None and cached.is_completed:
            return cached

        completed_at = self._next_timestamp(task_id)
        changes = {"is_completed": True, "completed_at": completed_at, "updated_at": completed_at}
        # 이미 완료된 원격 레코드의 completed_at은 덮어쓰지 않는다.
        if not await self._remote_update(task_id, changes, "complete task", is_completed=False):
            return None
        self._notifier.success("Task completed!")
        return self._merge(task_id, changes)

    async def add_feedback(self, task_id: str, text: str) -> Optional[Task]:
        if not self._session.is_manager:
            return None
        feedback = (text or "").strip()
        if not feedback:
            self._notifier.error("Feedback cannot be empty")
            return None

        changes = {"feedback": feedback, "updated_at": self._next_timestamp(task_id)}
        if not await self._remote_update(task_id, changes, "add feedback"):
            return None
        self._notifier.success("Feedback added successfully")
        return self._merge(task_id, changes)
