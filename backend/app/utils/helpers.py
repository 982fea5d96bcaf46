from typing import Iterable, List, Optional

from app.schemas.task import Task

STATUS_FILTERS = ("all", "pending", "completed")


def matches_search(task: Task, search: Optional[str]) -> bool:
    term = (search or "").strip().lower()
    if not term:
        return True
    if term in task.title.lower():
        return True
    return bool(task.description and term in task.description.lower())


def filter_tasks(tasks: Iterable[Task], search: Optional[str] = None, status: str = "all") -> List[Task]:
    status = (status or "all").strip().lower()
    if status not in STATUS_FILTERS:
        status = "all"
    result = []
    for task in tasks:
        if not matches_search(task, search):
            continue
        if status == "completed" and not task.is_completed:
            continue
        if status == "pending" and task.is_completed:
            continue
        result.append(task)
    return result
