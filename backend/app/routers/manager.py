from fastapi import APIRouter, Depends, HTTPException
from app.schemas.task import FeedbackRequest, TaskListOut, TaskOut
from app.services.viewer_context import ViewerContext
from app.middleware.auth_middleware import require_manager
from app.routers.tasks import ensure_still_authenticated, get_cached_task, mutation_failed, task_list_out
from app.utils.helpers import STATUS_FILTERS, filter_tasks

router = APIRouter(prefix="/api/manager", tags=["manager"])


@router.get("/tasks", response_model=TaskListOut)
async def list_employee_tasks(
    search: str = "",
    status: str = "all",
    context: ViewerContext = Depends(require_manager),
):
    if status not in STATUS_FILTERS:
        raise HTTPException(status_code=400, detail=f"status must be one of: {', '.join(STATUS_FILTERS)}")
    await context.tasks.fetch_all_tasks()
    ensure_still_authenticated(context)
    return task_list_out(context, filter_tasks(context.tasks.tasks, search, status))


@router.post("/tasks/{task_id}/feedback", response_model=TaskOut)
async def add_feedback(task_id: str, data: FeedbackRequest, context: ViewerContext = Depends(require_manager)):
    get_cached_task(context, task_id)
    task = await context.tasks.add_feedback(task_id, data.feedback)
    if task is None:
        mutation_failed(context, 400 if not data.feedback.strip() else 502)
    return TaskOut.model_validate(task, from_attributes=True)
