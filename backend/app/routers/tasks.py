from fastapi import APIRouter, Depends, HTTPException
from app.schemas.notification import NoticeOut
from app.schemas.task import TaskCreate, TaskListOut, TaskOut, TaskUpdate
from app.services.viewer_context import ViewerContext
from app.middleware.auth_middleware import require_authenticated

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def task_list_out(context: ViewerContext, tasks) -> TaskListOut:
    return TaskListOut(
        tasks=[TaskOut.model_validate(t, from_attributes=True) for t in tasks],
        is_loading=context.tasks.is_loading,
        notices=[NoticeOut.model_validate(n) for n in context.notifier.drain()],
    )


def mutation_failed(context: ViewerContext, status_code: int = 502):
    if not context.session.is_authenticated:
        status_code = 401
    raise HTTPException(status_code=status_code, detail=context.notifier.latest_error() or "Something went wrong")


def ensure_still_authenticated(context: ViewerContext):
    # store 호출 중 세션 만료가 감지된 경우
    if not context.session.is_authenticated:
        raise HTTPException(status_code=401, detail=context.notifier.latest_error() or "Not authenticated")


def get_cached_task(context: ViewerContext, task_id: str):
    task = context.tasks.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("", response_model=TaskListOut)
async def list_tasks(context: ViewerContext = Depends(require_authenticated)):
    await context.tasks.fetch_own_tasks()
    ensure_still_authenticated(context)
    return task_list_out(context, context.tasks.tasks)


@router.post("", response_model=TaskOut)
async def create_task(data: TaskCreate, context: ViewerContext = Depends(require_authenticated)):
    task = await context.tasks.create_task(data.title, data.description, data.due_date)
    if task is None:
        if not data.title.strip():
            mutation_failed(context, 400)
        mutation_failed(context, 403 if context.session.user_id is None else 502)
    return TaskOut.model_validate(task, from_attributes=True)


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(task_id: str, data: TaskUpdate, context: ViewerContext = Depends(require_authenticated)):
    get_cached_task(context, task_id)
    fields = data.model_dump(include=data.model_fields_set)
    task = await context.tasks.update_task(task_id, fields)
    if task is None:
        blank_title = "title" in fields and not (fields["title"] or "").strip()
        mutation_failed(context, 400 if blank_title else 502)
    return TaskOut.model_validate(task, from_attributes=True)


@router.post("/{task_id}/complete", response_model=TaskOut)
async def complete_task(task_id: str, context: ViewerContext = Depends(require_authenticated)):
    get_cached_task(context, task_id)
    task = await context.tasks.complete_task(task_id)
    if task is None:
        mutation_failed(context)
    return TaskOut.model_validate(task, from_attributes=True)
