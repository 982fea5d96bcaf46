from fastapi import APIRouter, Depends
from typing import List
from app.schemas.notification import NoticeOut
from app.services.viewer_context import ViewerContext
from app.middleware.auth_middleware import get_viewer_context

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[NoticeOut])
async def drain_notifications(context: ViewerContext = Depends(get_viewer_context)):
    return [NoticeOut.model_validate(n) for n in context.notifier.drain()]
