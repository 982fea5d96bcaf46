import uuid
from typing import AsyncIterator
from fastapi import Depends, HTTPException, Request, Response, status
from app.config import settings
from app.services.auth_service import create_client_token, decode_client_token
from app.services.viewer_context import ViewerContext, ViewerContextRegistry


def get_registry(request: Request) -> ViewerContextRegistry:
    return request.app.state.viewer_contexts


async def get_viewer_context(
    request: Request,
    response: Response,
    registry: ViewerContextRegistry = Depends(get_registry),
) -> AsyncIterator[ViewerContext]:
    client_id = decode_client_token(request.cookies.get(settings.CLIENT_COOKIE_NAME))
    if client_id is None:
        client_id = uuid.uuid4().hex
        response.set_cookie(
            settings.CLIENT_COOKIE_NAME,
            create_client_token(client_id),
            httponly=True,
            samesite="lax",
        )
    context = await registry.acquire(client_id)
    try:
        yield context
    finally:
        await registry.release(context)


def require_authenticated(context: ViewerContext = Depends(get_viewer_context)) -> ViewerContext:
    if not context.session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return context


def require_manager(context: ViewerContext = Depends(require_authenticated)) -> ViewerContext:
    if not context.session.is_manager:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Requires role: manager",
        )
    return context
