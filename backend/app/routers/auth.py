"""Auth 기능 API 라우터입니다. 요청을 검증하고 session 서비스로 위임합니다."""

from fastapi import APIRouter, Depends
from app.schemas.auth import LoginRequest, OAuthStartOut, SessionOut, SignUpRequest
from app.schemas.profile import UserProfileOut
from app.services.session_service import LoginRoute, UnverifiedManagerBypass, VerifiedSession
from app.services.viewer_context import ViewerContext, ViewerContextRegistry
from app.middleware.auth_middleware import get_registry, get_viewer_context

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_out(context: ViewerContext) -> SessionOut:
    session = context.session
    auth = session.auth
    return SessionOut(
        state=session.state.value,
        auth_kind=auth.kind if isinstance(auth, (VerifiedSession, UnverifiedManagerBypass)) else None,
        user_id=session.user_id,
        email=session.email,
        is_manager=session.is_manager,
        display_name=session.display_name if session.is_authenticated else None,
        profile=UserProfileOut.model_validate(session.profile) if session.profile else None,
    )


@router.post("/login", response_model=SessionOut)
async def login(request: LoginRequest, context: ViewerContext = Depends(get_viewer_context)):
    await context.session.sign_in_with_password(request.email, request.password, LoginRoute.EMPLOYEE)
    return _session_out(context)


@router.post("/manager-login", response_model=SessionOut)
async def manager_login(request: LoginRequest, context: ViewerContext = Depends(get_viewer_context)):
    await context.session.sign_in_with_password(request.email, request.password, LoginRoute.MANAGER)
    return _session_out(context)


@router.post("/signup", response_model=SessionOut)
async def signup(request: SignUpRequest, context: ViewerContext = Depends(get_viewer_context)):
    await context.session.sign_up(request.email, request.password)
    return _session_out(context)


@router.post("/oauth/{provider}", response_model=OAuthStartOut)
async def oauth_start(provider: str, context: ViewerContext = Depends(get_viewer_context)):
    url = await context.session.sign_in_with_oauth(provider)
    return OAuthStartOut(provider=provider.lower(), url=url)


@router.get("/callback", response_model=SessionOut)
async def oauth_callback(code: str = "", context: ViewerContext = Depends(get_viewer_context)):
    await context.session.complete_oauth(code)
    return _session_out(context)


@router.post("/logout")
async def logout(
    context: ViewerContext = Depends(get_viewer_context),
    registry: ViewerContextRegistry = Depends(get_registry),
):
    try:
        await context.sign_out()
    finally:
        await registry.discard(context.client_id)
        await context.aclose()
    return {"message": "Signed out"}


@router.get("/session", response_model=SessionOut)
async def current_session(context: ViewerContext = Depends(get_viewer_context)):
    return _session_out(context)
