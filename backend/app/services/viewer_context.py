"""Viewer Context 서비스 레이어입니다.

브라우저 클라이언트마다 session/task store/notifier/local storage 묶음을 만들고
client id로 찾아 줍니다. 애플리케이션 전역 상태 대신 이 컨텍스트를 라우터에 주입합니다.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict

from app.clients.base import BackendClient
from app.services.notification_service import Notifier
from app.services.session_service import LocalStorage, ViewerSession
from app.services.task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class ViewerContext:
    client_id: str
    backend: BackendClient
    storage: LocalStorage
    notifier: Notifier
    session: ViewerSession
    tasks: TaskStore
    closed: bool = False

    @property
    def worth_keeping(self) -> bool:
        # 로그인 상태이거나 아직 읽지 않은 알림이 있는 컨텍스트만 보관한다.
        return self.session.is_authenticated or bool(self.notifier.pending())

    async def sign_out(self) -> None:
        self.tasks.clear()
        await self.session.sign_out()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.session.dispose()
        await self.backend.aclose()


def build_viewer_context(client_id: str, backend: BackendClient) -> ViewerContext:
    storage = LocalStorage()
    notifier = Notifier()
    session = ViewerSession(backend, storage, notifier)
    return ViewerContext(
        client_id=client_id,
        backend=backend,
        storage=storage,
        notifier=notifier,
        session=session,
        tasks=TaskStore(backend.data, session, notifier),
    )


class ViewerContextRegistry:
    """client id별 ViewerContext 보관소입니다.

    요청마다 acquire로 컨텍스트를 받고 release로 돌려줍니다. 로그인했거나 읽지 않은
    알림이 남은 컨텍스트만 보관하고, 나머지는 요청이 끝나면 바로 닫습니다.
    보관 중인 컨텍스트도 idle_seconds 동안 쓰이지 않거나 max_contexts를 넘으면
    오래된 순서로 닫습니다.
    """

    def __init__(
        self,
        backend_factory: Callable[[], BackendClient],
        max_contexts: int = 1000,
        idle_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._backend_factory = backend_factory
        self._max_contexts = max_contexts
        self._idle_seconds = idle_seconds
        self._clock = clock
        self._contexts: "OrderedDict[str, ViewerContext]" = OrderedDict()
        self._last_seen: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._contexts

    def _touch(self, client_id: str) -> None:
        self._contexts.move_to_end(client_id)
        self._last_seen[client_id] = self._clock()

    async def _evict_idle(self) -> None:
        deadline = self._clock() - self._idle_seconds
        for client_id in list(self._contexts):
            if self._last_seen.get(client_id, 0) > deadline:
                break
            logger.info("[viewer] idle context evicted client=%s", client_id)
            await self.discard(client_id)

    async def acquire(self, client_id: str) -> ViewerContext:
        await self._evict_idle()
        context = self._contexts.get(client_id)
        if context is not None:
            self._touch(client_id)
            return context
        context = build_viewer_context(client_id, self._backend_factory())
        await context.session.initialize()
        logger.info("[viewer] context created client=%s state=%s", client_id, context.session.state.value)
        return context

    async def release(self, context: ViewerContext) -> None:
        if context.closed:
            return
        client_id = context.client_id
        if not context.worth_keeping:
            if self._contexts.get(client_id) is context:
                await self.discard(client_id)
            else:
                await context.aclose()
            return
        current = self._contexts.get(client_id)
        if current is not None and current is not context:
            await current.aclose()
        self._contexts[client_id] = context
        self._touch(client_id)
        while len(self._contexts) > self._max_contexts:
            oldest = next(iter(self._contexts))
            logger.info("[viewer] context limit reached, evicting client=%s", oldest)
            await self.discard(oldest)

    async def discard(self, client_id: str) -> None:
        context = self._contexts.pop(client_id, None)
        self._last_seen.pop(client_id, None)
        if context is not None:
            await context.aclose()

    async def aclose(self) -> None:
        for client_id in list(self._contexts):
            await self.discard(client_id)
