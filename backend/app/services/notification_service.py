"""Notification Service 도메인 서비스 레이어입니다. viewer별 일시 알림(토스트) 큐를 관리합니다."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


SUCCESS = "success"
ERROR = "error"

MAX_PENDING_NOTICES = 50


@dataclass
class Notice:
    level: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    def __init__(self, maxlen: int = MAX_PENDING_NOTICES):
        self._pending: deque = deque(maxlen=maxlen)

    def success(self, message: str) -> None:
        self._pending.append(Notice(SUCCESS, message))

    def error(self, message: str) -> None:
        self._pending.append(Notice(ERROR, message))

    def pending(self) -> List[Notice]:
        return list(self._pending)

    def latest_error(self) -> Optional[str]:
        for notice in reversed(self._pending):
            if notice.level == ERROR:
                return notice.message
        return None

    def drain(self) -> List[Notice]:
        notices = list(self._pending)
        self._pending.clear()
        return notices
