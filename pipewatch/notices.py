"""Status banner notices.

Transient failures queue up and are shown one at a time, errors before
informational notices. An authentication failure is pinned until the
configuration is reloaded.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

DISPLAY_SECONDS = 4.0
MAX_QUEUED = 20


class NoticeLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str


class NoticeBoard:
    def __init__(self, display_seconds: float = DISPLAY_SECONDS) -> None:
        self.display_seconds = display_seconds
        self.auth_error: Optional[str] = None
        self.current: Optional[Notice] = None
        self.last: Optional[Notice] = None
        self._shown_until = 0.0
        self._errors: deque[Notice] = deque(maxlen=MAX_QUEUED)
        self._infos: deque[Notice] = deque(maxlen=MAX_QUEUED)

    def push(self, level: NoticeLevel, message: str) -> None:
        notice = Notice(level, message)
        if notice == self.current or notice in self._errors or notice in self._infos:
            return
        queue = self._errors if level is NoticeLevel.ERROR else self._infos
        queue.append(notice)

    def replay_last(self) -> bool:
        """Queue the most recently shown notice to be shown again next.

        Returns False when there is nothing to replay or it is still showing.
        """
        last = self.last
        if last is None or last == self.current:
            return False
        queue = self._errors if last.level is NoticeLevel.ERROR else self._infos
        if last in queue:
            queue.remove(last)
        queue.appendleft(last)
        return True

    def set_auth_error(self, message: str) -> None:
        self.auth_error = message

    def tick(self, now: float) -> None:
        """Retire the shown notice once its time is up and show the next one."""
        if self.current is not None and now >= self._shown_until:
            self.current = None
        if self.current is None:
            queue = self._errors or self._infos
            if queue:
                self.current = self.last = queue.popleft()
                self._shown_until = now + self.display_seconds

    @property
    def banner(self) -> Optional[Notice]:
        """What the status line shows right now."""
        if self.auth_error:
            return Notice(NoticeLevel.ERROR, self.auth_error)
        return self.current

    @property
    def has_error(self) -> bool:
        return bool(self.auth_error or self._errors) or (
            self.current is not None and self.current.level is NoticeLevel.ERROR
        )

    def clear(self) -> None:
        self.auth_error = None
        self.current = None
        self.last = None
        self._errors.clear()
        self._infos.clear()
