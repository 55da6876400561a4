"""디버그 로그 스트림 핸들러 모듈.

통화 중 발생한 로그를 최근 N개만 메모리에 보관하는 logging 핸들러입니다.
디버그 콘솔(UI)은 `entries()`를 조회하거나 listener를 등록해 새 엔트리를
받아 표시합니다.

Examples:
    >>> import logging
    >>> from peercall.debug_log import DebugLogHandler
    >>>
    >>> handler = DebugLogHandler(capacity=21)
    >>> logging.getLogger("peercall").addHandler(handler)
    >>> handler.entries()[-1].message
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, List, Optional

DEFAULT_CAPACITY = 21


@dataclass(frozen=True)
class LogEntry:
    """디버그 콘솔에 표시되는 로그 한 줄."""

    timestamp: datetime
    level: str
    message: str


class DebugLogHandler(logging.Handler):
    """최근 로그를 링 버퍼에 보관하는 핸들러.

    Attributes:
        capacity: 보관할 최대 엔트리 수
        listener: 새 엔트리가 추가될 때 호출되는 콜백 (선택)
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        level: int = logging.INFO,
        listener: Optional[Callable[[LogEntry], None]] = None,
    ):
        super().__init__(level)
        self.capacity = capacity
        self.listener = listener
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord):
        try:
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                level=record.levelname,
                message=record.getMessage(),
            )
            self._entries.append(entry)
            if self.listener:
                self.listener(entry)
        except Exception:
            self.handleError(record)

    def entries(self) -> List[LogEntry]:
        """보관 중인 엔트리를 오래된 순서로 반환합니다."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
