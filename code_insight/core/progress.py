"""
Progress event channel for long-running audits.

Scanners and the executor emit events; a presentation layer (CLI, dashboard)
subscribes to them. Scan control flow never prints directly.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ProgressEventType(Enum):
    """Типы событий прогресса."""
    RUN_STARTED = "run_started"
    CATEGORY_STARTED = "category_started"
    FILE_SCANNED = "file_scanned"
    TASK_FAILED = "task_failed"
    BATCH_COMPLETED = "batch_completed"
    CATEGORY_COMPLETED = "category_completed"
    CATEGORY_FAILED = "category_failed"
    RUN_COMPLETED = "run_completed"


@dataclass
class ProgressEvent:
    """Одно событие прогресса."""
    type: ProgressEventType
    category: str = ""
    message: str = ""
    current: int = 0
    total: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return 100.0 * self.current / self.total


Subscriber = Callable[[ProgressEvent], None]


class ProgressChannel:
    """
    Канал событий прогресса.

    Использование:
        channel = ProgressChannel()
        channel.subscribe(lambda event: print(event.type, event.message))
        channel.emit(ProgressEvent(ProgressEventType.RUN_STARTED))
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Подписаться на события. Возвращает функцию отписки."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        """Разослать событие всем подписчикам."""
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                # A broken subscriber must not interrupt scanning
                logger.warning(f"Progress subscriber {callback!r} failed: {e}")


class CategoryProgress:
    """Обёртка канала, проставляющая категорию в каждое событие."""

    def __init__(self, channel: Optional[ProgressChannel], category: str):
        self.channel = channel
        self.category = category

    def emit(
        self,
        event_type: ProgressEventType,
        message: str = "",
        current: int = 0,
        total: int = 0,
        **details: Any,
    ) -> None:
        if self.channel is None:
            return
        self.channel.emit(ProgressEvent(
            type=event_type,
            category=self.category,
            message=message,
            current=current,
            total=total,
            details=details,
        ))


class LoggingProgressSubscriber:
    """Пишет события прогресса в лог."""

    def __init__(self, name: str = "code_insight.progress"):
        self.logger = logging.getLogger(name)

    def __call__(self, event: ProgressEvent) -> None:
        if event.type == ProgressEventType.RUN_STARTED:
            self.logger.info(f"Audit started: {event.message}")
        elif event.type == ProgressEventType.CATEGORY_STARTED:
            self.logger.info(f"[{event.category}] started")
        elif event.type == ProgressEventType.FILE_SCANNED:
            self.logger.debug(f"[{event.category}] {event.current}/{event.total} {event.message}")
        elif event.type == ProgressEventType.TASK_FAILED:
            self.logger.warning(f"[{event.category}] task failed: {event.message}")
        elif event.type == ProgressEventType.BATCH_COMPLETED:
            self.logger.info(f"[{event.category}] batch done ({event.current}/{event.total}, {event.percentage:.0f}%)")
        elif event.type == ProgressEventType.CATEGORY_COMPLETED:
            self.logger.info(f"[{event.category}] completed: {event.message}")
        elif event.type == ProgressEventType.CATEGORY_FAILED:
            self.logger.error(f"[{event.category}] failed: {event.message}")
        elif event.type == ProgressEventType.RUN_COMPLETED:
            self.logger.info(f"Audit completed: {event.message}")
