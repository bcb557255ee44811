"""
Concurrency-bounded executor for per-file scan tasks.

Features:
- At most `limit` tasks in flight (asyncio.Semaphore)
- Fixed-size batches, yielding to the loop between batches
- Per-task failure isolation: a failure is a warning, never a batch abort
- Progress in completion order
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from .progress import CategoryProgress, ProgressEventType

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ScanTask(Generic[T]):
    """Одна единица работы (файл или пакет) со своей границей отказа."""
    name: str
    run: Callable[[], Awaitable[T]]


@dataclass
class ExecutionSummary:
    """Итог выполнения списка задач."""
    total: int = 0
    completed: int = 0
    failed: int = 0
    results: List[Any] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


class BoundedExecutor:
    """Исполнитель задач с ограничением параллелизма."""

    def __init__(
        self,
        limit: int = 10,
        batch_size: int = 100,
        progress: Optional[CategoryProgress] = None,
    ):
        """
        Args:
            limit: Максимум одновременно выполняемых задач
            batch_size: Размер батча (между батчами ресурсы освобождаются)
            progress: Канал событий прогресса категории
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.batch_size = max(batch_size, limit)
        self.progress = progress
        self.in_flight = 0
        self.peak_in_flight = 0

    async def run(self, tasks: List[ScanTask]) -> ExecutionSummary:
        """
        Выполнить задачи батчами.

        Returns:
            ExecutionSummary; results are in completion order
        """
        summary = ExecutionSummary(total=len(tasks))
        if not tasks:
            return summary

        semaphore = asyncio.Semaphore(self.limit)
        batches = [tasks[i:i + self.batch_size] for i in range(0, len(tasks), self.batch_size)]

        for batch_index, batch in enumerate(batches, 1):
            logger.debug(f"Processing batch {batch_index}/{len(batches)} ({len(batch)} tasks)")
            pending = [asyncio.ensure_future(self._guarded(task, semaphore)) for task in batch]

            for finished in asyncio.as_completed(pending):
                name, ok, value = await finished
                done = summary.completed + summary.failed + 1
                if ok:
                    summary.completed += 1
                    summary.results.append(value)
                    self._emit(ProgressEventType.FILE_SCANNED, name, done, summary.total)
                else:
                    summary.failed += 1
                    summary.errors[name] = value
                    self._emit(ProgressEventType.TASK_FAILED, f"{name}: {value}", done, summary.total)

            self._emit(
                ProgressEventType.BATCH_COMPLETED,
                f"batch {batch_index}/{len(batches)}",
                summary.completed + summary.failed,
                summary.total,
            )
            # Let the loop reclaim finished tasks before the next batch
            await asyncio.sleep(0)

        return summary

    async def _guarded(self, task: ScanTask, semaphore: asyncio.Semaphore):
        async with semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                return task.name, True, await task.run()
            except Exception as e:
                logger.warning(f"Task {task.name} failed: {type(e).__name__}: {e}")
                return task.name, False, f"{type(e).__name__}: {e}"
            finally:
                self.in_flight -= 1

    def _emit(self, event_type: ProgressEventType, message: str, current: int, total: int) -> None:
        if self.progress is not None:
            self.progress.emit(event_type, message=message, current=current, total=total)
