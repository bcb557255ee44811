"""
Audit orchestrator: runs category scanners and assembles the report.

Features:
- Concurrent execution of independent categories
- Per-category failure boundary (graceful degradation)
- Summary roll-up and report persistence
"""

import asyncio
import inspect
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from .config import AuditConfig
from .core.base_scanner import BaseScanner
from .core.errors import CategoryFailure
from .core.models import AuditReport, Category, CategoryResult, RunState
from .core.progress import ProgressChannel, ProgressEvent, ProgressEventType
from .reports.generator import ReportGenerator
from .scanners import SCANNERS

logger = logging.getLogger(__name__)

ScannerFactory = Callable[[AuditConfig, Optional[ProgressChannel]], BaseScanner]


class AuditOrchestrator:
    """Оркестратор для управления выполнением аудита."""

    def __init__(
        self,
        config: AuditConfig,
        scanners: Optional[Mapping[Category, ScannerFactory]] = None,
        progress: Optional[ProgressChannel] = None,
    ):
        """
        Args:
            config: Конфигурация аудита
            scanners: Фабрики сканеров по категориям (по умолчанию SCANNERS)
            progress: Канал событий прогресса
        """
        self.config = config
        self.scanners: Dict[Category, ScannerFactory] = dict(scanners if scanners is not None else SCANNERS)
        self.progress = progress
        self.reports = ReportGenerator(config.output_dir)
        self.state = RunState.IDLE
        self.failures: Dict[str, CategoryFailure] = {}
        self.last_report: Optional[AuditReport] = None

    async def run_all(self) -> AuditReport:
        """
        Запустить все включённые категории параллельно.

        Raises:
            PersistenceError: итоговый отчёт не удалось записать
        """
        categories = [c for c in Category if self.config.is_enabled(c) and c in self.scanners]
        return await self._run(categories)

    async def run_specific(self, category: Union[Category, str]) -> AuditReport:
        """
        Запустить одну категорию.

        Raises:
            ValueError: неизвестная категория
            PersistenceError: итоговый отчёт не удалось записать
        """
        try:
            category = Category(category)
        except ValueError:
            valid = ", ".join(c.value for c in Category)
            raise ValueError(f"Unknown category: {category!r} (expected one of: {valid})") from None
        if category not in self.scanners:
            raise ValueError(f"No scanner registered for category: {category.value}")
        return await self._run([category])

    async def _run(self, categories: List[Category]) -> AuditReport:
        if self.state == RunState.RUNNING:
            raise RuntimeError("Audit is already running")

        self.state = RunState.RUNNING
        self.failures = {}
        start_time = time.perf_counter()
        names = [c.value for c in categories]
        logger.info(f"Running {len(categories)} categories: {', '.join(names)}")
        self._emit(ProgressEventType.RUN_STARTED, message=", ".join(names), total=len(categories))

        try:
            # gather + per-category boundary: one crash never cancels the rest
            outcomes = await asyncio.gather(
                *(self._guarded(category) for category in categories),
                return_exceptions=True,
            )

            results: Dict[str, CategoryResult] = {}
            for category, outcome in zip(categories, outcomes):
                if isinstance(outcome, BaseException):
                    # Only non-Exception BaseExceptions reach here (e.g. CancelledError)
                    raise outcome
                result, failure = outcome
                if failure is not None:
                    self.failures[category.value] = failure
                results[category.value] = result

            duration_ms = int((time.perf_counter() - start_time) * 1000)
            report = AuditReport.build(
                results,
                duration_ms=duration_ms,
                failed_categories=list(self.failures),
                timestamp=datetime.now(),
            )

            self.reports.write_report(report)
        except BaseException:
            self.state = RunState.IDLE
            raise

        self.state = report.state
        self.last_report = report
        s = report.summary
        logger.info(
            f"Audit {report.state.value} in {duration_ms}ms: "
            f"{s.total_issues} issues (high={s.high_severity}, medium={s.medium_severity}, low={s.low_severity})"
        )
        self._emit(
            ProgressEventType.RUN_COMPLETED,
            message=report.state.value,
            current=len(categories) - len(self.failures),
            total=len(categories),
        )
        return report

    async def _guarded(self, category: Category) -> Tuple[CategoryResult, Optional[CategoryFailure]]:
        """Граница отказа одной категории: sync и async исключения."""
        try:
            scanner = self.scanners[category](self.config, self.progress)
            result = scanner.run()
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, CategoryResult):
                raise TypeError(f"scanner returned {type(result).__name__}, expected CategoryResult")
            return result, None
        except Exception as e:
            failure = CategoryFailure(category.value, e)
            logger.error(f"{failure}", exc_info=True)
            self._emit(ProgressEventType.CATEGORY_FAILED, category=category.value, message=str(e))
            return CategoryResult.empty(), failure

    def _emit(self, event_type: ProgressEventType, category: str = "", message: str = "", current: int = 0, total: int = 0):
        if self.progress is None:
            return
        self.progress.emit(ProgressEvent(
            type=event_type,
            category=category,
            message=message,
            current=current,
            total=total,
        ))
