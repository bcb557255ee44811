"""
Base classes for category scanners and rule checks.

A scanner composes independent rule checks, drives the bounded executor over
its inputs, writes every Issue to its stream as soon as it is found, and
finally replays the stream through the aggregator.
"""

import asyncio
import logging
import re
import time
from abc import ABC
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import (
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Pattern,
    Sequence,
    Set,
    Tuple,
)

import aiofiles

from ..config import AuditConfig
from ..reports.generator import ReportGenerator
from ..tools.adapters import ExternalTool, ToolFinding, tool_failure_issue
from .aggregator import aggregate_stream
from .errors import ExternalToolError, FileAccessError, ParseError, PersistenceError
from .executor import BoundedExecutor, ExecutionSummary, ScanTask
from .file_enumerator import FileEnumerator
from .models import Category, CategoryResult, Issue, IssueSource, Severity
from .progress import CategoryProgress, ProgressChannel, ProgressEventType
from .stream import IssueStreamWriter

MAX_LINE_LENGTH = 200
CONTEXT_RADIUS = 2
COMMENT_PREFIXES = ("//", "/*", "*", "<!--")

RuleFunc = Callable[[str, str], Iterable[Issue]]


def truncate(line: str, limit: int = MAX_LINE_LENGTH) -> str:
    return line[:limit] + "... (truncated)" if len(line) > limit else line


def code_context(lines: Sequence[str], index: int, radius: int = CONTEXT_RADIUS) -> Tuple[str, str]:
    """
    Строка с находкой и её окружение.

    Returns:
        (code, context) where context marks the matched line with ">>>"
    """
    if not 0 <= index < len(lines):
        return "", ""
    start = max(0, index - radius)
    end = min(len(lines) - 1, index + radius)
    context = "\n".join(
        f"{'>>>' if n == index else '   '} {n + 1}: {truncate(lines[n])}"
        for n in range(start, end + 1)
    )
    return truncate(lines[index].strip()), context


def is_comment(trimmed: str) -> bool:
    return trimmed.startswith(COMMENT_PREFIXES)


@dataclass(frozen=True)
class RuleCheck:
    """Чистая функция (content, path) -> Issues для одной эвристики."""

    id: str
    func: RuleFunc
    suffixes: Optional[Tuple[str, ...]] = None

    def applies_to(self, path: str) -> bool:
        return self.suffixes is None or path.lower().endswith(self.suffixes)

    def __call__(self, content: str, path: str) -> List[Issue]:
        return list(self.func(content, path))


@dataclass(frozen=True)
class LinePattern:
    """Регулярка на одну строку и то, что о ней сообщить."""

    pattern: Pattern
    message: str
    severity: Severity
    recommendation: Optional[str] = None


def pattern_rule(
    rule_id: str,
    category: Category,
    issue_type: str,
    patterns: Sequence[LinePattern],
    suffixes: Optional[Tuple[str, ...]] = None,
    skip_comments: bool = True,
    first_match_only: bool = False,
    guard: Optional[Callable[[str], bool]] = None,
    positive: bool = False,
) -> RuleCheck:
    """
    Построить построчную regex-проверку.

    Args:
        rule_id: Идентификатор правила (используется в исключениях)
        category: Категория находок
        issue_type: Значение Issue.type
        patterns: Набор LinePattern
        suffixes: Расширения файлов, к которым применяется правило
        skip_comments: Пропускать строки-комментарии
        first_match_only: Не более одной находки на строку
        guard: Дополнительный фильтр строки (True = строка подходит)
        positive: Находки описывают хорошую практику
    """

    def check(content: str, path: str) -> Iterator[Issue]:
        lines = content.split("\n")
        for index, line in enumerate(lines):
            trimmed = line.strip()
            if not trimmed or (skip_comments and is_comment(trimmed)):
                continue
            if guard is not None and not guard(trimmed):
                continue
            for line_pattern in patterns:
                if not line_pattern.pattern.search(trimmed):
                    continue
                code, context = code_context(lines, index)
                yield Issue(
                    category=category,
                    type=issue_type,
                    severity=line_pattern.severity,
                    message=line_pattern.message,
                    file=path,
                    line=index + 1,
                    code=code,
                    context=context,
                    recommendation=line_pattern.recommendation,
                    rule_id=rule_id,
                    positive=positive,
                )
                if first_match_only:
                    break

    return RuleCheck(id=rule_id, func=check, suffixes=suffixes)


def compile_patterns(*entries: Tuple[str, ...], flags: int = re.IGNORECASE) -> List[LinePattern]:
    """(regex, message, severity[, recommendation]) -> LinePattern"""
    compiled = []
    for entry in entries:
        regex, message, severity, *rest = entry
        compiled.append(LinePattern(
            pattern=re.compile(regex, flags),
            message=message,
            severity=Severity(severity),
            recommendation=rest[0] if rest else None,
        ))
    return compiled


class BaseScanner(ABC):
    """
    Базовый класс для сканеров категорий.

    Предоставляет:
    - Шаблон метода run()
    - Потоковую запись находок
    - Ограничение параллелизма по файлам
    - Политику исключения правил
    - Адаптацию внешних инструментов
    """

    category: Category
    default_exclude_rules: Tuple[str, ...] = ()

    def __init__(self, config: AuditConfig, progress: Optional[ProgressChannel] = None):
        """
        Args:
            config: Конфигурация запуска
            progress: Канал событий прогресса (опционально)
        """
        self.config = config
        self.name = f"{self.category.value}-scanner"
        self.logger = logging.getLogger(f"code_insight.{self.category.value}")
        self.progress = CategoryProgress(progress, self.category.value)
        self.enumerator = FileEnumerator(config.project_root, config.settings)
        self.executor = BoundedExecutor(config.concurrency, config.batch_size, self.progress)
        self.stream = IssueStreamWriter(config.stream_path(self.category))
        self.reports = ReportGenerator(config.output_dir)
        self.exclusions: Set[str] = set()
        self.rule_checks: List[RuleCheck] = self.build_rule_checks()
        self.last_execution: Optional[ExecutionSummary] = None

    # === Hooks for subclasses ===

    def build_rule_checks(self) -> List[RuleCheck]:
        """Per-file rule checks of this category."""
        return []

    def enumerate_inputs(self) -> List[Path]:
        return self.enumerator.files_for_category(self.category)

    def make_tasks(self, inputs: Sequence) -> List[ScanTask]:
        return [ScanTask(name=self.display_path(path), run=partial(self.scan_file, Path(path))) for path in inputs]

    async def scan_project(self, inputs: Sequence) -> None:
        """Category-level checks run after the per-input tasks (manifest, tools)."""
        return None

    # === Template method ===

    async def run(self, inputs: Optional[Sequence] = None) -> CategoryResult:
        """
        Просканировать категорию.

        Args:
            inputs: Явный набор входов (по умолчанию: перечисление файлов)

        Returns:
            CategoryResult после дедупликации
        """
        self.logger.info(f"Starting {self.name}...")
        start_time = time.perf_counter()
        self.progress.emit(ProgressEventType.CATEGORY_STARTED)

        self.exclusions = self.config.exclude_rules_for(self.category.value, self.default_exclude_rules)

        await self.stream.open()
        try:
            # os.walk runs in a worker thread
            inputs = list(inputs) if inputs is not None else await asyncio.to_thread(self.enumerate_inputs)
            self.logger.info(f"Scanning {len(inputs)} inputs")
            self.last_execution = await self.executor.run(self.make_tasks(inputs))
            await self.scan_project(inputs)
        finally:
            await self.stream.close()

        result = await aggregate_stream(self.stream.path)

        try:
            self.reports.write_category_report(self.category, result)
        except PersistenceError as e:
            self.logger.warning(f"Category report not saved: {e}")

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.logger.info(
            f"Completed {self.name}: "
            f"found {result.total_issues} issues "
            f"(high={result.high_severity}, medium={result.medium_severity}, low={result.low_severity}), "
            f"duration={duration_ms:.2f}ms"
        )
        self.progress.emit(
            ProgressEventType.CATEGORY_COMPLETED,
            message=f"{result.total_issues} issues",
            current=result.total_issues,
        )
        return result

    # === File scanning ===

    def display_path(self, path) -> str:
        """Путь относительно корня проекта (POSIX), если файл внутри проекта."""
        path = Path(path)
        try:
            return path.resolve().relative_to(self.config.project_root).as_posix()
        except ValueError:
            return str(path)

    async def read_file(self, path: Path) -> Optional[str]:
        """Прочитать файл; недоступный файл логируется и пропускается."""
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8", errors="replace") as f:
                return await f.read()
        except OSError as e:
            failure = FileAccessError(str(path), e.strerror or str(e))
            self.logger.warning(f"Could not read file: {failure}")
            return None

    async def scan_file(self, path: Path) -> int:
        """Применить все rule checks к одному файлу. Возвращает число записанных находок."""
        content = await self.read_file(path)
        if content is None:
            return 0

        shown = self.display_path(path)
        written = 0
        for rule in self.rule_checks:
            if not rule.applies_to(shown):
                continue
            try:
                found = rule(content, shown)
            except Exception as e:
                self.logger.warning(f"Rule {rule.id} failed on {shown}: {type(e).__name__}: {e}")
                continue
            for issue in found:
                written += await self.emit(issue)
        return written

    # === Issue output ===

    def is_excluded(self, issue: Issue) -> bool:
        """Исключение по id правила/типу или по подстроке кода."""
        if not self.exclusions:
            return False
        if issue.rule_id in self.exclusions or issue.type in self.exclusions:
            return True
        if issue.code:
            return any(rule in issue.code for rule in self.exclusions)
        return False

    async def emit(self, issue: Issue) -> int:
        if self.is_excluded(issue):
            return 0
        await self.stream.write(issue)
        return 1

    def create_issue(self, type: str, severity: Severity, message: str, **fields) -> Issue:
        """Удобный метод для создания Issue этой категории."""
        return Issue(category=self.category, type=type, severity=severity, message=message, **fields)

    # === External tools ===

    def tool_enabled(self, tool: ExternalTool) -> bool:
        return self.config.use_external_tools

    async def run_tool(self, tool: ExternalTool, targets: Sequence[str], issue_type: str) -> int:
        """
        Запустить внешний инструмент и записать его находки.

        Any ExternalToolError / ParseError becomes one diagnostic Issue.
        Rules excluded for the tool (excludeRules.<tool.name>) are dropped.
        """
        try:
            findings = await tool.run(targets)
        except (ExternalToolError, ParseError) as e:
            self.logger.warning(f"{e}")
            return await self.emit(tool_failure_issue(self.category, tool, e))

        excluded = self.config.exclude_rules_for(tool.name, tool.default_exclude_rules)
        kept = [finding for finding in findings if finding.rule_id not in excluded]
        if len(kept) < len(findings):
            self.logger.debug(f"{tool.name}: {len(findings) - len(kept)} findings dropped by excluded rules")

        written = 0
        for issue in await self.issues_from_findings(kept, issue_type):
            written += await self.emit(issue)
        return written

    async def issues_from_findings(self, findings: Iterable[ToolFinding], issue_type: str) -> List[Issue]:
        """Привести находки инструмента к Issue, дополнив код и контекст из файла."""
        file_lines: Dict[str, Optional[List[str]]] = {}
        issues = []

        for finding in findings:
            file, line, code, context = None, None, None, None
            message = finding.message

            if finding.file and finding.line:
                file, line = self.display_path(finding.file), int(finding.line)
                if finding.file not in file_lines:
                    content = await self.read_file(Path(finding.file))
                    file_lines[finding.file] = content.split("\n") if content is not None else None
                lines = file_lines[finding.file]
                if lines is not None:
                    code, context = code_context(lines, line - 1)
            elif finding.file:
                message = f"{message} ({self.display_path(finding.file)})"

            issues.append(Issue(
                category=self.category,
                type=issue_type,
                severity=finding.severity,
                message=message,
                file=file,
                line=line,
                code=code or None,
                context=context or None,
                recommendation=finding.recommendation,
                rule_id=finding.rule_id,
                package=finding.package,
                source=IssueSource.EXTERNAL_TOOL,
            ))

        return issues

    async def run_tool_in_chunks(
        self,
        tool: ExternalTool,
        files: Sequence[Path],
        issue_type: str,
        chunk_size: int = 50,
    ) -> None:
        """
        Прогнать файловый линтер по кускам через executor.

        The executor cap also bounds the number of concurrent child processes.
        """
        if not files or not self.tool_enabled(tool):
            return
        if not tool.available():
            await self.run_tool(tool, [], issue_type)
            return

        chunks = [files[i:i + chunk_size] for i in range(0, len(files), chunk_size)]
        tasks = [
            ScanTask(
                name=f"{tool.name}[{index}]",
                run=partial(self.run_tool, tool, [str(path) for path in chunk], issue_type),
            )
            for index, chunk in enumerate(chunks)
        ]
        await self.executor.run(tasks)
