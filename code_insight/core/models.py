"""
Core data models for the audit pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


class Severity(Enum):
    """Уровень серьёзности проблемы."""
    HIGH = "high"          # Серьёзная проблема, требует исправления
    MEDIUM = "medium"      # Проблема средней важности
    LOW = "low"            # Незначительная проблема или улучшение
    INFO = "info"          # Информационная находка (в т.ч. позитивные практики)


class Category(Enum):
    """Категория аудита."""
    SECURITY = "security"
    PERFORMANCE = "performance"
    ACCESSIBILITY = "accessibility"
    TESTING = "testing"
    DEPENDENCY = "dependency"


class IssueSource(Enum):
    """Откуда пришла находка."""
    CUSTOM_PATTERN = "custom-pattern"
    EXTERNAL_TOOL = "external-tool"


class RunState(Enum):
    """Состояние одного запуска оркестратора."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"


DedupKey = Tuple[Optional[str], Optional[int], str, str]


@dataclass(frozen=True)
class Issue:
    """Находка одной rule check. Создаётся один раз и не изменяется."""

    category: Category
    type: str
    severity: Severity
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    code: Optional[str] = None
    context: Optional[str] = None
    recommendation: Optional[str] = None
    rule_id: Optional[str] = None
    package: Optional[str] = None
    positive: bool = False
    source: IssueSource = IssueSource.CUSTOM_PATTERN

    def __post_init__(self):
        # Frozen dataclass: coercion goes through object.__setattr__
        if not isinstance(self.category, Category):
            object.__setattr__(self, "category", Category(self.category))
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity(self.severity))
        if not isinstance(self.source, IssueSource):
            object.__setattr__(self, "source", IssueSource(self.source))

        if not self.message:
            raise ValueError("Issue.message must not be empty")
        if not self.type:
            raise ValueError("Issue.type must not be empty")
        if (self.file is None) != (self.line is None):
            raise ValueError(
                f"Issue.file and Issue.line must be set together "
                f"(file={self.file!r}, line={self.line!r})"
            )

    @property
    def dedup_key(self) -> DedupKey:
        """Ключ дедупликации: (file, line, ruleId или type, message)."""
        return (self.file, self.line, self.rule_id or self.type, self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Преобразовать в словарь для JSON (без пустых опциональных полей)."""
        data: Dict[str, Any] = {
            "category": self.category.value,
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "source": self.source.value,
        }
        optional = {
            "file": self.file,
            "line": self.line,
            "code": self.code,
            "context": self.context,
            "recommendation": self.recommendation,
            "ruleId": self.rule_id,
            "package": self.package,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.positive:
            data["positive"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        """Восстановить Issue из JSON-записи потока."""
        return cls(
            category=Category(data["category"]),
            type=data["type"],
            severity=Severity(data["severity"]),
            message=data["message"],
            file=data.get("file"),
            line=data.get("line"),
            code=data.get("code"),
            context=data.get("context"),
            recommendation=data.get("recommendation"),
            rule_id=data.get("ruleId"),
            package=data.get("package"),
            positive=bool(data.get("positive", False)),
            source=IssueSource(data.get("source", IssueSource.CUSTOM_PATTERN.value)),
        )


@dataclass
class CategoryResult:
    """Итог одной категории: счётчики по серьёзности и список находок."""

    total_issues: int
    high_severity: int
    medium_severity: int
    low_severity: int
    issues: List[Issue] = field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: Iterable[Issue]) -> "CategoryResult":
        """Посчитать счётчики строго из списка находок."""
        issues = list(issues)
        return cls(
            total_issues=len(issues),
            high_severity=sum(1 for i in issues if i.severity == Severity.HIGH),
            medium_severity=sum(1 for i in issues if i.severity == Severity.MEDIUM),
            low_severity=sum(1 for i in issues if i.severity == Severity.LOW),
            issues=issues,
        )

    @classmethod
    def empty(cls) -> "CategoryResult":
        """Нулевой результат для категории, упавшей целиком."""
        return cls(total_issues=0, high_severity=0, medium_severity=0, low_severity=0, issues=[])

    @property
    def info_count(self) -> int:
        return self.total_issues - self.high_severity - self.medium_severity - self.low_severity

    def to_dict(self, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        """Преобразовать в словарь для JSON."""
        data: Dict[str, Any] = {}
        if timestamp is not None:
            data["timestamp"] = timestamp.isoformat()
        data.update({
            "totalIssues": self.total_issues,
            "highSeverity": self.high_severity,
            "mediumSeverity": self.medium_severity,
            "lowSeverity": self.low_severity,
            "issues": [issue.to_dict() for issue in self.issues],
        })
        return data


@dataclass
class AuditSummary:
    """Сумма счётчиков по всем категориям."""

    total_issues: int = 0
    high_severity: int = 0
    medium_severity: int = 0
    low_severity: int = 0

    def add(self, result: CategoryResult) -> None:
        self.total_issues += result.total_issues
        self.high_severity += result.high_severity
        self.medium_severity += result.medium_severity
        self.low_severity += result.low_severity

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalIssues": self.total_issues,
            "highSeverity": self.high_severity,
            "mediumSeverity": self.medium_severity,
            "lowSeverity": self.low_severity,
        }


@dataclass
class AuditReport:
    """Итоговый отчёт аудита."""

    timestamp: datetime
    duration_ms: int
    summary: AuditSummary
    categories: Dict[str, CategoryResult]
    state: RunState = RunState.COMPLETED
    failed_categories: List[str] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        categories: Dict[str, CategoryResult],
        duration_ms: int,
        failed_categories: Optional[List[str]] = None,
        timestamp: Optional[datetime] = None,
    ) -> "AuditReport":
        """Собрать отчёт; summary считается как сумма по категориям."""
        summary = AuditSummary()
        for result in categories.values():
            summary.add(result)

        failed = list(failed_categories or [])
        return cls(
            timestamp=timestamp or datetime.now(),
            duration_ms=duration_ms,
            summary=summary,
            categories=dict(categories),
            state=RunState.PARTIALLY_COMPLETED if failed else RunState.COMPLETED,
            failed_categories=failed,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Преобразовать в словарь для JSON."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration_ms,
            "summary": self.summary.to_dict(),
            "categories": {
                name: result.to_dict() for name, result in self.categories.items()
            },
        }
