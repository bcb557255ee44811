"""
Error taxonomy for the audit pipeline.

Only PersistenceError is fatal for a run; everything else is recovered where
it happens and turned into a skipped file or a diagnostic Issue.
"""

from typing import Optional


class AuditError(Exception):
    """Базовая ошибка аудита."""
    pass


class FileAccessError(AuditError):
    """Файл или директория недоступны для чтения."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class ExternalToolError(AuditError):
    """Внешний инструмент не установлен, упал или не уложился в таймаут."""

    def __init__(self, tool: str, reason: str, exit_code: Optional[int] = None):
        super().__init__(f"{tool} failed: {reason}")
        self.tool = tool
        self.reason = reason
        self.exit_code = exit_code


class ParseError(AuditError):
    """Вывод внешнего инструмента не удалось разобрать."""

    def __init__(self, tool: str, reason: str):
        super().__init__(f"Could not parse {tool} output: {reason}")
        self.tool = tool
        self.reason = reason


class CategoryFailure(AuditError):
    """Сканер категории упал целиком."""

    def __init__(self, category: str, cause: BaseException):
        super().__init__(f"{category} scan failed: {type(cause).__name__}: {cause}")
        self.category = category
        self.cause = cause


class PersistenceError(AuditError):
    """Итоговый отчёт не удалось записать на диск."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"Could not write report {path}: {cause}")
        self.path = path
        self.cause = cause
