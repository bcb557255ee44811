"""
Deduplication and severity roll-up for a category's Issue stream.

Runs as a second pass over the stream so rule checks stay independent of
each other and never coordinate to avoid duplicate reporting.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Set

from .models import CategoryResult, DedupKey, Issue
from .stream import read_issue_stream

logger = logging.getLogger(__name__)


def deduplicate(issues: Iterable[Issue]) -> List[Issue]:
    """Оставить первое вхождение каждого ключа (file, line, ruleId/type, message)."""
    seen: Set[DedupKey] = set()
    unique: List[Issue] = []

    for issue in issues:
        key = issue.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)

    return unique


def build_category_result(issues: Iterable[Issue]) -> CategoryResult:
    return CategoryResult.from_issues(deduplicate(issues))


async def aggregate_stream(path: Path) -> CategoryResult:
    """
    Перечитать поток категории, убрать дубликаты, посчитать счётчики.

    Идемпотентно: повторный вызов по неизменному потоку даёт тот же результат.
    """
    issues = [issue async for issue in read_issue_stream(path)]
    unique = deduplicate(issues)

    dropped = len(issues) - len(unique)
    if dropped:
        logger.debug(f"{Path(path).name}: dropped {dropped} duplicate issues")

    return CategoryResult.from_issues(unique)
