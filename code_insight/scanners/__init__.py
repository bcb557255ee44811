"""
Category scanners.
"""

from typing import Dict, Type

from ..core.base_scanner import BaseScanner
from ..core.models import Category
from .accessibility import AccessibilityScanner
from .dependency import DependencyScanner
from .performance import PerformanceScanner
from .security import SecurityScanner
from .testing import TestingScanner

SCANNERS: Dict[Category, Type[BaseScanner]] = {
    Category.SECURITY: SecurityScanner,
    Category.PERFORMANCE: PerformanceScanner,
    Category.ACCESSIBILITY: AccessibilityScanner,
    Category.TESTING: TestingScanner,
    Category.DEPENDENCY: DependencyScanner,
}

__all__ = [
    "SCANNERS",
    "AccessibilityScanner",
    "DependencyScanner",
    "PerformanceScanner",
    "SecurityScanner",
    "TestingScanner",
]
