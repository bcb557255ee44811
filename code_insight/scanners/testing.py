"""
Testing scanner.

Project-level:
- Test files present / absent
- Testing framework and E2E framework in package.json
- Coverage script
- Test configuration files

Per test file:
- Test structure and assertion patterns (positive)
- Mocking patterns (positive)
"""

import re
from typing import Iterator, List, Sequence

from ..core.base_scanner import BaseScanner, RuleCheck, compile_patterns, pattern_rule
from ..core.models import Category, Issue, Severity
from .manifest import ManifestError, all_dependencies, group, load_manifest

SCRIPT_SUFFIXES = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")

TEST_FILE = re.compile(r"(\.(test|spec)\.[cm]?[jt]sx?$)|((^|/)(__tests__|tests?|e2e|cypress)/)")

TESTING_FRAMEWORKS = (
    "jest", "mocha", "vitest", "ava", "tape", "jasmine",
    "@testing-library/react", "@testing-library/jest-dom",
    "cypress", "playwright", "@playwright/test", "puppeteer",
)
E2E_FRAMEWORKS = ("cypress", "playwright", "@playwright/test", "puppeteer", "selenium-webdriver")

TEST_CONFIG_FILES = (
    "jest.config.js", "jest.config.ts", "jest.config.json",
    "cypress.config.js", "cypress.config.ts",
    "playwright.config.js", "playwright.config.ts",
    "vitest.config.js", "vitest.config.ts",
    ".mocharc.js", ".mocharc.json",
)


def is_test_file(path: str) -> bool:
    return TEST_FILE.search(path.replace("\\", "/")) is not None


def only_test_files(rule: RuleCheck) -> RuleCheck:
    """Ограничить правило тестовыми файлами."""

    def run(content: str, path: str) -> Iterator[Issue]:
        if is_test_file(path):
            yield from rule.func(content, path)

    return RuleCheck(id=rule.id, func=run, suffixes=rule.suffixes)


def build_testing_rules() -> List[RuleCheck]:
    test_patterns = pattern_rule(
        "testing-pattern",
        Category.TESTING,
        "testing_pattern_found",
        compile_patterns(
            (r"\b(describe|context)\s*\(\s*['\"`]", "Testing suite structure detected", "info"),
            (r"\b(it|test)\s*\(\s*['\"`]", "Testing test case detected", "info"),
            (r"\bexpect\s*\(|\bassert\.\w+\s*\(", "Testing assertion detected", "info"),
            (r"\b(beforeEach|afterEach|beforeAll|afterAll)\s*\(", "Testing setup/teardown hook detected", "info"),
        ),
        suffixes=SCRIPT_SUFFIXES,
        first_match_only=True,
        positive=True,
    )
    mock_patterns = pattern_rule(
        "mocking-pattern",
        Category.TESTING,
        "mocking_pattern_found",
        compile_patterns(
            (r"\b(jest|vi)\.(mock|fn|spyOn)\s*\(", "Mock function detected", "info"),
            (r"\bsinon\.(stub|spy|mock|fake)\b", "Sinon stub detected", "info"),
            (r"\b(nock|msw|setupServer)\s*\(", "HTTP mocking detected", "info"),
        ),
        suffixes=SCRIPT_SUFFIXES,
        first_match_only=True,
        positive=True,
    )
    return [only_test_files(test_patterns), only_test_files(mock_patterns)]


class TestingScanner(BaseScanner):
    """Оценка тестовой инфраструктуры проекта."""

    __test__ = False

    category = Category.TESTING

    def build_rule_checks(self) -> List[RuleCheck]:
        return build_testing_rules()

    async def scan_project(self, inputs: Sequence) -> None:
        await self.check_test_files(inputs)
        await self.check_test_configuration()

        try:
            manifest = load_manifest(self.config.project_root)
        except ManifestError as e:
            self.logger.warning(f"{e}")
            return
        if manifest is None:
            self.logger.warning("Could not read package.json, skipping framework checks")
            return

        await self.check_frameworks(manifest)
        await self.check_coverage_script(manifest)

    async def check_test_files(self, inputs: Sequence) -> None:
        self.logger.info("Checking test files...")
        test_files = [p for p in inputs if is_test_file(self.display_path(p))]
        if not test_files:
            await self.emit(self.create_issue(
                "no_test_files",
                Severity.HIGH,
                "No test files found",
                recommendation="Create test files with .test.js or .spec.js extensions",
            ))
            return
        await self.emit(self.create_issue(
            "test_files_found",
            Severity.INFO,
            f"Found {len(test_files)} test files",
            positive=True,
        ))

    async def check_frameworks(self, manifest: dict) -> None:
        deps = all_dependencies(manifest)

        found = [name for name in TESTING_FRAMEWORKS if name in deps]
        if found:
            await self.emit(self.create_issue(
                "testing_framework_found",
                Severity.INFO,
                f"Testing frameworks detected: {', '.join(found)}",
                positive=True,
            ))
        else:
            await self.emit(self.create_issue(
                "no_testing_framework",
                Severity.HIGH,
                "No testing framework detected",
                recommendation="Install a testing framework like Jest, Mocha, or Vitest",
            ))

        e2e = [name for name in E2E_FRAMEWORKS if name in deps]
        if e2e:
            await self.emit(self.create_issue(
                "e2e_framework_found",
                Severity.INFO,
                f"E2E testing framework detected: {', '.join(e2e)}",
                positive=True,
            ))
        else:
            await self.emit(self.create_issue(
                "no_e2e_framework",
                Severity.MEDIUM,
                "No E2E testing framework detected",
                recommendation="Consider adding Cypress, Playwright, or Puppeteer for E2E testing",
            ))

    async def check_coverage_script(self, manifest: dict) -> None:
        scripts = group(manifest, "scripts")
        coverage = [
            name for name, command in scripts.items()
            if "coverage" in name or "cov" in name or "--coverage" in str(command)
        ]
        if coverage:
            await self.emit(self.create_issue(
                "coverage_script_found",
                Severity.INFO,
                f"Coverage script detected: {coverage[0]}",
                positive=True,
            ))
            return
        await self.emit(self.create_issue(
            "no_coverage_script",
            Severity.MEDIUM,
            "No test coverage script found",
            recommendation='Add a coverage script to package.json (e.g., "test:coverage": "jest --coverage")',
        ))

    async def check_test_configuration(self) -> None:
        self.logger.info("Checking test configuration...")
        root = self.config.project_root
        found = [name for name in TEST_CONFIG_FILES if (root / name).exists()]
        if found:
            await self.emit(self.create_issue(
                "test_config_found",
                Severity.INFO,
                f"Test configuration files found: {', '.join(found)}",
                positive=True,
            ))
            return
        await self.emit(self.create_issue(
            "no_test_config",
            Severity.MEDIUM,
            "No test configuration file found",
            recommendation="Create a configuration file for your testing framework",
        ))
