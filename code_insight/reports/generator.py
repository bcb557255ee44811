"""
Report persistence for audit results.

Generates:
- <category>-audit-report.json per category
- comprehensive-audit-report.json for the whole run
- summary rows for console output
- CI artifacts: SARIF 2.1.0, JUnit XML, ci-summary.json (no pass/fail gating)

Severity weighting / scores are a presentation concern and are not computed here.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.etree import ElementTree

from .. import __version__
from ..core.errors import PersistenceError
from ..core.models import AuditReport, Category, CategoryResult, Issue, Severity

logger = logging.getLogger(__name__)

COMPREHENSIVE_REPORT_NAME = "comprehensive-audit-report.json"
SARIF_REPORT_NAME = "code-insight.sarif"
JUNIT_REPORT_NAME = "code-insight-junit.xml"
CI_SUMMARY_NAME = "ci-summary.json"

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
SARIF_LEVEL = {
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "note",
}


def category_report_name(category: Category) -> str:
    return f"{Category(category).value}-audit-report.json"


def sarif_rule_id(category: str, issue: Issue) -> str:
    return f"{category}/{issue.rule_id or issue.type}"


def build_sarif(report: AuditReport) -> Dict[str, Any]:
    """
    SARIF 2.1.0 log with one run.

    Rule ids are <category>/<rule_id or type>; issues without a file have no location.
    """
    rules: Dict[str, Dict[str, Any]] = {}
    results = []

    for category, result in report.categories.items():
        for issue in result.issues:
            rule_id = sarif_rule_id(category, issue)
            if rule_id not in rules:
                rules[rule_id] = {
                    "id": rule_id,
                    "name": issue.type,
                    "shortDescription": {"text": issue.message},
                    "properties": {"category": category},
                }
                if issue.recommendation:
                    rules[rule_id]["help"] = {"text": issue.recommendation}

            entry: Dict[str, Any] = {
                "ruleId": rule_id,
                "level": SARIF_LEVEL[issue.severity],
                "message": {"text": issue.message},
                "properties": {"severity": issue.severity.value, "source": issue.source.value},
            }
            if issue.file:
                location: Dict[str, Any] = {"artifactLocation": {"uri": issue.file}}
                if issue.line:
                    location["region"] = {"startLine": issue.line}
                entry["locations"] = [{"physicalLocation": location}]
            results.append(entry)

    return {
        "$schema": SARIF_SCHEMA,
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "code-insight",
                        "version": __version__,
                        "rules": list(rules.values()),
                    }
                },
                "invocations": [
                    {
                        "executionSuccessful": not report.failed_categories,
                        "properties": {"failedCategories": list(report.failed_categories)},
                    }
                ],
                "results": results,
            }
        ],
    }


def build_junit(report: AuditReport) -> ElementTree.Element:
    """
    JUnit XML: a testsuite per category, a testcase per issue.

    High-severity issues are failures; a failed category is one errored testcase.
    """
    root = ElementTree.Element("testsuites", {
        "name": "code-insight",
        "timestamp": report.timestamp.isoformat(),
        "tests": str(report.summary.total_issues + len(report.failed_categories)),
        "failures": str(report.summary.high_severity),
        "errors": str(len(report.failed_categories)),
    })

    for category, result in report.categories.items():
        failed = category in report.failed_categories
        suite = ElementTree.SubElement(root, "testsuite", {
            "name": category,
            "tests": str(result.total_issues + int(failed)),
            "failures": str(result.high_severity),
            "errors": str(int(failed)),
        })
        if failed:
            case = ElementTree.SubElement(suite, "testcase", {"name": f"{category} scan", "classname": category})
            ElementTree.SubElement(case, "error", {"message": "category scan failed"})
        for issue in result.issues:
            case = ElementTree.SubElement(suite, "testcase", {
                "name": issue.message,
                "classname": f"{category}.{issue.rule_id or issue.type}",
            })
            if issue.file:
                case.set("file", issue.file)
            if issue.line:
                case.set("line", str(issue.line))
            if issue.severity is Severity.HIGH:
                failure = ElementTree.SubElement(case, "failure", {
                    "message": issue.message,
                    "type": issue.severity.value,
                })
                failure.text = issue.code or ""

    ElementTree.indent(root)
    return root


def build_ci_summary(report: AuditReport) -> Dict[str, Any]:
    """Counts per category for CI dashboards."""
    return {
        "timestamp": report.timestamp.isoformat(),
        "state": report.state.value,
        "failedCategories": list(report.failed_categories),
        "summary": report.summary.to_dict(),
        "categories": {
            name: {
                "high": result.high_severity,
                "medium": result.medium_severity,
                "low": result.low_severity,
                "total": result.total_issues,
            }
            for name, result in report.categories.items()
        },
    }


class ReportGenerator:
    """Запись отчётов аудита на диск."""

    def __init__(self, output_dir: Optional[Path] = None):
        """
        Args:
            output_dir: Директория для отчётов (по умолчанию текущая)
        """
        self.output_dir = Path(output_dir) if output_dir else Path.cwd()

    def _write_text(self, filepath: Path, text: str) -> Path:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            # Overwrite, never patch: write a sibling temp file then replace
            tmp_path = filepath.with_name(filepath.name + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(text)
            tmp_path.replace(filepath)
        except OSError as e:
            raise PersistenceError(str(filepath), e) from e
        return filepath

    def _write_json(self, filepath: Path, payload: Dict[str, Any]) -> Path:
        return self._write_text(filepath, json.dumps(payload, indent=2, ensure_ascii=False))

    def write_category_report(
        self,
        category: Category,
        result: CategoryResult,
        timestamp: Optional[datetime] = None,
    ) -> Path:
        """Сохранить отчёт одной категории."""
        filepath = self.output_dir / category_report_name(category)
        self._write_json(filepath, result.to_dict(timestamp=timestamp or datetime.now()))
        logger.info(f"Report saved: {filepath}")
        return filepath

    def write_report(self, report: AuditReport) -> Path:
        """
        Сохранить итоговый отчёт.

        Raises:
            PersistenceError: файл не удалось записать
        """
        filepath = self.output_dir / COMPREHENSIVE_REPORT_NAME
        self._write_json(filepath, report.to_dict())
        logger.info(f"Comprehensive audit report saved to: {filepath}")
        return filepath

    # === CI artifacts ===

    def write_sarif(self, report: AuditReport) -> Path:
        return self._write_json(self.output_dir / SARIF_REPORT_NAME, build_sarif(report))

    def write_junit(self, report: AuditReport) -> Path:
        xml = ElementTree.tostring(build_junit(report), encoding="unicode")
        text = '<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n"
        return self._write_text(self.output_dir / JUNIT_REPORT_NAME, text)

    def write_ci_summary(self, report: AuditReport) -> Path:
        return self._write_json(self.output_dir / CI_SUMMARY_NAME, build_ci_summary(report))

    def write_ci_artifacts(self, report: AuditReport) -> List[Path]:
        """
        SARIF, JUnit и ci-summary.json из готового отчёта.

        Raises:
            PersistenceError: файл не удалось записать
        """
        paths = [self.write_sarif(report), self.write_junit(report), self.write_ci_summary(report)]
        logger.info(f"CI artifacts saved to: {self.output_dir}")
        return paths

    def summary_rows(self, report: AuditReport, categories: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """
        Строки сводки по категориям.

        Every requested category gets a row; a missing or failed one shows zeros.
        """
        names = categories or list(report.categories)
        rows = []
        for name in names:
            result = report.categories.get(name) or CategoryResult.empty()
            rows.append({
                "category": name,
                "total": result.total_issues,
                "high": result.high_severity,
                "medium": result.medium_severity,
                "low": result.low_severity,
                "failed": name in report.failed_categories,
            })
        return rows
