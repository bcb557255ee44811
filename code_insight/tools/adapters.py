"""
Adapters for third-party tools invoked by scanners.

Uniform contract: invoke the tool, receive (file, line, rule_id, severity,
message) findings, or fail with ExternalToolError / ParseError. Scanners turn
a failure into a single diagnostic Issue; nothing here aborts a category.

Tools:
- eslint (script linter, security plugins)
- stylelint (stylesheet linter)
- npm audit (manifest vulnerability scanner)
- npm outdated
- depcheck (unused dependency detector)
- lighthouse (headless-browser page auditor)
"""

import asyncio
import json
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..core.errors import ExternalToolError, ParseError
from ..core.models import Category, Issue, IssueSource, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolFinding:
    """Одна находка внешнего инструмента."""
    file: Optional[str]
    line: Optional[int]
    rule_id: Optional[str]
    severity: Severity
    message: str
    package: Optional[str] = None
    recommendation: Optional[str] = None


class ExternalTool(ABC):
    """Базовый адаптер внешнего инструмента."""

    name: str = "tool"
    program: str = ""
    install_hint: str = ""
    # Linters and npm exit non-zero when they *find* something
    accepted_exit_codes: Tuple[int, ...] = (0, 1)
    read_stderr_when_stdout_empty: bool = False
    # Rule ids dropped unless excludeRules.<name> overrides them
    default_exclude_rules: Tuple[str, ...] = ()

    def __init__(self, cwd: Path, timeout_seconds: float = 120.0):
        self.cwd = Path(cwd)
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    def command(self, targets: Sequence[str]) -> List[str]:
        """Аргументы командной строки (без имени программы)."""

    @abstractmethod
    def parse(self, data: Any) -> List[ToolFinding]:
        """Преобразовать JSON-вывод инструмента в находки."""

    def resolve_executable(self) -> Optional[str]:
        """Локальный node_modules/.bin имеет приоритет над PATH."""
        local = self.cwd / "node_modules" / ".bin" / self.program
        if local.exists():
            return str(local)
        return shutil.which(self.program)

    def available(self) -> bool:
        return self.resolve_executable() is not None

    async def run(self, targets: Sequence[str] = ()) -> List[ToolFinding]:
        """
        Запустить инструмент с таймаутом.

        Raises:
            ExternalToolError: binary missing, crashed, or timed out
            ParseError: output is not the expected JSON
        """
        executable = self.resolve_executable()
        if executable is None:
            raise ExternalToolError(self.name, f"{self.program} not found")

        args = self.command(targets)
        logger.debug(f"Running {self.program} {' '.join(args[:6])}{' ...' if len(args) > 6 else ''}")

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                cwd=str(self.cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(self.name, str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ExternalToolError(self.name, f"timed out after {self.timeout_seconds:g}s") from e

        output = stdout.decode("utf-8", errors="replace").strip()
        errors = stderr.decode("utf-8", errors="replace").strip()
        if not output and self.read_stderr_when_stdout_empty:
            output = errors

        if process.returncode not in self.accepted_exit_codes and not output:
            reason = errors.splitlines()[-1] if errors else f"exit code {process.returncode}"
            raise ExternalToolError(self.name, reason, exit_code=process.returncode)

        if not output:
            return []

        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ParseError(self.name, str(e)) from e

        try:
            return self.parse(data)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise ParseError(self.name, f"unexpected structure: {e}") from e


# Formatting/style and framework-convention rules most projects switch off.
# Overridable through excludeRules.eslint in the project config.
DEFAULT_ESLINT_EXCLUDE_RULES = (
    "indent", "quotes", "semi", "comma-dangle", "no-trailing-spaces", "eol-last",
    "no-multiple-empty-lines", "space-before-function-paren", "space-before-blocks",
    "keyword-spacing", "space-infix-ops", "object-curly-spacing", "array-bracket-spacing",
    "comma-spacing", "key-spacing", "brace-style", "camelcase", "new-cap",
    "no-underscore-dangle", "no-unused-vars", "no-console", "no-debugger",
    "prefer-const", "no-var", "arrow-spacing", "no-spaced-func", "func-call-spacing",
    "no-multi-spaces", "no-mixed-spaces-and-tabs", "no-tabs", "no-mixed-operators",
    "operator-linebreak", "nonblock-statement-body-position", "no-else-return",
    "no-nested-ternary", "no-unneeded-ternary", "object-shorthand", "prefer-template",
    "template-curly-spacing", "prefer-arrow-callback", "arrow-body-style",
    "no-duplicate-imports", "import/order", "import/no-unresolved", "import/extensions",
    "import/no-extraneous-dependencies", "import/prefer-default-export", "import/no-cycle",
    "react/jsx-indent", "react/jsx-indent-props", "react/jsx-closing-bracket-location",
    "react/jsx-closing-tag-location", "react/jsx-curly-spacing", "react/jsx-equals-spacing",
    "react/jsx-first-prop-new-line", "react/jsx-max-props-per-line",
    "react/jsx-one-expression-per-line", "react/jsx-props-no-multi-spaces",
    "react/jsx-tag-spacing", "react/jsx-wrap-multilines", "react/self-closing-comp",
    "react/jsx-boolean-value", "react/jsx-curly-brace-presence", "react/jsx-no-bind",
    "react/jsx-no-literals", "react/jsx-pascal-case", "react/jsx-sort-default-props",
    "react/jsx-sort-props", "react/no-array-index-key", "react/no-danger",
    "react/no-deprecated", "react/no-did-mount-set-state", "react/no-did-update-set-state",
    "react/no-direct-mutation-state", "react/no-find-dom-node", "react/no-is-mounted",
    "react/no-multi-comp", "react/no-render-return-value", "react/no-set-state",
    "react/no-string-refs", "react/no-unescaped-entities", "react/no-unknown-property",
    "react/no-unsafe", "react/no-unused-prop-types", "react/no-unused-state",
    "react/prefer-es6-class", "react/prefer-stateless-function", "react/prop-types",
    "react/react-in-jsx-scope", "react/require-default-props", "react/require-optimization",
    "react/require-render-return", "react/sort-comp", "react/sort-prop-types",
    "react/style-prop-object", "react/void-dom-elements-no-children", "react/jsx-key",
    "react/jsx-no-duplicate-props", "react/jsx-no-undef", "react/jsx-uses-react",
    "react/jsx-uses-vars", "max-len", "no-param-reassign",
)


class ESLintTool(ExternalTool):
    """eslint --format json"""

    name = "eslint"
    program = "eslint"
    install_hint = "npm install --save-dev eslint"
    default_exclude_rules = DEFAULT_ESLINT_EXCLUDE_RULES

    def __init__(
        self,
        cwd: Path,
        timeout_seconds: float = 120.0,
        rule_filter: Optional[Callable[[str], bool]] = None,
    ):
        super().__init__(cwd, timeout_seconds)
        self.rule_filter = rule_filter

    def command(self, targets: Sequence[str]) -> List[str]:
        return ["--format", "json", "--no-error-on-unmatched-pattern", *targets]

    def parse(self, data: Any) -> List[ToolFinding]:
        findings = []
        for file_result in data:
            for message in file_result.get("messages", []):
                rule_id = message.get("ruleId")
                if self.rule_filter is not None and not (rule_id and self.rule_filter(rule_id)):
                    continue
                findings.append(ToolFinding(
                    file=file_result["filePath"],
                    line=message.get("line"),
                    rule_id=rule_id,
                    severity=Severity.HIGH if message.get("severity") == 2 else Severity.MEDIUM,
                    message=message["message"],
                ))
        return findings


class StylelintTool(ExternalTool):
    """stylelint --formatter json"""

    name = "stylelint"
    program = "stylelint"
    install_hint = "npm install --save-dev stylelint stylelint-config-standard"
    accepted_exit_codes = (0, 1, 2)
    read_stderr_when_stdout_empty = True

    def command(self, targets: Sequence[str]) -> List[str]:
        return ["--formatter", "json", "--allow-empty-input", *targets]

    def parse(self, data: Any) -> List[ToolFinding]:
        findings = []
        for file_result in data:
            for warning in file_result.get("warnings", []):
                findings.append(ToolFinding(
                    file=file_result["source"],
                    line=warning.get("line"),
                    rule_id=warning.get("rule"),
                    severity=Severity.MEDIUM if warning.get("severity") == "error" else Severity.LOW,
                    message=warning["text"],
                ))
        return findings


NPM_SEVERITY = {
    "critical": Severity.HIGH,
    "high": Severity.HIGH,
    "moderate": Severity.MEDIUM,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.INFO,
}


class NpmAuditTool(ExternalTool):
    """npm audit --json"""

    name = "npm-audit"
    program = "npm"
    install_hint = "Install Node.js/npm and run npm install"

    def command(self, targets: Sequence[str]) -> List[str]:
        return ["audit", "--json"]

    def parse(self, data: Any) -> List[ToolFinding]:
        findings = []
        for package, vulnerability in (data.get("vulnerabilities") or {}).items():
            title = "Unknown vulnerability"
            for via in vulnerability.get("via", []):
                if isinstance(via, dict) and via.get("title"):
                    title = via["title"]
                    break
            fix = vulnerability.get("fixAvailable")
            findings.append(ToolFinding(
                file=None,
                line=None,
                rule_id="dependency_vulnerability",
                severity=NPM_SEVERITY.get(vulnerability.get("severity", "moderate"), Severity.MEDIUM),
                message=f"Vulnerability in {package}: {title}",
                package=package,
                recommendation="Run npm audit fix" if fix else "Update package version",
            ))
        return findings


class NpmOutdatedTool(ExternalTool):
    """npm outdated --json"""

    name = "npm-outdated"
    program = "npm"
    install_hint = "Install Node.js/npm"

    def command(self, targets: Sequence[str]) -> List[str]:
        return ["outdated", "--json"]

    def parse(self, data: Any) -> List[ToolFinding]:
        findings = []
        for package, info in data.items():
            current = info.get("current", "missing")
            wanted, latest = info.get("wanted"), info.get("latest")
            findings.append(ToolFinding(
                file=None,
                line=None,
                rule_id="outdated_dependency",
                severity=Severity.MEDIUM if latest != wanted else Severity.LOW,
                message=f"{package} is outdated (current: {current}, latest: {latest})",
                package=package,
                recommendation=f"Update {package} to {latest}",
            ))
        return findings


class DepcheckTool(ExternalTool):
    """depcheck --json"""

    name = "depcheck"
    program = "depcheck"
    install_hint = "npm install --save-dev depcheck"

    def command(self, targets: Sequence[str]) -> List[str]:
        return ["--json"]

    def parse(self, data: Any) -> List[ToolFinding]:
        findings = []
        for key, rule_id in (("dependencies", "unused_dependency"), ("devDependencies", "unused_dev_dependency")):
            for package in data.get(key) or []:
                findings.append(ToolFinding(
                    file=None,
                    line=None,
                    rule_id=rule_id,
                    severity=Severity.LOW,
                    message=f"Unused {'dev ' if key == 'devDependencies' else ''}dependency: {package}",
                    package=package,
                    recommendation=f"Remove {package} from package.json if it is not needed",
                ))
        return findings


class LighthouseTool(ExternalTool):
    """lighthouse <url> --output=json (headless Chrome)"""

    name = "lighthouse"
    program = "lighthouse"
    install_hint = "npm install -g lighthouse (requires Chrome)"
    accepted_exit_codes = (0,)

    def __init__(self, cwd: Path, timeout_seconds: float = 120.0, categories: Sequence[str] = ("accessibility",)):
        super().__init__(cwd, timeout_seconds)
        self.categories = list(categories)

    def command(self, targets: Sequence[str]) -> List[str]:
        return [
            *targets,
            "--output=json",
            "--quiet",
            "--chrome-flags=--headless",
            f"--only-categories={','.join(self.categories)}",
        ]

    def parse(self, data: Any) -> List[ToolFinding]:
        url = data.get("finalUrl") or data.get("requestedUrl") or ""
        findings = []
        for audit_id, audit in data["audits"].items():
            score = audit.get("score")
            if score is None or audit.get("scoreDisplayMode") not in ("binary", "numeric"):
                continue
            if score >= 1:
                continue
            if score < 0.5:
                severity = Severity.HIGH
            elif score < 0.9:
                severity = Severity.MEDIUM
            else:
                severity = Severity.LOW
            findings.append(ToolFinding(
                file=None,
                line=None,
                rule_id=audit_id,
                severity=severity,
                message=f"{audit.get('title', audit_id)} ({url})" if url else audit.get("title", audit_id),
                recommendation=audit.get("description"),
            ))
        return findings


def tool_failure_issue(category: Category, tool: ExternalTool, error: Exception) -> Issue:
    """Одна диагностическая находка вместо упавшего инструмента."""
    unparsable = isinstance(error, ParseError)
    return Issue(
        category=category,
        type="tool_output_unparsable" if unparsable else "tool_unavailable",
        severity=Severity.MEDIUM,
        message=(
            f"{tool.name} output could not be parsed; {tool.name} checks skipped."
            if unparsable
            else f"{tool.name} is unavailable; {tool.name} checks skipped."
        ),
        recommendation=f"Try running {tool.program} manually to debug. {tool.install_hint}".strip(),
        rule_id=f"{tool.name}-unavailable",
        source=IssueSource.EXTERNAL_TOOL,
    )
