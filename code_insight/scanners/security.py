"""
Security scanner.

Checks:
- Hardcoded secrets
- Dynamic code execution (eval, new Function, string timers)
- DOM XSS sinks (innerHTML, document.write, dangerouslySetInnerHTML)
- Insecure transport (http:// URLs)
- Sensitive data in web storage
- target="_blank" without rel="noopener"
- eslint security plugin rules (external tool)
"""

import re
from typing import Iterator, List, Sequence

from ..core.base_scanner import (
    BaseScanner,
    RuleCheck,
    code_context,
    compile_patterns,
    is_comment,
    pattern_rule,
)
from ..core.models import Category, Issue, Severity
from ..tools.adapters import ESLintTool

SCRIPT_SUFFIXES = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")

SECRET_PATTERNS = [
    re.compile(
        r"\b(const|let|var)\s+\w*(password|api[_-]?key|secret|token|auth|access[_-]?token|refresh[_-]?token"
        r"|private[_-]?key|client[_-]?id|client[_-]?secret|firebase[_-]?key|connection\s*string)\w*\s*=\s*['\"][^'\"`]+['\"]",
        re.IGNORECASE,
    ),
    re.compile(
        r"['\"]?(password|api[_-]?key|secret|token|auth|access[_-]?token|refresh[_-]?token|private[_-]?key"
        r"|client[_-]?id|client[_-]?secret)['\"]?\s*:\s*['\"][^'\"`]+['\"]",
        re.IGNORECASE,
    ),
    re.compile(r"\b(PASSWORD|SECRET|TOKEN|KEY|ACCESS_KEY|PRIVATE_KEY)\s*=\s*[^'\"`\n\r]+", re.IGNORECASE),
    re.compile(r"\b(const|let|var)\s+\w*(api|access|secret|auth|token|key)\w*\s*=\s*['\"][\w\-]{16,}['\"]", re.IGNORECASE),
]

ASSIGNED_LITERAL = re.compile(r"[=:]\s*['\"][^'\"`]+['\"]")
COMPARISON = re.compile(r"(===|!==|==|!=)")
CALL = re.compile(r"\w+\s*\(")
TEMPLATE = re.compile(r"`.*`")
PRIVATE_KEY_BLOCK = re.compile(r"-----BEGIN\s+[\w ]*PRIVATE KEY-----")

ESLINT_SECURITY_PREFIXES = ("security/", "no-unsanitized/")
ESLINT_SECURITY_RULES = frozenset({
    "no-eval",
    "no-implied-eval",
    "no-new-func",
    "no-script-url",
    "react/no-danger",
    "react/no-danger-with-children",
    "react/jsx-no-target-blank",
    "react/jsx-no-script-url",
})


def find_hardcoded_secrets(content: str, path: str) -> Iterator[Issue]:
    """Литералы, присвоенные переменным с «секретными» именами."""
    lines = content.split("\n")
    for index, line in enumerate(lines):
        trimmed = line.strip()
        if not trimmed or is_comment(trimmed):
            continue

        hit = PRIVATE_KEY_BLOCK.search(trimmed) is not None
        if not hit:
            hit = (
                any(pattern.search(trimmed) for pattern in SECRET_PATTERNS)
                and ASSIGNED_LITERAL.search(trimmed) is not None
                and not COMPARISON.search(trimmed)
                and not CALL.search(trimmed)
                and not TEMPLATE.search(trimmed)
            )
        if not hit:
            continue

        code, context = code_context(lines, index)
        yield Issue(
            category=Category.SECURITY,
            type="hardcoded_secret",
            severity=Severity.HIGH,
            message="Potential hardcoded secret detected",
            file=path,
            line=index + 1,
            code=code,
            context=context,
            recommendation="Move secrets to environment variables or a secret manager",
            rule_id="hardcoded-secret",
        )


def build_security_rules() -> List[RuleCheck]:
    return [
        RuleCheck(id="hardcoded-secret", func=find_hardcoded_secrets, suffixes=SCRIPT_SUFFIXES),
        pattern_rule(
            "dangerous-eval",
            Category.SECURITY,
            "dangerous_eval",
            compile_patterns(
                (r"\beval\s*\(", "Use of eval() can lead to code injection", "high",
                 "Avoid eval(); parse data with JSON.parse or use explicit logic"),
                (r"\bnew\s+Function\s*\(", "new Function() evaluates strings as code", "high",
                 "Avoid constructing functions from strings"),
                (r"\bset(Timeout|Interval)\s*\(\s*['\"`]", "String passed to timer is evaluated as code", "medium",
                 "Pass a function instead of a string"),
            ),
            suffixes=SCRIPT_SUFFIXES,
        ),
        pattern_rule(
            "xss-sink",
            Category.SECURITY,
            "xss_vulnerability",
            compile_patterns(
                (r"\.innerHTML\s*=(?!=)", "Assignment to innerHTML may introduce XSS", "high",
                 "Use textContent or sanitize HTML before insertion"),
                (r"\.outerHTML\s*=(?!=)", "Assignment to outerHTML may introduce XSS", "high",
                 "Use DOM APIs or sanitize HTML before insertion"),
                (r"\bdocument\.write(ln)?\s*\(", "document.write can introduce XSS", "medium",
                 "Use DOM manipulation methods instead"),
                (r"dangerouslySetInnerHTML", "dangerouslySetInnerHTML bypasses React escaping", "high",
                 "Sanitize HTML (e.g. DOMPurify) before using dangerouslySetInnerHTML"),
                (r"\.insertAdjacentHTML\s*\(", "insertAdjacentHTML may introduce XSS", "medium",
                 "Sanitize HTML before insertion"),
            ),
            suffixes=SCRIPT_SUFFIXES,
        ),
        pattern_rule(
            "insecure-http",
            Category.SECURITY,
            "insecure_transport",
            compile_patterns(
                (r"['\"`]http://(?!localhost|127\.0\.0\.1|0\.0\.0\.0)", "Insecure HTTP URL detected", "medium",
                 "Use HTTPS for all external requests"),
            ),
            suffixes=SCRIPT_SUFFIXES,
        ),
        pattern_rule(
            "sensitive-storage",
            Category.SECURITY,
            "insecure_storage",
            compile_patterns(
                (r"(localStorage|sessionStorage)\.setItem\s*\(\s*['\"`][^'\"`]*(token|password|secret|auth)",
                 "Sensitive data stored in web storage", "medium",
                 "Store tokens in httpOnly cookies instead of web storage"),
            ),
            suffixes=SCRIPT_SUFFIXES,
        ),
        pattern_rule(
            "unsafe-target-blank",
            Category.SECURITY,
            "reverse_tabnabbing",
            compile_patterns(
                (r"target\s*=\s*['\"{]?_blank", 'target="_blank" without rel="noopener noreferrer"', "low",
                 'Add rel="noopener noreferrer" to links opening new tabs'),
            ),
            suffixes=SCRIPT_SUFFIXES + (".html", ".htm"),
            guard=lambda line: "noopener" not in line,
        ),
    ]


def is_security_rule(rule_id: str) -> bool:
    return rule_id in ESLINT_SECURITY_RULES or rule_id.startswith(ESLINT_SECURITY_PREFIXES)


class SecurityScanner(BaseScanner):
    """Поиск проблем безопасности в скриптах."""

    category = Category.SECURITY

    def build_rule_checks(self) -> List[RuleCheck]:
        return build_security_rules()

    async def scan_project(self, inputs: Sequence) -> None:
        eslint = ESLintTool(
            self.config.project_root,
            timeout_seconds=self.config.tool_timeout_seconds,
            rule_filter=is_security_rule,
        )
        self.logger.info("Checking for security issues with ESLint plugins...")
        await self.run_tool_in_chunks(eslint, list(inputs), issue_type="eslint_security")
