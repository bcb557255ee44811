"""
Accessibility scanner.

Static checks over markup, scripts (JSX) and stylesheets:
- Images without alt text
- Form controls without labels
- Click handlers on non-interactive elements / without keyboard support
- Positive tabindex
- Empty ARIA attributes
- Colour declarations that need a contrast check

External:
- stylelint over stylesheets
- lighthouse accessibility audit of configured page URLs
"""

import re
from functools import partial
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Pattern, Sequence

from ..core.base_scanner import (
    BaseScanner,
    RuleCheck,
    code_context,
    compile_patterns,
    is_comment,
    pattern_rule,
)
from ..core.executor import ScanTask
from ..core.models import Category, Issue, Severity
from ..tools.adapters import LighthouseTool, StylelintTool

SCRIPT_SUFFIXES = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")
MARKUP_SUFFIXES = (".html", ".htm")
STYLE_SUFFIXES = (".css", ".scss", ".sass", ".less")
TEMPLATE_SUFFIXES = SCRIPT_SUFFIXES + MARKUP_SUFFIXES

IMG_TAG = re.compile(r"<(img|Image)\b[^>]*>")
FORM_TAG = re.compile(r"<(input|textarea|select)\b[^>]*>", re.IGNORECASE)
CLICKABLE_TAG = re.compile(r"<(div|span|li|p|td|section|article)\b[^>]*\bon[cC]lick\s*=[^>]*>")
KEYBOARD_HANDLER = re.compile(r"\bonkey(down|up|press)\s*=", re.IGNORECASE)
ALT_ATTR = re.compile(r"\balt\s*=\s*(\"[^\"]+\"|'[^']+'|\{)")
LABEL_ATTR = re.compile(r"\b(aria-label|aria-labelledby|id)\s*=")
HIDDEN_INPUT = re.compile(r"\btype\s*=\s*['\"](hidden|submit|button|reset|image)['\"]", re.IGNORECASE)

TagCheck = Callable[[str], Optional[str]]


def _missing_alt(tag: str) -> Optional[str]:
    if ALT_ATTR.search(tag):
        return None
    return "Image missing alt attribute or has empty alt"


def _missing_label(tag: str) -> Optional[str]:
    if LABEL_ATTR.search(tag) or HIDDEN_INPUT.search(tag):
        return None
    return "Form control missing proper labeling"


def _click_without_keyboard(tag: str) -> Optional[str]:
    if KEYBOARD_HANDLER.search(tag):
        return None
    if re.search(r"\brole\s*=\s*['\"]button['\"]", tag) and re.search(r"\btabindex\s*=", tag, re.IGNORECASE):
        return None
    return "Click handler on a non-interactive element without keyboard support"


def tag_rule(
    rule_id: str,
    issue_type: str,
    tag_pattern: Pattern,
    check: TagCheck,
    severity: Severity,
    recommendation: str,
    suffixes=TEMPLATE_SUFFIXES,
) -> RuleCheck:
    """Проверка каждого найденного тега в строке; одна находка на строку."""

    def run(content: str, path: str) -> Iterator[Issue]:
        lines = content.split("\n")
        for index, line in enumerate(lines):
            trimmed = line.strip()
            if not trimmed or is_comment(trimmed):
                continue
            for match in tag_pattern.finditer(trimmed):
                message = check(match.group(0))
                if message is None:
                    continue
                code, context = code_context(lines, index)
                yield Issue(
                    category=Category.ACCESSIBILITY,
                    type=issue_type,
                    severity=severity,
                    message=message,
                    file=path,
                    line=index + 1,
                    code=code,
                    context=context,
                    recommendation=recommendation,
                    rule_id=rule_id,
                )
                break

    return RuleCheck(id=rule_id, func=run, suffixes=suffixes)


def build_accessibility_rules() -> List[RuleCheck]:
    return [
        tag_rule(
            "img-alt",
            "missing_alt",
            IMG_TAG,
            _missing_alt,
            Severity.HIGH,
            "Describe the image in alt text, or use alt=\"\" with role=\"presentation\" for decoration",
        ),
        tag_rule(
            "form-label",
            "missing_form_label",
            FORM_TAG,
            _missing_label,
            Severity.HIGH,
            "Associate the control with a <label for=...> or add aria-label",
        ),
        tag_rule(
            "click-events-have-key-events",
            "keyboard_navigation",
            CLICKABLE_TAG,
            _click_without_keyboard,
            Severity.MEDIUM,
            "Use a <button> or add role, tabindex and keyboard handlers",
        ),
        pattern_rule(
            "positive-tabindex",
            Category.ACCESSIBILITY,
            "positive_tabindex",
            compile_patterns(
                (r"tab[iI]ndex\s*=\s*[{'\"]*\s*[1-9]", "Positive tabindex disrupts natural tab order", "medium",
                 "Use tabindex=\"0\" or \"-1\" and rely on DOM order"),
            ),
            suffixes=TEMPLATE_SUFFIXES,
        ),
        pattern_rule(
            "empty-aria",
            Category.ACCESSIBILITY,
            "empty_aria",
            compile_patterns(
                (r"aria-(label|labelledby|describedby)\s*=\s*(\"\"|'')", "Empty ARIA attribute detected", "medium",
                 "Provide a meaningful value or remove the attribute"),
            ),
            suffixes=TEMPLATE_SUFFIXES,
        ),
        pattern_rule(
            "color-contrast",
            Category.ACCESSIBILITY,
            "color_contrast",
            compile_patterns(
                (r"(^|[\s;{])(background-)?color\s*:\s*(#[0-9a-f]{3,8}\b|rgba?\()",
                 "Color usage detected - verify contrast ratios meet WCAG guidelines", "low",
                 "Use tools like axe-core or Lighthouse to check actual contrast ratios"),
            ),
            suffixes=STYLE_SUFFIXES,
            first_match_only=True,
        ),
    ]


class AccessibilityScanner(BaseScanner):
    """Проверки доступности разметки, скриптов и стилей."""

    category = Category.ACCESSIBILITY

    def build_rule_checks(self) -> List[RuleCheck]:
        return build_accessibility_rules()

    async def scan_project(self, inputs: Sequence) -> None:
        styles = [Path(p) for p in inputs if str(p).lower().endswith(STYLE_SUFFIXES)]
        stylelint = StylelintTool(self.config.project_root, timeout_seconds=self.config.tool_timeout_seconds)
        self.logger.info(f"Running stylelint over {len(styles)} stylesheets...")
        await self.run_tool_in_chunks(stylelint, styles, issue_type="stylelint")

        await self.audit_pages(self.config.page_urls)

    async def audit_pages(self, urls: Sequence[str]) -> None:
        """Lighthouse по живым страницам: одна задача executor на URL."""
        if not urls or not self.config.use_external_tools:
            return
        tool = LighthouseTool(self.config.project_root, timeout_seconds=self.config.tool_timeout_seconds)
        if not tool.available():
            await self.run_tool(tool, [], issue_type="lighthouse")
            return
        tasks = [
            ScanTask(name=url, run=partial(self.run_tool, tool, [url], "lighthouse"))
            for url in urls
        ]
        self.logger.info(f"Auditing {len(tasks)} pages with Lighthouse...")
        await self.executor.run(tasks)
