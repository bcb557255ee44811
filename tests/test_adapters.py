"""Tests for external tool adapters: output parsing and process handling."""

import json
import sys

import pytest

from code_insight.core.errors import ExternalToolError, ParseError
from code_insight.core.models import Category, IssueSource, Severity
from code_insight.scanners.security import SecurityScanner
from code_insight.tools.adapters import (
    DepcheckTool,
    ESLintTool,
    LighthouseTool,
    NpmAuditTool,
    NpmOutdatedTool,
    StylelintTool,
    tool_failure_issue,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses shell-script stand-ins for node tools")


def install_fake_binary(project, program, script):
    """Положить исполняемый скрипт в node_modules/.bin."""
    path = project / "node_modules" / ".bin" / program
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + script + "\n", encoding="utf-8")
    path.chmod(0o755)
    return path


class TestParsers:

    def test_eslint_with_rule_filter(self, project):
        tool = ESLintTool(project, rule_filter=lambda rule: rule.startswith("security/"))
        findings = tool.parse([
            {
                "filePath": "/repo/src/a.js",
                "messages": [
                    {"ruleId": "security/detect-eval-with-expression", "severity": 2, "line": 3,
                     "message": "eval with argument of type Identifier"},
                    {"ruleId": "no-unused-vars", "severity": 1, "line": 4, "message": "x is unused"},
                    {"ruleId": None, "severity": 2, "line": 1, "message": "Parsing error"},
                ],
            },
        ])
        assert len(findings) == 1
        assert findings[0].rule_id == "security/detect-eval-with-expression"
        assert findings[0].severity is Severity.HIGH
        assert findings[0].line == 3

    def test_stylelint(self, project):
        findings = StylelintTool(project).parse([
            {"source": "/repo/a.css", "warnings": [
                {"line": 2, "rule": "color-no-invalid-hex", "severity": "error", "text": "Unexpected invalid hex"},
                {"line": 5, "rule": "declaration-empty-line-before", "severity": "warning", "text": "Expected empty line"},
            ]},
        ])
        assert [f.severity for f in findings] == [Severity.MEDIUM, Severity.LOW]

    def test_npm_audit(self, project):
        findings = NpmAuditTool(project).parse({
            "vulnerabilities": {
                "minimist": {
                    "severity": "critical",
                    "via": ["other-package", {"title": "Prototype Pollution in minimist"}],
                    "fixAvailable": True,
                },
                "tar": {"severity": "moderate", "via": [], "fixAvailable": False},
            },
        })
        by_package = {f.package: f for f in findings}
        assert by_package["minimist"].severity is Severity.HIGH
        assert by_package["minimist"].message == "Vulnerability in minimist: Prototype Pollution in minimist"
        assert by_package["minimist"].recommendation == "Run npm audit fix"
        assert by_package["tar"].severity is Severity.MEDIUM
        assert by_package["tar"].file is None

    def test_npm_outdated(self, project):
        findings = NpmOutdatedTool(project).parse({
            "react": {"current": "17.0.2", "wanted": "17.0.2", "latest": "18.2.0"},
            "jest": {"current": "29.6.0", "wanted": "29.7.0", "latest": "29.7.0"},
        })
        by_package = {f.package: f.severity for f in findings}
        assert by_package == {"react": Severity.MEDIUM, "jest": Severity.LOW}

    def test_depcheck(self, project):
        findings = DepcheckTool(project).parse({"dependencies": ["left-pad"], "devDependencies": ["mocha"]})
        assert [(f.package, f.rule_id) for f in findings] == [
            ("left-pad", "unused_dependency"),
            ("mocha", "unused_dev_dependency"),
        ]

    def test_lighthouse(self, project):
        findings = LighthouseTool(project).parse({
            "finalUrl": "https://example.com/",
            "audits": {
                "image-alt": {"title": "Image elements have [alt] attributes", "score": 0,
                              "scoreDisplayMode": "binary", "description": "Add alt text"},
                "color-contrast": {"title": "Contrast", "score": 0.7, "scoreDisplayMode": "numeric"},
                "document-title": {"title": "Has title", "score": 1, "scoreDisplayMode": "binary"},
                "manual-check": {"title": "Manual", "score": None, "scoreDisplayMode": "manual"},
            },
        })
        by_rule = {f.rule_id: f for f in findings}
        assert set(by_rule) == {"image-alt", "color-contrast"}
        assert by_rule["image-alt"].severity is Severity.HIGH
        assert by_rule["color-contrast"].severity is Severity.MEDIUM
        assert "https://example.com/" in by_rule["image-alt"].message


class TestFailureIssue:

    def test_unavailable(self, project):
        found = tool_failure_issue(Category.DEPENDENCY, DepcheckTool(project), ExternalToolError("depcheck", "missing"))
        assert found.type == "tool_unavailable"
        assert found.severity is Severity.MEDIUM
        assert found.source is IssueSource.EXTERNAL_TOOL
        assert found.file is None

    def test_unparsable(self, project):
        found = tool_failure_issue(Category.SECURITY, ESLintTool(project), ParseError("eslint", "bad json"))
        assert found.type == "tool_output_unparsable"
        assert found.rule_id == "eslint-unavailable"


class TestRun:

    @pytest.mark.asyncio
    async def test_missing_binary(self, project, monkeypatch):
        monkeypatch.setattr("code_insight.tools.adapters.shutil.which", lambda name: None)
        tool = DepcheckTool(project)
        assert tool.available() is False
        with pytest.raises(ExternalToolError):
            await tool.run()

    @posix_only
    @pytest.mark.asyncio
    async def test_nonzero_exit_with_output_is_accepted(self, project):
        install_fake_binary(project, "depcheck", """echo '{"dependencies": ["left-pad"]}'; exit 1""")
        findings = await DepcheckTool(project).run()
        assert [f.package for f in findings] == ["left-pad"]

    @posix_only
    @pytest.mark.asyncio
    async def test_garbage_output_raises_parse_error(self, project):
        install_fake_binary(project, "depcheck", "echo 'this is not json'")
        with pytest.raises(ParseError):
            await DepcheckTool(project).run()

    @posix_only
    @pytest.mark.asyncio
    async def test_unexpected_structure_raises_parse_error(self, project):
        install_fake_binary(project, "eslint", "echo '[{\"messages\": 5}]'")
        with pytest.raises(ParseError):
            await ESLintTool(project).run(["src/a.js"])

    @posix_only
    @pytest.mark.asyncio
    async def test_crash_without_output(self, project):
        install_fake_binary(project, "depcheck", "echo 'fatal: cannot resolve' >&2; exit 3")
        with pytest.raises(ExternalToolError) as excinfo:
            await DepcheckTool(project).run()
        assert excinfo.value.exit_code == 3

    @posix_only
    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, project):
        install_fake_binary(project, "depcheck", "sleep 5")
        with pytest.raises(ExternalToolError) as excinfo:
            await DepcheckTool(project, timeout_seconds=0.2).run()
        assert "timed out" in str(excinfo.value)

    @posix_only
    @pytest.mark.asyncio
    async def test_empty_output_means_no_findings(self, project):
        install_fake_binary(project, "stylelint", "exit 0")
        assert await StylelintTool(project).run(["a.css"]) == []


# ═══════════════════════════════════════════════════════
# TOOL RULE EXCLUSIONS
# ═══════════════════════════════════════════════════════

def install_fake_eslint(project, path):
    """eslint, который всегда сообщает react/no-danger и security/* для path."""
    report = json.dumps([{
        "filePath": str(path),
        "messages": [
            {"ruleId": "react/no-danger", "severity": 1, "line": 1,
             "message": "Dangerous property 'dangerouslySetInnerHTML' found"},
            {"ruleId": "security/detect-eval-with-expression", "severity": 2, "line": 2,
             "message": "eval with argument of type Identifier"},
        ],
    }])
    install_fake_binary(project, "eslint", "cat <<'EOF'\n" + report + "\nEOF")


def external_rules(result):
    return sorted(i.rule_id for i in result.issues if i.source is IssueSource.EXTERNAL_TOOL)


@posix_only
class TestToolRuleExclusions:

    @pytest.fixture
    def eslint_project(self, project, write_file):
        path = write_file("src/app.js", "render(<div dangerouslySetInnerHTML={html} />);\nrun(eval(input));\n")
        install_fake_eslint(project, path)

    @pytest.mark.asyncio
    async def test_default_excluded_rule_is_dropped(self, eslint_project, make_config):
        result = await SecurityScanner(make_config(use_external_tools=True)).run()
        assert external_rules(result) == ["security/detect-eval-with-expression"]

    @pytest.mark.asyncio
    async def test_override_default_restores_rule(self, eslint_project, write_file, make_config):
        write_file("code-insight.config.json", json.dumps({"excludeRules": {"eslint": {"overrideDefault": True}}}))
        result = await SecurityScanner(make_config(use_external_tools=True)).run()
        assert external_rules(result) == ["react/no-danger", "security/detect-eval-with-expression"]

    @pytest.mark.asyncio
    async def test_additional_rules_extend_defaults(self, eslint_project, write_file, make_config):
        write_file("code-insight.config.json", json.dumps({
            "excludeRules": {"eslint": {"additionalRules": ["security/detect-eval-with-expression"]}},
        }))
        result = await SecurityScanner(make_config(use_external_tools=True)).run()
        assert external_rules(result) == []

    @pytest.mark.asyncio
    async def test_disabled_exclusions_keep_everything(self, eslint_project, write_file, make_config):
        write_file("code-insight.config.json", json.dumps({"excludeRules": {"eslint": {"enabled": False}}}))
        result = await SecurityScanner(make_config(use_external_tools=True)).run()
        assert len(external_rules(result)) == 2
