"""Tests for the category scanners and their rule catalogues."""

import json

import pytest

from code_insight.core.models import Category, Severity
from code_insight.scanners import SCANNERS
from code_insight.scanners.accessibility import AccessibilityScanner, build_accessibility_rules
from code_insight.scanners.dependency import DependencyScanner, duplicate_declarations
from code_insight.scanners.performance import PerformanceScanner, build_performance_rules
from code_insight.scanners.security import SecurityScanner, build_security_rules, find_hardcoded_secrets
from code_insight.scanners.testing import TestingScanner, is_test_file


def apply_rules(rules, content, path):
    found = []
    for rule in rules:
        if rule.applies_to(path):
            found.extend(rule(content, path))
    return found


def types_of(issues):
    return sorted(i.type for i in issues)


def test_registry_covers_every_category():
    assert set(SCANNERS) == set(Category)
    for category, scanner_class in SCANNERS.items():
        assert scanner_class.category is category


# ═══════════════════════════════════════════════════════
# SECURITY
# ═══════════════════════════════════════════════════════

class TestSecurityRules:

    @pytest.mark.parametrize("line", [
        'const apiKey = "sk_live_abcdef1234567890";',
        "let dbPassword = 'hunter2';",
        'const config = { clientSecret: "abc123" };',
    ])
    def test_hardcoded_secret_detected(self, line):
        found = list(find_hardcoded_secrets(line, "src/a.js"))
        assert len(found) == 1
        assert found[0].severity is Severity.HIGH
        assert found[0].rule_id == "hardcoded-secret"

    @pytest.mark.parametrize("line", [
        "const token = getToken();",
        "const API_KEY = process.env.API_KEY;",
        'if (password === "") return;',
        '// const apiKey = "sk_live_abcdef1234567890";',
        "const secret = `${prefix}-value`;",
    ])
    def test_hardcoded_secret_ignored(self, line):
        assert list(find_hardcoded_secrets(line, "src/a.js")) == []

    def test_catalogue(self):
        content = "\n".join([
            "const y = eval(input);",
            "el.innerHTML = value;",
            "if (el.innerHTML == old) {}",
            "document.write(html);",
            'fetch("http://api.example.com/users");',
            'fetch("http://localhost:3000/users");',
            'localStorage.setItem("authToken", token);',
            '<a href={url} target="_blank">',
            '<a href={url} target="_blank" rel="noopener noreferrer">',
        ])
        found = apply_rules(build_security_rules(), content, "src/app.jsx")

        by_line = {i.line: i.type for i in found}
        assert by_line == {
            1: "dangerous_eval",
            2: "xss_vulnerability",
            4: "xss_vulnerability",
            5: "insecure_transport",
            7: "insecure_storage",
            8: "reverse_tabnabbing",
        }

    def test_script_rules_skip_stylesheets(self):
        assert apply_rules(build_security_rules(), "eval(x)", "src/a.css") == []


@pytest.mark.asyncio
async def test_security_scanner_end_to_end(config, write_file):
    write_file("src/app.js", 'const apiKey = "sk_live_abcdef1234567890";\nconst y = eval(input);\n')
    write_file("node_modules/lib/index.js", "eval(x);\n")

    result = await SecurityScanner(config).run()

    assert result.total_issues == 2
    assert {i.file for i in result.issues} == {"src/app.js"}
    assert (config.output_dir / "security-issues.jsonl").exists()


# ═══════════════════════════════════════════════════════
# PERFORMANCE
# ═══════════════════════════════════════════════════════

class TestPerformanceRules:

    def test_catalogue(self):
        content = "\n".join([
            "const copy = JSON.parse(JSON.stringify(obj));",
            "const ids = items.map(x => x.id).filter(Boolean);",
            "for (let i = 0; i < items.length; i++) {}",
            'const data = fs.readFileSync("a.txt");',
            "import _ from 'lodash';",
            "import debounce from 'lodash/debounce';",
        ])
        found = apply_rules(build_performance_rules(), content, "src/a.js")

        assert {i.line: i.type for i in found} == {
            1: "inefficient_operation",
            2: "inefficient_operation",
            3: "inefficient_operation",
            4: "blocking_operation",
            5: "large_import",
        }

    def test_listener_without_cleanup(self):
        found = apply_rules(
            build_performance_rules(),
            'window.addEventListener("resize", onResize);\nconst t = setInterval(tick, 1000);\n',
            "src/a.js",
        )
        leaks = [i for i in found if i.type == "memory_leak"]
        assert [(i.line, i.severity) for i in leaks] == [(1, Severity.MEDIUM), (2, Severity.HIGH)]

    def test_listener_with_cleanup(self):
        content = (
            'window.addEventListener("resize", onResize);\n'
            'return () => window.removeEventListener("resize", onResize);\n'
        )
        found = apply_rules(build_performance_rules(), content, "src/a.js")
        assert [i for i in found if i.type == "memory_leak"] == []


@pytest.mark.asyncio
async def test_performance_scanner_project_checks(config, write_file, project):
    write_file("src/app.js", "const copy = JSON.parse(JSON.stringify(obj));\n")
    write_file("dist/main.js", "a" * (1024 * 1024 + 10))
    write_file("public/logo.bmp", "BM")

    result = await PerformanceScanner(config).run()

    assert types_of(result.issues) == ["inefficient_operation", "large_bundle", "unoptimized_asset"]
    bundle = next(i for i in result.issues if i.type == "large_bundle")
    assert bundle.severity is Severity.HIGH
    assert bundle.file is None
    # dist/ is a build output and never scanned line by line
    assert all(i.file != "dist/main.js" for i in result.issues)


# ═══════════════════════════════════════════════════════
# ACCESSIBILITY
# ═══════════════════════════════════════════════════════

class TestAccessibilityRules:

    def test_markup_catalogue(self):
        content = "\n".join([
            '<img src="logo.png">',
            '<img src="logo.png" alt="Company logo">',
            '<img src="spacer.gif" alt="">',
            '<input type="text" name="q">',
            '<input id="email" type="email">',
            '<input type="hidden" name="csrf">',
            '<div onclick="open()">Open</div>',
            '<div onclick="open()" onkeydown="open()">Open</div>',
            '<button tabindex="3">Go</button>',
            '<button tabindex="0">Go</button>',
            '<nav aria-label="">',
        ])
        found = apply_rules(build_accessibility_rules(), content, "src/index.html")

        assert {i.line: i.type for i in found} == {
            1: "missing_alt",
            3: "missing_alt",
            4: "missing_form_label",
            7: "keyboard_navigation",
            9: "positive_tabindex",
            11: "empty_aria",
        }

    def test_jsx_expressions(self):
        content = '<img src={src} alt={label} />\n<div onClick={toggle}>x</div>\n<li tabIndex={2}>x</li>\n'
        found = apply_rules(build_accessibility_rules(), content, "src/Menu.jsx")
        assert {i.line: i.type for i in found} == {2: "keyboard_navigation", 3: "positive_tabindex"}

    def test_color_contrast_only_in_stylesheets(self):
        css = ".a {\n  color: #333;\n  border-color: #fff;\n  background-color: rgb(0, 0, 0);\n}\n"
        found = apply_rules(build_accessibility_rules(), css, "src/main.scss")
        assert [(i.line, i.type) for i in found] == [(2, "color_contrast"), (4, "color_contrast")]
        assert apply_rules(build_accessibility_rules(), "color: #333;", "src/a.js") == []


@pytest.mark.asyncio
async def test_accessibility_scanner_covers_all_file_classes(config, write_file):
    write_file("src/index.html", '<img src="a.png">\n')
    write_file("src/App.jsx", "<div onClick={go}>x</div>\n")
    write_file("src/main.css", "body { color: #111; }\n")

    result = await AccessibilityScanner(config).run()

    assert {i.file for i in result.issues} == {"src/index.html", "src/App.jsx", "src/main.css"}


@pytest.mark.asyncio
async def test_page_audit_without_lighthouse(make_config, monkeypatch):
    monkeypatch.setattr("code_insight.tools.adapters.shutil.which", lambda name: None)
    config = make_config(use_external_tools=True, page_urls=["https://example.com"])

    scanner = AccessibilityScanner(config)
    await scanner.stream.open()
    try:
        await scanner.audit_pages(config.page_urls)
    finally:
        await scanner.stream.close()

    record = json.loads(config.stream_path(Category.ACCESSIBILITY).read_text().splitlines()[0])
    assert record["type"] == "tool_unavailable"
    assert record["ruleId"] == "lighthouse-unavailable"


# ═══════════════════════════════════════════════════════
# TESTING
# ═══════════════════════════════════════════════════════

@pytest.mark.parametrize("path, expected", [
    ("src/app.test.js", True),
    ("src/Button.spec.tsx", True),
    ("src/__tests__/util.js", True),
    ("test/helpers.js", True),
    ("src/contest.js", False),
    ("src/app.js", False),
])
def test_is_test_file(path, expected):
    assert is_test_file(path) is expected


@pytest.mark.asyncio
async def test_testing_scanner_bare_project(config, write_file):
    write_file("src/app.js", "export const add = (a, b) => a + b;\n")

    result = await TestingScanner(config).run()

    assert types_of(result.issues) == ["no_test_config", "no_test_files"]
    assert result.high_severity == 1
    assert result.medium_severity == 1


@pytest.mark.asyncio
async def test_testing_scanner_positive_findings(config, write_file):
    write_file("package.json", json.dumps({
        "devDependencies": {"jest": "^29.0.0"},
        "scripts": {"test": "jest", "test:coverage": "jest --coverage"},
    }))
    write_file("jest.config.js", "module.exports = {};\n")
    write_file("src/app.js", 'describe("not a test file", () => {});\n')
    write_file("src/app.test.js", "\n".join([
        'jest.mock("./api");',
        'describe("add", () => {',
        '  it("adds numbers", () => {',
        "    expect(add(1, 2)).toBe(3);",
        "  });",
        "});",
    ]))

    result = await TestingScanner(config).run()
    by_type = {}
    for found in result.issues:
        by_type.setdefault(found.type, []).append(found)

    assert set(by_type) == {
        "test_files_found",
        "test_config_found",
        "testing_framework_found",
        "no_e2e_framework",
        "coverage_script_found",
        "testing_pattern_found",
        "mocking_pattern_found",
    }
    assert {i.line for i in by_type["testing_pattern_found"]} == {2, 3, 4}
    assert all(i.file == "src/app.test.js" for i in by_type["testing_pattern_found"])
    assert all(i.positive and i.severity is Severity.INFO for i in by_type["mocking_pattern_found"])
    assert result.medium_severity == 1


# ═══════════════════════════════════════════════════════
# DEPENDENCY
# ═══════════════════════════════════════════════════════

def test_duplicate_declarations():
    manifest = {
        "dependencies": {"react": "^18", "axios": "^1"},
        "devDependencies": {"react": "^18", "jest": "^29"},
        "peerDependencies": {"react": "^18"},
    }
    assert duplicate_declarations(manifest) == {"react": ["dependencies", "devDependencies"]}


@pytest.mark.asyncio
async def test_dependency_scanner_manifest_checks(config, write_file):
    write_file("package.json", json.dumps({
        "name": "demo",
        "dependencies": {"react": "^18.2.0", "lodash": "^4.17.21"},
        "devDependencies": {"jest": "^29.0.0", "react": "^18.2.0"},
        "peerDependencies": {"react-dom": "^18.2.0"},
    }))
    write_file("node_modules/react/package.json", "{}")
    write_file("node_modules/jest/package.json", "{}")

    scanner = DependencyScanner(config)
    result = await scanner.run()

    assert types_of(result.issues) == [
        "duplicate_dependency",
        "large_dependency",
        "missing_license",
        "missing_package",
        "missing_peer_dependency",
    ]
    missing = next(i for i in result.issues if i.type == "missing_package")
    assert missing.package == "lodash"
    # One task per declared package
    assert scanner.last_execution.total == 4


@pytest.mark.asyncio
async def test_dependency_scanner_without_node_modules(config, write_file):
    write_file("package.json", json.dumps({
        "license": "MIT",
        "dependencies": {"axios": "^1.0.0"},
        "peerDependencies": {"react": "^18"},
    }))

    result = await DependencyScanner(config).run()

    assert types_of(result.issues) == ["missing_node_modules"]


@pytest.mark.asyncio
async def test_dependency_scanner_without_manifest(config):
    result = await DependencyScanner(config).run()
    assert result.total_issues == 0


@pytest.mark.asyncio
async def test_dependency_scanner_invalid_manifest(config, write_file):
    write_file("package.json", "{ broken")
    result = await DependencyScanner(config).run()
    assert types_of(result.issues) == ["invalid_manifest"]


@pytest.mark.asyncio
async def test_dependency_scanner_non_utf8_manifest(config, project):
    (project / "package.json").write_bytes(b'{"name": "caf\xe9", "dependencies": {}}')
    result = await DependencyScanner(config).run()
    assert types_of(result.issues) == ["invalid_manifest"]


@pytest.mark.asyncio
async def test_dependency_tools_unavailable(make_config, write_file, monkeypatch):
    monkeypatch.setattr("code_insight.tools.adapters.shutil.which", lambda name: None)
    write_file("package.json", json.dumps({"license": "MIT", "dependencies": {}}))

    result = await DependencyScanner(make_config(use_external_tools=True)).run()

    assert sorted(i.rule_id for i in result.issues) == [
        "depcheck-unavailable",
        "npm-audit-unavailable",
        "npm-outdated-unavailable",
    ]
    assert all(i.type == "tool_unavailable" for i in result.issues)
