"""Tests for glob resolution and file enumeration."""

import json
import os
import sys

import pytest

from code_insight.config import CONFIG_FILE_NAME, IGNORE_FILE_NAME, MARKUP, SCRIPT, STYLE, ProjectSettings
from code_insight.core.file_enumerator import (
    FileEnumerator,
    expand_braces,
    glob_match,
    parse_ignore_file,
    path_candidates,
)
from code_insight.core.models import Category


def relative(project, paths):
    return [p.relative_to(project.resolve()).as_posix() for p in paths]


class TestGlobHelpers:

    def test_expand_braces(self):
        assert expand_braces("**/*.{js,ts}") == ["**/*.js", "**/*.ts"]
        assert expand_braces("src/*.js") == ["src/*.js"]

    @pytest.mark.parametrize("path, pattern, expected", [
        ("app.js", "**/*.js", True),
        ("src/deep/app.tsx", "**/*.{js,tsx}", True),
        ("src/app.css", "**/*.js", False),
        ("node_modules/", "**/node_modules/**", True),
        ("lib/vendor/", "**/vendor/**", True),
        ("bundle.min.js", "**/*.min.js", True),
    ])
    def test_glob_match(self, path, pattern, expected):
        assert glob_match(path, pattern) is expected

    def test_path_candidates_include_parents(self):
        assert path_candidates("a/b/c.js") == ["a", "a/", "a/b", "a/b/", "a/b/c.js"]

    def test_parse_ignore_file(self):
        excludes, reincludes = parse_ignore_file(
            "# comment\n\nlegacy/\nsecrets.js\nsrc/generated\n*.snap\n!legacy/keep.js\n"
        )
        assert excludes == ["**/legacy/**", "**/secrets.js", "**/src/generated", "*.snap"]
        assert reincludes == ["**/legacy/keep.js"]


class TestFileEnumerator:

    @pytest.fixture
    def tree(self, write_file):
        for name in (
            "src/app.js",
            "src/components/Button.jsx",
            "src/utils.ts",
            "src/app.test.js",
            "src/index.html",
            "src/styles/main.scss",
            "node_modules/lib/index.js",
            "dist/bundle.js",
            "coverage/lcov.js",
            "public/vendor.min.js",
            ".git/hooks/pre-commit.js",
        ):
            write_file(name, "// content\n")

    def test_default_exclusions(self, project, tree):
        files = relative(project, FileEnumerator(project).files_for(SCRIPT))
        assert files == [
            "src/app.js",
            "src/app.test.js",
            "src/components/Button.jsx",
            "src/utils.ts",
        ]

    def test_deterministic(self, project, tree):
        enumerator = FileEnumerator(project)
        assert enumerator.files_for(SCRIPT) == enumerator.files_for(SCRIPT)

    def test_file_classes(self, project, tree):
        enumerator = FileEnumerator(project)
        assert relative(project, enumerator.files_for(MARKUP)) == ["src/index.html"]
        assert relative(project, enumerator.files_for(STYLE)) == ["src/styles/main.scss"]

    def test_category_file_sets(self, project, tree):
        enumerator = FileEnumerator(project)
        assert len(enumerator.files_for_category(Category.ACCESSIBILITY)) == 6
        assert enumerator.files_for_category(Category.DEPENDENCY) == []

    def test_ignore_file_replaces_defaults(self, project, tree, write_file):
        write_file(IGNORE_FILE_NAME, "src/components/\n!src/components/Button.jsx\nutils.ts\n")
        files = relative(project, FileEnumerator(project).files_for(SCRIPT))

        assert "src/utils.ts" not in files
        assert "src/components/Button.jsx" in files
        # node_modules is excluded by the script patterns themselves
        assert "node_modules/lib/index.js" not in files
        # .git is only in the default set, which the ignore file replaces
        assert ".git/hooks/pre-commit.js" in files

    def test_non_utf8_ignore_file_uses_defaults(self, project, tree):
        (project / IGNORE_FILE_NAME).write_bytes(b"src/\n# caf\xe9\n")
        files = relative(project, FileEnumerator(project).files_for(SCRIPT))

        assert "src/app.js" in files
        assert ".git/hooks/pre-commit.js" not in files

    def test_ignore_file_disabled_in_config(self, project, tree, write_file):
        write_file(IGNORE_FILE_NAME, "src/\n")
        write_file(CONFIG_FILE_NAME, json.dumps({"ignoreFileConfig": {"enabled": False}}))
        settings = ProjectSettings.model_validate(json.loads((project / CONFIG_FILE_NAME).read_text()))

        files = relative(project, FileEnumerator(project, settings).files_for(SCRIPT))
        assert "src/app.js" in files

    def test_custom_patterns(self, project, tree):
        settings = ProjectSettings(script_patterns=["src/components/**/*.jsx"])
        files = relative(project, FileEnumerator(project, settings).files_for(SCRIPT))
        assert files == ["src/components/Button.jsx"]

    @pytest.mark.skipif(sys.platform == "win32" or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
    def test_unreadable_directory_is_skipped(self, project, tree, write_file):
        locked = write_file("src/locked/secret.js", "x").parent
        locked.chmod(0)
        try:
            files = relative(project, FileEnumerator(project).files_for(SCRIPT))
        finally:
            locked.chmod(0o755)
        assert "src/app.js" in files
        assert "src/locked/secret.js" not in files

    def test_missing_root_yields_nothing(self, tmp_path):
        assert FileEnumerator(tmp_path / "missing").files_for(SCRIPT) == []
