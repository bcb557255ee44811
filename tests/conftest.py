"""
Pytest configuration and fixtures.

Использование:
    pytest tests/ -v
"""

from pathlib import Path

import pytest

from code_insight.config import AuditConfig


# ═══════════════════════════════════════════════════════
# PROJECT TREE
# ═══════════════════════════════════════════════════════

@pytest.fixture
def project(tmp_path) -> Path:
    """Пустой корень проверяемого проекта."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def write_file(project):
    """write_file("src/app.js", "...") -> абсолютный путь"""

    def _write(relative: str, content: str = "") -> Path:
        path = project / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


# ═══════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════

@pytest.fixture
def make_config(project, tmp_path):
    """AuditConfig без внешних инструментов, отчёты в tmp_path/out."""

    def _make(**overrides) -> AuditConfig:
        values = {
            "project_root": project,
            "output_dir": tmp_path / "out",
            "concurrency": 4,
            "batch_size": 10,
            "tool_timeout_seconds": 5.0,
            "use_external_tools": False,
        }
        values.update(overrides)
        return AuditConfig(**values)

    return _make


@pytest.fixture
def config(make_config) -> AuditConfig:
    return make_config()
