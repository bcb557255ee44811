"""
Dependency scanner.

Inputs are the packages declared in package.json, one ScanTask each, rather
than enumerated files.

Per package:
- Declared but not installed in node_modules

Per project:
- Missing node_modules
- Missing peer dependencies
- Duplicate declarations across dependency groups
- Known large dependencies, missing license
- npm audit, npm outdated, depcheck (external tools)
"""

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..core.base_scanner import BaseScanner
from ..core.executor import ScanTask
from ..core.models import Category, Severity
from ..tools.adapters import DepcheckTool, ExternalTool, NpmAuditTool, NpmOutdatedTool
from .manifest import DEPENDENCY_GROUPS, ManifestError, group, load_manifest

INSTALL_GROUPS = ("dependencies", "devDependencies")

LARGE_PACKAGES = (
    "lodash", "moment", "date-fns", "ramda", "immutable",
    "bootstrap", "material-ui", "antd", "semantic-ui",
    "jquery", "angular", "vue", "react-dom",
)


@dataclass(frozen=True)
class DeclaredPackage:
    """Одна запись из package.json."""
    name: str
    version: str
    group: str


def declared_packages(manifest: Dict[str, Any]) -> List[DeclaredPackage]:
    packages = []
    for group_name in INSTALL_GROUPS:
        for name, version in sorted(group(manifest, group_name).items()):
            packages.append(DeclaredPackage(name=name, version=str(version), group=group_name))
    return packages


def duplicate_declarations(manifest: Dict[str, Any]) -> Dict[str, List[str]]:
    """Пакеты, объявленные сразу в нескольких группах."""
    seen: Dict[str, List[str]] = {}
    for group_name in DEPENDENCY_GROUPS:
        # peer + dev is the standard pattern for libraries
        if group_name == "peerDependencies":
            continue
        for name in group(manifest, group_name):
            seen.setdefault(name, []).append(group_name)
    return {name: groups for name, groups in seen.items() if len(groups) > 1}


class DependencyScanner(BaseScanner):
    """Проверка зависимостей проекта по package.json и node_modules."""

    category = Category.DEPENDENCY

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.manifest: Optional[Dict[str, Any]] = None
        self.manifest_error: Optional[ManifestError] = None

    @property
    def node_modules(self) -> Path:
        return self.config.project_root / "node_modules"

    def enumerate_inputs(self) -> List[DeclaredPackage]:
        self.manifest, self.manifest_error = None, None
        try:
            self.manifest = load_manifest(self.config.project_root)
        except ManifestError as e:
            self.manifest_error = e
            return []
        if self.manifest is None:
            return []
        # Without node_modules every package would be reported missing
        if not self.node_modules.is_dir():
            return []
        return declared_packages(self.manifest)

    def make_tasks(self, inputs: Sequence[DeclaredPackage]) -> List[ScanTask]:
        return [ScanTask(name=package.name, run=partial(self.check_installed, package)) for package in inputs]

    async def check_installed(self, package: DeclaredPackage) -> int:
        if (self.node_modules / package.name).exists():
            return 0
        return await self.emit(self.create_issue(
            "missing_package",
            Severity.HIGH,
            f"Package {package.name} is missing from node_modules",
            recommendation=f"Run npm install to install {package.name}",
            package=package.name,
            rule_id="missing-package",
        ))

    async def scan_project(self, inputs: Sequence) -> None:
        if self.manifest_error is not None:
            self.logger.warning(f"{self.manifest_error}")
            await self.emit(self.create_issue(
                "invalid_manifest",
                Severity.HIGH,
                "package.json could not be parsed",
                recommendation="Fix the JSON syntax of package.json",
            ))
            return
        if self.manifest is None:
            self.logger.info("No package.json found, skipping dependency checks")
            return

        await self.check_node_modules()
        await self.check_peer_dependencies()
        await self.check_duplicates()
        await self.check_large_dependencies()
        await self.check_license()

        for tool, issue_type in (
            (NpmAuditTool(self.config.project_root, self.config.tool_timeout_seconds), "dependency_vulnerability"),
            (NpmOutdatedTool(self.config.project_root, self.config.tool_timeout_seconds), "outdated_dependency"),
            (DepcheckTool(self.config.project_root, self.config.tool_timeout_seconds), "unused_dependency"),
        ):
            await self.run_dependency_tool(tool, issue_type)

    async def run_dependency_tool(self, tool: ExternalTool, issue_type: str) -> None:
        if not self.tool_enabled(tool):
            return
        self.logger.info(f"Running {tool.name}...")
        await self.run_tool(tool, [], issue_type=issue_type)

    async def check_node_modules(self) -> None:
        declared = any(group(self.manifest, name) for name in INSTALL_GROUPS)
        if declared and not self.node_modules.is_dir():
            await self.emit(self.create_issue(
                "missing_node_modules",
                Severity.HIGH,
                "node_modules directory not found",
                recommendation="Run npm install to install dependencies",
            ))

    async def check_peer_dependencies(self) -> None:
        if not self.node_modules.is_dir():
            return
        self.logger.info("Checking peer dependencies...")
        for name, required in sorted(group(self.manifest, "peerDependencies").items()):
            if (self.node_modules / name).exists():
                continue
            await self.emit(self.create_issue(
                "missing_peer_dependency",
                Severity.HIGH,
                f"Peer dependency {name}@{required} is not installed",
                recommendation=f"Install {name}@{required}",
                package=name,
            ))

    async def check_duplicates(self) -> None:
        for name, groups in sorted(duplicate_declarations(self.manifest).items()):
            await self.emit(self.create_issue(
                "duplicate_dependency",
                Severity.MEDIUM,
                f"Duplicate dependency found: {name} ({', '.join(groups)})",
                recommendation="Keep the package in a single dependency group",
                package=name,
            ))

    async def check_large_dependencies(self) -> None:
        runtime = group(self.manifest, "dependencies")
        for name in LARGE_PACKAGES:
            if name not in runtime:
                continue
            await self.emit(self.create_issue(
                "large_dependency",
                Severity.LOW,
                f"Large dependency detected: {name}",
                recommendation="Consider using lighter alternatives or tree-shaking",
                package=name,
            ))

    async def check_license(self) -> None:
        if self.manifest.get("license") or self.manifest.get("private"):
            return
        await self.emit(self.create_issue(
            "missing_license",
            Severity.MEDIUM,
            "No license specified in package.json",
            recommendation="Add a license field to package.json",
        ))
