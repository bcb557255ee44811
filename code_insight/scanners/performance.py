"""
Performance scanner.

Per file:
- Inefficient operations (JSON deep clone, chained map/filter, index loops)
- Memory-leak hints (listeners and intervals without cleanup)
- Blocking synchronous I/O
- Whole-library imports

Per project:
- Large bundles in build outputs
- Unoptimized image assets
- eslint promise plugin rules (external tool)
"""

import asyncio
import os
import re
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

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

BUNDLE_DIRS = ("dist", "build")
BUNDLE_SUFFIXES = (".js", ".mjs", ".cjs", ".css")
BUNDLE_SIZE_LIMIT = 1024 * 1024

ASSET_DIRS = ("public", "assets", "static", "src/assets")
IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".gif")
LEGACY_IMAGE_SUFFIXES = (".bmp", ".tiff")
ASSET_SIZE_LIMIT = 500 * 1024

# (setup, cleanup, message, severity)
LEAK_PAIRS: List[Tuple[re.Pattern, re.Pattern, str, Severity]] = [
    (
        re.compile(r"\baddEventListener\s*\("),
        re.compile(r"\bremoveEventListener\s*\("),
        "Event listener added without removal - potential memory leak",
        Severity.MEDIUM,
    ),
    (
        re.compile(r"\bsetInterval\s*\("),
        re.compile(r"\bclearInterval\s*\("),
        "setInterval used without clearInterval - potential memory leak",
        Severity.HIGH,
    ),
]


def find_memory_leaks(content: str, path: str) -> Iterator[Issue]:
    """Подписки и интервалы в файле, где нет ни одной отписки."""
    lines = content.split("\n")
    for setup, cleanup, message, severity in LEAK_PAIRS:
        if cleanup.search(content):
            continue
        for index, line in enumerate(lines):
            trimmed = line.strip()
            if not trimmed or is_comment(trimmed) or not setup.search(trimmed):
                continue
            code, context = code_context(lines, index)
            yield Issue(
                category=Category.PERFORMANCE,
                type="memory_leak",
                severity=severity,
                message=message,
                file=path,
                line=index + 1,
                code=code,
                context=context,
                recommendation="Release listeners and timers when the component or page is torn down",
                rule_id="memory-leak",
            )


def build_performance_rules() -> List[RuleCheck]:
    return [
        pattern_rule(
            "inefficient-operation",
            Category.PERFORMANCE,
            "inefficient_operation",
            compile_patterns(
                (r"JSON\.parse\s*\(\s*JSON\.stringify\s*\(", "Deep cloning with JSON.parse/stringify is inefficient",
                 "medium", "Use structuredClone() or a targeted copy"),
                (r"\.map\(.*\)\s*\.filter\(", "Consider combining map and filter operations", "low",
                 "Use a single reduce() or for...of loop"),
                (r"\.filter\(.*\)\s*\.map\(", "Consider combining filter and map operations", "low",
                 "Use a single reduce() or for...of loop"),
                (r"for\s*\(\s*(let|var)\s+\w+\s*=\s*0\s*;\s*\w+\s*<\s*[\w.]+\.length\s*;",
                 "Consider using forEach or for...of instead of traditional for loop", "low"),
            ),
            suffixes=SCRIPT_SUFFIXES,
        ),
        RuleCheck(id="memory-leak", func=find_memory_leaks, suffixes=SCRIPT_SUFFIXES),
        pattern_rule(
            "sync-io",
            Category.PERFORMANCE,
            "blocking_operation",
            compile_patterns(
                (r"\b(readFileSync|writeFileSync|appendFileSync|readdirSync|statSync|existsSync)\s*\(",
                 "Synchronous file system call blocks the event loop", "medium",
                 "Use the fs/promises API"),
                (r"\b(execSync|spawnSync|execFileSync)\s*\(", "Synchronous child process blocks the event loop",
                 "medium", "Use the asynchronous child_process API"),
                (r"\.open\s*\(\s*['\"]\w+['\"]\s*,\s*[^,]+,\s*false\s*\)", "Synchronous XMLHttpRequest", "high",
                 "Use fetch() or an asynchronous request"),
            ),
            suffixes=SCRIPT_SUFFIXES,
        ),
        pattern_rule(
            "whole-library-import",
            Category.PERFORMANCE,
            "large_import",
            compile_patterns(
                (r"import\s+(\*\s+as\s+)?\w+\s+from\s+['\"](lodash|moment|rxjs|antd|@material-ui/core)['\"]",
                 "Whole-library import increases bundle size", "medium",
                 "Import only the functions you use (e.g. lodash/debounce)"),
                (r"require\s*\(\s*['\"](lodash|moment)['\"]\s*\)",
                 "Whole-library require increases bundle size", "medium",
                 "Require only the modules you use"),
            ),
            suffixes=SCRIPT_SUFFIXES,
        ),
    ]


def directory_size(root: Path, suffixes: Tuple[str, ...]) -> Tuple[int, int]:
    """Суммарный размер и число файлов с нужными расширениями."""
    total, count = 0, 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            if not filename.lower().endswith(suffixes):
                continue
            try:
                total += (Path(dirpath) / filename).stat().st_size
            except OSError:
                continue
            count += 1
    return total, count


def image_files(root: Path) -> List[Tuple[Path, Optional[int], Optional[OSError]]]:
    """Изображения под root: (path, size, ошибка stat)."""
    found = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in sorted(filenames):
            if not filename.lower().endswith(IMAGE_SUFFIXES):
                continue
            path = Path(dirpath) / filename
            try:
                found.append((path, path.stat().st_size, None))
            except OSError as e:
                found.append((path, None, e))
    return found


def is_promise_rule(rule_id: str) -> bool:
    return rule_id.startswith("promise/")


class PerformanceScanner(BaseScanner):
    """Поиск проблем производительности."""

    category = Category.PERFORMANCE

    def build_rule_checks(self) -> List[RuleCheck]:
        return build_performance_rules()

    async def scan_project(self, inputs: Sequence) -> None:
        await self.check_bundle_size()
        await self.check_unoptimized_assets()

        eslint = ESLintTool(
            self.config.project_root,
            timeout_seconds=self.config.tool_timeout_seconds,
            rule_filter=is_promise_rule,
        )
        await self.run_tool_in_chunks(eslint, list(inputs), issue_type="promise_issue")

    async def check_bundle_size(self) -> None:
        """Размер собранных бандлов в dist/ и build/."""
        self.logger.info("Checking bundle sizes...")
        for name in BUNDLE_DIRS:
            bundle_dir = self.config.project_root / name
            if not bundle_dir.is_dir():
                continue
            total, count = await asyncio.to_thread(directory_size, bundle_dir, BUNDLE_SUFFIXES)
            if total <= BUNDLE_SIZE_LIMIT:
                continue
            size_mb = total / (1024 * 1024)
            await self.emit(self.create_issue(
                "large_bundle",
                Severity.HIGH,
                f"Bundle size in {name}/ is {size_mb:.2f}MB across {count} files, consider code splitting",
                recommendation="Split the bundle with dynamic imports and enable tree shaking",
                rule_id="large-bundle",
            ))

    async def check_unoptimized_assets(self) -> None:
        self.logger.info("Checking for unoptimized images/assets...")
        for name in ASSET_DIRS:
            asset_dir = self.config.project_root / name
            if not asset_dir.is_dir():
                continue
            for path, size, error in await asyncio.to_thread(image_files, asset_dir):
                shown = self.display_path(path)
                if error is not None:
                    self.logger.warning(f"Could not stat {shown}: {error}")
                    continue
                if size > ASSET_SIZE_LIMIT:
                    await self.emit(self.create_issue(
                        "unoptimized_asset",
                        Severity.MEDIUM,
                        f"Large image asset detected ({size // 1024} KB): {shown}",
                        recommendation="Compress or optimize this image for web",
                        rule_id="large-asset",
                    ))
                if path.name.lower().endswith(LEGACY_IMAGE_SUFFIXES):
                    await self.emit(self.create_issue(
                        "unoptimized_asset",
                        Severity.MEDIUM,
                        f"Non-web-optimized image format detected: {shown}",
                        recommendation="Convert to PNG, JPEG, or WebP",
                        rule_id="legacy-image-format",
                    ))
