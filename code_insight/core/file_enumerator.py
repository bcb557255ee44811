"""
File enumeration for audit categories.

Resolves include/exclude globs per file class into a concrete, sorted file
list. Exclusions come from the configured "!" globs plus either the project's
ignore file or the built-in default exclusion set.
"""

import fnmatch
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..config import (
    IGNORE_FILE_NAME,
    MARKUP,
    SCRIPT,
    STYLE,
    ProjectSettings,
)
from .errors import FileAccessError
from .models import Category

logger = logging.getLogger(__name__)


DEFAULT_EXCLUSIONS = [
    "**/node_modules/**",
    "**/bower_components/**",
    "**/vendor/**",
    "**/dist/**",
    "**/build/**",
    "**/out/**",
    "**/coverage/**",
    "**/.nyc_output/**",
    "**/report/**",
    "**/reports/**",
    "**/.git/**",
    "**/.svn/**",
    "**/.hg/**",
    "**/.cache/**",
    "**/.tmp/**",
    "**/*.min.js",
    "**/*.min.css",
    "**/*.bundle.js",
    "**/*.bundle.css",
    "**/*.map",
]

CATEGORY_FILE_CLASSES: Dict[Category, Tuple[str, ...]] = {
    Category.SECURITY: (SCRIPT,),
    Category.PERFORMANCE: (SCRIPT,),
    Category.ACCESSIBILITY: (MARKUP, SCRIPT, STYLE),
    Category.TESTING: (SCRIPT,),
    Category.DEPENDENCY: (),
}


def expand_braces(pattern: str) -> List[str]:
    """'**/*.{js,ts}' -> ['**/*.js', '**/*.ts']"""
    start = pattern.find("{")
    if start == -1:
        return [pattern]
    end = pattern.find("}", start)
    if end == -1:
        return [pattern]

    head, body, tail = pattern[:start], pattern[start + 1:end], pattern[end + 1:]
    expanded = []
    for option in body.split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def glob_match(relative_path: str, pattern: str) -> bool:
    """
    Проверить POSIX-путь относительно корня проекта на совпадение с glob.

    "**/" may match zero directories; "*" may cross directory separators,
    which is how ignore files are conventionally read.
    """
    for candidate in expand_braces(pattern):
        if fnmatch.fnmatchcase(relative_path, candidate):
            return True
        if "**/" in candidate and fnmatch.fnmatchcase(relative_path, candidate.replace("**/", "")):
            return True
    return False


def path_candidates(relative_path: str) -> List[str]:
    """
    Сам путь и все его родительские директории.

    'a/b/c.js' -> ['a', 'a/', 'a/b', 'a/b/', 'a/b/c.js']; an ignored directory
    excludes everything below it.
    """
    parts = relative_path.rstrip("/").split("/")
    candidates = []
    for depth in range(1, len(parts)):
        head = "/".join(parts[:depth])
        candidates.extend((head, f"{head}/"))
    candidates.append(relative_path)
    if relative_path.endswith("/"):
        candidates.append(relative_path.rstrip("/"))
    return candidates


def parse_ignore_file(content: str) -> Tuple[List[str], List[str]]:
    """
    Разобрать ignore-файл в (исключения, повторные включения).

    - пустые строки и комментарии (#) пропускаются
    - "dir/"  -> "**/dir/**"
    - "name"  -> "**/name"
    - "a/b"   -> "**/a/b"
    - строки с "!" возвращают файл в выборку
    """
    excludes: List[str] = []
    reincludes: List[str] = []

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        negated = line.startswith("!")
        pattern = line[1:] if negated else line

        if not any(ch in pattern for ch in "*{["):
            if pattern.endswith("/"):
                pattern = f"**/{pattern}**"
            else:
                pattern = f"**/{pattern.lstrip('/')}"

        (reincludes if negated else excludes).append(pattern)

    return excludes, reincludes


class FileEnumerator:
    """Перечисление файлов для категорий аудита."""

    def __init__(self, project_root: Path, settings: Optional[ProjectSettings] = None):
        self.project_root = Path(project_root)
        self.settings = settings or ProjectSettings()

    def exclusion_globs(self) -> Tuple[List[str], List[str]]:
        """
        Ignore-файл (если включён и существует) или набор по умолчанию.

        Returns:
            (exclude globs, re-include globs)
        """
        ignore_path = self.project_root / IGNORE_FILE_NAME

        if self.settings.ignore_file.enabled and ignore_path.exists():
            try:
                content = ignore_path.read_text(encoding="utf-8")
                excludes, reincludes = parse_ignore_file(content)
                logger.info(f"Loaded ignore patterns from {IGNORE_FILE_NAME}")
                return excludes, reincludes
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Error reading {IGNORE_FILE_NAME}, using default patterns: {e}")

        return list(DEFAULT_EXCLUSIONS), []

    def files_for(self, file_class: str) -> List[Path]:
        """Все файлы одного класса (script/markup/style), отсортированные."""
        patterns = self.settings.patterns_for(file_class)
        includes = [p for p in patterns if not p.startswith("!")]
        excludes = [p[1:] for p in patterns if p.startswith("!")]

        ignore_excludes, reincludes = self.exclusion_globs()
        excludes.extend(ignore_excludes)

        return sorted(self._walk(includes, excludes, reincludes))

    def files_for_category(self, category: Category) -> List[Path]:
        """Объединение файлов всех классов, которые нужны категории."""
        files = set()
        for file_class in CATEGORY_FILE_CLASSES[Category(category)]:
            files.update(self.files_for(file_class))
        return sorted(files)

    def _is_excluded(self, relative: str, excludes: Iterable[str], reincludes: Iterable[str]) -> bool:
        candidates = path_candidates(relative)
        if not any(glob_match(c, pattern) for pattern in excludes for c in candidates):
            return False
        return not any(glob_match(relative, pattern) for pattern in reincludes)

    def _walk(self, includes: List[str], excludes: List[str], reincludes: List[str]) -> List[Path]:
        matched: List[Path] = []

        def on_error(error: OSError) -> None:
            failure = FileAccessError(str(error.filename or self.project_root), error.strerror or str(error))
            logger.warning(f"Skipping unreadable directory: {failure}")

        for dirpath, dirnames, filenames in os.walk(self.project_root, onerror=on_error):
            current = Path(dirpath)
            relative_dir = current.relative_to(self.project_root).as_posix()
            prefix = "" if relative_dir == "." else f"{relative_dir}/"

            # Prune excluded directories unless something may be re-included inside
            if not reincludes:
                dirnames[:] = sorted(
                    d for d in dirnames
                    if not self._is_excluded(f"{prefix}{d}/", excludes, reincludes)
                )
            else:
                dirnames.sort()

            for filename in filenames:
                relative = f"{prefix}{filename}"
                if not any(glob_match(relative, pattern) for pattern in includes):
                    continue
                if self._is_excluded(relative, excludes, reincludes):
                    continue
                matched.append((current / filename).resolve())

        return matched
