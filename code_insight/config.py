"""
Configuration for the audit pipeline.

Two layers:
- AuditConfig: run-level settings (paths, concurrency, timeouts), one value
  per run, passed explicitly into the orchestrator.
- ProjectSettings: the audited project's own code-insight.config.json
  (file patterns, ignore-file switch, exclude rules), validated with pydantic.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .core.models import Category

logger = logging.getLogger(__name__)


CONFIG_FILE_NAME = "code-insight.config.json"
IGNORE_FILE_NAME = ".code-insight-ignore"

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 25

# === File classes ===
SCRIPT = "script"
MARKUP = "markup"
STYLE = "style"
FILE_CLASSES = (SCRIPT, MARKUP, STYLE)

DEFAULT_FILE_PATTERNS: Dict[str, List[str]] = {
    SCRIPT: [
        "**/*.{js,ts,jsx,tsx}",
        "!**/node_modules/**",
        "!**/dist/**",
        "!**/build/**",
        "!**/coverage/**",
        "!**/report/**",
        "!**/*.min.js",
        "!**/tools/**",
    ],
    MARKUP: [
        "**/*.{html,htm}",
        "!**/node_modules/**",
        "!**/dist/**",
        "!**/build/**",
        "!**/coverage/**",
        "!**/report/**",
        "!**/tools/**",
    ],
    STYLE: [
        "**/*.{css,scss,sass,less}",
        "!**/node_modules/**",
        "!**/dist/**",
        "!**/build/**",
        "!**/coverage/**",
        "!**/report/**",
        "!**/reports/**",
        "!**/tools/**",
        "!**/*.min.css",
        "!**/*.bundle.css",
        "!**/*.map",
        "!**/.git/**",
        "!**/vendor/**",
        "!**/bower_components/**",
    ],
}


class ExcludeRuleSettings(BaseModel):
    """Настройки исключения правил для одной категории или инструмента."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True
    override_default: bool = Field(False, alias="overrideDefault")
    additional_rules: List[str] = Field(default_factory=list, alias="additionalRules")


class IgnoreFileSettings(BaseModel):
    """Использовать ли .code-insight-ignore."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True


class ProjectSettings(BaseModel):
    """Содержимое code-insight.config.json проверяемого проекта."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    script_patterns: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("scriptFilePathPattern", "jsFilePathPattern", "script_patterns")
    )
    markup_patterns: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("markupFilePathPattern", "htmlFilePathPattern", "markup_patterns")
    )
    style_patterns: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("styleFilePathPattern", "scssFilePathPattern", "style_patterns")
    )
    ignore_file: IgnoreFileSettings = Field(
        default_factory=IgnoreFileSettings,
        validation_alias=AliasChoices("ignoreFileConfig", "ignore_file"),
    )
    exclude_rules: Dict[str, ExcludeRuleSettings] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("excludeRules", "exclude_rules"),
    )

    def patterns_for(self, file_class: str) -> List[str]:
        """Include/exclude globs for a file class, falling back to the defaults."""
        if file_class not in DEFAULT_FILE_PATTERNS:
            raise ValueError(f"Unknown file class: {file_class}")
        configured = getattr(self, f"{file_class}_patterns")
        return list(configured) if configured else list(DEFAULT_FILE_PATTERNS[file_class])

    def exclude_rules_for(self, key: str) -> ExcludeRuleSettings:
        return self.exclude_rules.get(key) or ExcludeRuleSettings()


def resolve_exclude_rules(settings: ExcludeRuleSettings, default_rules: Iterable[str]) -> Set[str]:
    """
    Эффективный набор исключений.

    - enabled=False → исключений нет
    - overrideDefault=True → только additionalRules
    - иначе → defaults ∪ additionalRules
    """
    if not settings.enabled:
        return set()
    if settings.override_default:
        return set(settings.additional_rules)
    return set(default_rules) | set(settings.additional_rules)


def load_project_settings(project_root: Path) -> ProjectSettings:
    """Прочитать code-insight.config.json; при ошибке вернуть настройки по умолчанию."""
    config_path = Path(project_root) / CONFIG_FILE_NAME

    if not config_path.exists():
        logger.info(f"No {CONFIG_FILE_NAME} found in {project_root}, using default patterns")
        return ProjectSettings()

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
        settings = ProjectSettings.model_validate(raw)
        logger.info(f"Config loaded from {config_path}")
        return settings
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Error reading {config_path}, using defaults: {e}")
        return ProjectSettings()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}")
        return default


@dataclass
class AuditConfig:
    """Конфигурация одного запуска аудита."""

    # === Paths ===
    project_root: Path = field(default_factory=lambda: Path(os.getenv("CODE_INSIGHT_PROJECT_ROOT", os.getcwd())))
    output_dir: Optional[Path] = field(default_factory=lambda: os.getenv("CODE_INSIGHT_OUTPUT_DIR") or None)

    # === Execution Settings ===
    concurrency: int = field(default_factory=lambda: _env_int("CODE_INSIGHT_CONCURRENCY", 10))
    batch_size: int = field(default_factory=lambda: _env_int("CODE_INSIGHT_BATCH_SIZE", 100))
    tool_timeout_seconds: float = field(default_factory=lambda: _env_float("CODE_INSIGHT_TOOL_TIMEOUT", 120.0))
    use_external_tools: bool = field(
        default_factory=lambda: os.getenv("CODE_INSIGHT_EXTERNAL_TOOLS", "1").lower() not in ("0", "false", "no")
    )

    # === Categories ===
    enabled_categories: List[Category] = field(default_factory=lambda: list(Category))

    # Live-page URLs for the page auditor (accessibility)
    page_urls: List[str] = field(default_factory=list)

    # === Project settings (code-insight.config.json) ===
    settings: Optional[ProjectSettings] = None

    def __post_init__(self):
        """Validate configuration."""
        self.project_root = Path(self.project_root).resolve()
        self.output_dir = Path(self.output_dir) if self.output_dir else self.project_root

        if not MIN_CONCURRENCY <= self.concurrency <= MAX_CONCURRENCY:
            clamped = min(max(self.concurrency, MIN_CONCURRENCY), MAX_CONCURRENCY)
            logger.warning(f"Concurrency {self.concurrency} out of range, using {clamped}")
            self.concurrency = clamped
        if self.batch_size < self.concurrency:
            self.batch_size = self.concurrency

        self.enabled_categories = [Category(c) for c in self.enabled_categories]

        if self.settings is None:
            self.settings = load_project_settings(self.project_root)

    def is_enabled(self, category: Category) -> bool:
        return category in self.enabled_categories

    def exclude_rules_for(self, key: str, default_rules: Iterable[str]) -> Set[str]:
        """Исключения для категории/инструмента с учётом конфигурации проекта."""
        return resolve_exclude_rules(self.settings.exclude_rules_for(key), default_rules)

    def stream_path(self, category: Category) -> Path:
        return self.output_dir / f"{category.value}-issues.jsonl"
