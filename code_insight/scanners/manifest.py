"""package.json access shared by the testing and dependency scanners."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"
DEPENDENCY_GROUPS = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")


class ManifestError(Exception):
    """package.json exists but is not a JSON object."""


def load_manifest(project_root: Path) -> Optional[Dict[str, Any]]:
    """
    Прочитать package.json.

    Returns:
        Parsed manifest, or None when the project has no package.json

    Raises:
        ManifestError: file unreadable or not a JSON object
    """
    path = Path(project_root) / MANIFEST_NAME
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestError(f"Could not read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"{path} is not a JSON object")
    return data


def group(manifest: Dict[str, Any], name: str) -> Dict[str, str]:
    value = manifest.get(name)
    return dict(value) if isinstance(value, dict) else {}


def all_dependencies(manifest: Dict[str, Any]) -> Dict[str, str]:
    """dependencies + devDependencies (dev wins on collision)."""
    return {**group(manifest, "dependencies"), **group(manifest, "devDependencies")}
