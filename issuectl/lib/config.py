"""
Configuration loader for issuectl.

Resolves the project root and loads optional overrides from issuectl.yaml.
If no config file exists, returns defaults.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from issuectl.lib.constants import CONFIG_FILE, ROOT_ENV_VAR
from issuectl.lib.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ProjectConfig:
    """Project-level configuration from issuectl.yaml"""
    root: Path
    issues_dir: str = "issues"
    locks_dir: str = "locks"
    worktrees_dir: str = "worktrees"
    max_lock_files: int = 1000  # Cap on lock files read by `list`
    dependency_search_depth: int = 5  # Path depth below issues/ walked for unqualified dependencies
    diagnostic_scan_limit: int = 100_000  # Filesystem entries a diagnostic scan may visit
    max_cycle_depth: int = 1000  # Longest dependency chain followed by cycle detection

    @property
    def issues_path(self) -> Path:
        return self.root / self.issues_dir

    @property
    def locks_path(self) -> Path:
        return self.root / self.locks_dir

    @property
    def worktrees_path(self) -> Path:
        return self.root / self.worktrees_dir


_STRING_KEYS = ("issues_dir", "locks_dir", "worktrees_dir")
_INT_KEYS = ("max_lock_files", "dependency_search_depth", "diagnostic_scan_limit", "max_cycle_depth")


def resolve_root(explicit: Optional[str] = None) -> Path:
    """Resolve the project root from --root, $ISSUECTL_ROOT, or the current directory.

    Raises:
        ConfigError: if the resolved root is not an existing directory
    """
    raw = explicit or os.environ.get(ROOT_ENV_VAR) or os.getcwd()
    root = Path(raw).expanduser()
    if not root.is_dir():
        raise ConfigError(f"Project root is not a directory: {root}")
    return root


def load_project_config(root: Path) -> ProjectConfig:
    """Load issuectl.yaml from root and return ProjectConfig.

    Missing file or unparseable YAML yields defaults; bad individual values
    fall back to their defaults with a warning.
    """
    config = ProjectConfig(root=root)
    config_path = root / CONFIG_FILE
    if not config_path.exists():
        return config

    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return config

    if not data:
        return config
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {config_path}: expected a mapping, got {type(data).__name__}")
        return config

    known = {f.name for f in fields(ProjectConfig)} - {"root"}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Unknown key '{key}' in {config_path}, ignoring")
            continue
        if key in _STRING_KEYS:
            if not isinstance(value, str) or not value.strip():
                logger.warning(f"Invalid {key} '{value}' in {config_path}, using default")
                continue
            setattr(config, key, value.strip())
        elif key in _INT_KEYS:
            # bool is an int subclass; reject it explicitly
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                logger.warning(f"Invalid {key} '{value}' in {config_path}, using default")
                continue
            setattr(config, key, value)

    return config


def get_project_config(explicit_root: Optional[str] = None) -> ProjectConfig:
    """Resolve the root and load its config in one step."""
    return load_project_config(resolve_root(explicit_root))
