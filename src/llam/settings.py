"""Tool settings loaded from YAML.

Search order (first existing file wins):
    $LLAM_CONFIG
    <project>/.llam.yaml
    ~/.config/llam/config.yaml

Environment overrides:
    LLAM_GIT: git executable
    LLAM_HOSTING_URL: clone URL template for short addon names

Example:

```yaml
git_executable: /usr/bin/git
hosting_url: "https://github.com/LuaCATS/{name}.git"
staging_dir: ~/.cache/llam/staging
```
"""
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .addon import DEFAULT_HOSTING_URL
from .errors import SettingsError

logger = logging.getLogger(__name__)

PROJECT_SETTINGS_FILE = ".llam.yaml"


class Settings(BaseModel):
    """Validated llam settings."""
    model_config = ConfigDict(extra="forbid")

    git_executable: str = "git"
    hosting_url: str = DEFAULT_HOSTING_URL
    # Where fresh clones are staged before moving into place (default: system temp)
    staging_dir: Optional[Path] = None

    @field_validator("hosting_url")
    @classmethod
    def _check_hosting_url(cls, value: str) -> str:
        if "{name}" not in value:
            raise ValueError("hosting_url must contain a {name} placeholder")
        return value

    @field_validator("staging_dir")
    @classmethod
    def _expand_staging_dir(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None


def find_settings_file(project_root: Optional[Path] = None) -> Optional[Path]:
    """Find the settings file, if any."""
    env_path = os.environ.get("LLAM_CONFIG")
    if env_path:
        return Path(env_path).expanduser()

    search_paths = []
    if project_root is not None:
        search_paths.append(Path(project_root) / PROJECT_SETTINGS_FILE)
    search_paths.append(Path.home() / ".config" / "llam" / "config.yaml")

    for path in search_paths:
        if path.exists():
            return path
    return None


def load_settings(project_root: Optional[Path] = None) -> Settings:
    """
    Load settings from the first settings file found, then apply env overrides.

    Raises:
        SettingsError: if the file cannot be read or fails validation
    """
    data: dict = {}
    path = find_settings_file(project_root)
    if path is not None:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise SettingsError(f"Failed to read settings {path}: {e}") from e
        if not isinstance(data, dict):
            raise SettingsError(f"Settings {path} must be a mapping")
        logger.debug(f"Loaded settings from {path}")

    if os.environ.get("LLAM_GIT"):
        data["git_executable"] = os.environ["LLAM_GIT"]
    if os.environ.get("LLAM_HOSTING_URL"):
        data["hosting_url"] = os.environ["LLAM_HOSTING_URL"]

    try:
        return Settings(**data)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings{f' in {path}' if path else ''}: {e}") from e
