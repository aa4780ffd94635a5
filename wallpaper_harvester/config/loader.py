"""
Config Loader — Load harvest settings from YAML, environment, and CLI.

Precedence, highest first:
1. CLI options (passed in as overrides)
2. Environment variables (HARVESTER_*; a .env file is loaded by the CLI)
3. The config file
4. Defaults

The file is YAML (JSON works too, since JSON is valid YAML):

    repositories:
      - owner/repo
    directory: ~/Pictures/Wallpapers
    parallel: true
    retry:
      max_attempts: 3

The older layout, with ``WallpaperRepositories`` at the top level and
``AppOptions.WallpaperDirectory`` for the directory, is accepted as well.

## Usage

    from wallpaper_harvester.config.loader import load_settings

    settings = load_settings(Path("appsettings.yaml"), overrides={"verbose": True})
    harvester = Harvester(settings.to_run_configuration(), retry_policy=settings.build_retry_policy())
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pydantic
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from ..mirror.models import (
    DEFAULT_GIT_HOST,
    DEFAULT_MAX_WORKERS,
    ConcurrencyMode,
    RunConfiguration,
)
from ..reliability.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    RetryPolicy,
)
from ..validation import ConfigurationError, default_mirror_directory

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "appsettings.yaml"

# Environment variable -> settings field
ENV_OVERRIDES = {
    "HARVESTER_DIRECTORY": "directory",
    "HARVESTER_PARALLEL": "parallel",
    "HARVESTER_VERBOSE": "verbose",
    "HARVESTER_MAX_WORKERS": "max_workers",
}

# Older key names -> settings field
_LEGACY_APP_OPTIONS = {
    "WallpaperDirectory": "directory",
    "UseParallel": "parallel",
    "Verbose": "verbose",
}


def normalize_legacy_keys(data: Any) -> Any:
    """Map WallpaperRepositories / AppOptions.* onto the current field names."""
    if not isinstance(data, dict):
        return data

    data = dict(data)
    if "repositories" not in data and "WallpaperRepositories" in data:
        data["repositories"] = data.pop("WallpaperRepositories")

    app_options = data.pop("AppOptions", None)
    if isinstance(app_options, dict):
        for legacy, name in _LEGACY_APP_OPTIONS.items():
            if legacy in app_options and name not in data:
                data[name] = app_options[legacy]

    return data


class RetrySettings(BaseModel):
    """The retry section."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    base_delay: float = Field(default=DEFAULT_BASE_DELAY, ge=0)
    max_delay: float = Field(default=DEFAULT_MAX_DELAY, ge=0)


class HarvestSettings(BaseModel):
    """
    The config file schema.

    repositories is None when the file has no repositories section at
    all, which the validator reports differently from an empty list.
    """

    repositories: Optional[List[str]] = None
    directory: str = Field(default_factory=lambda: str(default_mirror_directory()))
    parallel: bool = True
    verbose: bool = False
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    host: str = DEFAULT_GIT_HOST
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        return normalize_legacy_keys(data)

    @field_validator("directory")
    @classmethod
    def _directory_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Path cannot be empty or whitespace")
        return value.strip()

    @field_validator("host")
    @classmethod
    def _host_not_blank(cls, value: str) -> str:
        value = value.strip().strip("/")
        if not value:
            raise ValueError("Git host cannot be empty")
        return value

    @property
    def repository_list(self) -> List[str]:
        return list(self.repositories or [])

    @property
    def mode(self) -> ConcurrencyMode:
        return ConcurrencyMode.CONCURRENT if self.parallel else ConcurrencyMode.SEQUENTIAL

    def to_run_configuration(self) -> RunConfiguration:
        return RunConfiguration(
            directory=Path(self.directory),
            mode=self.mode,
            verbose=self.verbose,
            max_workers=self.max_workers,
            host=self.host,
        )

    def build_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry.max_attempts,
            base_delay=self.retry.base_delay,
            max_delay=self.retry.max_delay,
        )


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return its contents (empty file -> {})."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{path} must contain a mapping at the top level, got {type(data).__name__}"
        )
    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """HARVESTER_* values that are set and non-empty, keyed by field name."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for var, name in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is not None and value.strip():
            overrides[name] = value.strip()
    return overrides


def _format_schema_errors(error: pydantic.ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "config"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


def load_settings(
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> HarvestSettings:
    """
    Build HarvestSettings from a config file, environment, and overrides.

    Args:
        path: Config file; None skips the file entirely
        overrides: Field values from the command line (None values ignored)
        environ: Environment to read HARVESTER_* from (default: os.environ)

    Raises:
        ConfigurationError: If the file is missing, unreadable, or invalid
    """
    data: Dict[str, Any] = {}

    if path is not None:
        path = Path(path).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Config file not found: {path}")
        data = load_yaml(path)
        logger.debug(f"Loaded config from {path}")

    # Normalize old key names first so later layers override the right field
    data = normalize_legacy_keys(data)

    data.update(env_overrides(environ))
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return HarvestSettings(**data)
    except pydantic.ValidationError as e:
        source = str(path) if path is not None else "configuration"
        raise ConfigurationError(f"Invalid {source}: {_format_schema_errors(e)}") from e
