"""
Configuration Validator — Check harvest settings before a run.

Reports everything wrong with a configuration at once instead of stopping
at the first problem, so `check-config` can print a complete list.

## Usage

    from wallpaper_harvester.config.validator import ConfigValidator

    report = ConfigValidator(settings).validate()
    if not report.valid:
        for error in report.errors:
            print(f"  ✗ {error}")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from ..mirror.models import RepositorySpec
from ..validation import DirectoryAccessError, ValidationError, ensure_directory_exists
from .loader import HarvestSettings

logger = logging.getLogger(__name__)


@dataclass
class ConfigReport:
    """Outcome of a configuration check."""

    directory: str
    repositories: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON output."""
        return {
            "valid": self.valid,
            "directory": self.directory,
            "repositories": self.repositories,
            "errors": self.errors,
            "warnings": self.warnings,
        }


class ConfigValidator:
    """
    Validate repository list and mirror directory.

    Checking the directory creates it when missing, the same way a
    harvest would.
    """

    def __init__(
        self,
        settings: HarvestSettings,
        ensure_directory: Callable = ensure_directory_exists,
    ):
        self.settings = settings
        self.ensure_directory = ensure_directory

    def check_repositories(self, report: ConfigReport) -> None:
        if self.settings.repositories is None:
            report.errors.append("Configuration section 'repositories' is missing.")
            return

        if not self.settings.repositories:
            report.errors.append(
                "At least one repository must be configured in 'repositories'."
            )
            return

        claimed: Dict[str, str] = {}
        for raw in self.settings.repositories:
            spec = RepositorySpec.parse(raw)
            if spec is None:
                report.errors.append(
                    f"Invalid repository format: '{raw}'. Expected format: 'owner/repo'"
                )
                continue

            key = spec.name.lower()
            if key in claimed:
                report.warnings.append(
                    f"Duplicate mirror name: '{spec.full_name}' collides with "
                    f"'{claimed[key]}' and will be skipped"
                )
                continue

            claimed[key] = spec.full_name

        report.repositories = len(claimed)

    def check_directory(self, report: ConfigReport) -> None:
        try:
            self.ensure_directory(self.settings.to_run_configuration().directory)
        except (ValidationError, DirectoryAccessError) as e:
            report.errors.append(
                f"Cannot write to mirror directory '{self.settings.directory}': {e}"
            )

    def validate(self) -> ConfigReport:
        report = ConfigReport(directory=self.settings.directory)
        self.check_repositories(report)
        self.check_directory(report)
        return report

    def log_status(self) -> ConfigReport:
        """Run validate() and log each finding."""
        report = self.validate()

        for warning in report.warnings:
            logger.warning(warning)
        for error in report.errors:
            logger.error(error)

        if report.valid:
            logger.info(
                f"Configuration OK: {report.repositories} repositories, "
                f"directory {report.directory}"
            )
        else:
            logger.error(f"Configuration has {len(report.errors)} error(s)")

        return report
