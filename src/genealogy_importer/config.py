"""Settings for validation and import, loaded from YAML."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"


class ImporterSettings(BaseModel):
    """Thresholds, allow-lists and content signatures."""
    supported_versions: list[str] = Field(default_factory=lambda: ["5.5", "5.5.1", "5.5.5"])
    max_individuals: int = 10000
    large_import_threshold: int = 5000
    max_individual_issues: int = 100
    max_reported_diagnostics: int = 50
    max_security_findings: int = 25
    max_file_size: int = 50 * 1024 * 1024
    allowed_extensions: list[str] = Field(default_factory=lambda: [".ged", ".gedcom"])
    signatures: dict[str, list[str]] = Field(default_factory=dict)

    def is_version_supported(self, version: str) -> bool:
        """A version is supported if listed or if it is a 5.5 variant."""
        version = version.strip()
        return version in self.supported_versions or version.startswith("5.5")


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_settings(path: Path | str | None = None) -> ImporterSettings:
    """
    Load settings.

    Args:
        path: Optional YAML file whose keys override the bundled defaults

    Returns:
        ImporterSettings instance
    """
    data = _read_yaml(DEFAULT_SETTINGS_PATH)
    if path is not None:
        overrides = _read_yaml(Path(path))
        signatures = overrides.pop("signatures", None)
        data.update(overrides)
        if signatures:
            data["signatures"] = {**data.get("signatures", {}), **signatures}
    return ImporterSettings.model_validate(data)
