"""YAML settings for the dashcam runtime.

``config/default.yaml`` ships with the package; a device-local
``config/override.yaml`` (for example a different recordings mount or a
longer retention window) is merged over it section by section.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


# Flat keys accepted from older config files, mapped to (section, key).
_LEGACY_KEYS: dict[str, tuple[str, str]] = {
    "detection_interval_ms": ("detection", "interval_ms"),
    "warning_size_threshold": ("detection", "warning_size_threshold"),
    "pedestrian_labels": ("detection", "pedestrian_labels"),
    "segment_duration_s": ("recording", "segment_duration_s"),
    "recording_audio_enabled": ("recording", "audio_enabled"),
    "retention_days": ("storage", "retention_days"),
    "recordings_dir": ("storage", "recordings_dir"),
}


@dataclass(frozen=True)
class ConfigPaths:
    """Locations of the shipped defaults and the device override."""

    config_dir: Path
    defaults_file: Path
    override_file: Path


class ConfigController:
    """Singleton holding the merged dashcam configuration."""

    _instance: "ConfigController | None" = None

    def __init__(self, config_dir: Path | str = "config") -> None:
        if ConfigController._instance is not None:
            raise RuntimeError("You cannot create another ConfigController class")

        config_dir = Path(config_dir)
        self.paths = ConfigPaths(
            config_dir=config_dir,
            defaults_file=config_dir / "default.yaml",
            override_file=config_dir / "override.yaml",
        )
        self.config: dict[str, Any] = {}
        self.load_config()

    @classmethod
    def get_instance(cls) -> "ConfigController":
        """Return the singleton instance of the controller."""

        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def load_config(self) -> None:
        """Read defaults, merge the device override and fold legacy keys."""

        config = self._read_mapping(self.paths.defaults_file)
        if self.paths.override_file.exists():
            override = self._read_mapping(self.paths.override_file)
            if override:
                config = self._merge_sections(config, override)
        self.config = self._normalize_legacy_config(config)

    def get_config(self) -> dict[str, Any]:
        return dict(self.config)

    def get_section(self, name: str) -> dict[str, Any]:
        """Return a copy of one nested config section, empty when absent."""

        section = self.config.get(name)
        return dict(section) if isinstance(section, dict) else {}

    def _read_mapping(self, path: Path) -> dict[str, Any]:
        with path.open("r", encoding="utf-8") as file:
            data = yaml.safe_load(file) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
        return data

    def _merge_sections(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        # Nested sections merge key by key; scalars and lists are replaced.
        merged = dict(base)
        for key, value in override.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = self._merge_sections(current, value)
            else:
                merged[key] = value
        return merged

    def _normalize_legacy_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Fold flat legacy keys into their nested sections.

        Values already present in a nested section win over the flat key.
        """

        normalized = dict(config)
        for legacy_key, (section_name, key) in _LEGACY_KEYS.items():
            section = dict(normalized.get(section_name) or {})
            if key not in section and legacy_key in normalized:
                section[key] = normalized[legacy_key]
            normalized[section_name] = section
        return normalized
