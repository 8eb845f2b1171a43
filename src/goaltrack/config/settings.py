"""Application settings and configuration management."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


def _default_config_dir() -> Path:
    """Return the default configuration directory."""
    return Path.home() / ".goaltrack"


def _default_db_path() -> Path:
    """Return the default database path."""
    return _default_config_dir() / "goaltrack.db"


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: Path = field(default_factory=_default_db_path)


@dataclass
class ReflectionConfig:
    """Weekly reflection cadence and target smoothing."""

    cadence_days: int = 6
    smoothing_threshold: float = 25.0  # kcal; diffs at or below keep targets


@dataclass
class LoggingConfig:
    """Logging configuration for the CLI."""

    level: str = "WARNING"


@dataclass
class Settings:
    """Main application settings."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    reflection: ReflectionConfig = field(default_factory=ReflectionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from YAML file or return defaults.

        Args:
            config_path: Path to config.yaml. If None, uses ~/.goaltrack/config.yaml

        Returns:
            Settings instance
        """
        if config_path is None:
            config_path = _default_config_dir() / "config.yaml"

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        settings = cls()

        if "database" in data:
            db_data = data["database"] or {}
            if "path" in db_data:
                settings.database.path = Path(db_data["path"]).expanduser()

        if "reflection" in data:
            refl_data = data["reflection"] or {}
            if "cadence_days" in refl_data:
                settings.reflection.cadence_days = int(refl_data["cadence_days"])
            if "smoothing_threshold" in refl_data:
                settings.reflection.smoothing_threshold = float(
                    refl_data["smoothing_threshold"]
                )

        if "logging" in data:
            log_data = data["logging"] or {}
            if "level" in log_data:
                settings.logging.level = str(log_data["level"]).upper()

        return settings

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save current settings to YAML file.

        Args:
            config_path: Path to save config.yaml. If None, uses ~/.goaltrack/config.yaml
        """
        if config_path is None:
            config_path = _default_config_dir() / "config.yaml"

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "database": {
                "path": str(self.database.path),
            },
            "reflection": {
                "cadence_days": self.reflection.cadence_days,
                "smoothing_threshold": self.reflection.smoothing_threshold,
            },
            "logging": {
                "level": self.logging.level,
            },
        }

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, loading from disk if needed."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings() -> Settings:
    """Force reload settings from disk."""
    global _settings
    _settings = Settings.load()
    return _settings
