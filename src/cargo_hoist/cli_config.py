"""
Configuration management for cargo-hoist.

Settings come from, in increasing priority: dataclass defaults, the first
config file found (TOML, JSON or YAML), CARGO_HOIST_* environment variables,
and finally command-line flags.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml
import yaml
from rich.console import Console

from .error_handling import ConfigurationError
from .resolver import DECISION_STRATEGIES

console = Console(stderr=True)


@dataclass
class HoistConfig:
    """Hoisting policy."""

    min_members: int = 1
    strategy: str = "interactive"
    include_dev: bool = True
    include_build: bool = True
    include_target: bool = True
    dry_run: bool = False


@dataclass
class SecurityConfig:
    """Limits applied when reading manifests."""

    max_file_size_mb: int = 10

    @property
    def max_file_size_bytes(self) -> int:
        """Convert MB to bytes for internal use."""
        return self.max_file_size_mb * 1024 * 1024


@dataclass
class LoggingConfig:
    """Logging and diagnostics configuration."""

    log_level: str = "WARNING"
    enable_json: bool = True


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    hoist: HoistConfig = field(default_factory=HoistConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_global_config: Optional[ComprehensiveConfig] = None

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if config.hoist.min_members < 1:
        errors.append("hoist.min_members must be at least 1")
    if config.hoist.strategy not in DECISION_STRATEGIES:
        errors.append(
            f"hoist.strategy must be one of {', '.join(DECISION_STRATEGIES)}"
        )

    if config.security.max_file_size_mb <= 0:
        errors.append("security.max_file_size_mb must be positive")

    if config.logging.log_level.upper() not in _LOG_LEVELS:
        errors.append(f"logging.log_level must be one of {', '.join(_LOG_LEVELS)}")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """
    Load config from a TOML, JSON or YAML file.

    Raises:
        ConfigurationError: If the file exists but cannot be parsed
    """
    if not config_path.exists():
        return None

    suffix = config_path.suffix.lower()
    try:
        with open(config_path, encoding="utf-8") as f:
            if suffix == ".toml":
                data = toml.load(f)
            elif suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported config format: {suffix}")
    except (OSError, ValueError, toml.TomlDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error loading config from {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a table")
    return data


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    user_dir = Path.home() / ".config" / "cargo-hoist"
    locations = [
        Path.cwd() / ".cargo-hoist.toml",
        Path.cwd() / ".cargo-hoist.json",
        Path.cwd() / ".cargo-hoist.yaml",
        Path.cwd() / ".cargo-hoist.yml",
        user_dir / "config.toml",
        user_dir / "config.json",
        user_dir / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Load CARGO_HOIST_* environment variable overrides."""

    def get_env_bool(key: str, default: bool = False) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    def get_env_int(key: str) -> Optional[int]:
        try:
            return int(os.environ[key]) if key in os.environ else None
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {key}, using default", style="yellow")
            return None

    if (min_members := get_env_int("CARGO_HOIST_MIN_MEMBERS")) is not None:
        config.hoist.min_members = min_members
    if strategy := os.environ.get("CARGO_HOIST_STRATEGY"):
        config.hoist.strategy = strategy.lower()
    config.hoist.dry_run = get_env_bool("CARGO_HOIST_DRY_RUN", config.hoist.dry_run)

    if (max_size := get_env_int("CARGO_HOIST_MAX_FILE_SIZE_MB")) is not None:
        config.security.max_file_size_mb = max_size

    if log_level := os.environ.get("CARGO_HOIST_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()
    config.logging.enable_json = get_env_bool(
        "CARGO_HOIST_JSON_LOGS", config.logging.enable_json
    )


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        attr = key.replace("-", "_")
        if hasattr(config, attr):
            setattr(config, attr, value)
        else:
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}", style="yellow"
            )


def apply_config_data(config: ComprehensiveConfig, data: Dict[str, Any]) -> None:
    for section_name in ("hoist", "security", "logging"):
        section = data.get(section_name)
        if isinstance(section, dict):
            apply_config_section(getattr(config, section_name), section, section_name)


def load_config() -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None:
        return _global_config

    config = ComprehensiveConfig()

    config_file = find_config_file()
    if config_file:
        try:
            file_config = load_config_file(config_file)
        except ConfigurationError as e:
            console.print(f"⚠️  {e}", style="yellow")
            file_config = None
        if file_config:
            apply_config_data(config, file_config)

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        _restore_invalid_defaults(config)

    _global_config = config
    return config


def _restore_invalid_defaults(config: ComprehensiveConfig) -> None:
    defaults = ComprehensiveConfig()
    if config.hoist.min_members < 1:
        config.hoist.min_members = defaults.hoist.min_members
    if config.hoist.strategy not in DECISION_STRATEGIES:
        config.hoist.strategy = defaults.hoist.strategy
    if config.security.max_file_size_mb <= 0:
        config.security.max_file_size_mb = defaults.security.max_file_size_mb
    if config.logging.log_level.upper() not in _LOG_LEVELS:
        config.logging.log_level = defaults.logging.log_level


def get_config() -> ComprehensiveConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample `.cargo-hoist.toml`."""
    sample_config = ComprehensiveConfig().to_dict()
    return toml.dumps(sample_config)
