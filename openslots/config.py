"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .domain.locations import LOCATION_FALLBACK
from .domain.slot_calculator import StepPolicy
from .domain.timezones import DEFAULT_TIMEZONE, is_valid_timezone

CONFIG_FILE_NAME = "openslots.yaml"


class SyncConfig(BaseModel):
    """Upstream calendar sync collaborator settings."""
    enabled: bool = False
    base_url: str = ""
    timeout_seconds: float = 10.0
    api_token: str = ""

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Ensure the sync timeout is positive."""
        if value <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        return value

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Accept only http(s) URLs, without the trailing slash."""
        if value and not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got {value!r}")
        return value.rstrip("/")


class AppConfig(BaseModel):
    """Application configuration."""
    default_timezone: str = DEFAULT_TIMEZONE
    safety_buffer_minutes: int = 15
    default_days_ahead: int = 14
    slot_step_policy: StepPolicy = StepPolicy.BUFFERED
    step_minutes: Optional[int] = None
    default_services: List[str] = Field(
        default_factory=lambda: ["consultation", "maintenance", "emergency", "follow-up"]
    )
    location_fallback: str = LOCATION_FALLBACK
    data_file: Optional[Path] = None
    log_level: str = "WARNING"
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @field_validator("default_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """The fallback timezone itself must be resolvable."""
        if not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("safety_buffer_minutes", "default_days_ahead")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"Value must not be negative, got {value}")
        return value

    @field_validator("step_minutes")
    @classmethod
    def validate_step(cls, value: Optional[int]) -> Optional[int]:
        """Ensure an explicit step is positive."""
        if value is not None and value <= 0:
            raise ValueError("step_minutes must be greater than zero")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create an {CONFIG_FILE_NAME} file. See openslots.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)
        if config.data_file is not None and not config.data_file.is_absolute():
            config = config.model_copy(
                update={"data_file": (config_path.parent / config.data_file).resolve()}
            )
        return config

    @classmethod
    def load_or_default(cls, config_path: Optional[Path]) -> "AppConfig":
        """Load ``config_path`` if given or present, otherwise use defaults."""
        path = config_path or get_default_config_path()
        if config_path is None and not path.exists():
            return cls()
        return cls.load_from_yaml(path)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for the config file in the current directory
    config_path = Path.cwd() / CONFIG_FILE_NAME

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / CONFIG_FILE_NAME

    return config_path
