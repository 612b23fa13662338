"""Configuration for Lisa.

Runtime settings come from environment variables (``LISA_`` prefix, with
``.env`` support). Project settings live in ``<base>/lisa/config.yaml`` and
are created with defaults on first use.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lisa.providers.base import PROVIDER_NAMES
from lisa.recovery import RetryConfig

logger = structlog.get_logger(__name__)

CONFIG_DIR_NAME = "lisa"
CONFIG_FILE_NAME = "config.yaml"
DEFAULT_PROVIDER = "claude"
DEFAULT_OUTPUT_DIRECTORY = "./lisa"


class LisaSettings(BaseSettings):
    """Runtime settings.

    Environment variables:
        LISA_RESPONSE_TIMEOUT_SECONDS: Seconds to wait for a provider response
        LISA_LOG_LEVEL: Log level (default: WARNING)
        LISA_LOG_JSON: Emit JSON log lines
        LISA_LOG_FILE: Also write logs to this file
        LISA_RETRY_MAX_ATTEMPTS / LISA_RETRY_INITIAL_DELAY / LISA_RETRY_MAX_DELAY:
            Retry policy for starting the provider
        LISA_OTLP_ENABLED / LISA_OTLP_ENDPOINT: OpenTelemetry export
    """

    response_timeout_seconds: float = Field(default=300.0, gt=0)
    log_level: str = Field(default="WARNING")
    log_json: bool = Field(default=False)
    log_file: str | None = Field(default=None)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_initial_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    otlp_enabled: bool = Field(default=False)
    otlp_endpoint: str = Field(default="http://localhost:4317")
    service_name: str = Field(default="lisa")

    model_config = SettingsConfigDict(env_prefix="LISA_")

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
        )


@lru_cache
def get_settings() -> LisaSettings:
    """Get runtime settings with caching."""
    return LisaSettings()


class ConfigFileError(Exception):
    """Raised when the project config file is unreadable or invalid."""

    pass


@dataclass
class ProjectConfig:
    """Per-project settings stored in ``lisa/config.yaml``.

    Attributes:
        default_provider: Provider used when --provider is not given
        output_directory: Where PRD files are written, relative to the base dir
    """

    default_provider: str = DEFAULT_PROVIDER
    output_directory: str = DEFAULT_OUTPUT_DIRECTORY

    def to_dict(self) -> dict[str, Any]:
        return {
            "defaultProvider": self.default_provider,
            "outputDirectory": self.output_directory,
        }


def config_path(base_dir: Path) -> Path:
    return base_dir / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def validate_project_config(data: Any) -> list[str]:
    """Check a raw config document. Returns a list of problems."""
    if not isinstance(data, dict):
        return ["config must be a mapping"]
    errors = []
    provider = data.get("defaultProvider", DEFAULT_PROVIDER)
    if provider not in PROVIDER_NAMES:
        errors.append(
            f"defaultProvider must be one of {', '.join(PROVIDER_NAMES)}, got {provider!r}"
        )
    output = data.get("outputDirectory", DEFAULT_OUTPUT_DIRECTORY)
    if not isinstance(output, str) or not output.strip():
        errors.append("outputDirectory must be a non-empty string")
    return errors


def save_project_config(base_dir: Path, config: ProjectConfig) -> Path:
    path = config_path(base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False), encoding="utf-8")
    return path


def load_project_config(base_dir: Path) -> ProjectConfig:
    """Load the project config, writing the defaults if it does not exist.

    Raises:
        ConfigFileError: If the file is not valid YAML or fails validation
    """
    path = config_path(base_dir)
    if not path.exists():
        config = ProjectConfig()
        save_project_config(base_dir, config)
        logger.info("Created default config", path=str(path))
        return config

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Invalid YAML in config file {path}: {e}") from e

    errors = validate_project_config(data)
    if errors:
        raise ConfigFileError(f"Invalid config file {path}: {'; '.join(errors)}")

    return ProjectConfig(
        default_provider=data.get("defaultProvider", DEFAULT_PROVIDER),
        output_directory=data.get("outputDirectory", DEFAULT_OUTPUT_DIRECTORY),
    )
