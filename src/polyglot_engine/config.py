"""
Configuration management for polyglot-engine.

Handles loading configuration from YAML files and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if present (before Settings initialization)
load_dotenv()


class PlatformConfig(BaseModel):
    """Configuration for the content platform (source and target libraries)."""

    base_domain: str = Field(default="libretexts.org")
    bot_user: str = Field(default="LibreBot")
    # Only pages carrying this tag may be translated as a whole text
    cover_tag: str = Field(default="coverpage:yes")
    max_concurrent: int = Field(default=2, ge=1, le=10)
    timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)

    def library_url(self, lib: str) -> str:
        """Base URL of a library."""
        return f"https://{lib}.{self.base_domain}"

    def pages_api_url(self, lib: str) -> str:
        """Base URL of a library's pages API."""
        return f"{self.library_url(lib)}/@api/deki/pages/"


class RateLimitConfig(BaseModel):
    """Pauses (seconds) inserted between platform calls to spread request bursts."""

    after_subpage_listing: float = Field(default=15.0, ge=0.0)
    after_subtree: float = Field(default=5.0, ge=0.0)
    before_content_fetch: float = Field(default=30.0, ge=0.0)
    between_writes: float = Field(default=2.0, ge=0.0)
    before_thumbnail: float = Field(default=1.0, ge=0.0)


class AWSConfig(BaseModel):
    """Configuration for the AWS services backing storage, translation and queueing."""

    region: str = Field(default="")
    input_bucket: str = Field(default="")
    output_bucket: str = Field(default="")
    translate_role_arn: str = Field(default="")
    ssm_library_keys_path: str = Field(default="")
    queue_url: str = Field(default="")
    queue_group_id: str = Field(default="polyglot-engine")


class StorageConfig(BaseModel):
    """Configuration for object storage transfers."""

    max_concurrent_uploads: int = Field(default=8, ge=1, le=64)
    max_concurrent_downloads: int = Field(default=2, ge=1, le=64)


class TranslationConfig(BaseModel):
    """Configuration for batch translation jobs."""

    source_language: str = Field(default="en")
    content_type: str = Field(default="text/html")


class NotificationConfig(BaseModel):
    """Configuration for completion emails."""

    from_address: str = Field(default="")
    subject: str = Field(default="Polyglot Engine: Text Translation Complete")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO")
    file: Path | None = Field(default=Path("./logs/polyglot-engine.log"))
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    max_file_size_mb: int = Field(default=10, ge=1, le=100)
    backup_count: int = Field(default=5, ge=1, le=20)

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept log levels in any case."""
        return v.upper()


class Settings(BaseSettings):
    """Main settings class that combines all configurations."""

    model_config = SettingsConfigDict(
        env_prefix="POLYGLOT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Configuration sections
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    aws: AWSConfig = Field(default_factory=AWSConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    translation: TranslationConfig = Field(default_factory=TranslationConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def __init__(self, **data: Any) -> None:
        """Initialize with fallbacks to the engine's deployment environment variables."""
        super().__init__(**data)
        env_fallbacks = {
            "region": "AWS_ENGINE_REGION",
            "input_bucket": "AWS_S3_INPUT_BUCKET",
            "output_bucket": "AWS_S3_OUTPUT_BUCKET",
            "translate_role_arn": "AWS_TRANS_ROLE_ARN",
            "ssm_library_keys_path": "AWS_SSM_LIB_SERVERKEYS_PATH",
            "queue_url": "AWS_SQS_QUEUE_URL",
        }
        for attr, env_var in env_fallbacks.items():
            if not getattr(self.aws, attr):
                setattr(self.aws, attr, os.getenv(env_var, ""))
        if os.getenv("AWS_SQS_GROUP_ID"):
            self.aws.queue_group_id = os.environ["AWS_SQS_GROUP_ID"]
        if not self.notification.from_address:
            self.notification.from_address = os.getenv("NOTIFY_FROM_ADDR", "")

    @classmethod
    def from_yaml(cls, path: Path | str) -> Settings:
        """Load settings from a YAML file, with environment variable overrides."""
        path = Path(path)
        if not path.exists():
            # Return defaults if file doesn't exist
            return cls()

        with open(path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        # Process environment variable substitutions in YAML values
        yaml_config = _substitute_env_vars(yaml_config)

        return cls(**yaml_config)


def _substitute_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively substitute ${ENV_VAR} patterns in config values."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = _substitute_env_vars(value)
        elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_var = value[2:-1]
            result[key] = os.getenv(env_var, "")
        elif isinstance(value, list):
            result[key] = [
                _substitute_env_vars(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            result[key] = value
    return result


def load_config(path: Path | str | None = None) -> Settings:
    """
    Load configuration from YAML file or return defaults.

    Args:
        path: Path to YAML config file. If None, looks for config.yaml in current directory.

    Returns:
        Settings instance with merged YAML and environment configurations.
    """
    if path is None:
        default_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(".polyglot-engine.yaml"),
        ]
        for p in default_paths:
            if p.exists():
                path = p
                break

    if path is not None:
        return Settings.from_yaml(path)

    return Settings()


DEFAULT_CONFIG = """# polyglot-engine configuration

platform:
  # Libraries are addressed as https://<lib>.<base_domain>
  base_domain: "libretexts.org"
  bot_user: "LibreBot"
  # Tag that marks the root page of a text
  cover_tag: "coverpage:yes"
  # Subtrees processed in parallel under each page
  max_concurrent: 2
  timeout_seconds: 60

rate_limit:
  # Seconds to pause between bursts of platform API calls
  after_subpage_listing: 15
  after_subtree: 5
  before_content_fetch: 30
  between_writes: 2
  before_thumbnail: 1

aws:
  region: "${AWS_ENGINE_REGION}"
  input_bucket: "${AWS_S3_INPUT_BUCKET}"
  output_bucket: "${AWS_S3_OUTPUT_BUCKET}"
  translate_role_arn: "${AWS_TRANS_ROLE_ARN}"
  ssm_library_keys_path: "${AWS_SSM_LIB_SERVERKEYS_PATH}"
  queue_url: "${AWS_SQS_QUEUE_URL}"
  queue_group_id: "polyglot-engine"

storage:
  max_concurrent_uploads: 8
  max_concurrent_downloads: 2

translation:
  source_language: "en"

notification:
  from_address: "${NOTIFY_FROM_ADDR}"

logging:
  level: "INFO"
  file: "./logs/polyglot-engine.log"
"""


def create_default_config(path: Path | str = "config.yaml") -> None:
    """Create a default configuration file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG)
