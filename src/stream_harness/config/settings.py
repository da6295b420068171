"""Configuration settings using Pydantic for validation."""

from typing import List, Optional, Any, Tuple, Type
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict
import os
import re


class StreamConfig(BaseModel):
    """Kinesis stream provisioning configuration."""
    name: str = Field(default="kpl-test-stream", description="Kinesis stream name")
    shard_count: int = Field(default=1, gt=0, description="Shards to create the stream with")
    creation_timeout_seconds: float = Field(default=180.0, gt=0, description="Max wait for ACTIVE")
    poll_interval_seconds: float = Field(default=10.0, gt=0, description="Delay between status polls")


class AWSConfig(BaseModel):
    """AWS services configuration."""
    region: str = Field(default="us-east-1", description="AWS region")

    # AWS credentials (optional - use IAM roles in production)
    access_key_id: Optional[str] = Field(default=None, description="AWS access key ID")
    secret_access_key: Optional[str] = Field(default=None, description="AWS secret access key")

    # LocalStack overrides for local development
    endpoint_url: Optional[str] = Field(default=None, description="LocalStack endpoint URL")


class ProducerConfig(BaseModel):
    """Record producer batching and retry configuration."""
    batch_size: int = Field(default=500, ge=1, le=500, description="Records per PutRecords call")
    flush_interval_seconds: float = Field(default=1.0, gt=0, description="Background flush interval")
    max_attempts: int = Field(default=3, ge=1, description="Send attempts per batch")
    initial_backoff_seconds: float = Field(default=0.1, ge=0, description="Initial backoff delay")
    max_backoff_seconds: float = Field(default=5.0, ge=0, description="Maximum backoff delay")
    jitter: bool = Field(default=True, description="Add jitter to backoff")


class PublisherConfig(BaseModel):
    """Synthetic record publishing configuration."""
    interval_seconds: float = Field(default=10.0, gt=0, description="Delay between published records")
    message_prefix: str = Field(default="Message", description="Text placed before the counter")
    encoding: str = Field(default="utf-8", description="Text encoding of record payloads")

    @field_validator('encoding')
    @classmethod
    def validate_encoding(cls, v):
        import codecs
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"Unknown encoding: {v}")
        return v


class BinarySpec(BaseModel):
    """A native helper to materialize before the producer starts."""
    source: str = Field(description="File path, or package:<relative path> for bundled data")
    destination: str = Field(description="Where the executable copy is written")


class BinariesConfig(BaseModel):
    """Native helper extraction configuration."""
    specs: List[BinarySpec] = Field(default_factory=list, description="Binaries to extract")


class HealthConfig(BaseModel):
    """Health check service configuration."""
    port: int = Field(default=8080, description="Health check server port")
    host: str = Field(default="0.0.0.0", description="Health check server host")
    path: str = Field(default="/health", description="Health check endpoint path")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")
    output: str = Field(default="stdout", description="Log output destination")

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['json', 'text']:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class HarnessSettings(BaseSettings):
    """Main stream harness settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # Service configuration
    service_name: str = Field(default="stream-harness", description="Service name")
    environment: str = Field(default="local", description="Environment: local, dev, prod")

    # Component configurations
    stream: StreamConfig = Field(default_factory=StreamConfig)
    aws: AWSConfig = Field(default_factory=AWSConfig)
    producer: ProducerConfig = Field(default_factory=ProducerConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    binaries: BinariesConfig = Field(default_factory=BinariesConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in ['local', 'dev', 'prod']:
            raise ValueError("Environment must be 'local', 'dev', or 'prod'")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment (e.g. STREAM__SHARD_COUNT) overrides values from the config file
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Args:
        obj: Configuration object (dict, list, string, or other)

    Returns:
        Object with environment variables substituted

    Raises:
        ValueError: If required environment variable is not found
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            # Handle default values: VAR_NAME:-default_value
            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)
            else:
                var_name = var_expr.strip()
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(f"Required environment variable '{var_name}' is not set")
                return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def load_settings(config_file: Optional[str] = None) -> HarnessSettings:
    """
    Load settings from config file and environment variables.

    The config file supports environment variable substitution using ${VAR_NAME} syntax.
    Nested environment variables such as STREAM__SHARD_COUNT take precedence
    over values from the file; sibling file values are kept.

    Args:
        config_file: Path to YAML configuration file

    Returns:
        HarnessSettings: Validated configuration object

    Raises:
        ValueError: If required environment variables are missing
        FileNotFoundError: If config file doesn't exist
    """

    if config_file and os.path.exists(config_file):
        import yaml

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        config_data = substitute_env_vars(raw_config)
        return HarnessSettings(**config_data)

    elif config_file:
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    # Load from environment variables only
    return HarnessSettings()
