"""Settings models and loaders."""

from .settings import (
    AWSConfig,
    BinariesConfig,
    BinarySpec,
    HarnessSettings,
    HealthConfig,
    LoggingConfig,
    ProducerConfig,
    PublisherConfig,
    StreamConfig,
    load_settings,
)

__all__ = [
    "AWSConfig",
    "BinariesConfig",
    "BinarySpec",
    "HarnessSettings",
    "HealthConfig",
    "LoggingConfig",
    "ProducerConfig",
    "PublisherConfig",
    "StreamConfig",
    "load_settings",
]
