"""
Configuration management for cwlogs-writer.

All configuration is done via environment variables. This module
provides typed configuration classes with validation, and the logging
setup used by processes embedding the writer.

Invariants:
    - All settings have sensible defaults for local development
    - Credentials are never read here; boto's credential chain owns them

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

import json_log_formatter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloudWatchLogsConfig:
    """CloudWatch Logs transport configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (for LocalStack testing)
        request_timeout_seconds: Timeout applied to each PutLogEvents call
        create_streams: Create missing log groups/streams on first use
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    request_timeout_seconds: float = 30.0
    create_streams: bool = False

    @classmethod
    def from_env(cls) -> CloudWatchLogsConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("CLOUDWATCH_LOGS_ENDPOINT_URL"),
            request_timeout_seconds=float(os.getenv("CLOUDWATCH_LOGS_TIMEOUT", "30")),
            create_streams=os.getenv("CLOUDWATCH_LOGS_CREATE_STREAMS", "false").lower() == "true",
        )


@dataclass(frozen=True)
class WriterConfig:
    """Sequenced writer configuration.

    Attributes:
        max_attempts: Total PutLogEvents calls per batch, retries included
    """

    max_attempts: int = 3

    @classmethod
    def from_env(cls) -> WriterConfig:
        """Load configuration from environment variables."""
        return cls(
            max_attempts=int(os.getenv("WRITER_MAX_ATTEMPTS", "3")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ClientConfig:
    """Complete configuration.

    Attributes:
        cloudwatch: Transport configuration
        writer: Writer configuration
        observability: Logging configuration
    """

    cloudwatch: CloudWatchLogsConfig = field(default_factory=CloudWatchLogsConfig)
    writer: WriterConfig = field(default_factory=WriterConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid
        """
        config = cls(
            cloudwatch=CloudWatchLogsConfig.from_env(),
            writer=WriterConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any value is out of range
        """
        if self.writer.max_attempts < 1:
            raise ValueError("WRITER_MAX_ATTEMPTS must be at least 1")

        if self.cloudwatch.request_timeout_seconds <= 0:
            raise ValueError("CLOUDWATCH_LOGS_TIMEOUT must be positive")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Client configuration loaded",
            extra={
                "region": self.cloudwatch.region,
                "endpoint": self.cloudwatch.endpoint_url or "AWS",
                "create_streams": self.cloudwatch.create_streams,
                "max_attempts": self.writer.max_attempts,
                "log_level": self.observability.log_level,
            },
        )


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure root logging.

    Args:
        config: Logging configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
