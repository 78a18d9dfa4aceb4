"""
Configuration Management Module
===============================
Centralized configuration management with environment variable support.

This module provides:
- Environment-based configuration
- Validation of required settings
- Default values for optional settings

The configuration object is built once at process start and handed to
``create_app()``; components receive it (or the section they need) through
their constructors.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class StorageConfig:
    """Database configuration."""

    database_url: str = "postgresql://localhost:5432/content_ingest"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    echo: bool = False


@dataclass
class PipelineConfig:
    """Ingestion pipeline tuning."""

    # Analysis dispatch
    dispatch_attempts: int = 3
    dispatch_backoff_seconds: float = 2.0  # sleep = base * attempt (2s, 4s)

    # Transcription
    min_transcript_chars: int = 20
    transcribed_types: List[str] = field(default_factory=lambda: ["podcast"])

    # Moderation
    keyword_scan_chars: int = 50_000
    flag_preview_chars: int = 500

    # Batch submission
    absolute_max_batch: int = 15
    default_language: str = "en"


@dataclass
class ExternalServicesConfig:
    """Endpoints and credentials for external collaborators."""

    # Speech-to-text vendor
    transcription_vendor: str = "deepgram"  # deepgram or assemblyai
    transcription_api_key: Optional[str] = None
    transcription_api_url: Optional[str] = None
    transcription_webhook_url: str = "http://localhost:8000/api/v1/webhooks/transcription"
    transcription_webhook_token: Optional[str] = None

    # Downstream analyzer (invoked by content ID only)
    analyzer_url: str = "http://localhost:9000/process-content"
    analyzer_token: Optional[str] = None
    analyzer_timeout: float = 50.0

    # Text extraction for non-transcribed content types
    extractor_url: str = "http://localhost:9100/extract"
    extractor_timeout: float = 60.0


@dataclass
class APIConfig:
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    workers: int = 4

    # Bearer tokens are issued by the external auth service
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"

    # CORS
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Batch submission rate limiting (per client address)
    batch_rate_limit: int = 5
    batch_rate_limit_window: int = 60


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json or text
    output: str = "stdout"  # stdout, file, both
    file_path: str = "./logs/content_ingest.log"
    max_file_size: int = 10_000_000  # 10MB
    backup_count: int = 5


@dataclass
class Config:
    """
    Main configuration class aggregating all settings.

    Configuration is loaded from environment variables with sensible defaults.
    All secrets should be provided via environment variables in production.
    """

    environment: str = "development"
    debug: bool = False

    storage: StorageConfig = field(default_factory=StorageConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    services: ExternalServicesConfig = field(default_factory=ExternalServicesConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """
        Create configuration from environment variables.

        Environment variables follow the pattern:
        INGEST_{SETTING} (e.g., INGEST_DATABASE_URL)

        Returns:
            Config: Populated configuration instance
        """
        storage = StorageConfig(
            database_url=os.getenv(
                "INGEST_DATABASE_URL", "postgresql://localhost:5432/content_ingest"
            ),
            database_pool_size=int(os.getenv("INGEST_DATABASE_POOL_SIZE", "10")),
            database_max_overflow=int(os.getenv("INGEST_DATABASE_MAX_OVERFLOW", "20")),
            echo=_env_bool("INGEST_DATABASE_ECHO"),
        )

        pipeline = PipelineConfig(
            dispatch_attempts=int(os.getenv("INGEST_DISPATCH_ATTEMPTS", "3")),
            dispatch_backoff_seconds=float(
                os.getenv("INGEST_DISPATCH_BACKOFF_SECONDS", "2.0")
            ),
            min_transcript_chars=int(os.getenv("INGEST_MIN_TRANSCRIPT_CHARS", "20")),
            transcribed_types=os.getenv("INGEST_TRANSCRIBED_TYPES", "podcast").split(","),
            absolute_max_batch=int(os.getenv("INGEST_ABSOLUTE_MAX_BATCH", "15")),
            default_language=os.getenv("INGEST_DEFAULT_LANGUAGE", "en"),
        )

        services = ExternalServicesConfig(
            transcription_vendor=os.getenv("INGEST_TRANSCRIPTION_VENDOR", "deepgram"),
            transcription_api_key=os.getenv("INGEST_TRANSCRIPTION_API_KEY"),
            transcription_api_url=os.getenv("INGEST_TRANSCRIPTION_API_URL"),
            transcription_webhook_url=os.getenv(
                "INGEST_TRANSCRIPTION_WEBHOOK_URL",
                "http://localhost:8000/api/v1/webhooks/transcription",
            ),
            transcription_webhook_token=os.getenv("INGEST_TRANSCRIPTION_WEBHOOK_TOKEN"),
            analyzer_url=os.getenv(
                "INGEST_ANALYZER_URL", "http://localhost:9000/process-content"
            ),
            analyzer_token=os.getenv("INGEST_ANALYZER_TOKEN"),
            analyzer_timeout=float(os.getenv("INGEST_ANALYZER_TIMEOUT", "50")),
            extractor_url=os.getenv("INGEST_EXTRACTOR_URL", "http://localhost:9100/extract"),
            extractor_timeout=float(os.getenv("INGEST_EXTRACTOR_TIMEOUT", "60")),
        )

        api = APIConfig(
            host=os.getenv("INGEST_API_HOST", "0.0.0.0"),
            port=int(os.getenv("INGEST_API_PORT", "8000")),
            debug=_env_bool("INGEST_API_DEBUG"),
            workers=int(os.getenv("INGEST_API_WORKERS", "4")),
            jwt_secret=os.getenv("INGEST_JWT_SECRET"),
            jwt_algorithm=os.getenv("INGEST_JWT_ALGORITHM", "HS256"),
            cors_origins=os.getenv("INGEST_CORS_ORIGINS", "*").split(","),
            batch_rate_limit=int(os.getenv("INGEST_BATCH_RATE_LIMIT", "5")),
            batch_rate_limit_window=int(os.getenv("INGEST_BATCH_RATE_LIMIT_WINDOW", "60")),
        )

        logging_config = LoggingConfig(
            level=os.getenv("INGEST_LOG_LEVEL", "INFO"),
            format=os.getenv("INGEST_LOG_FORMAT", "json"),
            output=os.getenv("INGEST_LOG_OUTPUT", "stdout"),
            file_path=os.getenv("INGEST_LOG_FILE", "./logs/content_ingest.log"),
        )

        return cls(
            environment=os.getenv("INGEST_ENVIRONMENT", "development"),
            debug=_env_bool("INGEST_DEBUG"),
            storage=storage,
            pipeline=pipeline,
            services=services,
            api=api,
            logging=logging_config,
        )

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of issues.

        Returns:
            List[str]: List of validation error messages
        """
        issues = []

        if self.services.transcription_vendor not in ("deepgram", "assemblyai"):
            issues.append(
                f"Unknown transcription vendor: {self.services.transcription_vendor}"
            )

        if self.environment == "production":
            if not self.services.transcription_webhook_token:
                issues.append("Transcription webhook token is required in production")
            if not self.api.jwt_secret:
                issues.append("JWT secret is required in production")
            if self.api.cors_origins == ["*"]:
                issues.append("CORS origins should be restricted in production")

        return issues

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary (excluding sensitive values).

        Returns:
            Dict[str, Any]: Configuration as dictionary
        """
        return {
            "environment": self.environment,
            "debug": self.debug,
            "storage": {
                "database_pool_size": self.storage.database_pool_size,
            },
            "pipeline": {
                "dispatch_attempts": self.pipeline.dispatch_attempts,
                "dispatch_backoff_seconds": self.pipeline.dispatch_backoff_seconds,
                "absolute_max_batch": self.pipeline.absolute_max_batch,
                "transcribed_types": self.pipeline.transcribed_types,
            },
            "services": {
                "transcription_vendor": self.services.transcription_vendor,
                "webhook_configured": bool(self.services.transcription_webhook_token),
                "analyzer_url": self.services.analyzer_url,
            },
            "api": {
                "host": self.api.host,
                "port": self.api.port,
                "workers": self.api.workers,
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "output": self.logging.output,
            },
        }
