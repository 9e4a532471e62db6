"""
SentryAgent Configuration
=========================

This module handles configuration loading for the person sentry agent.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SENTRY_BUFFER_LIMIT        -> streams.buffer_limit
    SENTRY_DETECTOR_BACKEND    -> detector.backend
    SENTRY_STORAGE_BACKEND     -> storage.backend
    SENTRY_S3_ENDPOINT         -> storage.endpoint
    SENTRY_S3_BUCKET           -> storage.bucket
    SENTRY_S3_ACCESS_KEY       -> storage.access_key
    SENTRY_S3_SECRET_KEY       -> storage.secret_key
    SENTRY_NOTIFIER_BACKEND    -> notifier.backend
    SENTRY_SMTP_HOST           -> notifier.host
    SENTRY_SMTP_PASSWORD       -> notifier.password
    SENTRY_MQTT_HOST           -> mqtt.host
    SENTRY_MQTT_PORT           -> mqtt.port
    SENTRY_MQTT_USERNAME       -> mqtt.username
    SENTRY_MQTT_PASSWORD       -> mqtt.password
    SENTRY_AGENT_PORT          -> server.port
    SENTRY_LOG_LEVEL           -> logging.level
    PORT                       -> server.port (Cloud Run)

A config file that cannot be read or validated never aborts startup:
the error is logged once and the defaults (no streams) are used.

Example:
    from sentry_agent.config import settings

    print(settings.streams.buffer_limit)
    for name, uri in settings.streams.sources.items():
        print(name, uri)
"""

import os
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AgentConfig(BaseModel):
    """Agent identification configuration."""

    name: str = Field(default="sentry-agent", description="Agent name")
    version: str = Field(default="v0.1.0", description="Service version")


class StreamsConfig(BaseModel):
    """Per-stream sources and the shared batching parameters."""

    sources: Dict[str, str] = Field(
        default_factory=dict,
        description="Stream name (also its control topic) -> source URI",
    )
    buffer_limit: int = Field(
        default=50,
        ge=1,
        description="Maximum frames held in one batch",
    )
    capture_retry_delay_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Pause after a failed read before reopening the source",
    )
    poll_interval_seconds: float = Field(
        default=0.1,
        gt=0,
        description="Consumer sleep when the window buffer is empty",
    )
    max_queued_batches: Optional[int] = Field(
        default=None,
        ge=1,
        description="Optional soft cap on queued batches (drop-oldest). None = unbounded",
    )


class MockDetectorConfig(BaseModel):
    """Mock detector backend configuration."""

    person_confidence: float = Field(
        default=0.0,
        ge=0,
        le=100.0,
        description="Confidence reported for the 'person' label (0 = nothing found)",
    )


class VisionDetectorConfig(BaseModel):
    """Google Cloud Vision backend configuration."""

    credentials_path: Optional[str] = Field(
        default=None,
        description="Service account JSON (None = application default credentials)",
    )


class DetectorConfig(BaseModel):
    """Classification backend configuration."""

    backend: str = Field(
        default="mock",
        description="Detector backend: 'mock' or 'vision'",
    )
    target_label: str = Field(default="person", description="Label treated as a match")
    min_confidence: float = Field(
        default=75.0,
        ge=0,
        le=100.0,
        description="Minimum confidence (0-100) for a positive match",
    )
    max_labels: int = Field(default=10, ge=1, description="Labels requested per image")
    mock: MockDetectorConfig = Field(default_factory=MockDetectorConfig)
    vision: VisionDetectorConfig = Field(default_factory=VisionDetectorConfig)


class StorageConfig(BaseModel):
    """Object storage configuration for detected frames."""

    backend: str = Field(
        default="local",
        description="Storage backend: 'minio' (S3 compatible) or 'local'",
    )
    endpoint: str = Field(default="s3.amazonaws.com", description="S3/MinIO endpoint")
    access_key: Optional[str] = Field(default=None, description="Access key")
    secret_key: Optional[str] = Field(default=None, description="Secret key")
    region: Optional[str] = Field(default=None, description="Bucket region")
    secure: bool = Field(default=True, description="Use TLS")
    bucket: str = Field(default="sentry-detections", description="Bucket name")
    local_root: str = Field(
        default="./data/detections",
        description="Root directory for the local backend",
    )


class NotifierConfig(BaseModel):
    """Notification (e-mail) configuration."""

    backend: str = Field(
        default="log",
        description="Notifier backend: 'smtp' or 'log'",
    )
    host: str = Field(default="localhost", description="SMTP host")
    port: int = Field(default=587, ge=1, le=65535, description="SMTP port")
    use_tls: bool = Field(default=True, description="Issue STARTTLS")
    username: Optional[str] = Field(default=None, description="SMTP username")
    password: Optional[str] = Field(default=None, description="SMTP password")
    sender: str = Field(default="sentry@localhost", description="From address")
    recipients: List[str] = Field(default_factory=list, description="To addresses")
    attachment_name: str = Field(default="person.jpg", description="Attachment file name")
    timeout_seconds: float = Field(default=30.0, gt=0, description="SMTP socket timeout")


class MqttConfig(BaseModel):
    """MQTT broker used to deliver activate/deactivate commands."""

    host: Optional[str] = Field(default=None, description="Broker host (None = disabled)")
    port: int = Field(default=1883, ge=1, le=65535, description="Broker port")
    username: Optional[str] = Field(default=None, description="Broker username")
    password: Optional[str] = Field(default=None, description="Broker password")
    client_id: str = Field(default="", description="Client id ('' = broker assigned)")
    keepalive: int = Field(default=60, ge=5, description="Keepalive in seconds")
    activate_payload: str = Field(default="on", description="Payload that opens the window")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for SentryAgent.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    agent: AgentConfig = Field(default_factory=AgentConfig)
    streams: StreamsConfig = Field(default_factory=StreamsConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    A file that cannot be parsed or does not validate is reported once
    and replaced by the defaults, so a broken config never crashes the
    process; it simply runs without streams.

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data: dict = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read config {config_path}: {e}. Using defaults")
            config_data = {}
        if not isinstance(config_data, dict):
            logger.error(f"Config {config_path} is not a mapping. Using defaults")
            config_data = {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    try:
        _apply_env_overrides(config_data)
    except ValueError as e:
        logger.error(f"Invalid environment override: {e}")

    # Build settings object
    try:
        return Settings.model_validate(config_data)
    except ValidationError as e:
        logger.error(f"Invalid configuration, falling back to defaults: {e}")
        return Settings()


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Stream settings
    if env_limit := os.environ.get("SENTRY_BUFFER_LIMIT"):
        config_data.setdefault("streams", {})["buffer_limit"] = int(env_limit)

    # Detector settings
    if env_backend := os.environ.get("SENTRY_DETECTOR_BACKEND"):
        config_data.setdefault("detector", {})["backend"] = env_backend

    # Storage settings
    if env_storage := os.environ.get("SENTRY_STORAGE_BACKEND"):
        config_data.setdefault("storage", {})["backend"] = env_storage
    if env_endpoint := os.environ.get("SENTRY_S3_ENDPOINT"):
        config_data.setdefault("storage", {})["endpoint"] = env_endpoint
    if env_bucket := os.environ.get("SENTRY_S3_BUCKET"):
        config_data.setdefault("storage", {})["bucket"] = env_bucket
    if env_access := os.environ.get("SENTRY_S3_ACCESS_KEY"):
        config_data.setdefault("storage", {})["access_key"] = env_access
    if env_secret := os.environ.get("SENTRY_S3_SECRET_KEY"):
        config_data.setdefault("storage", {})["secret_key"] = env_secret

    # Notifier settings
    if env_notifier := os.environ.get("SENTRY_NOTIFIER_BACKEND"):
        config_data.setdefault("notifier", {})["backend"] = env_notifier
    if env_smtp := os.environ.get("SENTRY_SMTP_HOST"):
        config_data.setdefault("notifier", {})["host"] = env_smtp
    if env_smtp_pw := os.environ.get("SENTRY_SMTP_PASSWORD"):
        config_data.setdefault("notifier", {})["password"] = env_smtp_pw

    # MQTT settings
    if env_mqtt := os.environ.get("SENTRY_MQTT_HOST"):
        config_data.setdefault("mqtt", {})["host"] = env_mqtt
    if env_mqtt_port := os.environ.get("SENTRY_MQTT_PORT"):
        config_data.setdefault("mqtt", {})["port"] = int(env_mqtt_port)
    if env_mqtt_user := os.environ.get("SENTRY_MQTT_USERNAME"):
        config_data.setdefault("mqtt", {})["username"] = env_mqtt_user
    if env_mqtt_pw := os.environ.get("SENTRY_MQTT_PASSWORD"):
        config_data.setdefault("mqtt", {})["password"] = env_mqtt_pw

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("SENTRY_AGENT_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("SENTRY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "thread": "%(threadName)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
