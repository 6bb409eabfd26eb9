"""
gifcodec Configuration
======================

This module handles configuration loading for the encoder service and CLI.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    GIFCODEC_SAMPLE_FACTOR   -> encoder.sample_factor
    GIFCODEC_LOOP_COUNT      -> encoder.loop_count
    GIFCODEC_MAX_QUEUE_SIZE  -> worker.max_queue_size
    GIFCODEC_MAX_RESULTS     -> server.max_stored_results
    GIFCODEC_PORT            -> server.port
    GIFCODEC_LOG_LEVEL       -> logging.level
    GIFCODEC_LOG_FORMAT      -> logging.format
    PORT                     -> server.port (Cloud Run)

Example:
    from gifcodec.config import settings

    print(settings.encoder.sample_factor)
    print(settings.server.port)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="gifcodec", description="Service name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class EncoderConfig(BaseModel):
    """Codec configuration."""

    sample_factor: int = Field(
        default=10,
        ge=1,
        le=30,
        description="Quantizer sampling factor (1 = best quality, 30 = fastest)",
    )
    loop_count: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="Animation repeat count (0 = loop forever)",
    )


class WorkerConfig(BaseModel):
    """Encoder worker configuration."""

    max_queue_size: int = Field(
        default=64,
        ge=1,
        description="Maximum requests waiting for the worker",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")
    max_stored_results: int = Field(
        default=16,
        ge=1,
        description="Completed GIFs kept in memory for download",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for gifcodec.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
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

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
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

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Encoder settings
    if env_factor := os.environ.get("GIFCODEC_SAMPLE_FACTOR"):
        config_data.setdefault("encoder", {})["sample_factor"] = int(env_factor)
    if env_loop := os.environ.get("GIFCODEC_LOOP_COUNT"):
        config_data.setdefault("encoder", {})["loop_count"] = int(env_loop)

    # Worker settings
    if env_queue := os.environ.get("GIFCODEC_MAX_QUEUE_SIZE"):
        config_data.setdefault("worker", {})["max_queue_size"] = int(env_queue)

    # Server settings (Cloud Run uses PORT env var)
    if env_results := os.environ.get("GIFCODEC_MAX_RESULTS"):
        config_data.setdefault("server", {})["max_stored_results"] = int(env_results)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("GIFCODEC_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("GIFCODEC_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log
    if env_format := os.environ.get("GIFCODEC_LOG_FORMAT"):
        config_data.setdefault("logging", {})["format"] = env_format


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

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
