"""
GLM Realtime Configuration
==========================

This module handles configuration loading for the realtime client.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    ZHIPU_REALTIME_URL          -> connection.url
    ZHIPU_API_KEY               -> connection.api_key
    GLM_REALTIME_FLUSH_THRESHOLD -> video.flush_threshold
    GLM_REALTIME_COMPLETION_URL -> completion.url
    GLM_REALTIME_MODEL          -> completion.model
    GLM_REALTIME_LOG_LEVEL      -> logging.level

Example:
    from glm_realtime.config import load_config, setup_logging

    settings = load_config()
    setup_logging(settings)

    client = RealtimeClient(settings, on_received=handle_event)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


DEFAULT_INSTRUCTIONS = "请描述这个视频的内容"
DEFAULT_COMPLETION_URL = "https://open.bigmodel.cn/api/paas/v4/chat/completions"
DEFAULT_VISION_MODEL = "glm-4.5v"


# =============================================================================
# Configuration Models
# =============================================================================

class ConnectionConfig(BaseModel):
    """Realtime WebSocket connection configuration."""

    url: str = Field(
        default="wss://open.bigmodel.cn/api/paas/v4/realtime",
        description="WebSocket URL of the realtime endpoint",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Bearer credential sent during the handshake",
    )
    open_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Maximum time allowed for the opening handshake",
    )
    read_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Idle timeout for a single read in the receive loop",
    )
    wait_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long wait() blocks for the receive loop to finish",
    )
    max_session_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Hard cap on receive loop lifetime (None = no cap)",
    )


class VideoConfig(BaseModel):
    """Video frame batching configuration."""

    flush_threshold: int = Field(
        default=10,
        ge=1,
        description="Buffered frame count that triggers an automatic flush",
    )
    default_instructions: str = Field(
        default=DEFAULT_INSTRUCTIONS,
        description="Prompt used when no instructions were set",
    )


class CompletionConfig(BaseModel):
    """Batch vision completion endpoint configuration."""

    url: str = Field(default=DEFAULT_COMPLETION_URL, description="Completion endpoint")
    model: str = Field(default=DEFAULT_VISION_MODEL, description="Vision-capable model")
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="HTTP timeout for the batch request",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the realtime client.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    video: VideoConfig = Field(default_factory=VideoConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
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
            Path.home() / ".config" / "glm_realtime" / "config.yaml",
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

    # Connection settings
    if env_url := os.environ.get("ZHIPU_REALTIME_URL"):
        config_data.setdefault("connection", {})["url"] = env_url
    if env_key := os.environ.get("ZHIPU_API_KEY"):
        config_data.setdefault("connection", {})["api_key"] = env_key

    # Video batching
    if env_threshold := os.environ.get("GLM_REALTIME_FLUSH_THRESHOLD"):
        config_data.setdefault("video", {})["flush_threshold"] = int(env_threshold)

    # Completion endpoint
    if env_completion := os.environ.get("GLM_REALTIME_COMPLETION_URL"):
        config_data.setdefault("completion", {})["url"] = env_completion
    if env_model := os.environ.get("GLM_REALTIME_MODEL"):
        config_data.setdefault("completion", {})["model"] = env_model

    # Logging settings
    if env_log := os.environ.get("GLM_REALTIME_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


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
