"""
SasaCam Configuration
=====================

This module handles configuration loading for the persona engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SASA_CAPTURE_BACKEND    -> capture.backend
    SASA_CAMERA_INDEX       -> capture.device_index
    SASA_INFERENCE_BACKEND  -> inference.backend
    GEMINI_API_KEY, API_KEY -> inference.api_key
    SASA_TICK_INTERVAL      -> orchestrator.tick_interval_sec
    SASA_REQUEST_TIMEOUT    -> orchestrator.request_timeout_sec
    SASA_PORT               -> server.port
    SASA_LOG_LEVEL          -> logging.level
    PORT                    -> server.port (Cloud Run)

Example:
    from sasa_cam.config import settings

    print(settings.orchestrator.tick_interval_sec)
    print(settings.inference.swap_model)
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="sasa-cam", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class CaptureConfig(BaseModel):
    """Camera capture configuration."""

    backend: str = Field(
        default="opencv",
        description="Capture backend: 'opencv' or 'mock'",
    )
    device_index: int = Field(default=0, ge=0, description="OpenCV device index")
    width: int = Field(
        default=1280,
        ge=16,
        description="Requested frame width (hint, the device may differ)",
    )
    height: int = Field(
        default=720,
        ge=16,
        description="Requested frame height (hint, the device may differ)",
    )
    acquire_timeout_sec: float = Field(
        default=10.0,
        gt=0,
        description="Maximum time to wait for the device to open",
    )


class CodecConfig(BaseModel):
    """Image encoding configuration."""

    frame_quality: float = Field(
        default=0.8,
        gt=0,
        le=1.0,
        description="JPEG quality for live frame snapshots (0, 1]",
    )
    resource_quality: float = Field(
        default=0.92,
        gt=0,
        le=1.0,
        description="JPEG quality when re-encoding fetched identity images",
    )
    fetch_timeout_sec: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for fetching remote identity images",
    )


class InferenceConfig(BaseModel):
    """External inference service configuration."""

    backend: str = Field(
        default="gemini",
        description="Inference backend: 'gemini' or 'mock'",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key for the Generative Language API",
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="REST base URL",
    )
    swap_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Image model used for face swaps",
    )
    refine_model: str = Field(
        default="gemini-3-flash-preview",
        description="Text model used for identity refinement",
    )
    request_timeout_sec: float = Field(
        default=60.0,
        gt=0,
        description="Transport timeout for a single request",
    )
    refine_instruction: str = Field(
        default="Map facial features for real-time overlay.",
        description="Instruction sent with every new identity",
    )


class OrchestratorConfig(BaseModel):
    """Swap loop timing configuration."""

    tick_interval_sec: float = Field(
        default=6.0,
        gt=0,
        description="Period of the swap loop timer",
    )
    request_timeout_sec: float = Field(
        default=90.0,
        gt=0,
        description="Hard deadline for one tick's capture, encode and swap",
    )


class PresetIdentity(BaseModel):
    """A persona available at startup."""

    name: str
    image: str


def _default_presets() -> List[PresetIdentity]:
    return [
        PresetIdentity(
            name="Executive Professional",
            image="https://images.unsplash.com/photo-1560250097-0b93528c311a?auto=format&fit=crop&q=80&w=400&h=400",
        ),
        PresetIdentity(
            name="Creative Director",
            image="https://images.unsplash.com/photo-1573496359142-b8d87734a5a2?auto=format&fit=crop&q=80&w=400&h=400",
        ),
    ]


class IdentitiesConfig(BaseModel):
    """Identity library configuration."""

    presets: List[PresetIdentity] = Field(default_factory=_default_presets)


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for SasaCam.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    codec: CodecConfig = Field(default_factory=CodecConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    identities: IdentitiesConfig = Field(default_factory=IdentitiesConfig)
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
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_backend := os.environ.get("SASA_CAPTURE_BACKEND"):
        config_data.setdefault("capture", {})["backend"] = env_backend
    if env_index := os.environ.get("SASA_CAMERA_INDEX"):
        config_data.setdefault("capture", {})["device_index"] = int(env_index)

    # Inference settings
    if env_backend := os.environ.get("SASA_INFERENCE_BACKEND"):
        config_data.setdefault("inference", {})["backend"] = env_backend
    if env_key := os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY"):
        config_data.setdefault("inference", {})["api_key"] = env_key

    # Orchestrator settings
    if env_interval := os.environ.get("SASA_TICK_INTERVAL"):
        config_data.setdefault("orchestrator", {})["tick_interval_sec"] = float(env_interval)
    if env_timeout := os.environ.get("SASA_REQUEST_TIMEOUT"):
        config_data.setdefault("orchestrator", {})["request_timeout_sec"] = float(env_timeout)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("SASA_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("SASA_LOG_LEVEL"):
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


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
