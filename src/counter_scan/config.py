"""
Counter Scan Configuration
==========================

This module handles configuration loading for the scan service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    COUNTER_SCAN_CONFIG          -> path of the YAML file
    COUNTER_SCAN_REGIONS_PATH    -> regions.definition_path
    COUNTER_SCAN_OCR_BACKEND     -> ocr.backend
    COUNTER_SCAN_OCR_PROFILE     -> ocr.profile
    COUNTER_SCAN_TESSERACT_CMD   -> ocr.tesseract_cmd
    COUNTER_SCAN_COOLDOWN        -> scanner.cooldown_seconds
    COUNTER_SCAN_MAX_WORKERS     -> scanner.max_workers
    COUNTER_SCAN_BUFFER_CAPACITY -> scanner.buffer_capacity
    COUNTER_SCAN_VISION_ENABLED  -> vision.enabled
    COUNTER_SCAN_VISION_MODEL    -> vision.model
    OPENAI_API_KEY               -> vision.api_key
    COUNTER_SCAN_PORT            -> server.port
    COUNTER_SCAN_LOG_LEVEL       -> logging.level
    PORT                         -> server.port (Cloud Run)

Example:
    from counter_scan.config import settings

    print(settings.scanner.cooldown_seconds)
    print(settings.ocr.profile)
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from counter_scan.decoding.code_decoder import DecodeStrategy
from counter_scan.models.region import RegionDescriptor, RegionSet, default_regions
from counter_scan.ocr.profiles import OcrProfile, resolve_profile
from counter_scan.regions.extractor import load_regions_from_file
from counter_scan.vision.cloud_vision import DEFAULT_ENDPOINT, DEFAULT_MODEL


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="counter-scan", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ScannerConfig(BaseModel):
    """Scan cycle configuration."""

    buffer_capacity: int = Field(
        default=3,
        ge=1,
        description="Frames kept for multi-frame recognition",
    )
    cooldown_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Per-target cooldown after a cycle with a result",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Concurrent OCR recognition calls",
    )
    history_size: int = Field(
        default=10,
        ge=1,
        description="Results kept in history",
    )
    stop_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long stop() waits for an in-flight cycle",
    )


class RegionsConfig(BaseModel):
    """OCR region configuration (fractions of frame size)."""

    definition_path: Optional[str] = Field(
        default=None,
        description="JSON file with region descriptors (overrides the inline list)",
    )
    regions: List[RegionDescriptor] = Field(default_factory=default_regions)

    @field_validator("regions")
    @classmethod
    def check_regions(cls, value: List[RegionDescriptor]) -> List[RegionDescriptor]:
        """Reuse RegionSet validation (non-empty, unique names)."""
        return RegionSet(regions=value).regions

    def resolved_regions(self) -> List[RegionDescriptor]:
        """Regions from the definition file if set, else the inline list."""
        if self.definition_path:
            return load_regions_from_file(self.definition_path)
        return list(self.regions)


class OcrConfig(BaseModel):
    """OCR engine configuration."""

    backend: str = Field(
        default="tesseract",
        description="OCR backend: 'tesseract' or 'mock'",
    )
    profile: str = Field(
        default="seven_segment",
        description="Named OCR profile",
    )
    overrides: Dict[str, Any] = Field(
        default_factory=dict,
        description="Profile field overrides (unknown keys rejected)",
    )
    tesseract_cmd: Optional[str] = Field(
        default=None,
        description="Path to the tesseract binary (None = on PATH)",
    )
    timeout_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Per-call tesseract timeout (0 = none)",
    )

    @field_validator("backend")
    @classmethod
    def check_backend(cls, value: str) -> str:
        if value not in ("tesseract", "mock"):
            raise ValueError(f"unknown OCR backend '{value}'")
        return value

    def resolved_profile(self) -> OcrProfile:
        """Named profile with overrides applied."""
        return resolve_profile(self.profile, self.overrides)


class ValueConfig(BaseModel):
    """Counter value plausibility bounds."""

    min_digits: int = Field(default=2, ge=1)
    max_digits: int = Field(default=7, ge=1)
    min_value: int = Field(default=1, ge=0)
    max_value: int = Field(default=9_999_999, ge=0)


class StabilityConfig(BaseModel):
    """Stability aggregation configuration."""

    threshold: int = Field(
        default=2,
        ge=1,
        description="Agreeing observations required for a stable value",
    )


class DecoderConfig(BaseModel):
    """Code decoder configuration."""

    strategies: List[DecodeStrategy] = Field(
        default_factory=lambda: list(DecodeStrategy),
        min_length=1,
        description="Decode strategies in the order they are tried",
    )
    collect_all: bool = Field(
        default=False,
        description="Try every strategy and prefer JSON payloads",
    )


class VisionConfig(BaseModel):
    """Cloud vision fallback configuration."""

    enabled: bool = Field(default=False, description="Enable the vision fallback")
    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="Chat-completions URL")
    model: str = Field(default=DEFAULT_MODEL, description="Model name")
    api_key: Optional[str] = Field(default=None, description="API key")
    cooldown_seconds: float = Field(default=3.0, ge=0)
    timeout_seconds: float = Field(default=15.0, gt=0, description="HTTP timeout")
    cycle_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="How long a cycle waits for the vision call",
    )
    jpeg_quality: int = Field(default=80, ge=1, le=100)


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the scan service.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    regions: RegionsConfig = Field(default_factory=RegionsConfig)
    ocr: OcrConfig = Field(default_factory=OcrConfig)
    value: ValueConfig = Field(default_factory=ValueConfig)
    stability: StabilityConfig = Field(default_factory=StabilityConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)
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

    Raises:
        pydantic.ValidationError: If the configuration is invalid
    """
    if config_path is None:
        config_path = os.environ.get("COUNTER_SCAN_CONFIG")

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

    config_data: Dict[str, Any] = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    settings = Settings.model_validate(config_data)

    # Fail at load time on a bad profile name or override key
    settings.ocr.resolved_profile()

    return settings


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Region settings
    if env_regions := os.environ.get("COUNTER_SCAN_REGIONS_PATH"):
        config_data.setdefault("regions", {})["definition_path"] = env_regions

    # OCR settings
    if env_backend := os.environ.get("COUNTER_SCAN_OCR_BACKEND"):
        config_data.setdefault("ocr", {})["backend"] = env_backend
    if env_profile := os.environ.get("COUNTER_SCAN_OCR_PROFILE"):
        config_data.setdefault("ocr", {})["profile"] = env_profile
    if env_cmd := os.environ.get("COUNTER_SCAN_TESSERACT_CMD"):
        config_data.setdefault("ocr", {})["tesseract_cmd"] = env_cmd

    # Scanner settings
    if env_cooldown := os.environ.get("COUNTER_SCAN_COOLDOWN"):
        config_data.setdefault("scanner", {})["cooldown_seconds"] = float(env_cooldown)
    if env_workers := os.environ.get("COUNTER_SCAN_MAX_WORKERS"):
        config_data.setdefault("scanner", {})["max_workers"] = int(env_workers)
    if env_capacity := os.environ.get("COUNTER_SCAN_BUFFER_CAPACITY"):
        config_data.setdefault("scanner", {})["buffer_capacity"] = int(env_capacity)

    # Vision settings
    if env_vision := os.environ.get("COUNTER_SCAN_VISION_ENABLED"):
        config_data.setdefault("vision", {})["enabled"] = _env_flag(env_vision)
    if env_model := os.environ.get("COUNTER_SCAN_VISION_MODEL"):
        config_data.setdefault("vision", {})["model"] = env_model
    if env_key := os.environ.get("OPENAI_API_KEY"):
        config_data.setdefault("vision", {})["api_key"] = env_key

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("COUNTER_SCAN_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("COUNTER_SCAN_LOG_LEVEL"):
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
