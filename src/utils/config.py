"""Configuration management for the receipt recognition pipeline.

Loads and validates YAML configuration with sensible defaults
for preprocessing, OCR engines, caching, file limits, extraction,
and validation thresholds.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from src.pipeline.profiles import ProcessingProfile

logger = logging.getLogger(__name__)

TECHNIQUES: tuple[str, ...] = ("standard", "contrast", "denoised", "upscaled")
PROFILES: tuple[str, ...] = tuple(profile.value for profile in ProcessingProfile)


class PreprocessingConfig(BaseModel):
    """Configuration for the multi-technique image preprocessor."""

    enabled: bool = True
    techniques: list[str] = Field(default_factory=lambda: list(TECHNIQUES))
    upscale_factor: float = 2.0
    clip_low: int = 10
    clip_high: int = 240
    linear_gain: float = 1.2
    linear_offset: float = -25.6
    sharpen_sigma: float = 1.0
    strong_sharpen_sigma: float = 1.5

    @field_validator("techniques")
    @classmethod
    def _known_techniques(cls, value: list[str]) -> list[str]:
        unknown = [t for t in value if t not in TECHNIQUES]
        if unknown:
            raise ValueError(f"Unknown preprocessing techniques: {unknown}")
        return value

    @field_validator("upscale_factor")
    @classmethod
    def _positive_factor(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("upscale_factor must be positive")
        return value


class EngineConfig(BaseModel):
    """A recognition engine taking part in the ensemble."""

    name: str
    weight: float = 0.0
    enabled: bool = True

    @field_validator("weight")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("engine weight must be non-negative")
        return value


def _default_engines() -> list[EngineConfig]:
    return [
        EngineConfig(name="tesseract", weight=0.4),
        EngineConfig(name="tesseract-cli", weight=0.3),
        EngineConfig(name="multi-technique", weight=0.3),
    ]


class OCRConfig(BaseModel):
    """Configuration for Tesseract engines and the ensemble."""

    tesseract_cmd: str | None = None
    languages: str = "eng+por+spa+fra+deu+ita"
    oem: int = 3
    psm: int = 6
    pdf_dpi: int = 300
    timeout_s: float = 300.0
    max_workers: int = 4
    provisional_confidence: float = 0.7
    confidence_cap: float = 0.95
    fast_engine: str = "multi-technique"
    engines: list[EngineConfig] = Field(default_factory=_default_engines)

    @field_validator("max_workers")
    @classmethod
    def _at_least_one_worker(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1")
        return value

    def engine_weights(self) -> dict[str, float]:
        """Return trust weights of enabled engines, normalized to sum to 1.

        Returns:
            Mapping of engine name to normalized weight. Engines with a zero
            total share equal weight.
        """
        enabled = [e for e in self.engines if e.enabled]
        if not enabled:
            return {}
        total = sum(e.weight for e in enabled)
        if total <= 0:
            return {e.name: 1.0 / len(enabled) for e in enabled}
        return {e.name: e.weight / total for e in enabled}


class CacheConfig(BaseModel):
    """Configuration for the in-process recognition cache."""

    enabled: bool = True


class FileConfig(BaseModel):
    """Limits applied to input files before recognition."""

    extensions: list[str] = Field(
        default_factory=lambda: [
            ".jpg",
            ".jpeg",
            ".png",
            ".pdf",
            ".tiff",
            ".tif",
            ".bmp",
            ".webp",
        ]
    )
    max_size_bytes: int = 50 * 1024 * 1024
    min_width: int = 100
    min_height: int = 100
    max_width: int = 8000
    max_height: int = 8000

    @model_validator(mode="after")
    def _ordered_bounds(self) -> "FileConfig":
        if self.min_width > self.max_width or self.min_height > self.max_height:
            raise ValueError("minimum image dimensions exceed the maximum")
        return self


class ExtractionConfig(BaseModel):
    """Configuration for field extraction."""

    store_name_scan_lines: int = 8
    min_confidence: float = 0.1


class ValidationConfig(BaseModel):
    """Thresholds for the receipt validation gate and warnings."""

    min_amount: float = 0.01
    max_amount: float = 10000.0
    warning_high_amount: float = 1000.0
    warning_low_amount: float = 1.0
    max_age_days: int = 365
    warning_age_days: int = 30
    min_indicators: int = 3
    low_confidence: float = 0.3
    medium_confidence: float = 0.6

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "ValidationConfig":
        if self.min_amount > self.max_amount:
            raise ValueError("min_amount exceeds max_amount")
        if self.low_confidence > self.medium_confidence:
            raise ValueError("low_confidence exceeds medium_confidence")
        return self


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    files: FileConfig = Field(default_factory=FileConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    default_profile: str = "balanced"
    log_level: str = "INFO"
    log_file: str | None = None

    @field_validator("default_profile")
    @classmethod
    def _known_profile(cls, value: str) -> str:
        if value not in PROFILES:
            raise ValueError(f"Unknown processing profile: {value}")
        return value


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
