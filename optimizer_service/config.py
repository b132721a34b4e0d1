"""
Configuration loader for the image optimizer.

Environment variables are centralized here to keep the pipeline code focused
on the transform itself. The values that shape an encoded image are bundled
into an `EncodingPolicy`, which is passed explicitly through every pipeline
call instead of being read from globals.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TargetFormat = Literal["webp", "jpeg", "png"]


class FormatSpec(NamedTuple):
    pil_format: str
    extension: str
    mime_type: str


FORMAT_PRESETS = {
    "webp": FormatSpec("WEBP", ".webp", "image/webp"),
    "jpeg": FormatSpec("JPEG", ".jpg", "image/jpeg"),
    "png": FormatSpec("PNG", ".png", "image/png"),
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OPTIMIZER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Encoding policy
    max_long_edge: int = Field(1200, gt=0)
    target_format: str = "webp"
    quality: float = Field(0.8, ge=0.0, le=1.0)

    # Batch scheduling
    item_timeout_seconds: Optional[float] = Field(None, gt=0)
    max_concurrency: Optional[int] = Field(None, gt=0)

    # Output
    archive_filename: str = "optimized_images.zip"
    log_level: str = "INFO"

    @field_validator("target_format")
    @classmethod
    def validate_target_format(cls, v: str) -> str:
        v = v.lower()
        if v not in FORMAT_PRESETS:
            raise ValueError("OPTIMIZER_TARGET_FORMAT must be one of webp|jpeg|png")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


class EncodingPolicy(BaseModel):
    """Process-wide, read-only parameters consumed by the resizer and encoder."""

    model_config = ConfigDict(frozen=True)

    max_dimension: int = Field(1200, gt=0)
    target_format: TargetFormat = "webp"
    quality: float = Field(0.8, ge=0.0, le=1.0)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EncodingPolicy":
        settings = settings or get_settings()
        return cls(
            max_dimension=settings.max_long_edge,
            target_format=settings.target_format,
            quality=settings.quality,
        )

    @property
    def format_spec(self) -> FormatSpec:
        return FORMAT_PRESETS[self.target_format]

    @property
    def extension(self) -> str:
        return self.format_spec.extension

    @property
    def codec_quality(self) -> int:
        """Quality on Pillow's integer 0-100 scale."""
        return int(round(self.quality * 100))
