"""Environment-based configuration for IrisX."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from IRISX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IRISX_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model location: local folder first, then the HuggingFace repo
    models_dir: str = "models"
    model_repo: str = "irisx/mediapipe-face-onnx"

    # Face detection
    detector_variant: Literal["short", "full"] = "short"
    anchors_file: str | None = None
    min_score_threshold: float = Field(default=0.75, ge=0.0)
    sigmoid_scores: bool = False

    # Face ROI expansion around the detection box
    face_scale_x: float = Field(default=1.5, gt=0.0)
    face_scale_y: float = Field(default=2.0, gt=0.0)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Model management
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
