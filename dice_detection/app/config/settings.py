"""Configuration utilities for dice detection."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DETECTION_OUTPUT_NAMES = ("scores", "boxes", "count")


class DetectionSettings(BaseSettings):
    """Detection configuration sourced from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DICE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    frame_size: int = Field(default=1024, ge=1, description="Side of the square capture frame.")
    detection_input_size: int = Field(default=512, ge=1)
    classifier_input_size: int = Field(default=224, ge=1)
    detection_model_path: Path = Field(
        default=Path("models/detection_model.tflite"),
        description="Detection model resource path.",
    )
    classifier_model_path: Path = Field(
        default=Path("models/classifier_model.tflite"),
        description="Classification model resource path.",
    )
    detection_output_order: List[str] = Field(
        default_factory=lambda: ["scores", "boxes", "count", "classes"],
        description="Positional meaning of the detection model outputs.",
    )
    classifier_labels: List[int] = Field(
        default_factory=lambda: [5, 4, 1, 6, 3, 2],
        description="Face value for each classifier output position.",
    )
    model_threads: Optional[int] = Field(default=None, ge=1)
    log_format: str = Field(default="text")

    @field_validator("detection_model_path", "classifier_model_path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @field_validator("detection_output_order")
    @classmethod
    def _check_output_order(cls, value: List[str]) -> List[str]:
        names = [str(item).strip().lower() for item in value]
        missing = [name for name in DETECTION_OUTPUT_NAMES if name not in names]
        if missing:
            raise ValueError(f"detection_output_order is missing {missing}")
        if len(set(names)) != len(names):
            raise ValueError("detection_output_order contains duplicates")
        return names

    @field_validator("classifier_labels")
    @classmethod
    def _check_labels(cls, value: List[int]) -> List[int]:
        if sorted(value) != [1, 2, 3, 4, 5, 6]:
            raise ValueError("classifier_labels must be a permutation of 1..6")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return value


def load_settings(**overrides: object) -> DetectionSettings:
    """Return detection settings, applying optional overrides."""

    return DetectionSettings(**overrides)
