"""
Configuration for the tracking processor.

Defaults live in ProcessorConfig. `ProcessorConfig.from_env()` loads a
.env file (if one is found) and applies VISIONTRACK_* overrides:

    VISIONTRACK_TRACKING_LEVEL      fast | accurate
    VISIONTRACK_THROTTLE            1/0, true/false
    VISIONTRACK_CONFIDENCE          solid/dashed threshold
    VISIONTRACK_MAX_RECTANGLES      detector result cap
    VISIONTRACK_MIN_RECT_SIZE       detector minimum size
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .regions import CONFIDENCE_THRESHOLD, TrackingLevel

logger = logging.getLogger(__name__)

ENV_PREFIX = "VISIONTRACK_"


def _load_env() -> Optional[str]:
    """Load environment variables from the first .env file found."""
    possible_paths = [
        Path(__file__).resolve().parents[2] / ".env",  # src/visiontrack/../../.env
        Path.cwd() / ".env",
        Path.home() / ".env",
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            return str(env_path)

    return None


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ProcessorConfig:
    """Tunables for VisionTrackerProcessor and its default capabilities."""
    tracking_level: TrackingLevel = TrackingLevel.ACCURATE
    throttle: bool = True                      # Sleep one frame interval per frame
    confidence_threshold: float = CONFIDENCE_THRESHOLD

    # Rectangle detection filters
    minimum_aspect_ratio: float = 0.2
    maximum_aspect_ratio: float = 1.0
    minimum_size: float = 0.1
    maximum_observations: int = 10

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "ProcessorConfig":
        if load_dotenv_file:
            env_path = _load_env()
            if env_path:
                logger.info(f"Loaded environment from {env_path}")

        config = cls()
        env = os.environ

        level = env.get(f"{ENV_PREFIX}TRACKING_LEVEL")
        if level:
            try:
                config.tracking_level = TrackingLevel(level.strip().lower())
            except ValueError:
                logger.warning(f"Ignoring unknown tracking level: {level}")

        if f"{ENV_PREFIX}THROTTLE" in env:
            config.throttle = _env_bool(env[f"{ENV_PREFIX}THROTTLE"])

        for key, attr, cast in (
            ("CONFIDENCE", "confidence_threshold", float),
            ("MAX_RECTANGLES", "maximum_observations", int),
            ("MIN_RECT_SIZE", "minimum_size", float),
        ):
            raw = env.get(f"{ENV_PREFIX}{key}")
            if raw is None:
                continue
            try:
                setattr(config, attr, cast(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_PREFIX}{key}={raw!r}")

        return config

    def detector_options(self) -> dict:
        return {
            "minimum_aspect_ratio": self.minimum_aspect_ratio,
            "maximum_aspect_ratio": self.maximum_aspect_ratio,
            "minimum_size": self.minimum_size,
            "maximum_observations": self.maximum_observations,
        }
