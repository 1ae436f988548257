"""
Configuration for the overlay engine.

Settings are read from a YAML file (see config/settings.yaml) into
dataclasses. Every field has a default, so a missing file or a partial
file is fine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from loguru import logger


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"


@dataclass
class CaptureConfig:
    """Camera settings for the demo host."""
    device_index: int = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    rotation_degrees: int = 0  # Sensor orientation reported with each frame


@dataclass
class PipelineConfig:
    """Analysis pipeline settings."""
    # Per-call inference timeout in seconds (None = wait indefinitely)
    inference_timeout_s: Optional[float] = None
    mask_width: int = 256
    mask_height: int = 256
    mirror: bool = True


@dataclass
class StyleConfig:
    """Face box outline style (RGB)."""
    box_color: Tuple[int, int, int] = (255, 0, 0)
    box_stroke_width: int = 5


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = "logs/vision_overlay.log"


@dataclass
class OverlayConfig:
    """Top-level configuration."""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    style: StyleConfig = field(default_factory=StyleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _build(cls, section: str, values: Optional[Dict[str, Any]]):
    """Instantiate a config dataclass from a dict, skipping unknown keys."""
    if not values:
        return cls()
    if not isinstance(values, dict):
        raise ValueError(f"Config section '{section}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        logger.warning(f"Ignoring unknown keys in '{section}': {sorted(unknown)}")

    kwargs = {k: v for k, v in values.items() if k in known}
    if "box_color" in kwargs:
        kwargs["box_color"] = tuple(kwargs["box_color"])
    return cls(**kwargs)


def config_from_dict(data: Optional[Dict[str, Any]]) -> OverlayConfig:
    """Build an OverlayConfig from parsed YAML."""
    data = data or {}
    return OverlayConfig(
        capture=_build(CaptureConfig, "capture", data.get("capture")),
        pipeline=_build(PipelineConfig, "pipeline", data.get("pipeline")),
        style=_build(StyleConfig, "style", data.get("style")),
        logging=_build(LoggingConfig, "logging", data.get("logging")),
    )


def load_config(config_path: Optional[str] = None) -> OverlayConfig:
    """
    Load configuration from a YAML file.

    Falls back to config/settings.yaml, then to built-in defaults.
    """
    candidates = [Path(config_path)] if config_path else []
    candidates.append(DEFAULT_CONFIG_PATH)

    for path in candidates:
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f)
            logger.info(f"Loaded configuration from {path}")
            return config_from_dict(data)

    if config_path:
        logger.warning(f"Config file not found: {config_path}, using defaults")
    return OverlayConfig()
