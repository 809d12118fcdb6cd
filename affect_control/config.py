"""
Configuration management for the affect engine.

This module provides configuration file loading and saving for the
engine, supporting YAML and JSON formats. Nested `geometry:` and `scoring:`
sections map onto GeometryConfig and ScoringConfig.
"""

import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml

from .engine import EngineConfig
from .geometry import GeometryConfig
from .scoring import ScoringConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default config file locations
DEFAULT_CONFIG_PATHS = [
    Path("affect_config.yaml"),
    Path("affect_config.json"),
    Path.home() / ".config" / "affect_control" / "config.yaml",
    Path.home() / ".config" / "affect_control" / "config.json",
]


def load_config(
    config_path: Optional[Union[str, Path]] = None
) -> EngineConfig:
    """
    Load engine configuration from file.

    Supports YAML and JSON formats. If no path is specified, searches
    default locations.

    Args:
        config_path: Path to config file, or None to search defaults

    Returns:
        EngineConfig instance

    Raises:
        FileNotFoundError: If an explicit config path does not exist
        ValueError: If config file is invalid
    """
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        path = None
        for default_path in DEFAULT_CONFIG_PATHS:
            if default_path.exists():
                path = default_path
                break

        if path is None:
            logger.info("No config file found, using defaults")
            return EngineConfig()

    logger.info(f"Loading config from {path}")

    try:
        with open(path, 'r') as f:
            if path.suffix in ('.yaml', '.yml'):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping, got {type(data).__name__}")

    return dict_to_config(data)


def save_config(
    config: EngineConfig,
    config_path: Union[str, Path],
    format: str = "auto"
) -> None:
    """
    Save engine configuration to file.

    Args:
        config: Configuration to save
        config_path: Output file path
        format: "yaml", "json", or "auto" (detect from extension)
    """
    path = Path(config_path)

    if format == "auto":
        format = "yaml" if path.suffix in ('.yaml', '.yml') else "json"

    data = config_to_dict(config)

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        if format == "yaml":
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        else:
            json.dump(data, f, indent=2)

    logger.info(f"Saved config to {path}")


def _build(cls: Type[T], data: Dict[str, Any], section: str) -> T:
    """Instantiate a dataclass from the known keys of a mapping."""
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"Ignoring unknown {section} keys: {unknown}")
    return cls(**{k: v for k, v in data.items() if k in known})


def dict_to_config(data: Dict[str, Any]) -> EngineConfig:
    """Convert dictionary to EngineConfig."""
    data = dict(data)
    geometry = data.pop('geometry', None) or {}
    scoring = data.pop('scoring', None) or {}

    try:
        geometry_config = _build(GeometryConfig, geometry, "geometry")
        scoring_config = _build(ScoringConfig, scoring, "scoring")
        data['geometry'] = geometry_config
        data['scoring'] = scoring_config
        return _build(EngineConfig, data, "engine")
    except TypeError as e:
        raise ValueError(f"Invalid configuration: {e}")


def config_to_dict(config: EngineConfig) -> Dict[str, Any]:
    """Convert EngineConfig to dictionary."""
    return asdict(config)


def create_default_config(output_path: Union[str, Path]) -> None:
    """
    Create a default configuration file with comments.

    Args:
        output_path: Path to write the config file
    """
    path = Path(output_path)
    config = EngineConfig()

    if path.suffix in ('.yaml', '.yml'):
        sections = yaml.safe_dump(
            {
                'geometry': asdict(config.geometry),
                'scoring': asdict(config.scoring),
            },
            default_flow_style=False,
            sort_keys=False,
        )
        content = f"""# Affect Control Configuration
# ============================

# Number of per-frame expression distributions averaged
window_size: {config.window_size}

# Fraction of window_size that must be buffered before scoring starts;
# until then the previous stable label is held
warmup_fraction: {config.warmup_fraction}

# Minimum candidate confidence for a label switch
confidence_threshold: {config.confidence_threshold}

# A candidate must stay the best, confident candidate this long (ms)
dwell_ms: {config.dwell_ms}

# After a switch, all candidates are ignored this long (ms)
# Lower values = more responsive, higher values = more stable
cooldown_ms: {config.cooldown_ms}

# Frames with a face used to learn the user's neutral face
calibration_frames: {config.calibration_frames}

# Stable label at session start
default_label: {config.default_label}

# Landmark numbering of the detector: ibug68 or mediapipe478
topology: {config.topology}

# Geometric feature and scoring constants
{sections}"""
    else:
        content = json.dumps(config_to_dict(config), indent=2)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        f.write(content)

    logger.info(f"Created default config at {path}")
