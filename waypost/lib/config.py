"""
Configuration loader for waypost.

Loads per-project settings from .waypost/config.yaml. The resulting
ProjectConfig is built once per invocation and handed to the coordinator
and analytics explicitly; nothing reads configuration from module state.

If the file is missing, defaults are used.
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from waypost.lib.constants import CONFIG_FILE, WAYPOST_DIR

logger = logging.getLogger(__name__)

DEFAULT_VELOCITY_WINDOWS = [7, 14, 30]


@dataclass
class ProjectConfig:
    """Project-level settings from config.yaml"""
    root: Path
    actor: str = "cli"  # Default actor recorded in journal events
    velocity_windows: list[int] = field(default_factory=lambda: list(DEFAULT_VELOCITY_WINDOWS))
    trend_threshold: float = 0.1  # Relative change needed to call a trend
    projection_horizon_days: int = 365  # Cap on projected burndown length

    @property
    def waypost_dir(self) -> Path:
        return self.root / WAYPOST_DIR


def load_project_config(root: Path) -> ProjectConfig:
    """Load config.yaml under root/.waypost and return ProjectConfig.

    Unknown keys are ignored with a warning. Invalid values fall back to
    defaults so a typo never makes the project unusable.
    """
    root = Path(root)
    config_path = root / WAYPOST_DIR / CONFIG_FILE
    if not config_path.exists():
        return ProjectConfig(root=root)

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return ProjectConfig(root=root)

    if not isinstance(data, dict):
        logger.warning(f"Ignoring {config_path}: expected a mapping")
        return ProjectConfig(root=root)

    known = {f.name for f in fields(ProjectConfig)} - {"root"}
    for key in sorted(set(data) - known):
        logger.warning(f"Unknown config key '{key}' in {config_path}")

    config = ProjectConfig(root=root)
    if "actor" in data and data["actor"]:
        config.actor = str(data["actor"])

    windows = data.get("velocity_windows")
    if windows is not None:
        if isinstance(windows, list) and windows and all(isinstance(w, int) and w > 0 for w in windows):
            config.velocity_windows = sorted(set(windows))
        else:
            logger.warning(f"Invalid velocity_windows {windows!r}, using {DEFAULT_VELOCITY_WINDOWS}")

    threshold = data.get("trend_threshold")
    if threshold is not None:
        try:
            config.trend_threshold = float(threshold)
        except (TypeError, ValueError):
            logger.warning(f"Invalid trend_threshold {threshold!r}, using {config.trend_threshold}")

    horizon = data.get("projection_horizon_days")
    if horizon is not None:
        if isinstance(horizon, int) and horizon > 0:
            config.projection_horizon_days = horizon
        else:
            logger.warning(f"Invalid projection_horizon_days {horizon!r}, using {config.projection_horizon_days}")

    return config


def save_project_config(config: ProjectConfig) -> Path:
    """Write config.yaml for a project. Returns the path written."""
    config_path = config.waypost_dir / CONFIG_FILE
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "actor": config.actor,
        "velocity_windows": list(config.velocity_windows),
        "trend_threshold": config.trend_threshold,
        "projection_horizon_days": config.projection_horizon_days,
    }
    config_path.write_text(yaml.safe_dump(data, sort_keys=False))
    return config_path
