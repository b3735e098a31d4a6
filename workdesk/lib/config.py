"""
Configuration for workdesk.

Loads workdesk.yaml from a config directory. If no file exists, returns
defaults. Keys not listed in WorkdeskConfig are ignored with a warning.
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "workdesk.yaml"


@dataclass
class WorkdeskConfig:
    """Settings from workdesk.yaml."""
    invoice_prefix: str = "INV"
    invoice_number_attempts: int = 5  # Regenerations on number collision
    signed_url_ttl_seconds: int = 60
    storage_root: Path = Path("storage")
    storage_base_url: str = "http://localhost:8000/objects"
    signing_secret: str = "change-me"
    data_dir: Path = Path("data")
    log_level: str = "INFO"


_PATH_KEYS = ("storage_root", "data_dir")
_INT_KEYS = ("invoice_number_attempts", "signed_url_ttl_seconds")


def load_config(config_dir: Optional[Path]) -> WorkdeskConfig:
    """Load workdesk.yaml and return WorkdeskConfig.

    If config_dir is None or the file doesn't exist, returns defaults.
    Relative paths in the file are resolved against config_dir.
    """
    if config_dir is None:
        return WorkdeskConfig()

    config_path = config_dir / CONFIG_FILENAME
    if not config_path.exists():
        return WorkdeskConfig()

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return WorkdeskConfig()

    if not isinstance(data, dict):
        logger.warning(f"Ignoring {config_path}: expected a mapping, got {type(data).__name__}")
        return WorkdeskConfig()

    known = {f.name for f in fields(WorkdeskConfig)}
    values = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Unknown setting '{key}' in {config_path}, ignoring")
            continue
        if key in _PATH_KEYS:
            path = Path(value)
            value = path if path.is_absolute() else config_dir / path
        elif key in _INT_KEYS:
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning(f"Invalid {key} '{value}' in {config_path}, using default")
                continue
        values[key] = value

    return WorkdeskConfig(**values)


def configure_logging(config: WorkdeskConfig) -> None:
    """Apply the configured level to the workdesk logger hierarchy."""
    level = logging.getLevelName(str(config.log_level).upper())
    if not isinstance(level, int):
        logger.warning(f"Unknown log_level '{config.log_level}', using INFO")
        level = logging.INFO
    logging.getLogger("workdesk").setLevel(level)
