"""
Application settings and logging setup.

Settings live in a small YAML file next to the vault database:

    ~/.flicksy/
      settings.yaml
      flicksy.db
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".flicksy"
DEFAULT_SETTINGS_PATH = CONFIG_DIR / "settings.yaml"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class AppSettings:
    """Runtime settings for the vault core."""
    db_path: Path = field(default_factory=lambda: CONFIG_DIR / "flicksy.db")

    # Keyring namespace and the fixed entry holding the master key
    keychain_service: str = "flicksy"
    master_key_id: str = "flicksy.master_key_hex"

    log_level: str = "INFO"

    def __post_init__(self):
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path).expanduser()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["db_path"] = str(self.db_path)
        return data


def get_settings(path: Path = None) -> AppSettings:
    """
    Load settings from YAML.

    Args:
        path: Settings file, defaults to ~/.flicksy/settings.yaml

    Returns:
        AppSettings (defaults if the file does not exist)

    Raises:
        ValueError: File exists but is not a YAML mapping
    """
    path = Path(path) if path else DEFAULT_SETTINGS_PATH
    if not path.exists():
        logger.debug(f"No settings file at {path}, using defaults")
        return AppSettings()

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Invalid settings file {path}: expected a mapping")

    known = {f.name for f in fields(AppSettings)}
    for key in data.keys() - known:
        logger.warning(f"Ignoring unknown setting '{key}' in {path}")

    return AppSettings(**{k: v for k, v in data.items() if k in known})


def save_settings(settings: AppSettings, path: Path = None) -> Path:
    """Write settings to YAML and return the path written."""
    path = Path(path) if path else DEFAULT_SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(settings.to_dict(), f, default_flow_style=False, sort_keys=True)
    logger.info(f"Settings saved to {path}")
    return path


def configure_logging(level: Optional[str] = None) -> None:
    """Install a root handler. Call once from the host application."""
    level_name = (level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
