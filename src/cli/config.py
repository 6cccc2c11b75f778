"""Configuration loading."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from .config_models import CardConfig, default_home


def find_config(home: Optional[Path] = None) -> Optional[Path]:
    """config.yaml in the working directory or the card home."""
    locations = [
        Path.cwd() / "card.yaml",
        (home or default_home()) / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config_model(config_path: Optional[Path] = None) -> CardConfig:
    """Load and validate configuration; defaults when no file exists.

    Raises:
        ValueError: If the file is not valid YAML or fails validation.
    """
    data = {}
    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {path}: {e}")

    try:
        config = CardConfig.from_dict(data)
    except ValidationError as e:
        raise ValueError(f"Config validation failed for {path}: {e}")

    # A config found inside a home directory describes that home
    if path and path.exists() and "paths" not in data and path.name == "config.yaml":
        config.paths.home = path.parent
    return config
