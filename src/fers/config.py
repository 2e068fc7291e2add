"""
Configuration loading.

fers reads a single ``config.yaml``. The first one found wins:

    1. An explicit path (``fers --config PATH``)
    2. ``$FERS_CONFIG``
    3. ``./config.yaml``
    4. ``config.yaml`` next to the running executable
    5. ``~/.fers/config.yaml``

Example::

    crypto_key: "a long passphrase"
    target_dir: ~/Documents/vault
    log: ~/.fers/fers.log
    log_level: 0
    storage:
      remote_type: localhost
      localhost:
        work_dir: /mnt/nas/fers
      oss:
        endpoint: oss-cn-hangzhou.aliyuncs.com
        access_key_id: ...
        access_key_secret: ...
        bucket_name: my-bucket
        region: cn-hangzhou
        workDir: fers
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import FERS_HOME
from .sync.errors import ConfigError
from .sync.models import FersConfig

logger = logging.getLogger("fers.config")

CONFIG_NAME = "config.yaml"


def config_search_paths() -> list[Path]:
    """Candidate config locations, in priority order (explicit path excluded)."""
    paths = []
    env_path = os.environ.get("FERS_CONFIG")
    if env_path:
        paths.append(Path(env_path).expanduser())
    paths.append(Path.cwd() / CONFIG_NAME)
    paths.append(Path(sys.argv[0]).resolve().parent / CONFIG_NAME)
    paths.append(Path(FERS_HOME).expanduser() / CONFIG_NAME)
    return paths


def find_config(explicit: Optional[Path] = None) -> Path:
    """Locate the config file.

    Args:
        explicit: Path given on the command line, if any.

    Returns:
        Path to an existing config file.

    Raises:
        ConfigError: If the explicit path is missing or nothing is found.
    """
    if explicit is not None:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        return path

    for candidate in config_search_paths():
        if candidate.is_file():
            return candidate

    searched = ", ".join(str(p) for p in config_search_paths())
    raise ConfigError(f"No {CONFIG_NAME} found (searched: {searched})")


def load_config(path: Optional[Path] = None) -> FersConfig:
    """Load and validate the fers configuration.

    Args:
        path: Explicit config path. Searched for when omitted.

    Returns:
        Validated FersConfig.

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid.
    """
    config_file = find_config(path)
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Read config {config_file} failed: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_file} must be a mapping")

    try:
        config = FersConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config {config_file}: {exc}") from exc

    logger.debug("Loaded config from %s", config_file)
    return config
