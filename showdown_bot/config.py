"""Bot configuration loading.

The config lives in ``config.yaml``. If it does not exist, the bundled
``config-example.yaml`` is copied into its place and used, so a fresh
checkout only needs the nick filled in.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from .bot.errors import ConfigError
from .bot.types import BotConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")
EXAMPLE_CONFIG_NAME = "config-example.yaml"

# YAML key -> BotConfig field, where they differ
_KEY_ALIASES = {
    "pass": "password",
    "commandchar": "command_char",
    "enablehooks": "enable_hooks",
    "hookrooms": "hook_rooms",
    "hooksecret": "hook_secret",
}


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> BotConfig:
    """Load the bot configuration from a YAML file.

    Raises:
        ConfigError: If no config (or example config) can be read, or the
            contents are invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        example_path = config_path.with_name(EXAMPLE_CONFIG_NAME)
        if not example_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        logger.warning(f"No config file found, using {example_path} instead")
        try:
            shutil.copyfile(example_path, config_path)
        except OSError as e:
            raise ConfigError(f"Could not create {config_path}", str(e)) from e

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config file {config_path}", str(e)) from e

    config = config_from_dict(data)
    logger.info(f"Loaded config from {config_path}")
    return config


def config_from_dict(data: Any) -> BotConfig:
    """Build a BotConfig from parsed YAML data."""
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping")

    known = {f.name for f in fields(BotConfig)}
    values: dict[str, Any] = {}
    for key, value in data.items():
        name = _KEY_ALIASES.get(str(key).lower(), str(key).lower())
        if name not in known:
            logger.warning(f"Unknown config key '{key}'")
            continue
        values[name] = value

    # Rooms may be given as a list or as a mapping of room -> anything
    for name in ("rooms", "hook_rooms"):
        rooms = values.get(name)
        if rooms is None:
            values.pop(name, None)
        elif isinstance(rooms, dict):
            values[name] = [str(room) for room in rooms]
        elif isinstance(rooms, list):
            values[name] = [str(room) for room in rooms]
        else:
            raise ConfigError(f"'{name}' must be a list of room names")

    for name in ("nick", "password", "server", "command_char", "login_url", "hook_secret"):
        if values.get(name) is not None:
            values[name] = str(values[name])
        else:
            values.pop(name, None)

    if "nick" not in values:
        raise ConfigError("Config is missing 'nick'")

    try:
        if "port" in values:
            values["port"] = int(values["port"])
        for name in ("send_interval", "keepalive_interval"):
            if name in values:
                values[name] = float(values[name])
        if "queue_size" in values:
            values["queue_size"] = int(values["queue_size"])
    except (TypeError, ValueError) as e:
        raise ConfigError("Invalid numeric config value", str(e)) from e

    for name in ("enable_hooks", "persist_room"):
        if name in values:
            values[name] = bool(values[name])

    return BotConfig(**values)
