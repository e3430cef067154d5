"""Configuration utilities for the savesync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click

from savesync.core.config import EngineConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_handler: logging.Handler | None = None


def get_config_dir() -> Path:
    """Get the configuration directory for savesync.

    Returns:
        Path to ~/.savesync.
    """
    return Path.home() / ".savesync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db_path() -> Path:
    """Get the path to the record store database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_engine_config() -> EngineConfig:
    """Build the engine configuration from the config file.

    Raises:
        ValueError: If a configured value is out of range.
    """
    return EngineConfig.from_dict(load_config())


def require_engine_config() -> EngineConfig:
    """Load the engine configuration or exit with an error message.

    Used by commands; a bad value or malformed config file ends the
    command with exit code 1 instead of a traceback.
    """
    try:
        return load_engine_config()
    except ValueError as e:
        click.echo(f"Error: Invalid configuration in {get_config_file()}: {e}", err=True)
        sys.exit(1)


def get_item_root(item_id: str) -> Path | None:
    """Get the install root remembered for an item.

    Returns:
        Install root, or None if the item was never tracked with one.
    """
    items = load_config().get("items", {})
    root = items.get(item_id, {}).get("install_root")
    return Path(root) if root else None


def set_item_root(item_id: str, install_root: Path) -> None:
    """Remember the install root of an item."""
    config = load_config()
    items = config.setdefault("items", {})
    items.setdefault(item_id, {})["install_root"] = str(install_root)
    save_config(config)


def setup_logging(verbose: bool = False) -> None:
    """Attach a stderr handler to the savesync logger.

    Args:
        verbose: Log DEBUG messages instead of WARNING and above.
    """
    global _handler

    package_logger = logging.getLogger("savesync")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(_handler)
