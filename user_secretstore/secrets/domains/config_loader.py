"""Configuration loader for user-secretstore."""
import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from . import preferences
from .models import ConfigError
from .preferences import get_preference

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("file", "keyring", "registry")
PROTECTOR_BACKENDS = ("auto", "dpapi", "fernet")

# Environment overrides (take priority over the config file)
ENV_STORE_BACKEND = "USER_SECRETSTORE_BACKEND"
ENV_PROTECTOR_BACKEND = "USER_SECRETSTORE_PROTECTOR"

DEFAULT_CONFIG: Dict[str, Any] = {
    "store": {
        "backend": "file",
        "path": None,
        "service": "user-secretstore",
    },
    "protector": {
        "backend": "auto",
        "key_path": None,
    },
}


def default_config_path() -> Path:
    return preferences.PREFERENCES_DIR / "config.yml"


def _get_config_path() -> Optional[str]:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference (stored in ~/.config/user-secretstore/preferences.json)
    2. Default location: ~/.config/user-secretstore/config.yml

    Returns:
        Absolute path to config file, or None when neither exists
        (built-in defaults apply)
    """
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    logger.debug("No config file found, using built-in defaults")
    return None


def _read_yaml(config_path: str) -> Dict[str, Any]:
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if config is None:
        logger.warning(f"Config file at {config_path} is empty, using defaults")
        return {}

    if not isinstance(config, dict):
        raise ConfigError(
            f"Config file at {config_path} must be a YAML mapping\n"
            f"Required format:\n"
            f"store:\n"
            f"  backend: file\n"
            f"protector:\n"
            f"  backend: auto"
        )
    return config


def _merge_section(config: Dict[str, Any], loaded: Dict[str, Any], section: str, config_path: str) -> None:
    value = loaded.get(section)
    if value is None:
        return
    if not isinstance(value, dict):
        raise ConfigError(f"'{section}' in config at {config_path} must be a mapping")
    config[section].update(value)


def _validate(config: Dict[str, Any]) -> None:
    store_backend = config["store"].get("backend")
    if store_backend not in STORE_BACKENDS:
        raise ConfigError(
            f"Unsupported store backend: {store_backend}\n"
            f"Supported: {', '.join(STORE_BACKENDS)}"
        )

    protector_backend = config["protector"].get("backend")
    if protector_backend not in PROTECTOR_BACKENDS:
        raise ConfigError(
            f"Unsupported protector backend: {protector_backend}\n"
            f"Supported: {', '.join(PROTECTOR_BACKENDS)}"
        )

    if not config["store"].get("service"):
        raise ConfigError("Missing 'store.service' in config")


def load_config() -> Dict[str, Any]:
    """
    Load configuration, falling back to built-in defaults.

    Returns:
        Dict containing configuration with keys:
        - store: dict with backend, path, service
        - protector: dict with backend, key_path

    Raises:
        ConfigError: If the config file is unreadable, malformed, or names
            an unsupported backend
    """
    # Resolved on every call so preference changes apply without a restart
    config_path = _get_config_path()

    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path:
        loaded = _read_yaml(config_path)
        _merge_section(config, loaded, "store", config_path)
        _merge_section(config, loaded, "protector", config_path)

    store_env = os.getenv(ENV_STORE_BACKEND)
    if store_env:
        logger.debug(f"Using {ENV_STORE_BACKEND} from environment: {store_env}")
        config["store"]["backend"] = store_env

    protector_env = os.getenv(ENV_PROTECTOR_BACKEND)
    if protector_env:
        logger.debug(f"Using {ENV_PROTECTOR_BACKEND} from environment: {protector_env}")
        config["protector"]["backend"] = protector_env

    _validate(config)

    logger.debug(f"Using store backend: {config['store']['backend']}")
    logger.debug(f"Using protector backend: {config['protector']['backend']}")
    return config


def write_default_config(path: Path) -> Path:
    """
    Write a starter config file with the built-in defaults.

    Args:
        path: Destination file (parent directories are created)

    Returns:
        The path written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        yaml.safe_dump(DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)
    logger.info(f"Wrote default config to {path}")
    return path
