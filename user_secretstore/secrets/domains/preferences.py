"""Preferences manager for user-secretstore.

Persistent per-user preferences (currently only the config file path) live in
the XDG Base Directory location:
~/.config/user-secretstore/preferences.json

The same directory holds the default secrets file and the Fernet master key.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "user-secretstore"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"


def ensure_preferences_dir() -> Path:
    """Create the per-user config directory (0700) if missing."""
    try:
        PREFERENCES_DIR.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create preferences directory {PREFERENCES_DIR}: {e}")
        raise
    return PREFERENCES_DIR


def _load_preferences() -> Dict[str, Any]:
    """
    Load preferences from JSON file.

    Returns:
        Dictionary of preferences, or empty dict if file is missing or unreadable
    """
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        with open(PREFERENCES_FILE, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse preferences file {PREFERENCES_FILE}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Failed to read preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Preferences file {PREFERENCES_FILE} is not a JSON object, ignoring")
        return {}
    return data


def _save_preferences(preferences: Dict[str, Any]) -> None:
    ensure_preferences_dir()

    try:
        with open(PREFERENCES_FILE, 'w') as f:
            json.dump(preferences, f, indent=2)
    except OSError as e:
        logger.error(f"Failed to save preferences to {PREFERENCES_FILE}: {e}")
        raise


def get_preference(key: str) -> Optional[str]:
    """Return the preference value for key, or None."""
    return _load_preferences().get(key)


def set_preference(key: str, value: str) -> None:
    preferences = _load_preferences()
    preferences[key] = value
    _save_preferences(preferences)
    logger.info(f"Preference '{key}' set to: {value}")


def clear_preference(key: str) -> None:
    """
    Remove a preference. Missing keys are ignored.

    Args:
        key: Preference key to remove
    """
    preferences = _load_preferences()
    if key in preferences:
        del preferences[key]
        _save_preferences(preferences)
        logger.info(f"Preference '{key}' cleared")
    else:
        logger.debug(f"Preference '{key}' not found, nothing to clear")
