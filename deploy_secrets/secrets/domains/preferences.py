"""Per-user preferences shared by every deploy-secrets CLI.

Stored as a flat JSON object in ~/.config/deploy-secrets/preferences.json.
Today the only key written is ``config_path``.
"""
import json
import os
from pathlib import Path
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "deploy-secrets"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"

CONFIG_PATH = "config_path"


def _load_preferences() -> Dict[str, Any]:
    """Read the preferences object; an absent or damaged file counts as empty."""
    try:
        with open(PREFERENCES_FILE, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Ignoring unreadable preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Ignoring preferences file {PREFERENCES_FILE}: expected a JSON object")
        return {}
    return data


def _write_preferences(preferences: Dict[str, Any]) -> None:
    # Replaced atomically; readers never see a partial file.
    PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
    staging = PREFERENCES_FILE.with_suffix(".json.tmp")
    try:
        with open(staging, 'w') as f:
            json.dump(preferences, f, indent=2)
        os.replace(staging, PREFERENCES_FILE)
    except OSError as e:
        logger.error(f"Failed to save preferences to {PREFERENCES_FILE}: {e}")
        raise


def get_preference(key: str) -> Optional[str]:
    return _load_preferences().get(key)


def set_preference(key: str, value: str) -> None:
    preferences = _load_preferences()
    preferences[key] = value
    _write_preferences(preferences)
    logger.info(f"Preference '{key}' set to: {value}")


def clear_preference(key: str) -> bool:
    """
    Remove a preference.

    Returns:
        True if the key was stored, False if there was nothing to clear
    """
    preferences = _load_preferences()
    if key not in preferences:
        logger.debug(f"Preference '{key}' not found, nothing to clear")
        return False
    del preferences[key]
    _write_preferences(preferences)
    logger.info(f"Preference '{key}' cleared")
    return True
