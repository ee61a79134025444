"""Persistent CLI preferences for gpg-keychain.

Only `config_path` is stored today: the YAML file chosen with
`keychain config set-path`. Lives at ~/.config/gpg-keychain/preferences.json.
"""
import json
from pathlib import Path
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "gpg-keychain"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"


def _read_all() -> Dict[str, Any]:
    """
    Read the preferences object.

    A missing, unreadable or non-object file counts as no preferences, so a
    broken preferences file never blocks access to the keychains.
    """
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        with open(PREFERENCES_FILE, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Ignoring corrupt preferences file {PREFERENCES_FILE}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Cannot read preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Ignoring preferences file {PREFERENCES_FILE}: expected a JSON object")
        return {}
    return data


def _write_all(preferences: Dict[str, Any]) -> None:
    try:
        PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
        with open(PREFERENCES_FILE, 'w') as f:
            json.dump(preferences, f, indent=2)
    except OSError as e:
        logger.error(f"Cannot save preferences to {PREFERENCES_FILE}: {e}")
        raise


def get_preference(key: str) -> Optional[str]:
    return _read_all().get(key)


def set_preference(key: str, value: str) -> None:
    """Store a preference, e.g. the config file picked by `config set-path`."""
    preferences = _read_all()
    preferences[key] = value
    _write_all(preferences)
    logger.info(f"Preference '{key}' set to: {value}")


def clear_preference(key: str) -> None:
    """Drop a preference; clearing an unset key is a no-op."""
    preferences = _read_all()
    if key not in preferences:
        logger.debug(f"Preference '{key}' not set, nothing to clear")
        return
    del preferences[key]
    _write_all(preferences)
    logger.info(f"Preference '{key}' cleared")
