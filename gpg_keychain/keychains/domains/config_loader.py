"""Configuration loader for gpg-keychain."""
import copy
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .preferences import get_preference

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "KEYCHAIN_CONFIG"
ROOT_ENV_VAR = "KEYCHAIN_ROOT"

DEFAULTS: Dict[str, Any] = {
    "storage": {
        "root": "~/.keychains",
    },
    "gpg": {
        "binary": "gpg",
        "homedir": None,
        "timeout": 60,
        "key_algo": "default",
        "key_usage": "default",
        "key_expire": "never",
    },
    "identity": {
        "name_real": "keychain {keychain}",
        "name_email": None,
    },
}


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def default_config_path() -> Path:
    return Path.home() / ".config" / "gpg-keychain" / "config.yml"


def _get_config_path() -> Optional[str]:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. KEYCHAIN_CONFIG environment variable
    2. User preference (stored in ~/.config/gpg-keychain/preferences.json)
    3. Default location: ~/.config/gpg-keychain/config.yml

    Returns:
        Absolute path to config file, or None when no config file exists
        (built-in defaults apply)

    Raises:
        ConfigError: If KEYCHAIN_CONFIG names a file that doesn't exist
    """
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        config_path = Path(env_path).expanduser()
        if not config_path.exists():
            raise ConfigError(f"{CONFIG_ENV_VAR} points to a missing file: {config_path}")
        logger.debug(f"Using config from {CONFIG_ENV_VAR}: {config_path}")
        return str(config_path)

    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.debug(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.debug(f"Using default config location: {default_config}")
        return str(default_config)

    logger.debug("No config file found, using built-in defaults")
    return None


def _merge(base: Dict[str, Any], override: Dict[str, Any], config_path: str) -> Dict[str, Any]:
    """Overlay user sections onto the defaults, rejecting unknown shapes."""
    merged = copy.deepcopy(base)
    for section, values in override.items():
        if section not in merged:
            logger.warning(f"Ignoring unknown config section '{section}' in {config_path}")
            continue
        if not isinstance(values, dict):
            raise ConfigError(
                f"Config section '{section}' in {config_path} must be a mapping, "
                f"got {type(values).__name__}"
            )
        merged[section].update(values)
    return merged


def _validate(config: Dict[str, Any], config_path: str) -> None:
    timeout = config["gpg"]["timeout"]
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(
            f"'gpg.timeout' in {config_path} must be a positive number of seconds, got {timeout!r}"
        )

    if not config["gpg"]["binary"]:
        raise ConfigError(f"'gpg.binary' in {config_path} cannot be empty")

    if not config["storage"]["root"]:
        raise ConfigError(f"'storage.root' in {config_path} cannot be empty")

    name_real = config["identity"]["name_real"]
    if not name_real or "{keychain}" not in name_real:
        raise ConfigError(
            f"'identity.name_real' in {config_path} must contain the '{{keychain}}' placeholder"
        )


def load_config() -> Dict[str, Any]:
    """
    Load configuration from YAML file, merged over built-in defaults.

    Returns:
        Dict containing configuration with sections:
        - storage: root
        - gpg: binary, homedir, timeout, key_algo, key_usage, key_expire
        - identity: name_real, name_email

    Raises:
        ConfigError: If the config file is unreadable or invalid
    """
    # Resolved on every call, never cached at module level
    config_path = _get_config_path()

    user_config: Dict[str, Any] = {}
    if config_path:
        try:
            with open(config_path, 'r') as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to read config file at {config_path}: {e}")

        if not isinstance(user_config, dict):
            raise ConfigError(f"Config file at {config_path} must contain a mapping")

    source = config_path or "<defaults>"
    config = _merge(DEFAULTS, user_config, source)

    root_env = os.getenv(ROOT_ENV_VAR)
    if root_env:
        logger.debug(f"Using {ROOT_ENV_VAR} from environment: {root_env}")
        config["storage"]["root"] = root_env

    _validate(config, source)

    logger.debug(f"Configuration loaded from {source}")
    logger.debug(f"Using storage root: {config['storage']['root']}")
    return config


def storage_root(config: Dict[str, Any]) -> Path:
    return Path(config["storage"]["root"]).expanduser()
