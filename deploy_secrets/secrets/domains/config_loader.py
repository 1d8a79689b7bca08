"""Configuration loader for deploy-secrets."""
import copy
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .preferences import CONFIG_PATH, get_preference

logger = logging.getLogger(__name__)


STORE_PLATFORMS = ("vercel", "render", "railway", "gcp", "memory")

DEFAULT_CONFIG: Dict[str, Any] = {
    "store": {
        "platform": "vercel",
        "vercel": {"scope": None},
        "render": {
            "api_url": "https://api.render.com/v1",
            "service_ids": {},
        },
        "railway": {
            "api_url": "https://backboard.railway.app/graphql/v2",
            "project_id": None,
            "service_id": None,
            "environment_ids": {},
        },
        "gcp": {"project_id": None},
        "timeout": 30,
    },
    "state_dir": None,
    "audit_log": None,
    "backup_dir": None,
    "report_dir": "security-reports",
    "github": {
        "owner": None,
        "repo": None,
        "api_url": "https://api.github.com",
    },
    "encryption": {
        "passphrase_env": "SECRETS_ENCRYPTION_PASSWORD",
        "at_rest": True,
        "algorithms": ["aes-256-gcm"],
        "allowed_algorithms": ["aes-256-gcm"],
        "key_last_rotated": None,
        "key_rotation_days": 90,
    },
    "rotation": {
        "max_age_days": 90,
    },
    "audit": {
        "recent_days": 30,
        "suspicious_removals": 5,
    },
    "alerts": {
        "webhook_env": "SLACK_WEBHOOK",
        "threshold": 80,
        "timeout": 10,
    },
    "scan": {
        "root": ".",
        "log_paths": [],
        "artifact_dirs": [".next", "dist", "build"],
        "min_confidence": 0,
    },
}


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def default_state_dir() -> Path:
    return Path.home() / ".config" / "deploy-secrets"


def default_config_path() -> Path:
    return default_state_dir() / "config.yml"


def get_config_path() -> Optional[str]:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference (stored in ~/.config/deploy-secrets/preferences.json)
    2. Default location: ~/.config/deploy-secrets/config.yml

    Returns:
        Absolute path to config file, or None when neither exists
    """
    # 1. Check user preference
    config_path_pref = get_preference(CONFIG_PATH)
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    # 2. Check default location
    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    return None


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _finalize(config: Dict[str, Any]) -> Dict[str, Any]:
    """Expand user paths and fill paths derived from ``state_dir``."""
    state_dir = Path(os.path.expanduser(config["state_dir"])) if config["state_dir"] else default_state_dir()
    config["state_dir"] = str(state_dir)
    config["audit_log"] = os.path.expanduser(config["audit_log"] or str(state_dir / "secrets-audit.log"))
    config["backup_dir"] = os.path.expanduser(config["backup_dir"] or str(state_dir / "backups"))
    config["report_dir"] = os.path.expanduser(config["report_dir"])
    return config


def _validate(config: Dict[str, Any], config_path: str) -> None:
    for section in ("store", "github", "encryption", "rotation", "audit", "alerts", "scan"):
        if not isinstance(config.get(section), dict):
            raise ConfigError(f"Section '{section}' in config at {config_path} must be a mapping")

    platform = config["store"].get("platform")
    if platform not in STORE_PLATFORMS:
        raise ConfigError(
            f"Unsupported store platform: {platform}\n"
            f"Supported platforms: {', '.join(STORE_PLATFORMS)}"
        )

    if platform == "gcp":
        auth = config.get("authentication")
        if not auth:
            raise ConfigError(
                f"Missing 'authentication' section in config at {config_path}\n"
                f"Required format:\n"
                f"authentication:\n"
                f"  type: service_account\n"
                f"  service_account_path: /path/to/service-account.json"
            )
        if auth.get("type") != "service_account":
            raise ConfigError(
                f"Unsupported authentication type: {auth.get('type')}\n"
                f"Only 'service_account' is supported."
            )
        service_account_path = auth.get("service_account_path")
        if not service_account_path:
            raise ConfigError(
                "Missing 'authentication.service_account_path' in config\n"
                "Please specify the absolute path to your service account JSON file."
            )
        if not os.path.isfile(service_account_path):
            raise ConfigError(
                f"Service account file not found at: {service_account_path}\n"
                f"Please ensure the file exists or update the path in {config_path}"
            )

    threshold = config["alerts"].get("threshold")
    if not isinstance(threshold, int) or not 0 <= threshold <= 100:
        raise ConfigError(f"'alerts.threshold' must be an integer between 0 and 100, got: {threshold}")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    A missing config file is not an error: built-in defaults are used.

    Args:
        config_path: Explicit path; when omitted the preference/default lookup applies

    Returns:
        Dict containing configuration with keys:
        - store: platform and per-platform settings
        - state_dir, audit_log, backup_dir, report_dir: local paths
        - github, encryption, rotation, audit, alerts, scan: per-tool settings

    Raises:
        ConfigError: If the config file is unreadable, invalid, or incomplete
    """
    # Resolved on every call, never cached at module level
    config_path = config_path or get_config_path()

    if config_path is None:
        logger.debug("No config file found, using built-in defaults")
        config = copy.deepcopy(DEFAULT_CONFIG)
        return _finalize(config)

    if not os.path.exists(config_path):
        raise ConfigError(f"Configuration file not found at: {config_path}")

    # Load YAML
    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if loaded is None:
        logger.warning(f"Config file at {config_path} is empty, using defaults")
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    config = _merge(DEFAULT_CONFIG, loaded)
    _validate(config, config_path)

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using store platform: {config['store']['platform']}")

    return _finalize(config)
