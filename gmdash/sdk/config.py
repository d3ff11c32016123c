"""Configuration management for gmdash.

Handles loading and saving YAML configuration from ~/.config/gmail-dashboard/
and resolving the OAuth client configuration used by the credential manager.
"""

import os
import json
import copy
import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ClientConfigError

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    env_path = os.getenv("GMDASH_CONFIG_DIR")
    if env_path:
        return Path(env_path)
    return Path.home() / ".config" / "gmail-dashboard"


def get_config_file_path() -> Path:
    """
    Get the path to the config file, respecting the GMDASH_CONFIG_FILE env var.
    """
    env_path = os.getenv("GMDASH_CONFIG_FILE")
    if env_path:
        return Path(env_path)
    return get_config_dir() / "config.yaml"


def get_sessions_dir() -> Path:
    """Directory holding one credential blob per CLI session."""
    return get_config_file_path().parent / "sessions"


DEFAULT_CONFIG = {
    "oauth": {
        "client_secrets": None,
        "redirect_uri": None,
        "scopes": None,
    },
    "session": {
        "default": "default",
    },
}


def load_config() -> dict:
    """Load the gmdash configuration from the config file."""
    config_file = get_config_file_path()
    if not config_file.exists():
        logger.debug(f"Config file not found at {config_file}, using default config.")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
            if config is None:
                return copy.deepcopy(DEFAULT_CONFIG)
            return _deep_merge(copy.deepcopy(DEFAULT_CONFIG), config)
    except yaml.YAMLError as e:
        logger.error(f"Error loading config file {config_file}: {e}")
        return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config_data: dict):
    """Save the gmdash configuration to the config file."""
    config_file = get_config_file_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w') as f:
        yaml.safe_dump(config_data, f, default_flow_style=False)
    logger.debug(f"Configuration saved to {config_file}")


def get_config_value(key: str, default: Any = None) -> Any:
    """Retrieve a configuration value using a dot-separated key."""
    config_data = load_config()
    keys = key.split('.')
    value = config_data
    for k in keys:
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return default if value is None else value


def set_config_value(key: str, value: Any):
    """Set a configuration value using a dot-separated key and save."""
    config_data = load_config()
    keys = key.split('.')
    current_level = config_data
    for i, k in enumerate(keys):
        if i == len(keys) - 1:
            current_level[k] = value
        else:
            if k not in current_level or not isinstance(current_level[k], dict):
                current_level[k] = {}
            current_level = current_level[k]
    save_config(config_data)


def load_client_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Resolve the OAuth client configuration.

    Environment variables (GMDASH_CLIENT_ID, GMDASH_CLIENT_SECRET and
    optionally GMDASH_REDIRECT_URI) take precedence over the
    client_secrets.json file named by ``path`` or ``oauth.client_secrets``.

    Returns:
        Dict in the Google client secrets shape, keyed by "web" or "installed".

    Raises:
        ClientConfigError: If no usable client configuration is found.
    """
    client_id = os.getenv("GMDASH_CLIENT_ID")
    client_secret = os.getenv("GMDASH_CLIENT_SECRET")
    if client_id and client_secret:
        redirect_uri = os.getenv("GMDASH_REDIRECT_URI") or "http://localhost:3000/auth/callback"
        return {
            "web": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [redirect_uri],
            }
        }

    secrets_path = path or get_config_value("oauth.client_secrets")
    if not secrets_path:
        secrets_path = get_config_dir() / "client_secrets.json"
    secrets_path = Path(secrets_path).expanduser()

    if not secrets_path.exists():
        raise ClientConfigError(
            f"OAuth client credentials not found at {secrets_path}. "
            "Set GMDASH_CLIENT_ID/GMDASH_CLIENT_SECRET or 'oauth.client_secrets'.",
            operation="load client config",
            target=str(secrets_path),
        )

    try:
        with open(secrets_path) as f:
            client_config = json.load(f)
    except json.JSONDecodeError as e:
        raise ClientConfigError(
            f"Invalid JSON in {secrets_path}: {e}",
            operation="load client config",
            target=str(secrets_path),
        ) from e

    if "web" not in client_config and "installed" not in client_config:
        raise ClientConfigError(
            "Invalid client_secrets.json format. Expected 'installed' or 'web' key.",
            operation="load client config",
            target=str(secrets_path),
        )
    return client_config


def _deep_merge(base: dict, new: dict) -> dict:
    """Recursively merge dictionary `new` into `base`."""
    for k, v in new.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            base[k] = _deep_merge(base[k], v)
        else:
            base[k] = v
    return base
