import copy
import os

import yaml

DEFAULT_CONFIG = {
    "script": {
        "log_file_name": "skyview",
    },
    "bluesky": {
        "service_url": "https://public.api.bsky.app",
        "parent_height": 100,
        "depth": 100,
        "mention_handle": "@skyview.social",
    },
    "server": {
        "host": "0.0.0.0",
        "port": 3333,
        "static_dir": "static",
        "base_url": "https://skyview.social",
        "meta_cache_size": 1000,
    },
    "bot": {
        "enabled": False,
        "account": "",
        "app_password": "",
        "poll_interval": 30,
    },
}

# Environment variable -> (section, key, cast)
ENV_OVERRIDES = {
    "PORT": ("server", "port", int),
    "SKYVIEW_BLUESKY_ACCOUNT": ("bot", "account", str),
    "SKYVIEW_BLUESKY_PASSWORD": ("bot", "app_password", str),
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_file: str = None, environ=None):
    """
    Load configuration settings from a YAML file.

    The file is layered over DEFAULT_CONFIG, so it only needs the keys it
    changes. Environment variables in ENV_OVERRIDES win over both. With no
    `config_file` the defaults (plus environment) are returned.

    Args:
        config_file (str): The file path to the YAML configuration file.
        environ (dict): Environment mapping, defaults to os.environ.

    Returns:
        dict: The merged configuration.

    Raises:
        Exception: If the file is missing, not valid YAML, or not a mapping.

    Example Usage:
        config = load_config("config/config.yaml")
        port = config["server"]["port"]
    """
    loaded = {}
    if config_file:
        try:
            with open(config_file, encoding="utf-8") as file:
                loaded = yaml.safe_load(file) or {}
        except FileNotFoundError:
            raise Exception(f"Configuration file {config_file} not found.")
        except yaml.YAMLError as e:
            raise Exception(f"Error parsing YAML file: {e}")
        if not isinstance(loaded, dict):
            raise Exception(f"Configuration file {config_file} must contain a mapping.")

    config = _deep_merge(DEFAULT_CONFIG, loaded)

    environ = os.environ if environ is None else environ
    for var, (section, key, cast) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            config.setdefault(section, {})[key] = cast(value)

    return config
