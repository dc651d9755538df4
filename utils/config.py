import copy
import os

import yaml

DEFAULT_CONFIG = {
    "script": {
        "log_file_name": "echosky",
        "session_file": "data/session.json",
    },
    "atproto": {
        "service_url": "https://bsky.social",
        "handle": None,
        "app_password": None,
    },
    "forum": {
        "include_follows": False,
        "fanout_batch_size": 5,
        "follows_limit": 100,
    },
    "retry": {
        "max_attempts": 3,
        "delay": 0.5,
        "backoff": 2.0,
        "max_delay": 30.0,
        "jitter": 0.25,
    },
}

PASSWORD_ENV_VAR = "ECHOSKY_APP_PASSWORD"


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_file: str | None = None) -> dict:
    """
    Load configuration settings from a YAML file on top of DEFAULT_CONFIG.

    Any section or key missing from the file keeps its default, so an empty
    (or absent, when `config_file` is None) file yields a usable config.
    The app password can also come from the ECHOSKY_APP_PASSWORD environment
    variable, which wins over the file.

    Args:
        config_file (str): The file path to the YAML configuration file.

    Returns:
        dict: The merged configuration.

    Raises:
        FileNotFoundError: If `config_file` is given but does not exist.
        ValueError: If the file is not valid YAML or not a mapping.

    Example Usage:
        config = load_config("config/config.yaml")
        print(config["forum"]["include_follows"])
    """
    loaded = {}
    if config_file is not None:
        try:
            with open(config_file, encoding="utf-8") as file:
                loaded = yaml.safe_load(file) or {}
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file {config_file} not found.")
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML file: {e}")

    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration file {config_file} must contain a mapping, got {type(loaded).__name__}.")

    config = _merge(DEFAULT_CONFIG, loaded)

    env_password = os.getenv(PASSWORD_ENV_VAR)
    if env_password:
        config["atproto"]["app_password"] = env_password

    return config
