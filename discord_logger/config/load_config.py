import os
import logging
import yaml
from .config_model import (
    GlobalConfig,
    ValidationError,
    SecretStr,
)
from discord_logger.utils import merge_with_precedence, split_identifiers

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/config/config.yaml"
TOP_LEVEL_KEYS = ["notifications", "settings", "containers"]

"""
Configuration is loaded from an optional YAML file first, then environment variables are merged in,
allowing environment variables to override YAML values, and YAML to override defaults.
The merged configuration is validated with Pydantic.
"""


class ConfigurationError(Exception):
    """Raised when the config file can not be parsed or no notification endpoint is configured"""
    pass


def load_env_config() -> dict:
    ENV_SETTINGS = {
        "log_level": os.getenv("LOG_LEVEL"),
        "disable_start_message": os.getenv("DISABLE_START_MESSAGE"),
        "disable_shutdown_message": os.getenv("DISABLE_SHUTDOWN_MESSAGE"),
        "disable_container_event_message": os.getenv("DISABLE_CONTAINER_EVENT_MESSAGE"),
        "notification_workers": os.getenv("NOTIFICATION_WORKERS"),
    }
    ENV_DISCORD = {"webhook_url": os.getenv("WEBHOOK_URL")}
    ENV_APPRISE = {"url": os.getenv("APPRISE_URL")}
    ENV_CONTAINERS = split_identifiers(os.getenv("CONTAINERS"))

    env_config = {
        "notifications": {},
        "settings": {},
    }
    if ENV_DISCORD["webhook_url"]:
        env_config["notifications"]["discord"] = ENV_DISCORD
    if ENV_APPRISE["url"]:
        env_config["notifications"]["apprise"] = ENV_APPRISE
    if ENV_CONTAINERS:
        env_config["containers"] = ENV_CONTAINERS
    for key, value in ENV_SETTINGS.items():
        if value is not None:
            env_config["settings"][key] = value
    return env_config


def load_yaml_config(path: str) -> dict | None:
    """Returns None if the file does not exist. Raises ConfigurationError if it can not be parsed."""
    if not os.path.isfile(path):
        logger.debug(f"The path {path} does not exist.")
        return None
    try:
        with open(path, "r") as file:
            yaml_config = yaml.safe_load(file)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing YAML file at {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load {path}: {e}") from e
    if yaml_config is None:
        return {}
    if not isinstance(yaml_config, dict):
        raise ConfigurationError(f"The config file at {path} must contain a mapping at the top level")
    return yaml_config


def load_config(path: str | None = None) -> tuple[GlobalConfig, str | None]:
    """
    Load, merge, and validate the configuration from YAML and environment variables.
    Returns: tuple: (validated_config_object, config_file_path_used)
    """
    path = path or os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH
    yaml_config = load_yaml_config(path)
    if yaml_config is None:
        logger.debug("No config.yaml found, using environment variables only")
        config_path = None
        yaml_config = {}
    else:
        logger.info(f"The config.yaml file was found in {path}.")
        config_path = path

    for key in TOP_LEVEL_KEYS:
        if key not in yaml_config or yaml_config[key] is None:
            yaml_config.pop(key, None)

    merged_config = merge_with_precedence(load_env_config(), yaml_config)
    config = GlobalConfig.model_validate(merged_config)
    if not config.notifications.configured:
        raise ConfigurationError(
            "Please specify the Discord webhook url in environment variable WEBHOOK_URL "
            "(or an Apprise url in APPRISE_URL)."
        )
    yaml_output = get_pretty_yaml_config(config)
    logger.info(f"\n ------------- CONFIG ------------- \n{yaml_output}\n ----------------------------------")
    return config, config_path


def get_pretty_yaml_config(config: GlobalConfig) -> str:
    """
    Convert a Pydantic config object to a pretty-printed YAML string with secrets masked.
    """
    config_dict = prettify_config_dict(config.model_dump(exclude_none=True))
    return yaml.dump(config_dict, default_flow_style=False, sort_keys=False, indent=4)


def prettify_config_dict(data):
    if isinstance(data, dict):
        return {k: prettify_config_dict(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [prettify_config_dict(item) for item in data]
    elif isinstance(data, SecretStr):
        return "**********"
    else:
        return data


def format_pydantic_error(e: ValidationError) -> str:
    """
    Format Pydantic validation errors for user-friendly display.
    """
    error_messages = []
    for error in e.errors():
        location = ".".join(map(str, error["loc"]))
        msg = error["msg"]
        msg = msg.split("[")[0].strip()  # Remove technical details in brackets
        error_messages.append(f"Field '{location}': {msg}")
    return "\n".join(error_messages)
