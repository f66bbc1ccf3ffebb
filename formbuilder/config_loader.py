"""
Configuration loading utilities for the form builder.

Loads application configuration (storage location, editor defaults,
logging) from a YAML file, falling back to defaults for anything missing.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

from formbuilder.exceptions import ConfigurationLoadError

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("config.yaml")

# Global configuration cache
_config_cache: Optional[Dict[str, Any]] = None


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Form Builder',
            'version': '1.0.0',
            'debug': False
        },
        'storage': {
            'directory': 'forms',
            'format': 'yaml'
        },
        'editor': {
            'default_form_name': 'Untitled Form',
            'field_label_prefix': 'Field'
        },
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        }
    }


def read_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """
    Read a YAML configuration file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Parsed dictionary, or None if the file is empty

    Raises:
        ConfigurationLoadError: If the file cannot be read or parsed
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        raise ConfigurationLoadError(config_path, e)

    if user_config is not None and not isinstance(user_config, dict):
        raise ConfigurationLoadError(
            config_path,
            TypeError(f"expected a mapping, got {type(user_config).__name__}")
        )
    return user_config


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary; defaults when the file is
        missing, empty or invalid
    """
    if config_path is None:
        config_path = CONFIG_FILE
    config_path = Path(config_path)

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        user_config = read_config_file(config_path)
    except ConfigurationLoadError as e:
        logger.error(e.message)
        logger.info("Using default configuration")
        return default_config

    if user_config is None:
        logger.warning(f"Configuration file is empty: {config_path}")
        return default_config

    config = deep_merge(default_config, user_config)
    if not validate_config(config):
        logger.warning(f"Configuration in {config_path} failed validation, using defaults")
        return default_config

    logger.info(f"Successfully loaded configuration from {config_path}")
    return config


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and required fields.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    for section in ('app', 'storage', 'editor', 'logging'):
        if not isinstance(config.get(section), dict):
            logger.warning(f"Missing required configuration section: {section}")
            return False

    storage = config['storage']
    if not isinstance(storage.get('directory'), str) or not storage['directory'].strip():
        logger.warning("storage.directory must be a non-empty string")
        return False
    if storage.get('format') not in ('yaml', 'json'):
        logger.warning(f"storage.format must be 'yaml' or 'json', got {storage.get('format')!r}")
        return False

    editor = config['editor']
    for key in ('default_form_name', 'field_label_prefix'):
        if not isinstance(editor.get(key), str):
            logger.warning(f"editor.{key} must be a string")
            return False

    if not isinstance(config['logging'].get('level'), str):
        logger.warning("logging.level must be a string")
        return False

    return True


def get_config() -> Dict[str, Any]:
    """Get the cached application configuration, loading it on first use."""
    global _config_cache
    if _config_cache is None:
        _config_cache = load_config()
    return _config_cache


def get_config_value(section: str, key: str, default: Any = None,
                     config: Optional[Dict[str, Any]] = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        section: Configuration section name
        key: Key within the section
        default: Value returned when the section or key is missing
        config: Configuration to read (defaults to the cached config)

    Returns:
        Configuration value or default
    """
    if config is None:
        config = get_config()
    section_values = config.get(section)
    if not isinstance(section_values, dict):
        return default
    return section_values.get(key, default)


def save_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration dictionary to save
        config_path: Optional path to save to (defaults to config.yaml)

    Returns:
        True if save was successful, False otherwise
    """
    if config_path is None:
        config_path = CONFIG_FILE

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config, f, default_flow_style=False, indent=2, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")
        return True

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        return False
