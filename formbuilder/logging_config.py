"""
Logging setup for the form builder.
Configures the standard logging module from the 'logging' config section.
"""

import logging
from typing import Dict, Any, Optional

from formbuilder.config_loader import get_config_value

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_logging_level(level_str: Optional[str]) -> int:
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    if not isinstance(level_str, str):
        return logging.INFO
    return level_map.get(level_str.upper(), logging.INFO)


def configure_logging(config: Optional[Dict[str, Any]] = None) -> int:
    """
    Configure root logging from configuration.

    Args:
        config: Configuration dictionary (defaults to the cached config)

    Returns:
        The logging level that was applied
    """
    level_str = get_config_value('logging', 'level', 'INFO', config=config)
    log_format = get_config_value('logging', 'format', DEFAULT_FORMAT, config=config)
    level = get_logging_level(level_str)

    logging.basicConfig(level=level, format=log_format)
    logging.getLogger('formbuilder').setLevel(level)
    logging.getLogger(__name__).info(f"Logging configured to level: {logging.getLevelName(level)}")
    return level
