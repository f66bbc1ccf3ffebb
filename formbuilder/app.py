"""
Application bootstrap for the form builder.
Loads configuration, sets up logging from it and opens an editor session.
"""

from pathlib import Path
from typing import Optional
import logging

from formbuilder.config_loader import get_config_value, load_config
from formbuilder.editor_session import EditorSession
from formbuilder.logging_config import configure_logging
from formbuilder.storage import SchemaStorage

logger = logging.getLogger(__name__)


def create_editor_session(config_path: Optional[Path] = None) -> EditorSession:
    """
    Start the form builder.

    Args:
        config_path: Optional config file (defaults to config.yaml)

    Returns:
        Editor session using the configured storage and editor defaults
    """
    config = load_config(config_path)
    configure_logging(config)

    app_version = get_config_value('app', 'version', 'Unknown', config=config)
    logger.info(f"Starting form builder version: {app_version}")

    return EditorSession(storage=SchemaStorage.from_config(config), config=config)
