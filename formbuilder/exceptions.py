"""
Custom exception classes for the form builder core.

Every exception carries a message, a context dictionary and a list of
recovery suggestions so callers can log or display them consistently.
"""

import logging
from typing import Optional, Dict, Any, List
from pathlib import Path

logger = logging.getLogger(__name__)


class FormBuilderError(Exception):
    """
    Base exception for form builder errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class ConfigurationLoadError(FormBuilderError):
    """
    Exception raised when configuration file loading fails.

    This includes YAML parsing errors, file not found, permission issues, etc.
    """

    def __init__(self, config_path: Path, original_error: Exception,
                 message: Optional[str] = None):
        self.config_path = config_path
        self.original_error = original_error

        if message is None:
            message = f"Failed to load configuration from {config_path}: {str(original_error)}"

        context = {
            'config_path': str(config_path),
            'original_error_type': type(original_error).__name__,
            'original_error_message': str(original_error)
        }

        recovery_suggestions = [
            "Check if config.yaml exists and is readable",
            "Verify YAML syntax is correct",
            "Application will use default configuration as fallback"
        ]

        super().__init__(message, context, recovery_suggestions)


class StorageError(FormBuilderError):
    """
    Exception raised when a form schema cannot be read from or written to storage.
    """

    def __init__(self, schema_id: str, operation: str, original_error: Optional[Exception] = None,
                 message: Optional[str] = None):
        self.schema_id = schema_id
        self.operation = operation
        self.original_error = original_error

        if message is None:
            detail = f": {original_error}" if original_error is not None else ""
            message = f"Storage {operation} failed for form '{schema_id}'{detail}"

        context = {
            'schema_id': schema_id,
            'operation': operation,
            'original_error_type': type(original_error).__name__ if original_error else None,
        }

        recovery_suggestions = [
            "Check that the storage directory exists and is writable",
            "Verify sufficient disk space is available",
        ]

        super().__init__(message, context, recovery_suggestions)


class SchemaFormatError(StorageError):
    """
    Exception raised when persisted data does not have the shape of a form schema.

    Malformed data is rejected, never repaired.
    """

    def __init__(self, schema_id: str, problems: List[str], path: Optional[Path] = None):
        self.problems = problems
        self.path = path

        message = f"Stored form '{schema_id}' is malformed: {'; '.join(problems) or 'unknown structure'}"
        super().__init__(schema_id, "load", message=message)

        self.context['problems'] = problems
        if path is not None:
            self.context['path'] = str(path)
        self.recovery_suggestions = [
            "Restore the form from a backup copy",
            "Delete the malformed file and recreate the form",
        ]


class NoActiveFormError(FormBuilderError):
    """Raised when an editing operation is attempted with no form open."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"Cannot {operation}: no form is being edited",
            context={'operation': operation},
            recovery_suggestions=["Create a new form or load a saved one first"]
        )


class FieldNotFoundError(FormBuilderError):
    """Raised when a field id does not exist in the current schema."""

    def __init__(self, field_id: str):
        self.field_id = field_id
        super().__init__(
            f"Field '{field_id}' does not exist in this form",
            context={'field_id': field_id}
        )


class UnsavedChangesError(FormBuilderError):
    """Raised when closing a form or field panel would discard unsaved edits."""

    def __init__(self, target: str):
        self.target = target
        super().__init__(
            f"{target} has unsaved changes",
            context={'target': target},
            recovery_suggestions=[
                "Save the changes first",
                "Confirm discarding the changes",
            ]
        )


def log_error_with_context(error: FormBuilderError, operation: str) -> None:
    """
    Log error with full context information.

    Args:
        error: FormBuilderError instance
        operation: Description of the operation that failed
    """
    logger.error(f"Form builder error during {operation}")
    logger.error(f"Error type: {type(error).__name__}")
    logger.error(f"Error message: {error.message}")

    if error.context:
        logger.error("Error context:")
        for key, value in error.context.items():
            logger.error(f"  {key}: {value}")

    if error.recovery_suggestions:
        logger.info("Recovery suggestions:")
        for i, suggestion in enumerate(error.recovery_suggestions, 1):
            logger.info(f"  {i}. {suggestion}")
