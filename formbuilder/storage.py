"""
File-backed storage for form schemas.
Stores one YAML document per form, keyed by schema id, and rejects
persisted data that does not have the shape of a form schema.
"""

import json
import os
import re
import shutil
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple
import logging

import yaml
from pydantic import ValidationError

from formbuilder.exceptions import SchemaFormatError, StorageError, log_error_with_context
from formbuilder.schema_model import FormSchema

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path("forms")
SUPPORTED_SUFFIXES = ('.yaml', '.yml', '.json')
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

_SAFE_ID = re.compile(r"[A-Za-z0-9_-]+")


class SchemaStorage:
    """Storage collaborator for form schemas."""

    def __init__(self, directory: Optional[Path] = None, file_format: str = 'yaml'):
        self.directory = Path(directory) if directory is not None else DEFAULT_STORAGE_DIR
        if file_format not in ('yaml', 'json'):
            raise ValueError(f"Unsupported storage format: {file_format}")
        self.file_format = file_format

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SchemaStorage":
        """Create storage from the 'storage' section of the application config."""
        storage_config = config.get('storage', {}) or {}
        return cls(
            directory=Path(storage_config.get('directory', DEFAULT_STORAGE_DIR)),
            file_format=storage_config.get('format', 'yaml'),
        )

    def _target_path(self, schema_id: str) -> Path:
        suffix = '.json' if self.file_format == 'json' else '.yaml'
        return self.directory / f"{schema_id}{suffix}"

    def _find_path(self, schema_id: str) -> Optional[Path]:
        for suffix in SUPPORTED_SUFFIXES:
            candidate = self.directory / f"{schema_id}{suffix}"
            if candidate.exists():
                return candidate
        return None

    @staticmethod
    def _check_id(schema_id: str, operation: str) -> None:
        if not isinstance(schema_id, str) or not _SAFE_ID.fullmatch(schema_id):
            raise StorageError(
                str(schema_id), operation,
                message=f"Invalid form id {schema_id!r}: only letters, digits, '-' and '_' are allowed"
            )

    def exists(self, schema_id: str) -> bool:
        try:
            self._check_id(schema_id, "lookup")
        except StorageError:
            return False
        return self._find_path(schema_id) is not None

    def read(self, schema_id: str) -> Optional[FormSchema]:
        """
        Read a schema, raising on malformed data.

        Args:
            schema_id: Id of the schema

        Returns:
            The schema, or None if no schema with this id is stored

        Raises:
            SchemaFormatError: If the stored data is not a valid form schema
            StorageError: If the file cannot be read
        """
        self._check_id(schema_id, "load")
        path = self._find_path(schema_id)
        if path is None:
            return None
        return self._read_path(path, schema_id)

    def _read_path(self, path: Path, schema_id: str) -> FormSchema:
        try:
            if path.stat().st_size > MAX_FILE_SIZE:
                raise SchemaFormatError(schema_id, ["file too large"], path)
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SchemaFormatError(schema_id, [f"unparsable file: {e}"], path)
        except OSError as e:
            raise StorageError(schema_id, "load", e)

        if not isinstance(data, dict):
            raise SchemaFormatError(schema_id, ["root element is not a mapping"], path)

        try:
            schema = FormSchema.model_validate(data)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(part) for part in error['loc']) or 'root'}: {error['msg']}"
                for error in e.errors()
            ]
            raise SchemaFormatError(schema_id, problems, path)

        if schema.id != schema_id:
            raise SchemaFormatError(schema_id, [f"stored id {schema.id!r} does not match file name"], path)
        return schema

    def load(self, schema_id: str) -> Optional[FormSchema]:
        """
        Load a schema, treating unreadable or malformed data as absent.

        Args:
            schema_id: Id of the schema

        Returns:
            The schema, or None if it is missing, unreadable or malformed
        """
        try:
            schema = self.read(schema_id)
        except StorageError as e:
            log_error_with_context(e, f"loading form {schema_id}")
            return None

        if schema is None:
            logger.warning(f"Form not found in storage: {schema_id}")
        else:
            logger.info(f"Successfully loaded form: {schema_id}")
        return schema

    def save(self, schema: FormSchema) -> Tuple[bool, Optional[str]]:
        """
        Save a schema with an atomic write.

        Args:
            schema: Schema to persist

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        try:
            self._check_id(schema.id, "save")
        except StorageError as e:
            logger.error(f"Save failed: {e.message}")
            return False, e.message

        target_path = self._target_path(schema.id)
        temp_path = target_path.with_suffix(f"{target_path.suffix}.tmp")
        backup_path = None

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error_msg = f"Cannot create directory {self.directory}: {str(e)}"
            logger.error(f"Save failed for {schema.id}: {error_msg}")
            return False, error_msg

        if target_path.exists():
            try:
                backup_path = target_path.with_suffix(f"{target_path.suffix}.backup")
                shutil.copy2(target_path, backup_path)
                logger.debug(f"Created backup: {backup_path}")
            except OSError as e:
                logger.warning(f"Could not create backup for {target_path}: {e}")
                backup_path = None

        try:
            data = schema.to_storage_dict()
            with open(temp_path, 'w', encoding='utf-8') as f:
                if self.file_format == 'json':
                    json.dump(data, f, indent=2, ensure_ascii=False)
                else:
                    yaml.safe_dump(
                        data,
                        f,
                        default_flow_style=False,
                        indent=2,
                        sort_keys=False,
                        allow_unicode=True,
                        width=float('inf')
                    )
            os.replace(temp_path, target_path)

            # Drop a stale copy in the other format so reads stay unambiguous
            for suffix in SUPPORTED_SUFFIXES:
                other = self.directory / f"{schema.id}{suffix}"
                if other != target_path and other.exists():
                    other.unlink()

            if backup_path and backup_path.exists():
                try:
                    backup_path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove backup {backup_path}: {e}")

            logger.info(f"Successfully saved form: {schema.id} ({schema.name!r})")
            return True, None

        except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
            error_msg = f"Error writing form {schema.id}: {str(e)}"
            logger.error(f"Save failed: {error_msg}")
            return False, error_msg
        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove temp file {temp_path}: {e}")

    def delete(self, schema_id: str) -> Tuple[bool, Optional[str]]:
        """
        Delete a stored schema.

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        try:
            self._check_id(schema_id, "delete")
        except StorageError as e:
            return False, e.message

        path = self._find_path(schema_id)
        if path is None:
            error_msg = f"Form not found: {schema_id}"
            logger.error(f"Delete failed: {error_msg}")
            return False, error_msg

        try:
            path.unlink()
        except OSError as e:
            error_msg = f"Cannot delete {path}: {str(e)}"
            logger.error(f"Delete failed: {error_msg}")
            return False, error_msg

        logger.info(f"Deleted form: {schema_id}")
        return True, None

    def list(self) -> List[Dict[str, Any]]:
        """
        Summaries of every readable stored schema, most recently updated first.

        Malformed files are skipped with a warning.
        """
        if not self.directory.exists():
            return []

        summaries = []
        seen = set()
        for path in sorted(self.directory.iterdir()):
            if path.suffix.lower() not in SUPPORTED_SUFFIXES or not path.is_file():
                continue
            schema_id = path.stem
            if schema_id in seen or not _SAFE_ID.fullmatch(schema_id):
                continue
            seen.add(schema_id)
            try:
                schema = self._read_path(path, schema_id)
            except StorageError as e:
                logger.warning(f"Skipping unreadable form file {path}: {e.message}")
                continue
            summaries.append({
                'id': schema.id,
                'name': schema.name,
                'field_count': len(schema.fields),
                'createdAt': schema.created_at,
                'updatedAt': schema.updated_at,
            })

        summaries.sort(key=lambda summary: summary['updatedAt'], reverse=True)
        return summaries
