"""
Form preview for the form builder.
Drives a value snapshot for a schema: starts from the field defaults,
recomputes derived fields on every change and keeps the per-field errors
shown to the user.
"""

from datetime import date
from typing import Dict, Any, Optional
import logging

from formbuilder.derived_fields import compute_all_derived_values
from formbuilder.schema_model import FieldValue, FormSchema
from formbuilder.validation_rules import validate_values

logger = logging.getLogger(__name__)


def _is_empty(value: FieldValue) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def initial_values(schema: FormSchema) -> Dict[str, FieldValue]:
    """
    Starting value snapshot for a schema.

    Only non-derived fields with a non-empty default get an entry.
    """
    values = {}
    for field in schema.fields:
        if field.is_derived or _is_empty(field.default_value):
            continue
        default = field.default_value
        values[field.id] = list(default) if isinstance(default, list) else default
    return values


class FormPreview:
    """
    Value snapshot and error state for filling in a form.

    Args:
        schema: Form schema to preview
        today: Reference date for age calculation (defaults to date.today())
    """

    def __init__(self, schema: FormSchema, today: Optional[date] = None):
        self.schema = schema
        self.today = today
        self.errors: Dict[str, str] = {}
        self.values: Dict[str, FieldValue] = compute_all_derived_values(
            schema, initial_values(schema), today)

    def set_value(self, field_id: str, value: FieldValue) -> Dict[str, FieldValue]:
        """
        Change one value and recompute every derived field.

        The field's displayed error is cleared until the next validate().

        Returns:
            The updated value snapshot
        """
        field = self.schema.get_field(field_id)
        if field is None:
            raise KeyError(f"Unknown field: {field_id}")
        if field.is_derived:
            logger.debug(f"Ignoring direct value for derived field {field_id}")
            return self.values

        values = dict(self.values)
        values[field_id] = value
        self.values = compute_all_derived_values(self.schema, values, self.today)
        self.errors.pop(field_id, None)
        return self.values

    def validate(self) -> Dict[str, str]:
        """Validate every field and keep the error mapping."""
        self.errors = validate_values(self.schema, self.values)
        return self.errors

    @property
    def is_valid(self) -> bool:
        return not validate_values(self.schema, self.values)

    def clear(self) -> None:
        """Empty all values and errors."""
        self.values = {}
        self.errors = {}

    def stats(self) -> Dict[str, Any]:
        """
        Summary counts for the preview.

        Returns:
            Dictionary with total fields, filled fields and error count
        """
        filled = sum(
            1 for field in self.schema.fields
            if not _is_empty(self.values.get(field.id))
        )
        return {
            'total': len(self.schema.fields),
            'filled': filled,
            'errors': len(self.errors),
        }
