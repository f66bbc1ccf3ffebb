"""
Schema model for the form builder.
Defines the pydantic models for a form schema and its fields, plus factories
for new fields and schemas.

Persisted data uses camelCase keys (defaultValue, validationRules, ...);
Python code uses the snake_case attribute names.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Dict, Any, Optional, List, Union, Iterable
import logging

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    """Supported input field types."""
    TEXT = "text"
    NUMBER = "number"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"


class ValidationRuleType(str, Enum):
    """Supported validation rule types."""
    NOT_EMPTY = "notEmpty"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    EMAIL = "email"
    PASSWORD = "password"


class DerivedFormula(str, Enum):
    """Formulas available to derived fields."""
    SUM = "sum"
    AGE_FROM_BIRTHDATE = "age_from_birthdate"


# Field types that carry an options list
CHOICE_FIELD_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX})

# Rule types that carry a numeric bound
BOUND_RULE_TYPES = frozenset({ValidationRuleType.MIN_LENGTH, ValidationRuleType.MAX_LENGTH})

FieldValue = Union[bool, int, float, str, date, List[str], None]

DEFAULT_FORM_NAME = "Untitled Form"
DEFAULT_FIELD_LABEL_PREFIX = "Field"


class _SchemaBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class ValidationRule(_SchemaBase):
    """A named constraint with a user-facing message."""
    type: ValidationRuleType
    value: Optional[Union[int, float]] = None
    message: str = ""


class DerivedFieldConfig(_SchemaBase):
    """Inputs and formula of a derived field."""
    parent_field_ids: List[str] = Field(default_factory=list, alias="parentFieldIds")
    formula: DerivedFormula


class FormField(_SchemaBase):
    """A single field of a form schema."""
    id: str = Field(min_length=1)
    type: FieldType
    label: str = ""
    required: bool = False
    default_value: FieldValue = Field(default="", alias="defaultValue")
    validation_rules: List[ValidationRule] = Field(default_factory=list, alias="validationRules")
    options: Optional[List[str]] = None
    is_derived: bool = Field(default=False, alias="isDerived")
    derived_config: Optional[DerivedFieldConfig] = Field(default=None, alias="derivedConfig")

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_FIELD_TYPES

    def get_rule(self, rule_type: Union[ValidationRuleType, str]) -> Optional[ValidationRule]:
        """Return the first rule of the given type, if any."""
        rule_type = ValidationRuleType(rule_type)
        for rule in self.validation_rules:
            if rule.type == rule_type:
                return rule
        return None


class FormSchema(_SchemaBase):
    """Declarative description of a form's fields, in display order."""
    id: str = Field(min_length=1)
    name: str = DEFAULT_FORM_NAME
    fields: List[FormField] = Field(default_factory=list)
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    def get_field(self, field_id: str) -> Optional[FormField]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def field_index(self, field_id: str) -> int:
        """Return the display position of a field, or -1 if it does not exist."""
        for index, field in enumerate(self.fields):
            if field.id == field_id:
                return index
        return -1

    def field_ids(self) -> List[str]:
        return [field.id for field in self.fields]

    def derived_fields(self) -> List[FormField]:
        return [field for field in self.fields if field.is_derived]

    def to_storage_dict(self) -> Dict[str, Any]:
        """Serialize to plain data using the persisted (camelCase) keys."""
        return self.model_dump(by_alias=True, mode='json')


def has_not_empty_rule(rules: Iterable[ValidationRule]) -> bool:
    """
    Authoritative "required" predicate.

    A field is required exactly when its rule list holds a notEmpty rule;
    FormField.required is a cached projection of this.
    """
    return any(rule.type == ValidationRuleType.NOT_EMPTY for rule in rules)


def generate_id() -> str:
    """Generate a unique identifier for a schema or field."""
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.now().isoformat()


def new_field(position: int, label_prefix: str = DEFAULT_FIELD_LABEL_PREFIX,
              field_type: FieldType = FieldType.TEXT) -> FormField:
    """
    Create a fresh field as added by a user.

    Args:
        position: Zero-based position the field will take; used for the label
        label_prefix: Prefix of the generated label
        field_type: Initial field type

    Returns:
        New FormField with no rules and not derived
    """
    field_type = FieldType(field_type)
    return FormField(
        id=generate_id(),
        type=field_type,
        label=f"{label_prefix} {position + 1}",
        required=False,
        default_value=[] if field_type == FieldType.CHECKBOX else "",
        validation_rules=[],
        options=[] if field_type in CHOICE_FIELD_TYPES else None,
        is_derived=False,
    )


def new_schema(name: str = DEFAULT_FORM_NAME) -> FormSchema:
    """Create an empty form schema."""
    timestamp = now_iso()
    schema = FormSchema(
        id=generate_id(),
        name=name,
        fields=[],
        created_at=timestamp,
        updated_at=timestamp,
    )
    logger.debug(f"Created new form schema {schema.id} ({name!r})")
    return schema
