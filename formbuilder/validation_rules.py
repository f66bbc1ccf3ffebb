"""
Validation rule engine for the form builder.
Evaluates a field's rule list against a candidate value and provides the
per-type rule table plus helpers used when editing rules.
"""

import math
import re
from datetime import date
from typing import Dict, Any, Optional, List, Tuple, Union
import logging

from formbuilder.schema_model import (
    BOUND_RULE_TYPES,
    CHOICE_FIELD_TYPES,
    FieldType,
    FieldValue,
    FormField,
    FormSchema,
    ValidationRule,
    ValidationRuleType,
)

logger = logging.getLogger(__name__)

_TEXT_RULES = (
    ValidationRuleType.NOT_EMPTY,
    ValidationRuleType.MIN_LENGTH,
    ValidationRuleType.MAX_LENGTH,
    ValidationRuleType.EMAIL,
    ValidationRuleType.PASSWORD,
)

# Allowed rule types per field type, in display order.
# For number fields minLength/maxLength are value bounds, not character counts.
RULES_BY_FIELD_TYPE: Dict[FieldType, Tuple[ValidationRuleType, ...]] = {
    FieldType.TEXT: _TEXT_RULES,
    FieldType.TEXTAREA: _TEXT_RULES,
    FieldType.NUMBER: (
        ValidationRuleType.NOT_EMPTY,
        ValidationRuleType.MIN_LENGTH,
        ValidationRuleType.MAX_LENGTH,
    ),
    FieldType.SELECT: (ValidationRuleType.NOT_EMPTY,),
    FieldType.RADIO: (ValidationRuleType.NOT_EMPTY,),
    FieldType.CHECKBOX: (ValidationRuleType.NOT_EMPTY,),
    FieldType.DATE: (ValidationRuleType.NOT_EMPTY,),
}

_EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_DIGIT_PATTERN = re.compile(r"[0-9]")
_LOWERCASE_PATTERN = re.compile(r"[a-z]")

PASSWORD_MIN_LENGTH = 8
MIN_BOUND_VALUE = 1

# Marker for a non-empty value that does not parse as a number
_UNPARSABLE = object()


def available_rule_types(field_type: Union[FieldType, str]) -> List[ValidationRuleType]:
    """
    Get the rule types that apply to a field type.

    Args:
        field_type: Field type (enum member or its string value)

    Returns:
        Ordered list of allowed rule types
    """
    return list(RULES_BY_FIELD_TYPE[FieldType(field_type)])


def is_rule_allowed(rule_type: ValidationRuleType, field_type: FieldType) -> bool:
    return ValidationRuleType(rule_type) in RULES_BY_FIELD_TYPE[FieldType(field_type)]


def validate_field(field: FormField, value: FieldValue) -> Optional[str]:
    """
    Validate a value against a field's rules.

    Rules are evaluated in list order and evaluation stops at the first
    failure, so at most one message is returned.

    Args:
        field: Field whose rules apply
        value: Candidate value

    Returns:
        Message of the first failing rule, or None if the value is valid
    """
    for rule in field.validation_rules:
        error = validate_rule(rule, value, field.type)
        if error:
            return error
    return None


def validate_rule(rule: ValidationRule, value: FieldValue, field_type: FieldType) -> Optional[str]:
    """
    Evaluate a single rule.

    Args:
        rule: Rule to evaluate
        value: Candidate value
        field_type: Type of the field the value belongs to

    Returns:
        The rule's message if the value fails it, otherwise None
    """
    text = _as_text(value)

    if rule.type == ValidationRuleType.NOT_EMPTY:
        if field_type == FieldType.CHECKBOX:
            selected = value if isinstance(value, (list, tuple)) else []
            failed = len(selected) == 0
        else:
            failed = not text.strip()

    elif rule.type in BOUND_RULE_TYPES:
        bound = rule.value if rule.value is not None else 0
        if field_type == FieldType.NUMBER:
            number = _as_number(value)
            if number is None:
                # Emptiness is the notEmpty rule's concern
                failed = False
            elif number is _UNPARSABLE:
                failed = True
            elif rule.type == ValidationRuleType.MIN_LENGTH:
                failed = number < bound
            else:
                failed = number > bound
        elif rule.type == ValidationRuleType.MIN_LENGTH:
            failed = len(text) < bound
        else:
            failed = len(text) > bound

    elif rule.type == ValidationRuleType.EMAIL:
        failed = bool(text) and not is_valid_email(text)

    elif rule.type == ValidationRuleType.PASSWORD:
        failed = bool(text) and not is_valid_password(text)

    else:
        failed = False

    return rule.message if failed else None


def is_valid_email(text: str) -> bool:
    """Check the local@domain.tld shape with no whitespace and no consecutive dots."""
    return _EMAIL_PATTERN.fullmatch(text) is not None and ".." not in text


def is_valid_password(text: str) -> bool:
    """Check length of at least 8 with at least one digit and one lowercase letter."""
    return (
        len(text) >= PASSWORD_MIN_LENGTH
        and _DIGIT_PATTERN.search(text) is not None
        and _LOWERCASE_PATTERN.search(text) is not None
    )


def _as_text(value: Any) -> str:
    """String form of a field value; None is the empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ",".join(_as_text(item) for item in value)
    return str(value)


def _as_number(value: Any) -> Any:
    """
    Coerce a value to float.

    Returns None for an empty value and _UNPARSABLE for anything that does
    not parse as a number (NaN included).
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
        return _UNPARSABLE if math.isnan(number) else number
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return _UNPARSABLE
        return _UNPARSABLE if math.isnan(number) else number
    return _UNPARSABLE


def default_rule_message(rule_type: Union[ValidationRuleType, str],
                         field_type: Union[FieldType, str]) -> str:
    """Default user-facing message for a new rule."""
    rule_type = ValidationRuleType(rule_type)
    field_type = FieldType(field_type)

    if rule_type == ValidationRuleType.NOT_EMPTY:
        if field_type == FieldType.CHECKBOX:
            return "Please select at least one option"
        return "This field is required"
    if rule_type == ValidationRuleType.EMAIL:
        return "Please enter a valid email address"
    if rule_type == ValidationRuleType.PASSWORD:
        return "Password must be at least 8 characters with a number"
    if rule_type == ValidationRuleType.MIN_LENGTH:
        if field_type == FieldType.NUMBER:
            return "Value must be at least the minimum"
        return "Minimum length required"
    if rule_type == ValidationRuleType.MAX_LENGTH:
        if field_type == FieldType.NUMBER:
            return "Value must not exceed the maximum"
        return "Maximum length exceeded"
    return "Invalid input"


def normalize_bound(raw: Any, current: Optional[int] = None) -> int:
    """
    Normalize a user-entered min/max bound.

    Args:
        raw: Input as typed by the user
        current: Bound the rule holds now, if any

    Returns:
        1 for a cleared input; the current bound (or 1 without one) for input
        that is not a number or is below 1; otherwise the entered bound
    """
    fallback = current if current is not None else MIN_BOUND_VALUE
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return MIN_BOUND_VALUE
    if isinstance(raw, bool):
        return fallback
    try:
        number = int(float(str(raw).strip()))
    except (ValueError, OverflowError):
        return fallback
    return number if number >= MIN_BOUND_VALUE else fallback


def make_rule(rule_type: Union[ValidationRuleType, str], field_type: Union[FieldType, str],
              value: Any = None, message: Optional[str] = None) -> ValidationRule:
    """
    Build a rule with its default message.

    Bound rules always get a normalized value; other rules never carry one.
    """
    rule_type = ValidationRuleType(rule_type)
    return ValidationRule(
        type=rule_type,
        value=normalize_bound(value) if rule_type in BOUND_RULE_TYPES else None,
        message=message if message is not None else default_rule_message(rule_type, field_type),
    )


def next_addable_rule_type(field: FormField) -> Optional[ValidationRuleType]:
    """First allowed rule type the field does not use yet."""
    used = {rule.type for rule in field.validation_rules}
    for rule_type in RULES_BY_FIELD_TYPE[field.type]:
        if rule_type not in used:
            return rule_type
    return None


def validate_values(schema: FormSchema, values: Dict[str, FieldValue]) -> Dict[str, str]:
    """
    Validate a value snapshot against every field of a schema.

    Args:
        schema: Form schema
        values: Mapping of field id to current value

    Returns:
        Mapping of field id to error message, only for failing fields
    """
    errors = {}
    for field in schema.fields:
        error = validate_field(field, values.get(field.id))
        if error:
            errors[field.id] = error
    if errors:
        logger.debug(f"Form {schema.id}: {len(errors)} field(s) failing validation")
    return errors


def field_config_errors(field: FormField) -> List[str]:
    """
    Check a field configuration before the field panel may be saved.

    Args:
        field: Field being configured

    Returns:
        List of problems; empty if the configuration can be saved
    """
    errors = []

    if not field.label.strip():
        errors.append("Field label is required")

    if field.type in CHOICE_FIELD_TYPES and not field.options:
        errors.append("Add at least one option")

    if field.type == FieldType.NUMBER:
        number = _as_number(field.default_value)
        if number is _UNPARSABLE:
            errors.append("Invalid number format")
        elif number is not None:
            min_rule = field.get_rule(ValidationRuleType.MIN_LENGTH)
            max_rule = field.get_rule(ValidationRuleType.MAX_LENGTH)
            if min_rule and number < (min_rule.value or 0):
                errors.append(f"Value must be at least {min_rule.value}")
            if max_rule and number > (max_rule.value or 0):
                errors.append(f"Value must be at most {max_rule.value}")

    return errors
