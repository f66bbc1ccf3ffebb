"""
Derived value calculator for the form builder.
Computes the value of a derived field from the current values of its parent
fields, and defines which fields may act as parents for each formula.
"""

import math
from datetime import date, datetime
from typing import Dict, Any, Optional, List, Callable, Union
import logging

from dateutil import parser

from formbuilder.schema_model import (
    DerivedFormula,
    FieldType,
    FieldValue,
    FormField,
    FormSchema,
)

logger = logging.getLogger(__name__)

# Which fields may feed each formula. Derived fields never feed a sum, so
# derived-on-derived chains cannot form.
PARENT_COMPATIBILITY: Dict[DerivedFormula, Callable[[FormField], bool]] = {
    DerivedFormula.SUM: lambda f: f.type == FieldType.NUMBER and not f.is_derived,
    DerivedFormula.AGE_FROM_BIRTHDATE: lambda f: f.type == FieldType.DATE,
}

# Maximum number of parents per formula (None = unbounded)
PARENT_LIMIT: Dict[DerivedFormula, Optional[int]] = {
    DerivedFormula.SUM: None,
    DerivedFormula.AGE_FROM_BIRTHDATE: 1,
}


def is_compatible_parent(candidate: FormField, formula: Union[DerivedFormula, str]) -> bool:
    return PARENT_COMPATIBILITY[DerivedFormula(formula)](candidate)


def compatible_parent_fields(schema: FormSchema, field: FormField,
                             formula: Union[DerivedFormula, str]) -> List[FormField]:
    """
    List the fields that may be chosen as parents of a derived field.

    Args:
        schema: Form schema containing the field
        field: The derived field (excluded from the result)
        formula: Formula the parents will feed

    Returns:
        Compatible fields in display order
    """
    formula = DerivedFormula(formula)
    return [
        candidate for candidate in schema.fields
        if candidate.id != field.id and is_compatible_parent(candidate, formula)
    ]


def default_formula(schema: FormSchema, field: FormField) -> DerivedFormula:
    """Formula preselected when a field is made derived: age if any date field exists."""
    has_date_field = any(
        f.type == FieldType.DATE for f in schema.fields if f.id != field.id
    )
    return DerivedFormula.AGE_FROM_BIRTHDATE if has_date_field else DerivedFormula.SUM


def compute_derived_value(field: FormField, current_values: Dict[str, FieldValue],
                          today: Optional[date] = None) -> FieldValue:
    """
    Compute the value of a derived field.

    Never raises: missing or unparsable inputs count as 0.

    Args:
        field: Field to compute
        current_values: Mapping of field id to current value
        today: Reference date for age calculation (defaults to date.today())

    Returns:
        Computed value, or the field's default value if it is not derived
    """
    config = field.derived_config
    if not field.is_derived or config is None:
        return field.default_value if field.default_value is not None else ""

    if config.formula == DerivedFormula.SUM:
        return calculate_sum(config.parent_field_ids, current_values)

    if config.formula == DerivedFormula.AGE_FROM_BIRTHDATE:
        if not config.parent_field_ids:
            return 0
        return calculate_age(current_values.get(config.parent_field_ids[0]), today)

    return ""


def compute_all_derived_values(schema: FormSchema, values: Dict[str, FieldValue],
                               today: Optional[date] = None) -> Dict[str, FieldValue]:
    """
    Recompute every derived field of a schema.

    Called after any value change, not only changes to declared parents.

    Args:
        schema: Form schema
        values: Current value snapshot (not modified)
        today: Reference date for age calculation

    Returns:
        New snapshot with derived values filled in
    """
    updated = dict(values)
    for field in schema.derived_fields():
        updated[field.id] = compute_derived_value(field, values, today)
    return updated


def calculate_sum(parent_field_ids: List[str], values: Dict[str, FieldValue]) -> float:
    total = 0.0
    for field_id in parent_field_ids:
        total += parse_number(values.get(field_id))
    return total


def calculate_age(birthdate_value: Any, today: Optional[date] = None) -> int:
    """
    Whole-year age on `today` for a birthdate value.

    Returns 0 for an absent or unparsable birthdate and never goes negative.
    """
    birthdate = parse_date(birthdate_value)
    if birthdate is None:
        return 0

    today = today or date.today()
    age = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        age -= 1
    return max(0, age)


def parse_number(value: Any) -> float:
    """Parse a value as float; missing, non-numeric or non-finite input gives 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a calendar date.

    Accepts date/datetime instances and any date string dateutil understands
    (ISO dates and datetimes, "1990/03/05", "5 March 1990", ...).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    try:
        return parser.parse(value).date()
    except (ValueError, OverflowError) as e:
        logger.debug(f"Ignoring unparsable date {value!r}: {e}")
        return None
