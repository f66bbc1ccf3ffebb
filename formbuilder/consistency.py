"""
Consistency maintainer for the form builder.
Re-normalizes a form schema after structural edits so that rules, options,
required flags and derived-field references stay valid.

Every function here returns a new value and leaves its input untouched.
Running normalize_schema on an already consistent schema returns an equal
schema.
"""

import math
from typing import Dict, Any, List, Union
import logging

from formbuilder.derived_fields import PARENT_LIMIT, is_compatible_parent
from formbuilder.schema_model import (
    BOUND_RULE_TYPES,
    CHOICE_FIELD_TYPES,
    FieldType,
    FieldValue,
    FormField,
    FormSchema,
    ValidationRule,
    ValidationRuleType,
    generate_id,
    has_not_empty_rule,
)
from formbuilder.validation_rules import default_rule_message, is_rule_allowed

logger = logging.getLogger(__name__)


def coerce_default_for_type(old_type: FieldType, new_type: FieldType,
                            default_value: FieldValue) -> FieldValue:
    """
    Convert a default value when a field changes type.

    Args:
        old_type: Previous field type
        new_type: New field type
        default_value: Current default value

    Returns:
        Default value representation suitable for the new type
    """
    old_type = FieldType(old_type)
    new_type = FieldType(new_type)

    if old_type == new_type:
        return default_value
    if new_type == FieldType.CHECKBOX:
        return []
    if old_type in (FieldType.CHECKBOX, FieldType.DATE):
        return ""
    if new_type == FieldType.NUMBER:
        return _parse_default_number(default_value)
    return default_value


def _parse_default_number(value: FieldValue) -> FieldValue:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return ""
        return "" if math.isnan(number) else number
    return ""


def filter_rules_for_type(rules: List[ValidationRule], field_type: FieldType) -> List[ValidationRule]:
    """Keep rules allowed for the field type, dropping repeated rule types (first wins)."""
    kept = []
    seen = set()
    for rule in rules:
        if rule.type in seen or not is_rule_allowed(rule.type, field_type):
            continue
        seen.add(rule.type)
        kept.append(rule)
    return kept


def apply_type_change(field: FormField, new_type: Union[FieldType, str]) -> FormField:
    """
    Change a field's type and clean up everything that depended on the old type.

    Args:
        field: Field to change
        new_type: New field type

    Returns:
        Updated copy of the field
    """
    new_type = FieldType(new_type)
    updated = field.model_copy(deep=True)
    if new_type == field.type:
        return updated

    updated.type = new_type
    rules = filter_rules_for_type(field.validation_rules, new_type)
    if (field.type == FieldType.NUMBER) != (new_type == FieldType.NUMBER):
        # Value bounds and character counts do not carry over
        rules = [rule for rule in rules if rule.type not in BOUND_RULE_TYPES]
    updated.validation_rules = rules
    updated.required = has_not_empty_rule(updated.validation_rules)

    if new_type in CHOICE_FIELD_TYPES:
        updated.options = list(field.options or [])
    else:
        updated.options = None

    if new_type != FieldType.NUMBER:
        updated.is_derived = False
        updated.derived_config = None

    updated.default_value = coerce_default_for_type(field.type, new_type, field.default_value)

    logger.debug(
        f"Field {field.id} type {field.type.value} -> {new_type.value}: "
        f"{len(field.validation_rules) - len(updated.validation_rules)} rule(s) dropped"
    )
    return updated


def set_required(field: FormField, required: bool) -> FormField:
    """
    Toggle the required flag through the rule list.

    Turning it on inserts a notEmpty rule at the head of the list when none
    exists; turning it off removes every notEmpty rule.
    """
    updated = field.model_copy(deep=True)
    rules = list(updated.validation_rules)

    if required:
        if not has_not_empty_rule(rules):
            rules.insert(0, ValidationRule(
                type=ValidationRuleType.NOT_EMPTY,
                message=default_rule_message(ValidationRuleType.NOT_EMPTY, field.type),
            ))
    else:
        rules = [rule for rule in rules if rule.type != ValidationRuleType.NOT_EMPTY]

    updated.validation_rules = rules
    updated.required = has_not_empty_rule(rules)
    return updated


def set_validation_rules(field: FormField, rules: List[ValidationRule]) -> FormField:
    """Replace a field's rule list; required follows notEmpty membership."""
    updated = field.model_copy(deep=True)
    updated.validation_rules = [rule.model_copy() for rule in rules]
    updated.required = has_not_empty_rule(updated.validation_rules)
    return updated


def normalize_field(field: FormField) -> FormField:
    """
    Restore the field-local invariants (rules, required, options, derived flags).

    Parent references are checked separately because they depend on the
    other fields of the schema.
    """
    updated = field.model_copy(deep=True)

    updated.validation_rules = filter_rules_for_type(updated.validation_rules, updated.type)
    updated.required = has_not_empty_rule(updated.validation_rules)

    if updated.type in CHOICE_FIELD_TYPES:
        updated.options = [option for option in (updated.options or []) if option.strip()]
    else:
        updated.options = None

    if updated.type != FieldType.NUMBER or updated.derived_config is None:
        updated.is_derived = False
    if not updated.is_derived:
        updated.derived_config = None

    return updated


def prune_derived_parents(field: FormField, fields_by_id: Dict[str, FormField]) -> FormField:
    """
    Drop parent references that no longer exist or no longer fit the formula.

    A sum left without parents, or an age formula left without a date
    parent, demotes the field to a plain field.

    Args:
        field: Field to check
        fields_by_id: All fields of the schema, keyed by id

    Returns:
        Updated copy of the field
    """
    if not field.is_derived or field.derived_config is None:
        return field

    config = field.derived_config
    valid_ids = []
    for parent_id in config.parent_field_ids:
        parent = fields_by_id.get(parent_id)
        if parent is None or parent_id == field.id or parent_id in valid_ids:
            continue
        if is_compatible_parent(parent, config.formula):
            valid_ids.append(parent_id)

    limit = PARENT_LIMIT[config.formula]
    if limit is not None:
        valid_ids = valid_ids[:limit]

    if valid_ids and valid_ids == config.parent_field_ids:
        return field

    updated = field.model_copy(deep=True)
    if not valid_ids:
        logger.debug(f"Derived field {field.id} lost all parents; demoting to a plain field")
        updated.is_derived = False
        updated.derived_config = None
    else:
        logger.debug(
            f"Derived field {field.id} parents pruned: "
            f"{config.parent_field_ids} -> {valid_ids}"
        )
        updated.derived_config.parent_field_ids = valid_ids
    return updated


def normalize_schema(schema: FormSchema) -> FormSchema:
    """
    Run the full consistency pass over a schema.

    Args:
        schema: Schema to normalize

    Returns:
        Normalized copy of the schema; updated_at is left untouched
    """
    fields = []
    seen_ids = set()
    for field in schema.fields:
        normalized = normalize_field(field)
        if normalized.id in seen_ids:
            new_id = generate_id()
            logger.warning(f"Duplicate field id {normalized.id} in form {schema.id}; reassigned to {new_id}")
            normalized.id = new_id
        seen_ids.add(normalized.id)
        fields.append(normalized)

    # Parents are judged against the field-local state of every field
    fields_by_id = {field.id: field for field in fields}
    fields = [prune_derived_parents(field, fields_by_id) for field in fields]

    normalized_schema = schema.model_copy(deep=True)
    normalized_schema.fields = fields
    return normalized_schema


def remove_field(schema: FormSchema, field_id: str) -> FormSchema:
    """
    Remove a field and repair every derived field that referenced it.

    Args:
        schema: Schema to edit
        field_id: Id of the field to remove

    Returns:
        Normalized copy of the schema without the field
    """
    pruned = schema.model_copy(deep=True)
    pruned.fields = [field for field in pruned.fields if field.id != field_id]
    if len(pruned.fields) == len(schema.fields):
        logger.warning(f"Field {field_id} not found in form {schema.id}; nothing removed")
    return normalize_schema(pruned)


def find_inconsistencies(schema: FormSchema) -> List[Dict[str, Any]]:
    """
    Describe the fields the consistency pass would change.

    Returns:
        List of {'field_id', 'problem'} entries; empty for a consistent schema
    """
    problems = []
    normalized = normalize_schema(schema)
    for before, after in zip(schema.fields, normalized.fields):
        if before.id != after.id:
            problems.append({'field_id': before.id, 'problem': 'duplicate id'})
        elif before != after:
            changed = [
                name for name in type(before).model_fields
                if getattr(before, name) != getattr(after, name)
            ]
            problems.append({'field_id': before.id, 'problem': f"inconsistent {', '.join(changed)}"})
    return problems
