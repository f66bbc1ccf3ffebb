"""
Schema editing actions for the form builder.

Each action takes the current schema value explicitly, returns a new schema
value and never modifies its argument. Every action ends with the
consistency pass and refreshes updated_at.
"""

from typing import Dict, Any, Optional, List, Union, Callable
import logging

from pydantic import ValidationError

from formbuilder.consistency import (
    apply_type_change,
    normalize_schema,
    remove_field,
    set_required,
    set_validation_rules,
)
from formbuilder.derived_fields import compatible_parent_fields, default_formula, PARENT_LIMIT
from formbuilder.exceptions import FieldNotFoundError
from formbuilder.schema_model import (
    BOUND_RULE_TYPES,
    CHOICE_FIELD_TYPES,
    DEFAULT_FIELD_LABEL_PREFIX,
    DerivedFieldConfig,
    DerivedFormula,
    FieldType,
    FormField,
    FormSchema,
    ValidationRule,
    ValidationRuleType,
    new_field,
    now_iso,
)
from formbuilder.validation_rules import (
    is_rule_allowed,
    make_rule,
    next_addable_rule_type,
    normalize_bound,
)

logger = logging.getLogger(__name__)

# Order in which update_field applies a partial update
_UPDATE_ORDER = ('type', 'validation_rules', 'required')


def _commit(schema: FormSchema) -> FormSchema:
    normalized = normalize_schema(schema)
    normalized.updated_at = now_iso()
    return normalized


def _edit_field(schema: FormSchema, field_id: str,
                transform: Callable[[FormField], FormField]) -> FormSchema:
    index = schema.field_index(field_id)
    if index < 0:
        raise FieldNotFoundError(field_id)
    updated = schema.model_copy(deep=True)
    updated.fields[index] = transform(updated.fields[index])
    return _commit(updated)


def rename_form(schema: FormSchema, name: str) -> FormSchema:
    updated = schema.model_copy(deep=True)
    updated.name = name
    return _commit(updated)


def add_field(schema: FormSchema, field: Optional[FormField] = None,
              label_prefix: str = DEFAULT_FIELD_LABEL_PREFIX) -> FormSchema:
    """
    Append a field to the schema.

    Args:
        schema: Schema to edit
        field: Field to add; a fresh text field is created when omitted
        label_prefix: Label prefix for a generated field

    Returns:
        Updated schema
    """
    if field is None:
        field = new_field(len(schema.fields), label_prefix)
    updated = schema.model_copy(deep=True)
    updated.fields.append(field.model_copy(deep=True))
    logger.info(f"Added field {field.id} ({field.type.value}) to form {schema.id}")
    return _commit(updated)


def update_field(schema: FormSchema, field_id: str, **updates: Any) -> FormSchema:
    """
    Apply a partial update to a field.

    Type changes, rule lists and the required flag are routed through the
    consistency helpers so their dependent state is kept in sync. A new
    default value is converted for the field's (possibly new) type, and the
    remaining attributes are validated by the FormField model.

    Args:
        schema: Schema to edit
        field_id: Field to update
        **updates: FormField attribute names and new values

    Returns:
        Updated schema

    Raises:
        FieldNotFoundError: If the field does not exist
        ValueError: If an update key is not a field attribute or a value
            does not fit the attribute
    """
    allowed = set(FormField.model_fields) - {'id'}
    unknown = sorted(set(updates) - allowed)
    if unknown:
        raise ValueError(f"Cannot update field attribute(s): {unknown}")

    def transform(field: FormField) -> FormField:
        if 'type' in updates:
            field = apply_type_change(field, updates['type'])
        if 'validation_rules' in updates:
            rules = [ValidationRule.model_validate(rule) if isinstance(rule, dict) else rule
                     for rule in updates['validation_rules']]
            field = set_validation_rules(field, rules)
        if 'required' in updates:
            field = set_required(field, bool(updates['required']))

        plain_updates = {
            name: value for name, value in updates.items()
            if name not in _UPDATE_ORDER and name != 'default_value'
        }
        if plain_updates:
            data = field.model_dump()
            data.update(plain_updates)
            try:
                field = FormField.model_validate(data)
            except ValidationError as e:
                raise ValueError(f"Invalid update for field {field_id}: {e}") from e

        if 'default_value' in updates:
            field = _with_default_value(field, updates['default_value'])
        return field

    return _edit_field(schema, field_id, transform)


def delete_field(schema: FormSchema, field_id: str) -> FormSchema:
    if schema.get_field(field_id) is None:
        raise FieldNotFoundError(field_id)
    logger.info(f"Deleting field {field_id} from form {schema.id}")
    updated = remove_field(schema, field_id)
    updated.updated_at = now_iso()
    return updated


def reorder_fields(schema: FormSchema, field_ids: List[str]) -> FormSchema:
    """
    Put the fields in a new display order.

    Raises:
        ValueError: If field_ids is not a permutation of the current ids
    """
    if sorted(field_ids) != sorted(schema.field_ids()):
        raise ValueError("Reordered field ids must match the form's fields exactly")
    by_id = {field.id: field for field in schema.fields}
    updated = schema.model_copy(deep=True)
    updated.fields = [by_id[field_id].model_copy(deep=True) for field_id in field_ids]
    return _commit(updated)


def move_field(schema: FormSchema, from_index: int, to_index: int) -> FormSchema:
    """Move one field to a new position (clamped to the list bounds)."""
    if not 0 <= from_index < len(schema.fields):
        raise IndexError(f"No field at position {from_index}")
    updated = schema.model_copy(deep=True)
    field = updated.fields.pop(from_index)
    to_index = max(0, min(to_index, len(updated.fields)))
    updated.fields.insert(to_index, field)
    return _commit(updated)


def change_field_type(schema: FormSchema, field_id: str,
                      new_type: Union[FieldType, str]) -> FormSchema:
    return _edit_field(schema, field_id, lambda field: apply_type_change(field, new_type))


def set_field_required(schema: FormSchema, field_id: str, required: bool) -> FormSchema:
    return _edit_field(schema, field_id, lambda field: set_required(field, required))


def set_field_label(schema: FormSchema, field_id: str, label: str) -> FormSchema:
    return update_field(schema, field_id, label=label)


def set_default_value(schema: FormSchema, field_id: str, raw: Any) -> FormSchema:
    """
    Set a field's default value from user input.

    Number fields store a float, or the empty string when the input is
    cleared or not a number. Checkbox fields store a list.
    """
    return _edit_field(schema, field_id, lambda field: _with_default_value(field, raw))


def _with_default_value(field: FormField, raw: Any) -> FormField:
    field = field.model_copy(deep=True)
    if field.type == FieldType.NUMBER:
        field.default_value = _parse_number_input(raw)
    elif field.type == FieldType.CHECKBOX:
        field.default_value = list(raw) if isinstance(raw, (list, tuple)) else []
    else:
        field.default_value = raw
    return field


def _parse_number_input(raw: Any) -> Any:
    if isinstance(raw, bool) or raw is None:
        return ""
    if isinstance(raw, (int, float)):
        return raw
    text = str(raw).strip()
    if not text:
        return ""
    try:
        return float(text)
    except ValueError:
        return ""


# Validation rule editing

def set_rules(schema: FormSchema, field_id: str, rules: List[ValidationRule]) -> FormSchema:
    return _edit_field(schema, field_id, lambda field: set_validation_rules(field, rules))


def add_rule(schema: FormSchema, field_id: str,
             rule_type: Optional[Union[ValidationRuleType, str]] = None,
             value: Any = None, message: Optional[str] = None) -> FormSchema:
    """
    Append a validation rule to a field.

    When rule_type is omitted, the first allowed type the field does not use
    yet is added. A field that already uses every allowed type is returned
    unchanged.

    Raises:
        ValueError: If the rule type does not apply to the field type or is already present
    """
    field = schema.get_field(field_id)
    if field is None:
        raise FieldNotFoundError(field_id)

    if rule_type is None:
        rule_type = next_addable_rule_type(field)
        if rule_type is None:
            logger.info(f"Field {field_id} already uses every available rule type")
            return schema.model_copy(deep=True)

    rule_type = ValidationRuleType(rule_type)
    if not is_rule_allowed(rule_type, field.type):
        raise ValueError(f"Rule '{rule_type.value}' does not apply to {field.type.value} fields")
    if field.get_rule(rule_type) is not None:
        raise ValueError(f"Field already has a '{rule_type.value}' rule")

    rule = make_rule(rule_type, field.type, value=value, message=message)
    return _edit_field(
        schema, field_id,
        lambda f: set_validation_rules(f, list(f.validation_rules) + [rule])
    )


def update_rule(schema: FormSchema, field_id: str, index: int,
                rule_type: Optional[Union[ValidationRuleType, str]] = None,
                value: Any = None, message: Optional[str] = None) -> FormSchema:
    """
    Edit one rule of a field.

    Changing the rule type resets its message to the default and its bound
    to the minimum. Clearing a bound sets it to 1; input that is not a
    number of at least 1 leaves the bound unchanged.
    """
    def transform(field: FormField) -> FormField:
        rules = list(field.validation_rules)
        if not 0 <= index < len(rules):
            raise IndexError(f"Field {field_id} has no rule at position {index}")

        rule = rules[index]
        if rule_type is not None and ValidationRuleType(rule_type) != rule.type:
            rule = make_rule(rule_type, field.type)
        else:
            rule = rule.model_copy()

        if value is not None and rule.type in BOUND_RULE_TYPES:
            rule.value = normalize_bound(value, current=rule.value)
        if message is not None:
            rule.message = message

        rules[index] = rule
        return set_validation_rules(field, rules)

    return _edit_field(schema, field_id, transform)


def delete_rule(schema: FormSchema, field_id: str, index: int) -> FormSchema:
    """Remove one rule; removing notEmpty makes the field optional."""
    def transform(field: FormField) -> FormField:
        if not 0 <= index < len(field.validation_rules):
            raise IndexError(f"Field {field_id} has no rule at position {index}")
        rules = [rule for i, rule in enumerate(field.validation_rules) if i != index]
        return set_validation_rules(field, rules)

    return _edit_field(schema, field_id, transform)


# Option editing for select/radio/checkbox fields

def _require_choice_field(field: FormField) -> None:
    if field.type not in CHOICE_FIELD_TYPES:
        raise ValueError(f"{field.type.value} fields do not have options")


def add_option(schema: FormSchema, field_id: str, option: str) -> FormSchema:
    option = option.strip()

    def transform(field: FormField) -> FormField:
        _require_choice_field(field)
        field = field.model_copy(deep=True)
        if option:
            field.options = list(field.options or []) + [option]
        return field

    return _edit_field(schema, field_id, transform)


def update_option(schema: FormSchema, field_id: str, index: int, value: str) -> FormSchema:
    """
    Rename an option; default values that selected the old text follow the rename.

    Renaming an option to blank text removes it.
    """
    value = value.strip()
    if not value:
        return delete_option(schema, field_id, index)

    def transform(field: FormField) -> FormField:
        _require_choice_field(field)
        options = list(field.options or [])
        if not 0 <= index < len(options):
            raise IndexError(f"Field {field_id} has no option at position {index}")

        field = field.model_copy(deep=True)
        old_value = options[index]
        options[index] = value
        field.options = options

        if field.type == FieldType.CHECKBOX:
            defaults = field.default_value if isinstance(field.default_value, list) else []
            field.default_value = [value if item == old_value else item for item in defaults]
        elif field.default_value == old_value:
            field.default_value = value
        return field

    return _edit_field(schema, field_id, transform)


def delete_option(schema: FormSchema, field_id: str, index: int) -> FormSchema:
    def transform(field: FormField) -> FormField:
        _require_choice_field(field)
        options = list(field.options or [])
        if not 0 <= index < len(options):
            raise IndexError(f"Field {field_id} has no option at position {index}")

        field = field.model_copy(deep=True)
        removed = options.pop(index)
        field.options = options

        if field.type == FieldType.CHECKBOX:
            defaults = field.default_value if isinstance(field.default_value, list) else []
            field.default_value = [item for item in defaults if item != removed]
        elif field.default_value == removed:
            field.default_value = ""
        return field

    return _edit_field(schema, field_id, transform)


# Derived field configuration

def make_derived(schema: FormSchema, field_id: str,
                 formula: Optional[Union[DerivedFormula, str]] = None,
                 parent_field_ids: Optional[List[str]] = None) -> FormSchema:
    """
    Turn a number field into a derived field.

    When formula is omitted, age_from_birthdate is chosen if the form has a
    date field, otherwise sum. When parent_field_ids is omitted, every
    compatible field is used (the first one for age_from_birthdate). If no
    compatible parent exists the consistency pass leaves the field plain.

    Raises:
        ValueError: If the field is not a number field
    """
    field = schema.get_field(field_id)
    if field is None:
        raise FieldNotFoundError(field_id)
    if field.type != FieldType.NUMBER:
        raise ValueError("Only number fields can be derived")

    formula = DerivedFormula(formula) if formula is not None else default_formula(schema, field)
    if parent_field_ids is None:
        parent_field_ids = [f.id for f in compatible_parent_fields(schema, field, formula)]
        limit = PARENT_LIMIT[formula]
        if limit is not None:
            parent_field_ids = parent_field_ids[:limit]

    config = DerivedFieldConfig(parent_field_ids=list(parent_field_ids), formula=formula)

    def transform(f: FormField) -> FormField:
        f = f.model_copy(deep=True)
        f.is_derived = True
        f.derived_config = config
        return f

    updated = _edit_field(schema, field_id, transform)
    if not updated.get_field(field_id).is_derived:
        logger.info(f"Field {field_id} has no compatible parents for {formula.value}; left as a plain field")
    return updated


def set_derived_formula(schema: FormSchema, field_id: str,
                        formula: Union[DerivedFormula, str]) -> FormSchema:
    """Switch the formula of a derived field; parents are re-chosen for the new formula."""
    return make_derived(schema, field_id, formula=formula)


def set_derived_parents(schema: FormSchema, field_id: str, parent_field_ids: List[str]) -> FormSchema:
    field = schema.get_field(field_id)
    if field is None:
        raise FieldNotFoundError(field_id)
    if not field.is_derived or field.derived_config is None:
        raise ValueError(f"Field {field_id} is not a derived field")
    return make_derived(schema, field_id, field.derived_config.formula, parent_field_ids)


def clear_derived(schema: FormSchema, field_id: str) -> FormSchema:
    def transform(field: FormField) -> FormField:
        field = field.model_copy(deep=True)
        field.is_derived = False
        field.derived_config = None
        return field

    return _edit_field(schema, field_id, transform)


def replace_field(schema: FormSchema, field: FormField) -> FormSchema:
    """Replace a field wholesale by id (used to revert a field to a snapshot)."""
    return _edit_field(schema, field.id, lambda _: field.model_copy(deep=True))


# Actions that edit a single field; they all take (schema, field_id, ...)
FIELD_ACTIONS: Dict[str, Callable[..., FormSchema]] = {
    'update_field': update_field,
    'change_field_type': change_field_type,
    'set_field_required': set_field_required,
    'set_field_label': set_field_label,
    'set_default_value': set_default_value,
    'set_rules': set_rules,
    'add_rule': add_rule,
    'update_rule': update_rule,
    'delete_rule': delete_rule,
    'add_option': add_option,
    'update_option': update_option,
    'delete_option': delete_option,
    'make_derived': make_derived,
    'set_derived_formula': set_derived_formula,
    'set_derived_parents': set_derived_parents,
    'clear_derived': clear_derived,
}
