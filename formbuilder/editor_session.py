"""
Editing session for the form builder.

Tracks the form being edited, whether it has unsaved changes relative to the
last saved snapshot, and the field currently opened in the field panel.
All schema changes go through formbuilder.schema_actions; the session only
holds the resulting values and the clean/dirty bookkeeping.
"""

from enum import Enum
from datetime import date
from typing import Dict, Any, Optional, List, Tuple
import logging

from formbuilder import schema_actions
from formbuilder.config_loader import get_config_value
from formbuilder.consistency import normalize_schema
from formbuilder.diff_utils import (
    describe_changes,
    diff_schemas,
    get_change_summary,
    get_field_changes,
)
from formbuilder.exceptions import (
    FieldNotFoundError,
    NoActiveFormError,
    UnsavedChangesError,
)
from formbuilder.form_preview import FormPreview
from formbuilder.schema_model import (
    DEFAULT_FIELD_LABEL_PREFIX,
    DEFAULT_FORM_NAME,
    FieldType,
    FormField,
    FormSchema,
    new_field,
    new_schema,
)
from formbuilder.storage import SchemaStorage
from formbuilder.validation_rules import field_config_errors

logger = logging.getLogger(__name__)


class EditorState(str, Enum):
    """Schema-level editing state."""
    NO_ACTIVE_FORM = "no_active_form"
    CLEAN = "clean"
    DIRTY = "dirty"


class FieldEditSession:
    """
    State of the field panel for one field.

    Attributes:
        field_id: Id of the opened field
        snapshot: Copy of the field taken when it was opened or last saved
        unsaved: True while the field has edits not yet saved in the panel
    """

    def __init__(self, field: FormField):
        self.field_id = field.id
        self.snapshot = field.model_copy(deep=True)
        self.unsaved = False

    def __repr__(self) -> str:
        return f"FieldEditSession(field_id={self.field_id!r}, unsaved={self.unsaved})"


class EditorSession:
    """
    Editing session for a single form at a time.

    Args:
        storage: Storage collaborator (built from config when omitted)
        config: Application configuration (defaults to the cached config)
    """

    def __init__(self, storage: Optional[SchemaStorage] = None,
                 config: Optional[Dict[str, Any]] = None):
        self.config = config
        if storage is None:
            storage = SchemaStorage.from_config(config) if config is not None else SchemaStorage()
        self.storage = storage

        self.default_form_name = get_config_value(
            'editor', 'default_form_name', DEFAULT_FORM_NAME, config=config)
        self.field_label_prefix = get_config_value(
            'editor', 'field_label_prefix', DEFAULT_FIELD_LABEL_PREFIX, config=config)

        self.schema: Optional[FormSchema] = None
        self.saved_snapshot: Optional[FormSchema] = None
        self.field_session: Optional[FieldEditSession] = None
        self.state = EditorState.NO_ACTIVE_FORM

    # State bookkeeping

    @property
    def has_active_form(self) -> bool:
        return self.schema is not None

    @property
    def is_dirty(self) -> bool:
        return self.state == EditorState.DIRTY

    def _require_form(self, operation: str) -> FormSchema:
        if self.schema is None:
            raise NoActiveFormError(operation)
        return self.schema

    def _mark_dirty(self) -> None:
        self.state = EditorState.DIRTY

    def _mark_clean(self) -> None:
        self.state = EditorState.CLEAN

    def _activate(self, schema: FormSchema) -> None:
        self.schema = schema
        self.saved_snapshot = schema.model_copy(deep=True)
        self.field_session = None
        self._mark_clean()

    def _apply(self, updated: FormSchema) -> FormSchema:
        self.schema = updated
        self._mark_dirty()
        # The open field may have been removed by the action
        if self.field_session and updated.get_field(self.field_session.field_id) is None:
            logger.info(f"Closing field panel: field {self.field_session.field_id} no longer exists")
            self.field_session = None
        return updated

    # Form lifecycle

    def create_form(self, name: Optional[str] = None) -> FormSchema:
        """
        Start editing a new, empty form.

        Raises:
            UnsavedChangesError: If the current form has unsaved changes
        """
        if self.is_dirty:
            raise UnsavedChangesError(f"Form '{self.schema.name}'")
        schema = new_schema(name if name is not None else self.default_form_name)
        self._activate(schema)
        logger.info(f"Created form {schema.id} ({schema.name!r})")
        return schema

    def load_form(self, schema_id: str) -> bool:
        """
        Open a stored form for editing.

        Args:
            schema_id: Id of the stored form

        Returns:
            True if the form was loaded; False if it is missing or malformed,
            in which case no form is active

        Raises:
            UnsavedChangesError: If the current form has unsaved changes
        """
        if self.is_dirty:
            raise UnsavedChangesError(f"Form '{self.schema.name}'")

        schema = self.storage.load(schema_id)
        if schema is None:
            self.schema = None
            self.saved_snapshot = None
            self.field_session = None
            self.state = EditorState.NO_ACTIVE_FORM
            return False

        # Stored data may predate the current consistency rules
        normalized = normalize_schema(schema)
        self._activate(normalized)
        if normalized != schema:
            logger.warning(f"Form {schema_id} was repaired on load; save to persist the repairs")
            self.saved_snapshot = schema.model_copy(deep=True)
            self._mark_dirty()
        return True

    def close_form(self, discard: bool = False) -> None:
        """
        Stop editing the current form.

        Raises:
            UnsavedChangesError: If the form is dirty and discard is False
        """
        if self.schema is None:
            return
        if self.is_dirty and not discard:
            raise UnsavedChangesError(f"Form '{self.schema.name}'")
        if self.is_dirty:
            logger.info(f"Discarding unsaved changes to form {self.schema.id}")
        self.schema = None
        self.saved_snapshot = None
        self.field_session = None
        self.state = EditorState.NO_ACTIVE_FORM

    def validate_form_for_save(self) -> List[str]:
        """
        Check the form can be saved.

        Returns:
            List of problems; empty if the form can be saved
        """
        schema = self._require_form("validate the form")
        errors = []
        if not schema.name.strip():
            errors.append("Form name is required")
        if not schema.fields:
            errors.append("Add at least one field")
        return errors

    def save(self, end_session: bool = False) -> Tuple[bool, Optional[str]]:
        """
        Persist the current form.

        On success the form becomes clean relative to the saved version and
        any open field panel is saved as well. On failure the form stays dirty.

        Args:
            end_session: Close the form after a successful save

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        schema = self._require_form("save")

        errors = self.validate_form_for_save()
        if errors:
            error_msg = "; ".join(errors)
            logger.warning(f"Form {schema.id} not saved: {error_msg}")
            return False, error_msg

        success, error_msg = self.storage.save(schema)
        if not success:
            self._mark_dirty()
            return False, error_msg

        self.saved_snapshot = schema.model_copy(deep=True)
        self._mark_clean()
        if self.field_session is not None:
            field = schema.get_field(self.field_session.field_id)
            self.field_session.snapshot = field.model_copy(deep=True)
            self.field_session.unsaved = False

        if end_session:
            self.close_form()
        return True, None

    # Schema-level actions

    def rename_form(self, name: str) -> FormSchema:
        schema = self._require_form("rename the form")
        return self._apply(schema_actions.rename_form(schema, name))

    def add_field(self, field_type: FieldType = FieldType.TEXT,
                  field: Optional[FormField] = None) -> FormField:
        """
        Append a field to the form.

        Args:
            field_type: Type of the generated field
            field: Ready-made field to add instead of a generated one

        Returns:
            The field as stored in the form
        """
        schema = self._require_form("add a field")
        if field is None:
            field = new_field(len(schema.fields), self.field_label_prefix, field_type)
        updated = self._apply(schema_actions.add_field(schema, field))
        return updated.fields[-1]

    def delete_field(self, field_id: str) -> FormSchema:
        """Delete a field; deleting the field open in the panel closes the panel."""
        schema = self._require_form("delete a field")
        if self.field_session and self.field_session.field_id == field_id:
            self.field_session = None
        return self._apply(schema_actions.delete_field(schema, field_id))

    def reorder_fields(self, field_ids: List[str]) -> FormSchema:
        schema = self._require_form("reorder fields")
        return self._apply(schema_actions.reorder_fields(schema, field_ids))

    def move_field(self, from_index: int, to_index: int) -> FormSchema:
        schema = self._require_form("move a field")
        return self._apply(schema_actions.move_field(schema, from_index, to_index))

    def apply_field_action(self, action_name: str, field_id: str, *args: Any, **kwargs: Any) -> FormSchema:
        """
        Run a field action from schema_actions.FIELD_ACTIONS on the current form.

        Args:
            action_name: Key in FIELD_ACTIONS
            field_id: Field the action edits
            *args, **kwargs: Remaining action arguments

        Returns:
            Updated schema

        Raises:
            KeyError: If the action name is unknown
        """
        schema = self._require_form(action_name)
        action = schema_actions.FIELD_ACTIONS[action_name]
        updated = self._apply(action(schema, field_id, *args, **kwargs))
        if self.field_session and self.field_session.field_id == field_id:
            self.field_session.unsaved = True
        return updated

    def update_field(self, field_id: str, **updates: Any) -> FormSchema:
        return self.apply_field_action('update_field', field_id, **updates)

    def change_field_type(self, field_id: str, new_type: FieldType) -> FormSchema:
        return self.apply_field_action('change_field_type', field_id, new_type)

    def set_required(self, field_id: str, required: bool) -> FormSchema:
        return self.apply_field_action('set_field_required', field_id, required)

    # Field panel

    @property
    def open_field_id(self) -> Optional[str]:
        return self.field_session.field_id if self.field_session else None

    def current_field(self) -> Optional[FormField]:
        """The field open in the panel, as it currently is in the form."""
        if self.field_session is None or self.schema is None:
            return None
        return self.schema.get_field(self.field_session.field_id)

    def open_field(self, field_id: str) -> FieldEditSession:
        """
        Open a field in the panel.

        Raises:
            UnsavedChangesError: If another field has unsaved panel edits
            FieldNotFoundError: If the field does not exist
        """
        schema = self._require_form("open a field")
        if self.field_session and self.field_session.field_id == field_id:
            return self.field_session
        if self.field_session and self.field_session.unsaved:
            raise UnsavedChangesError(f"Field '{self.field_session.field_id}'")

        field = schema.get_field(field_id)
        if field is None:
            raise FieldNotFoundError(field_id)
        self.field_session = FieldEditSession(field)
        return self.field_session

    def edit_field(self, action_name: str, *args: Any, **kwargs: Any) -> FormSchema:
        """Run a field action on the field open in the panel."""
        if self.field_session is None:
            raise ValueError("No field is open in the field panel")
        return self.apply_field_action(action_name, self.field_session.field_id, *args, **kwargs)

    def save_field(self) -> List[str]:
        """
        Accept the panel edits of the open field.

        The edits stay in the form, which remains dirty until saved.

        Returns:
            List of configuration problems; empty if the field was saved
        """
        field = self.current_field()
        if field is None:
            raise ValueError("No field is open in the field panel")

        errors = field_config_errors(field)
        if errors:
            logger.info(f"Field {field.id} not saved: {'; '.join(errors)}")
            return errors

        self.field_session.snapshot = field.model_copy(deep=True)
        self.field_session.unsaved = False
        return []

    def close_field(self, confirm_discard: bool = False) -> None:
        """
        Close the field panel.

        Raises:
            UnsavedChangesError: If the field has unsaved edits and
                confirm_discard is False
        """
        if self.field_session is None:
            return
        if self.field_session.unsaved:
            if not confirm_discard:
                raise UnsavedChangesError(f"Field '{self.field_session.field_id}'")
            logger.info(f"Reverting unsaved edits to field {self.field_session.field_id}")
            self._apply(schema_actions.replace_field(self.schema, self.field_session.snapshot))
        self.field_session = None

    # Change tracking and preview

    def pending_changes(self) -> Dict[str, Any]:
        """
        Compare the current form with the last saved version.

        Returns:
            Dictionary with 'has_changes', 'summary' counts, 'fields'
            (added/removed/modified ids) and readable 'details' lines
        """
        schema = self._require_form("compare changes")
        diff = diff_schemas(self.saved_snapshot, schema)
        summary = get_change_summary(diff)
        return {
            'has_changes': summary['total'] > 0,
            'summary': summary,
            'fields': get_field_changes(self.saved_snapshot, schema),
            'details': describe_changes(diff),
        }

    def preview(self, today: Optional[date] = None) -> FormPreview:
        """Start a preview session for the current form."""
        schema = self._require_form("preview the form")
        return FormPreview(schema.model_copy(deep=True), today=today)
