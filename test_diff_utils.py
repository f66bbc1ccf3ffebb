"""
Unit tests for diff_utils module.
"""

import pytest

from formbuilder import schema_actions
from formbuilder.diff_utils import (
    calculate_diff,
    clean_path,
    describe_changes,
    diff_field,
    diff_schemas,
    get_change_summary,
    get_field_changes,
    has_changes,
)
from formbuilder.schema_model import FieldType, new_field, new_schema


class TestDiffUtils:
    """Test class for diff utilities."""

    def test_calculate_diff_no_changes(self):
        """Test calculating diff with no changes."""
        original = {"name": "Survey", "fields": []}
        modified = {"name": "Survey", "fields": []}

        diff = calculate_diff(original, modified)

        assert not has_changes(diff)

    def test_calculate_diff_value_changed(self):
        """Test calculating diff with value changes."""
        diff = calculate_diff({"name": "Survey"}, {"name": "Poll"})

        assert has_changes(diff)
        assert 'values_changed' in diff
        assert diff['values_changed']["root['name']"]['new_value'] == "Poll"

    def test_calculate_diff_item_added(self):
        """Test calculating diff with added items."""
        diff = calculate_diff({"name": "Survey"}, {"name": "Survey", "extra": 1})

        assert has_changes(diff)
        assert 'dictionary_item_added' in diff

    def test_updated_at_ignored(self):
        """Test that the bookkeeping timestamp is not a change."""
        diff = calculate_diff({"updatedAt": "2020"}, {"updatedAt": "2024"})
        assert not has_changes(diff)

    def test_has_changes_empty(self):
        assert has_changes({}) is False
        assert has_changes(None) is False

    def test_get_change_summary(self):
        """Test change summary counts."""
        original = {"name": "Survey", "fields": [1, 2], "a": 1}
        modified = {"name": "Poll", "fields": [1, 2, 3], "b": 2}

        summary = get_change_summary(calculate_diff(original, modified))

        assert summary['modified'] == 1
        assert summary['added'] == 2
        assert summary['removed'] == 1
        assert summary['total'] == 4


class TestCleanPath:
    """Test cases for path formatting."""

    @pytest.mark.parametrize("path,expected", [
        ("root['fields'][0]['label']", "fields[0].label"),
        ("root['name']", "name"),
        ("root['fields'][2]['validationRules'][0]['value']", "fields[2].validationRules[0].value"),
        ("root", "root"),
    ])
    def test_clean_path(self, path, expected):
        assert clean_path(path) == expected


class TestSchemaDiffs:
    """Test cases for schema and field comparisons."""

    def setup_method(self):
        schema = new_schema("Survey")
        schema = schema_actions.add_field(schema, new_field(0, field_type=FieldType.TEXT))
        schema = schema_actions.add_field(schema, new_field(1, field_type=FieldType.NUMBER))
        self.schema = schema
        self.first, self.second = schema.field_ids()

    def test_identical_schemas(self):
        assert not has_changes(diff_schemas(self.schema, self.schema.model_copy(deep=True)))

    def test_timestamp_only_change_ignored(self):
        touched = self.schema.model_copy(deep=True)
        touched.updated_at = "2099-01-01T00:00:00"
        assert not has_changes(diff_schemas(self.schema, touched))

    def test_diff_field(self):
        before = self.schema.get_field(self.first)
        after = schema_actions.set_field_label(self.schema, self.first, "Name").get_field(self.first)

        diff = diff_field(before, after)

        assert "root['label']" in diff['values_changed']

    def test_field_changes(self):
        modified = schema_actions.set_field_required(self.schema, self.first, True)
        modified = schema_actions.delete_field(modified, self.second)
        modified = schema_actions.add_field(modified)
        modified = schema_actions.rename_form(modified, "Poll")
        added_id = modified.fields[-1].id

        changes = get_field_changes(self.schema, modified)

        assert changes['added'] == [added_id]
        assert changes['removed'] == [self.second]
        assert changes['modified'] == [self.first]
        assert changes['renamed'] is True
        assert changes['reordered'] is False

    def test_reorder_detected(self):
        reordered = schema_actions.reorder_fields(self.schema, [self.second, self.first])
        assert get_field_changes(self.schema, reordered)['reordered'] is True

    def test_describe_changes(self):
        renamed = schema_actions.rename_form(self.schema, "Poll")

        lines = describe_changes(diff_schemas(self.schema, renamed))

        assert lines == ["Changed: name ('Survey' -> 'Poll')"]

    def test_describe_changes_limit(self):
        modified = schema_actions.rename_form(self.schema, "Poll")
        modified = schema_actions.set_field_label(modified, self.first, "Name")
        assert len(describe_changes(diff_schemas(self.schema, modified), limit=1)) == 1
