"""
Unit tests for the form preview.
"""

from datetime import date

import pytest

from formbuilder import schema_actions
from formbuilder.form_preview import FormPreview, initial_values
from formbuilder.schema_model import FieldType, new_field, new_schema


class TestFormPreview:
    """Test cases for value snapshots in the preview."""

    def setup_method(self):
        schema = new_schema("Order")
        for position, field_type in enumerate([FieldType.NUMBER, FieldType.NUMBER, FieldType.NUMBER,
                                               FieldType.DATE, FieldType.NUMBER, FieldType.TEXT]):
            schema = schema_actions.add_field(schema, new_field(position, field_type=field_type))
        self.a, self.b, self.total, self.dob, self.age, self.name = schema.field_ids()

        schema = schema_actions.set_default_value(schema, self.a, "2")
        schema = schema_actions.make_derived(schema, self.total, formula='sum',
                                             parent_field_ids=[self.a, self.b])
        schema = schema_actions.make_derived(schema, self.age)
        schema = schema_actions.set_field_required(schema, self.name, True)
        self.schema = schema
        self.today = date(2024, 5, 10)

    def test_initial_values_only_non_empty_defaults(self):
        assert initial_values(self.schema) == {self.a: 2.0}

    def test_initial_derived_values_computed(self):
        preview = FormPreview(self.schema, today=self.today)
        assert preview.values[self.total] == 2.0
        assert preview.values[self.age] == 0

    def test_set_value_recomputes_derived(self):
        preview = FormPreview(self.schema, today=self.today)

        preview.set_value(self.b, "3")
        preview.set_value(self.dob, "2006-05-10")

        assert preview.values[self.total] == 5.0
        assert preview.values[self.age] == 18

    def test_unparsable_input_counts_as_zero(self):
        preview = FormPreview(self.schema, today=self.today)
        preview.set_value(self.b, "oops")
        assert preview.values[self.total] == 2.0

    def test_derived_value_cannot_be_set(self):
        preview = FormPreview(self.schema, today=self.today)
        preview.set_value(self.total, 100)
        assert preview.values[self.total] == 2.0

    def test_unknown_field(self):
        preview = FormPreview(self.schema, today=self.today)
        with pytest.raises(KeyError):
            preview.set_value("missing", 1)

    def test_validate_and_clear_error_on_change(self):
        preview = FormPreview(self.schema, today=self.today)

        errors = preview.validate()
        assert errors == {self.name: "This field is required"}
        assert not preview.is_valid

        preview.set_value(self.name, "Ada")
        assert preview.errors == {}
        assert preview.validate() == {}

    def test_stats(self):
        preview = FormPreview(self.schema, today=self.today)
        preview.set_value(self.name, "")
        preview.validate()

        stats = preview.stats()

        assert stats['total'] == 6
        assert stats['errors'] == 1
        # a, total and age hold values
        assert stats['filled'] == 3

    def test_clear(self):
        preview = FormPreview(self.schema, today=self.today)
        preview.set_value(self.name, "Ada")
        preview.validate()

        preview.clear()

        assert preview.values == {}
        assert preview.errors == {}
        assert preview.stats()['filled'] == 0
