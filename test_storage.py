"""
Unit tests for file-backed schema storage.
"""

import json
import shutil
import tempfile
from pathlib import Path

import pytest
import yaml

from formbuilder import schema_actions
from formbuilder.exceptions import SchemaFormatError, StorageError
from formbuilder.schema_model import FieldType, new_field, new_schema
from formbuilder.storage import SchemaStorage


def sample_schema(name="Contact"):
    schema = new_schema(name)
    schema = schema_actions.add_field(schema, new_field(0, field_type=FieldType.TEXT))
    schema = schema_actions.add_field(schema, new_field(1, field_type=FieldType.NUMBER))
    return schema


class TestSchemaStorage:
    """Test cases for SchemaStorage."""

    def setup_method(self):
        """Set up a temporary storage directory."""
        self.test_dir = tempfile.mkdtemp()
        self.storage = SchemaStorage(Path(self.test_dir) / "forms")

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.test_dir)

    def test_save_and_load_round_trip(self):
        schema = sample_schema()

        success, error = self.storage.save(schema)

        assert success is True
        assert error is None
        assert self.storage.load(schema.id) == schema

    def test_saved_file_uses_camel_case_keys(self):
        schema = sample_schema()
        self.storage.save(schema)

        with open(self.storage.directory / f"{schema.id}.yaml", 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)

        assert 'createdAt' in data
        assert 'validationRules' in data['fields'][0]
        assert 'defaultValue' in data['fields'][0]

    def test_no_temp_or_backup_files_left(self):
        schema = sample_schema()
        self.storage.save(schema)
        self.storage.save(schema_actions.rename_form(schema, "Renamed"))

        names = sorted(path.name for path in self.storage.directory.iterdir())
        assert names == [f"{schema.id}.yaml"]

    def test_load_missing_returns_none(self):
        assert self.storage.load("does-not-exist") is None
        assert self.storage.read("does-not-exist") is None

    def test_exists(self):
        schema = sample_schema()
        assert not self.storage.exists(schema.id)
        self.storage.save(schema)
        assert self.storage.exists(schema.id)
        assert not self.storage.exists("../escape")

    def test_malformed_yaml_rejected(self):
        self.storage.directory.mkdir(parents=True)
        (self.storage.directory / "broken.yaml").write_text("fields: [unclosed", encoding='utf-8')

        with pytest.raises(SchemaFormatError):
            self.storage.read("broken")
        assert self.storage.load("broken") is None

    def test_wrong_shape_rejected(self):
        self.storage.directory.mkdir(parents=True)
        (self.storage.directory / "shape.yaml").write_text(
            yaml.safe_dump({'id': 'shape', 'name': 'x', 'fields': [{'id': 'f', 'type': 'colour'}],
                            'createdAt': 'a', 'updatedAt': 'b'}),
            encoding='utf-8'
        )

        with pytest.raises(SchemaFormatError) as exc_info:
            self.storage.read("shape")
        assert exc_info.value.problems

    def test_non_mapping_rejected(self):
        self.storage.directory.mkdir(parents=True)
        (self.storage.directory / "list.yaml").write_text("- a\n- b\n", encoding='utf-8')
        with pytest.raises(SchemaFormatError):
            self.storage.read("list")

    def test_id_mismatch_rejected(self):
        schema = sample_schema()
        self.storage.save(schema)
        (self.storage.directory / f"{schema.id}.yaml").rename(self.storage.directory / "other.yaml")
        with pytest.raises(SchemaFormatError):
            self.storage.read("other")

    def test_json_files_are_read(self):
        schema = sample_schema()
        self.storage.directory.mkdir(parents=True)
        with open(self.storage.directory / f"{schema.id}.json", 'w', encoding='utf-8') as f:
            json.dump(schema.to_storage_dict(), f)

        assert self.storage.load(schema.id) == schema

    def test_json_format_storage(self):
        storage = SchemaStorage(Path(self.test_dir) / "json_forms", file_format='json')
        schema = sample_schema()
        storage.save(schema)
        assert (storage.directory / f"{schema.id}.json").exists()
        assert storage.load(schema.id) == schema

    def test_invalid_id_rejected(self):
        with pytest.raises(StorageError):
            self.storage.read("../etc/passwd")

        schema = sample_schema()
        schema.id = "bad id"
        success, error = self.storage.save(schema)
        assert success is False
        assert "Invalid form id" in error

    def test_delete(self):
        schema = sample_schema()
        self.storage.save(schema)

        assert self.storage.delete(schema.id) == (True, None)
        assert not self.storage.exists(schema.id)

        success, error = self.storage.delete(schema.id)
        assert success is False
        assert "not found" in error

    def test_list_sorted_by_updated_at(self):
        older = sample_schema("Older")
        older.updated_at = "2020-01-01T00:00:00"
        newer = sample_schema("Newer")
        newer.updated_at = "2024-01-01T00:00:00"
        self.storage.save(older)
        self.storage.save(newer)

        summaries = self.storage.list()

        assert [s['name'] for s in summaries] == ["Newer", "Older"]
        assert summaries[0]['field_count'] == 2
        assert set(summaries[0]) == {'id', 'name', 'field_count', 'createdAt', 'updatedAt'}

    def test_list_skips_malformed_files(self):
        self.storage.save(sample_schema())
        (self.storage.directory / "junk.yaml").write_text("[1, 2", encoding='utf-8')
        assert len(self.storage.list()) == 1

    def test_list_missing_directory(self):
        assert self.storage.list() == []

    def test_from_config(self):
        config = {'storage': {'directory': str(Path(self.test_dir) / "configured"), 'format': 'json'}}
        storage = SchemaStorage.from_config(config)
        assert storage.directory == Path(self.test_dir) / "configured"
        assert storage.file_format == 'json'

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            SchemaStorage(Path(self.test_dir), file_format='xml')
