"""
Unit tests for configuration loader module.
"""

import pytest
import shutil
import tempfile
import yaml
from pathlib import Path
from unittest.mock import patch

from formbuilder import config_loader
from formbuilder.config_loader import (
    deep_merge,
    get_config_value,
    get_default_config,
    load_config,
    read_config_file,
    save_config,
    validate_config,
)
from formbuilder.exceptions import ConfigurationLoadError


class TestDeepMerge:
    """Test cases for deep_merge function."""

    def test_deep_merge_simple_dicts(self):
        """Test deep merging of simple dictionaries."""
        base = {'a': 1, 'b': 2}
        update = {'b': 3, 'c': 4}

        result = deep_merge(base, update)

        assert result == {'a': 1, 'b': 3, 'c': 4}
        # Ensure original dicts are not modified
        assert base == {'a': 1, 'b': 2}
        assert update == {'b': 3, 'c': 4}

    def test_deep_merge_nested_dicts(self):
        """Test deep merging of nested dictionaries."""
        base = {'storage': {'directory': 'forms', 'format': 'yaml'}, 'app': {'name': 'Base'}}
        update = {'storage': {'directory': 'schemas'}}

        result = deep_merge(base, update)

        assert result == {'storage': {'directory': 'schemas', 'format': 'yaml'}, 'app': {'name': 'Base'}}

    def test_deep_merge_replaces_non_dict_values(self):
        """Test that a scalar in the update replaces a nested dict."""
        assert deep_merge({'a': {'b': 1}}, {'a': 5}) == {'a': 5}


class TestLoadConfig:
    """Test cases for load_config function."""

    def setup_method(self):
        """Set up a temporary directory for config files."""
        self.test_dir = tempfile.mkdtemp()
        self.config_path = Path(self.test_dir) / "config.yaml"

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.test_dir)

    def write_config(self, data):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f)

    def test_missing_file_returns_defaults(self):
        assert load_config(self.config_path) == get_default_config()

    def test_partial_config_merged_with_defaults(self):
        self.write_config({'storage': {'directory': 'my_forms'}, 'logging': {'level': 'DEBUG'}})

        config = load_config(self.config_path)

        assert config['storage']['directory'] == 'my_forms'
        assert config['storage']['format'] == 'yaml'
        assert config['logging']['level'] == 'DEBUG'
        assert config['editor']['default_form_name'] == 'Untitled Form'

    def test_empty_file_returns_defaults(self):
        self.config_path.write_text("", encoding='utf-8')
        assert load_config(self.config_path) == get_default_config()

    def test_invalid_yaml_returns_defaults(self):
        self.config_path.write_text("storage: [unclosed", encoding='utf-8')
        assert load_config(self.config_path) == get_default_config()

    def test_invalid_values_return_defaults(self):
        self.write_config({'storage': {'format': 'xml'}})
        assert load_config(self.config_path) == get_default_config()

    def test_read_config_file_rejects_non_mapping(self):
        self.config_path.write_text("- a\n- b\n", encoding='utf-8')
        with pytest.raises(ConfigurationLoadError) as exc_info:
            read_config_file(self.config_path)
        assert exc_info.value.context['config_path'] == str(self.config_path)

    def test_save_and_reload(self):
        config = get_default_config()
        config['editor']['field_label_prefix'] = 'Question'

        assert save_config(config, self.config_path) is True
        assert load_config(self.config_path) == config

    def test_save_to_missing_directory_fails(self):
        assert save_config(get_default_config(), Path(self.test_dir) / "missing" / "config.yaml") is False


class TestValidateConfig:
    """Test cases for validate_config function."""

    def test_defaults_are_valid(self):
        assert validate_config(get_default_config()) is True

    def test_missing_section(self):
        config = get_default_config()
        del config['editor']
        assert validate_config(config) is False

    def test_blank_storage_directory(self):
        config = get_default_config()
        config['storage']['directory'] = '  '
        assert validate_config(config) is False

    def test_json_format_allowed(self):
        config = get_default_config()
        config['storage']['format'] = 'json'
        assert validate_config(config) is True


class TestGetConfigValue:
    """Test cases for get_config_value function."""

    def test_reads_explicit_config(self):
        config = get_default_config()
        assert get_config_value('storage', 'directory', config=config) == 'forms'

    def test_missing_key_returns_default(self):
        config = get_default_config()
        assert get_config_value('storage', 'nope', 'fallback', config=config) == 'fallback'
        assert get_config_value('nope', 'nope', 3, config=config) == 3

    def test_uses_cached_config(self):
        cached = get_default_config()
        cached['app']['name'] = 'Cached'
        with patch.object(config_loader, '_config_cache', cached):
            assert get_config_value('app', 'name') == 'Cached'
