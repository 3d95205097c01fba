"""Tests for the plugin context and shared data store"""

from pathlib import Path

import pytest

from initkit.errors import SharedDataTypeError
from initkit.filesystem import FileOperations
from initkit.plugins.config import PluginConfig
from initkit.plugins.context import SharedData, SharedKeys, create_plugin_context


class TestSharedData:
    """Test typed shared data"""

    def test_known_key_accepts_matching_type(self):
        """Test a known key stores a value of its declared type"""
        shared = SharedData()
        shared.set(SharedKeys.INSTALLED_DEPENDENCIES, ["git", "node"])

        assert shared.get(SharedKeys.INSTALLED_DEPENDENCIES) == ["git", "node"]
        assert SharedKeys.INSTALLED_DEPENDENCIES in shared

    def test_known_key_rejects_wrong_type(self):
        """Test a known key rejects a value of another type"""
        shared = SharedData()

        with pytest.raises(SharedDataTypeError) as exc_info:
            shared.set(SharedKeys.TOOL_DEPENDENCIES, "git")

        assert isinstance(exc_info.value, TypeError)
        assert exc_info.value.key == "tool_dependencies"
        assert "expects dict" in str(exc_info.value)
        assert SharedKeys.TOOL_DEPENDENCIES not in shared

    def test_unknown_key_is_untyped(self):
        """Test keys without a contract accept any value"""
        shared = SharedData()
        shared.set("custom", 42)
        shared.set("custom", "now a string")

        assert shared.get("custom") == "now a string"
        assert shared.get("absent", "default") == "default"

    def test_register_contract(self):
        """Test registering a contract for a new key"""
        shared = SharedData()
        shared.register("preset", str)

        shared.set("preset", "strict")
        with pytest.raises(SharedDataTypeError):
            shared.set("preset", 1)

    def test_register_rejects_existing_value_of_wrong_type(self):
        """Test a contract cannot be registered over an incompatible value"""
        shared = SharedData()
        shared.set("preset", 1)

        with pytest.raises(SharedDataTypeError):
            shared.register("preset", str)

    def test_keys_and_delete(self):
        """Test listing and deleting entries"""
        shared = SharedData()
        shared.set(SharedKeys.HEAVYWEIGHT_RESULTS, {})
        shared.set("other", True)

        assert shared.keys() == ["heavyweight_results", "other"]
        assert shared.delete("other") is True
        assert shared.delete("other") is False
        assert shared.as_dict() == {"heavyweight_results": {}}


class TestCreatePluginContext:
    """Test context construction"""

    def test_defaults(self, tmp_path: Path):
        """Test defaults for everything not supplied"""
        context = create_plugin_context(tmp_path)

        assert context.project_root == tmp_path
        assert context.target_dir == tmp_path
        assert isinstance(context.fs, FileOperations)
        assert context.fs.base_path == tmp_path
        assert len(context.shared) == 0
        assert context.template is None
        assert context.ui is None

    def test_plugin_configs_from_mappings(self, tmp_path: Path):
        """Test plain mappings are validated into plugin configs"""
        context = create_plugin_context(
            tmp_path,
            target_dir=tmp_path / "out",
            plugin_configs={
                "git": {"enabled": False},
                "memory": PluginConfig(options={"depth": 2}),
            },
        )

        assert context.target_dir == tmp_path / "out"
        assert context.plugin_config("git").enabled is False
        assert context.plugin_config("memory").options == {"depth": 2}
        assert context.plugin_config("unknown").enabled is True
