"""Tests for heavyweight plugin execution"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from initkit.config import settings
from initkit.heavyweight.manager import HeavyweightPluginManager
from initkit.plugins.config import HeavyweightConfig, MergeStrategy, ProtectedFile


def write(root: Path, relative: str, content: str) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def read(root: Path, relative: str) -> str:
    return (root / relative).read_text(encoding="utf-8")


def writer_code(files: Dict[str, Optional[str]]) -> str:
    """Python snippet writing (or deleting, for None) files in the working directory"""
    lines = ["import os"]
    for name, content in files.items():
        if content is None:
            lines.append(f"os.remove({name!r})")
        else:
            lines.append(
                f"open({name!r}, 'w', encoding='utf-8', newline='').write({content!r})"
            )
    return "; ".join(lines)


@pytest.fixture
def manager(project_root: Path, plugin_logger) -> HeavyweightPluginManager:
    return HeavyweightPluginManager(project_root, plugin_logger=plugin_logger)


@pytest.fixture
def heavy_plugin(make_plugin):
    """Factory for heavyweight plugins with a fixed configuration"""

    def factory(
        protected: List[tuple] = (),
        command: Any = None,
        name: str = "flow",
        meta: Optional[Dict[str, Any]] = None,
        **config: Any,
    ):
        heavyweight_config = HeavyweightConfig(
            protected_files=[
                ProtectedFile(path=path, merge_strategy=strategy) for path, strategy in protected
            ],
            init_command=command,
            **config,
        )
        return make_plugin(
            name,
            heavyweight=True,
            meta=meta,
            get_heavyweight_config=lambda ctx: heavyweight_config,
        )

    return factory


def backup_root(project_root: Path) -> Path:
    return project_root / settings.backup_dir


class TestMerging:
    """Test protected file reconciliation after the init command"""

    @pytest.mark.asyncio
    async def test_append_merge(self, manager, heavy_plugin, context, project_root, python_command):
        """Test our content comes first, then the command's"""
        write(project_root, "notes.md", "A")
        plugin = heavy_plugin(
            [("notes.md", MergeStrategy.APPEND)],
            python_command(writer_code({"notes.md": "B"})),
        )

        result = await manager.execute(plugin, context)

        assert result.success
        assert result.exit_code == 0
        assert read(project_root, "notes.md") == "A\n\n---\n\nB"
        assert result.merge_results[0].content == "A\n\n---\n\nB"
        assert not backup_root(project_root).exists()

    @pytest.mark.asyncio
    async def test_prepend_merge(self, manager, heavy_plugin, context, project_root, python_command):
        write(project_root, "docs/guide.md", "ours\n")
        plugin = heavy_plugin(
            [("docs/guide.md", MergeStrategy.PREPEND)],
            python_command(writer_code({"docs/guide.md": "theirs\n"})),
        )

        result = await manager.execute(plugin, context)

        assert result.success
        assert read(project_root, "docs/guide.md") == "theirs\n\n---\n\nours\n"

    @pytest.mark.asyncio
    async def test_only_ours_is_restored(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a file the command deleted is rewritten verbatim"""
        write(project_root, "notes.md", "keep me\n")
        plugin = heavy_plugin(
            [("notes.md", MergeStrategy.APPEND)],
            python_command(writer_code({"notes.md": None})),
        )

        result = await manager.execute(plugin, context)

        assert result.success
        assert read(project_root, "notes.md") == "keep me\n"

    @pytest.mark.asyncio
    async def test_only_theirs_is_kept(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a file the command created is kept as-is"""
        plugin = heavy_plugin(
            [("settings.json", MergeStrategy.APPEND)],
            python_command(writer_code({"settings.json": "{}"})),
        )

        result = await manager.execute(plugin, context)

        assert result.success
        assert read(project_root, "settings.json") == "{}"

    @pytest.mark.asyncio
    async def test_neither_exists(self, manager, heavy_plugin, context, project_root):
        """Test a protected file absent before and after is a no-op"""
        plugin = heavy_plugin([("missing.md", MergeStrategy.APPEND)])

        result = await manager.execute(plugin, context)

        assert result.success
        assert result.exit_code is None
        assert result.merge_results[0].success
        assert result.merge_results[0].content is None
        assert not (project_root / "missing.md").exists()

    @pytest.mark.asyncio
    async def test_identical_versions_are_merged(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a file the command left alone still goes through its strategy"""
        write(project_root, "notes.md", "A")
        plugin = heavy_plugin([("notes.md", MergeStrategy.APPEND)], python_command("pass"))

        result = await manager.execute(plugin, context)

        assert result.success
        assert read(project_root, "notes.md") == "A\n\n---\n\nA"

    @pytest.mark.asyncio
    async def test_identical_versions_call_merge_file(self, manager, make_plugin, context, project_root, python_command):
        write(project_root, "notes.md", "A")
        calls = []

        def merge_file(path, ours, theirs, ctx):
            calls.append((path, ours, theirs))
            return ours

        config = {
            "protected_files": [{"path": "notes.md", "merge_strategy": "custom"}],
            "init_command": python_command("pass"),
        }
        plugin = make_plugin(
            "flow",
            heavyweight=True,
            get_heavyweight_config=lambda ctx: config,
            merge_file=merge_file,
        )

        result = await manager.execute(plugin, context)

        assert result.success
        assert calls == [("notes.md", "A", "A")]

    @pytest.mark.asyncio
    async def test_identical_versions_without_merge_file(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a custom strategy without merge_file fails even when nothing changed"""
        write(project_root, "notes.md", "A")
        plugin = heavy_plugin([("notes.md", MergeStrategy.CUSTOM)], python_command("pass"))

        result = await manager.execute(plugin, context)

        assert not result.success
        assert result.rolled_back
        assert "doesn't implement merge_file()" in result.merge_results[0].error
        assert read(project_root, "notes.md") == "A"

    @pytest.mark.asyncio
    async def test_custom_merge(self, manager, make_plugin, context, project_root, python_command):
        """Test the plugin's merge_file decides the result"""
        write(project_root, "notes.md", "ours")
        config = {
            "protected_files": [{"path": "notes.md", "merge_strategy": "custom"}],
            "init_command": python_command(writer_code({"notes.md": "theirs"})),
        }
        plugin = make_plugin(
            "flow",
            heavyweight=True,
            get_heavyweight_config=lambda ctx: config,
            merge_file=lambda path, ours, theirs, ctx: f"<{ours}+{theirs}>",
        )

        result = await manager.execute(plugin, context)

        assert result.success
        assert read(project_root, "notes.md") == "<ours+theirs>"

    @pytest.mark.asyncio
    async def test_custom_without_merge_file_rolls_back(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a missing merge_file fails that file, merges the rest, then restores"""
        write(project_root, "a.md", "A1")
        write(project_root, "b.md", "B1")
        plugin = heavy_plugin(
            [("a.md", MergeStrategy.CUSTOM), ("b.md", MergeStrategy.APPEND)],
            python_command(writer_code({"a.md": "A2", "b.md": "B2"})),
        )

        result = await manager.execute(plugin, context)

        assert not result.success
        assert result.rolled_back
        first, second = result.merge_results
        assert not first.success
        assert "flow" in first.error
        assert "a.md" in first.error
        assert second.success
        assert second.content == "B1\n\n---\n\nB2"
        assert result.failed_merges == [first]
        assert read(project_root, "a.md") == "A1"
        assert read(project_root, "b.md") == "B1"
        assert not backup_root(project_root).exists()

    @pytest.mark.asyncio
    async def test_non_zero_exit_still_merges(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a failing exit code is a warning, not a failure"""
        write(project_root, "notes.md", "A")
        code = writer_code({"notes.md": "B"}) + "; import sys; sys.exit(2)"
        plugin = heavy_plugin([("notes.md", MergeStrategy.APPEND)], python_command(code))

        result = await manager.execute(plugin, context)

        assert result.success
        assert result.exit_code == 2
        assert read(project_root, "notes.md") == "A\n\n---\n\nB"
        manager.plugin_logger.warning.assert_any_call("  Init command exited with code 2")


class TestRollback:
    """Test restoring protected files when the command fails"""

    @pytest.mark.asyncio
    async def test_timeout_restores_files(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a timed out command leaves every protected file as it was"""
        write(project_root, "notes.md", "A")
        write(project_root, "empty.md", "")
        code = writer_code({"notes.md": "clobbered", "new.md": "x", "empty.md": "y"})
        plugin = heavy_plugin(
            [
                ("notes.md", MergeStrategy.APPEND),
                ("new.md", MergeStrategy.APPEND),
                ("empty.md", MergeStrategy.APPEND),
            ],
            python_command(code + "; import time; time.sleep(30)"),
            timeout=50,
        )

        result = await manager.execute(plugin, context)

        assert not result.success
        assert result.rolled_back
        assert result.exit_code == -1
        assert "timed out" in result.error
        assert result.merge_results == []
        assert read(project_root, "notes.md") == "A"
        assert read(project_root, "empty.md") == ""
        assert not (project_root / "new.md").exists()
        assert not backup_root(project_root).exists()

    @pytest.mark.asyncio
    async def test_spawn_failure_restores_files(self, manager, heavy_plugin, context, project_root):
        write(project_root, "notes.md", "A")
        plugin = heavy_plugin(
            [("notes.md", MergeStrategy.APPEND)], ["initkit-no-such-binary-xyz"]
        )

        result = await manager.execute(plugin, context)

        assert not result.success
        assert result.rolled_back
        assert "initkit-no-such-binary-xyz" in result.error
        assert read(project_root, "notes.md") == "A"

    @pytest.mark.asyncio
    async def test_public_restore_backups(self, manager, project_root):
        """Test outer callers can restore the current backups"""
        write(project_root, "notes.md", "original")
        await manager.backups.backup([
            ProtectedFile(path="notes.md", merge_strategy=MergeStrategy.APPEND),
            ProtectedFile(path="created.md", merge_strategy=MergeStrategy.APPEND),
        ])
        assert manager.backups.run_dir.is_dir()
        write(project_root, "notes.md", "changed")
        write(project_root, "created.md", "new")

        errors = await manager.restore_backups()

        assert errors == []
        assert read(project_root, "notes.md") == "original"
        assert not (project_root / "created.md").exists()
        assert not backup_root(project_root).exists()
        assert manager.backups.entries == []


class TestConfiguration:
    """Test heavyweight configuration retrieval"""

    @pytest.mark.asyncio
    async def test_missing_capability(self, manager, make_plugin, context):
        result = await manager.execute(make_plugin("flow", heavyweight=True), context)

        assert not result.success
        assert "does not implement get_heavyweight_config" in result.error
        assert not result.rolled_back

    @pytest.mark.asyncio
    async def test_config_raises(self, manager, make_plugin, context):
        def broken(ctx):
            raise RuntimeError("no network")

        plugin = make_plugin("flow", heavyweight=True, get_heavyweight_config=broken)

        result = await manager.execute(plugin, context)

        assert not result.success
        assert "Failed to get heavyweight config for 'flow'" in result.error
        assert "no network" in result.error

    @pytest.mark.asyncio
    async def test_invalid_config(self, manager, make_plugin, context):
        """Test a protected path escaping the project is rejected"""
        config = {"protected_files": [{"path": "../outside.md", "merge_strategy": "append"}]}
        plugin = make_plugin("flow", heavyweight=True, get_heavyweight_config=lambda ctx: config)

        result = await manager.execute(plugin, context)

        assert not result.success
        assert "Failed to get heavyweight config" in result.error

    @pytest.mark.asyncio
    async def test_async_config(self, manager, make_plugin, context):
        async def get_config(ctx):
            return HeavyweightConfig()

        plugin = make_plugin("flow", heavyweight=True, get_heavyweight_config=get_config)

        result = await manager.execute(plugin, context)

        assert result.success
        assert result.merge_results == []


class TestSharedInstructionsMigration:
    """Test moving shared instructions changes into a rule file"""

    @pytest.mark.asyncio
    async def test_created_file_is_migrated(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a freshly created CLAUDE.md moves to the rules directory verbatim"""
        content = "# Flow\n\nUse the swarm.\n"
        plugin = heavy_plugin([], python_command(writer_code({"CLAUDE.md": content})))

        result = await manager.execute(plugin, context)

        expected = project_root / ".claude" / "rules" / "80-flow.md"
        assert result.success
        assert result.migrated_rules_file == expected
        assert expected.read_text(encoding="utf-8") == content
        assert not (project_root / "CLAUDE.md").exists()

    @pytest.mark.asyncio
    async def test_modified_file_is_restored(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a modified CLAUDE.md is migrated, then restored"""
        write(project_root, "CLAUDE.md", "mine\n")
        plugin = heavy_plugin(
            [],
            python_command(writer_code({"CLAUDE.md": "mine\nplus theirs\n"})),
            meta={"rules_priority": 15},
            rules_file_name="flow-base",
        )

        result = await manager.execute(plugin, context)

        expected = project_root / ".claude" / "rules" / "15-flow-base.md"
        assert result.migrated_rules_file == expected
        assert expected.read_text(encoding="utf-8") == "mine\nplus theirs\n"
        assert read(project_root, "CLAUDE.md") == "mine\n"

    @pytest.mark.asyncio
    async def test_unchanged_file_is_not_migrated(self, manager, heavy_plugin, context, project_root, python_command):
        write(project_root, "CLAUDE.md", "mine\n")
        plugin = heavy_plugin([], python_command("pass"))

        result = await manager.execute(plugin, context)

        assert result.migrated_rules_file is None
        assert not (project_root / ".claude" / "rules").exists()

    @pytest.mark.asyncio
    async def test_migration_disabled(self, manager, heavy_plugin, context, project_root, python_command):
        plugin = heavy_plugin(
            [],
            python_command(writer_code({"CLAUDE.md": "theirs"})),
            migrate_shared_instructions=False,
        )

        result = await manager.execute(plugin, context)

        assert result.migrated_rules_file is None
        assert read(project_root, "CLAUDE.md") == "theirs"

    @pytest.mark.asyncio
    async def test_protected_instructions_file(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a protected CLAUDE.md keeps our content after migration"""
        write(project_root, "CLAUDE.md", "ours")
        plugin = heavy_plugin(
            [("CLAUDE.md", MergeStrategy.APPEND)],
            python_command(writer_code({"CLAUDE.md": "theirs"})),
        )

        result = await manager.execute(plugin, context)

        assert result.success
        assert read(project_root, "CLAUDE.md") == "ours"
        assert result.migrated_rules_file.read_text(encoding="utf-8") == "theirs"
        assert result.merge_results[0].content == "ours"

    @pytest.mark.asyncio
    async def test_unmigrated_instructions_file_is_merged(self, manager, heavy_plugin, context, project_root, python_command):
        """Test a protected CLAUDE.md the command left alone follows its strategy"""
        write(project_root, "CLAUDE.md", "ours")
        plugin = heavy_plugin([("CLAUDE.md", MergeStrategy.APPEND)], python_command("pass"))

        result = await manager.execute(plugin, context)

        assert result.success
        assert result.migrated_rules_file is None
        assert read(project_root, "CLAUDE.md") == "ours\n\n---\n\nours"
