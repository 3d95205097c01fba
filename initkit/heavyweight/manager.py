"""Heavyweight plugin manager.

Heavyweight plugins delegate initialization to an external command that may
overwrite files the project already owns. For each plugin the manager:

1. Backs up the plugin's protected files
2. Snapshots the shared instructions file
3. Runs the init command
4. Migrates shared instructions changes into a rule file
5. Merges every protected file using the declared strategy
6. Discards the backups on success, restores them otherwise
"""

from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from initkit.config import Settings, settings as default_settings
from initkit.errors import (BackupError, CommandExecutionError,
                            CommandTimeoutError, ConfigRetrievalError,
                            HeavyweightError, MergeError, MigrationError,
                            MissingHeavyweightConfigError, RestoreError)
from initkit.filesystem import FileOperations
from initkit.heavyweight.backup import BackupStore
from initkit.heavyweight.command import CommandRunner
from initkit.heavyweight.instructions import (SharedInstructions,
                                              SharedInstructionsSnapshot)
from initkit.heavyweight.merge import merge_content
from initkit.logging import PluginLogger, bind_context, get_logger, unbind_context
from initkit.plugins.base import (FileMergeResult, HeavyweightExecutionResult,
                                  Plugin, maybe_await)
from initkit.plugins.config import HeavyweightConfig, ProtectedFile
from initkit.plugins.context import PluginContext
from initkit.rules import RulesWriter

logger = get_logger(__name__)


class HeavyweightPluginManager:
    """Runs heavyweight plugins with file protection and rollback."""

    def __init__(
        self,
        project_root: Union[str, Path],
        plugin_logger: Optional[PluginLogger] = None,
        fs: Optional[FileOperations] = None,
        runner: Optional[CommandRunner] = None,
        settings: Settings = default_settings,
    ):
        """
        Initialize heavyweight plugin manager.

        Args:
            project_root: Project directory commands run in
            plugin_logger: User-facing logger for progress messages
            fs: Filesystem helper rooted at the project
            runner: Command runner for init commands
            settings: Settings providing directories and defaults
        """
        self.project_root = Path(project_root)
        self.plugin_logger = plugin_logger or PluginLogger()
        self.fs = fs or FileOperations(self.project_root)
        self.runner = runner or CommandRunner(self.project_root)
        self.settings = settings
        self.backups = BackupStore(self.project_root, self.fs, settings.backup_dir)
        self.instructions = SharedInstructions(
            self.project_root, self.fs, settings.shared_instructions_files
        )
        self.rules_writer = RulesWriter(
            self.project_root, self.fs, self.plugin_logger, settings.rules_dir
        )

    async def execute(self, plugin: Plugin, context: PluginContext) -> HeavyweightExecutionResult:
        """
        Execute a heavyweight plugin.

        Failures are reported in the result. Protected files are restored
        whenever the plugin does not complete successfully.

        Args:
            plugin: Heavyweight plugin to execute
            context: Run context

        Returns:
            Execution result
        """
        bind_context(plugin=plugin.name)
        try:
            return await self._execute(plugin, context)
        except Exception:
            if self.backups.active:
                await self.restore_backups()
            raise
        finally:
            unbind_context("plugin")

    async def _execute(self, plugin: Plugin, context: PluginContext) -> HeavyweightExecutionResult:
        name = plugin.name
        self.plugin_logger.info(f"Initializing heavyweight plugin: {name}")

        # Configuration
        try:
            config = await self.get_config(plugin, context)
        except HeavyweightError as e:
            logger.error("heavyweight_config_failed", plugin=name, error=str(e))
            return HeavyweightExecutionResult.failure(name, str(e))

        # Backup
        self.plugin_logger.info(f"Backing up {len(config.protected_files)} protected file(s)...")
        try:
            await self.backups.backup(config.protected_files)
        except BackupError as e:
            await self.backups.discard()
            return HeavyweightExecutionResult.failure(name, str(e))

        # Pre-state
        before: Optional[SharedInstructionsSnapshot] = None
        if config.migrate_shared_instructions:
            try:
                before = await self.instructions.capture()
            except (OSError, UnicodeDecodeError) as e:
                await self.restore_backups()
                return HeavyweightExecutionResult.failure(
                    name, f"Failed to read shared instructions file: {e}", rolled_back=True
                )

        # Command
        command_output: Optional[str] = None
        exit_code: Optional[int] = None
        if config.init_command:
            self.plugin_logger.info(f"Executing: {config.command_display}")
            try:
                result = await self.runner.run(
                    config.init_command,
                    cwd=self._working_directory(config),
                    env=config.env,
                    timeout_ms=config.timeout,
                    shell=config.shell,
                )
            except (CommandTimeoutError, CommandExecutionError) as e:
                self.plugin_logger.error(f"  Init command failed: {e}")
                await self.restore_backups()
                return HeavyweightExecutionResult.failure(
                    name, str(e), command_output=str(e), exit_code=-1, rolled_back=True
                )

            command_output, exit_code = result.output, result.exit_code
            if exit_code != 0:
                self.plugin_logger.warning(f"  Init command exited with code {exit_code}")

        # Migration
        migrated_rules_file: Optional[Path] = None
        if before is not None:
            try:
                migrated_rules_file = await self.instructions.migrate(
                    before,
                    self.rules_writer,
                    config.rules_file_name or name,
                    self._rules_priority(plugin),
                    self.plugin_logger,
                )
            except MigrationError as e:
                self.plugin_logger.error(f"  {e}")
                await self.restore_backups()
                return HeavyweightExecutionResult.failure(
                    name,
                    str(e),
                    command_output=command_output,
                    exit_code=exit_code,
                    rolled_back=True,
                )

        # Merge
        restored_instructions: Optional[Path] = None
        if migrated_rules_file is not None and before.existed:
            restored_instructions = before.path

        self.plugin_logger.info("Merging protected files...")
        merge_results = await self._merge_all(
            plugin, config.protected_files, context, restored_instructions
        )
        failed = [result for result in merge_results if not result.success]

        # Reconcile
        if not failed:
            await self.backups.discard()
            self.plugin_logger.success(f"Heavyweight plugin '{name}' initialized successfully")
        else:
            self.plugin_logger.warning("Merge failed, restoring original files...")
            await self.restore_backups()

        logger.info(
            "heavyweight_plugin_finished",
            plugin=name,
            success=not failed,
            exit_code=exit_code,
            failed_merges=[result.path for result in failed],
        )
        return HeavyweightExecutionResult(
            plugin_name=name,
            success=not failed,
            command_output=command_output,
            exit_code=exit_code,
            merge_results=merge_results,
            error=f"Failed to merge {len(failed)} protected file(s)" if failed else None,
            rolled_back=bool(failed),
            migrated_rules_file=migrated_rules_file,
        )

    async def get_config(self, plugin: Plugin, context: PluginContext) -> HeavyweightConfig:
        """
        Retrieve and validate a plugin's heavyweight configuration.

        Raises:
            MissingHeavyweightConfigError: If the plugin has no get_heavyweight_config
            ConfigRetrievalError: If it raises or returns an invalid configuration
        """
        if not plugin.supports_heavyweight:
            raise MissingHeavyweightConfigError(plugin.name)

        try:
            raw = await maybe_await(plugin.get_heavyweight_config(context))
        except Exception as e:
            raise ConfigRetrievalError(plugin.name, str(e)) from e

        if isinstance(raw, HeavyweightConfig):
            return raw
        try:
            return HeavyweightConfig.model_validate(raw)
        except PydanticValidationError as e:
            raise ConfigRetrievalError(plugin.name, str(e)) from e

    async def restore_backups(self) -> List[RestoreError]:
        """Restore every protected file of the current run and discard the backups."""
        entries = {entry.relative_path: entry for entry in self.backups.entries}
        errors = await self.backups.restore()
        failed = {error.path for error in errors}

        for path, entry in entries.items():
            if path in failed:
                continue
            if entry.existed:
                self.plugin_logger.info(f"    Restored: {path}")
            else:
                self.plugin_logger.info(f"    Removed: {path}")
        for error in errors:
            self.plugin_logger.error(f"    {error}")
        return errors

    async def _merge_all(
        self,
        plugin: Plugin,
        protected_files: List[ProtectedFile],
        context: PluginContext,
        restored_instructions: Optional[Path] = None,
    ) -> List[FileMergeResult]:
        results: List[FileMergeResult] = []
        for protected_file in protected_files:
            try:
                result = await self._merge_file(
                    plugin, protected_file, context, restored_instructions
                )
            except MergeError as e:
                result = FileMergeResult(protected_file.path, False, error=str(e))
            except (OSError, UnicodeDecodeError) as e:
                result = FileMergeResult(protected_file.path, False, error=str(e))

            if result.success:
                self.plugin_logger.success(f"    Merged: {protected_file.path}")
            else:
                self.plugin_logger.warning(
                    f"    Merge failed for {protected_file.path}: {result.error}"
                )
                logger.warning("merge_failed", path=protected_file.path, error=result.error)
            results.append(result)
        return results

    async def _merge_file(
        self,
        plugin: Plugin,
        protected_file: ProtectedFile,
        context: PluginContext,
        restored_instructions: Optional[Path] = None,
    ) -> FileMergeResult:
        path = protected_file.path
        target = self.project_root / path
        entry = self.backups.get(path)

        # Migration already put the shared instructions file back to its pre-run content
        if restored_instructions is not None and target == restored_instructions:
            content = entry.content if entry is not None else None
            return FileMergeResult(path, True, content=content)

        ours = entry.content if entry is not None and entry.existed else None
        theirs = await self.fs.read_file(target) if await self.fs.file_exists(target) else None

        if ours is None and theirs is None:
            return FileMergeResult(path, True)

        if ours is None:
            return FileMergeResult(path, True, content=theirs)

        if theirs is None:
            await self.fs.write_file(target, ours)
            return FileMergeResult(path, True, content=ours)

        merged = await merge_content(
            plugin,
            path,
            protected_file.merge_strategy,
            ours,
            theirs,
            context,
            self.settings.merge_separator,
        )
        await self.fs.write_file(target, merged)
        return FileMergeResult(path, True, content=merged)

    def _working_directory(self, config: HeavyweightConfig) -> Path:
        if config.working_directory:
            return self.project_root / config.working_directory
        return self.project_root

    def _rules_priority(self, plugin: Plugin) -> int:
        priority = plugin.descriptor.rules_priority
        return priority if priority is not None else self.settings.heavyweight_rules_priority
