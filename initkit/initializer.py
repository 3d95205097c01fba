"""Orchestrates one initialization run."""

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from initkit.config import Settings, settings as default_settings
from initkit.dependencies import (DependencyChecker, InstallResult,
                                  PluginDependencyStatus)
from initkit.heavyweight.command import CommandRunner
from initkit.heavyweight.manager import HeavyweightPluginManager
from initkit.locking import ProjectLock
from initkit.logging import PluginLogger, bind_context, get_logger, unbind_context
from initkit.plugins.base import HeavyweightExecutionResult, Plugin
from initkit.plugins.config import PluginConfig, ToolDependency, VisibilityPolicy
from initkit.plugins.context import (PluginContext, SharedKeys,
                                     create_plugin_context)
from initkit.plugins.loader import PluginLoader
from initkit.plugins.registry import PluginRegistry
from initkit.plugins.selection import resolve_conflicts

logger = get_logger(__name__)


@dataclass
class InitializationReport:
    """Outcome of one run."""
    run_id: str
    order: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    heavyweight_results: Dict[str, HeavyweightExecutionResult] = field(default_factory=dict)
    tools_to_install: List[ToolDependency] = field(default_factory=list)
    installed_tools: Dict[str, InstallResult] = field(default_factory=dict)

    @property
    def failed_plugins(self) -> List[str]:
        return [name for name, result in self.heavyweight_results.items() if not result.success]

    @property
    def success(self) -> bool:
        return not self.failed_plugins


class PluginInitializer:
    """Runs the selected plugins against a project.

    Selection narrows the registry in this order: visibility policy, explicit
    selection, per-plugin configs, conflicts, tool availability. Plugins that
    depend on a skipped plugin are skipped too. The rest run through the full
    lifecycle under an exclusive project lock.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        project_root: Union[str, Path],
        policy: Optional[VisibilityPolicy] = None,
        plugin_logger: Optional[PluginLogger] = None,
        runner: Optional[CommandRunner] = None,
        settings: Settings = default_settings,
        template: Any = None,
        ui: Any = None,
    ):
        self.registry = registry
        self.project_root = Path(project_root)
        self.policy = policy
        self.plugin_logger = plugin_logger or PluginLogger()
        self.runner = runner or CommandRunner(self.project_root)
        self.settings = settings
        self.template = template
        self.ui = ui
        self.checker = DependencyChecker(
            self.runner,
            settings.tool_check_timeout_ms,
            settings.tool_install_timeout_ms,
        )

    async def run(
        self,
        selected: Optional[Sequence[str]] = None,
        plugin_configs: Optional[Mapping[str, Union[PluginConfig, Mapping[str, Any]]]] = None,
        install_tools: bool = False,
    ) -> InitializationReport:
        """
        Run an initialization.

        Args:
            selected: Plugin names in selection order; None selects every visible plugin
            plugin_configs: Per-plugin configuration
            install_tools: Install missing tools that have an install command

        Returns:
            Report with the execution order, skipped plugins and heavyweight results

        Raises:
            InitializationLockedError: If another run holds the project lock
            DependencyError: If a plugin depends on one that was never selected
            HookExecutionError: If a lifecycle hook fails
        """
        run_id = uuid.uuid4().hex[:12]
        lock = ProjectLock(self.project_root / self.settings.lock_file)

        bind_context(run_id=run_id, project_root=str(self.project_root))
        try:
            with lock.hold():
                return await self._run(run_id, selected, plugin_configs, install_tools)
        finally:
            unbind_context("run_id", "project_root")

    async def _run(
        self,
        run_id: str,
        selected: Optional[Sequence[str]],
        plugin_configs: Optional[Mapping[str, Union[PluginConfig, Mapping[str, Any]]]],
        install_tools: bool = False,
    ) -> InitializationReport:
        report = InitializationReport(run_id=run_id)
        context = create_plugin_context(
            self.project_root,
            plugin_configs=plugin_configs,
            logger=self.plugin_logger,
            template=self.template,
            ui=self.ui,
        )

        candidates = self._select(selected, context.plugin_configs, report)
        plugins = await self._check_tools(candidates, report, context)
        if install_tools and report.tools_to_install:
            await self._install_tools(report, context)
        plugins = self._drop_orphans(plugins, report)

        manager = HeavyweightPluginManager(
            self.project_root,
            plugin_logger=self.plugin_logger,
            fs=context.fs,
            runner=self.runner,
            settings=self.settings,
        )
        loader = PluginLoader(self.registry, heavyweight_manager=manager)
        ordered = loader.sort_by_dependencies(plugins)
        loader.set_loaded_plugins(ordered)
        report.order = [plugin.name for plugin in ordered]

        logger.info(
            "initialization_started",
            order=report.order,
            skipped=sorted(report.skipped),
        )

        await loader.run_lifecycle(context)

        report.heavyweight_results = dict(loader.heavyweight_results)
        logger.info(
            "initialization_finished",
            plugins=len(report.order),
            failed=report.failed_plugins,
        )
        return report

    def _select(
        self,
        selected: Optional[Sequence[str]],
        configs: Mapping[str, PluginConfig],
        report: InitializationReport,
    ) -> List[Plugin]:
        visible = {plugin.name: plugin for plugin in self.registry.get_visible(self.policy)}

        if selected is None:
            names = list(visible)
        else:
            names = []
            for name in selected:
                if not self.registry.has(name):
                    report.skipped[name] = "not registered"
                elif name not in visible:
                    report.skipped[name] = "hidden by visibility policy"
                else:
                    names.append(name)

        enabled = []
        for name in names:
            config = configs.get(name)
            if config is not None and not config.enabled:
                report.skipped[name] = "disabled by configuration"
            else:
                enabled.append(name)

        resolution = resolve_conflicts(enabled, [visible[name] for name in enabled])
        for name, other in resolution.removed:
            report.skipped[name] = f"conflicts with {other}"
            self.plugin_logger.warning(f"Removed {name} (conflicts with {other})")

        # Selection order only decides conflicts; ties run in registration order
        survivors = set(resolution.resolved)
        return [plugin for plugin in visible.values() if plugin.name in survivors]

    async def _check_tools(
        self,
        plugins: List[Plugin],
        report: InitializationReport,
        context: PluginContext,
    ) -> List[Plugin]:
        statuses: Dict[str, PluginDependencyStatus] = await self.checker.check_all(plugins)
        context.shared.set(SharedKeys.TOOL_DEPENDENCIES, statuses)

        available = []
        for plugin in plugins:
            status = statuses[plugin.name]
            if status.available:
                available.append(plugin)
            else:
                report.skipped[plugin.name] = status.disabled_reason
                self.plugin_logger.warning(f"Skipping {plugin.name}: {status.disabled_reason}")

        report.tools_to_install = self.checker.get_tools_to_install(available, statuses)
        return available

    async def _install_tools(self, report: InitializationReport, context: PluginContext) -> None:
        def progress(name: str, status: str) -> None:
            if status == "installing":
                self.plugin_logger.info(f"Installing {name}...")
            elif status == "success":
                self.plugin_logger.success(f"  Installed {name}")
            else:
                self.plugin_logger.warning(f"  {name} installation failed")

        report.installed_tools = await self.checker.install_tools(report.tools_to_install, progress)
        installed = [name for name, result in report.installed_tools.items() if result.success]
        context.shared.set(SharedKeys.INSTALLED_DEPENDENCIES, installed)
        failed = [name for name in report.installed_tools if name not in installed]
        logger.info("tools_installed", installed=installed, failed=failed)

    def _drop_orphans(self, plugins: List[Plugin], report: InitializationReport) -> List[Plugin]:
        remaining = list(plugins)
        changed = True
        while changed:
            changed = False
            names = {plugin.name for plugin in remaining}
            for plugin in list(remaining):
                for dependency in plugin.descriptor.dependencies:
                    if dependency not in names and dependency in report.skipped:
                        report.skipped[plugin.name] = f"depends on skipped plugin '{dependency}'"
                        remaining.remove(plugin)
                        changed = True
                        break
        return remaining
