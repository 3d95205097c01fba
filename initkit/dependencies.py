"""External tool availability checks for plugins."""

import asyncio
import re
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from initkit.config import settings
from initkit.errors import CommandExecutionError, CommandTimeoutError
from initkit.heavyweight.command import CommandRunner
from initkit.logging import get_logger
from initkit.plugins.base import Plugin
from initkit.plugins.config import ToolDependency

logger = get_logger(__name__)

VERSION_PATTERN = re.compile(r"v?(\d+\.\d+(?:\.\d+)?(?:-[\w.]+)?)")

_OS_NAMES = {"darwin": "macOS", "linux": "Linux", "win32": "Windows"}

# Keeps package managers from prompting
INSTALL_ENV = {"DEBIAN_FRONTEND": "noninteractive", "HOMEBREW_NO_AUTO_UPDATE": "1"}

ProgressFn = Callable[[str, str], None]


def platform_key() -> str:
    """Install command key for the running platform: darwin, win32 or linux."""
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform.startswith("win"):
        return "win32"
    return "linux"


def parse_version(output: str) -> Optional[str]:
    match = VERSION_PATTERN.search(output)
    return match.group(1) if match else None


@dataclass
class ToolCheckResult:
    """Availability of one tool."""
    name: str
    available: bool
    can_install: bool = False
    install_command: Optional[str] = None
    version: Optional[str] = None


@dataclass
class PluginDependencyStatus:
    """Tool availability for one plugin."""
    plugin_name: str
    available: bool
    missing_required: List[str] = field(default_factory=list)
    to_install: List[ToolDependency] = field(default_factory=list)
    disabled_reason: Optional[str] = None
    checks: List[ToolCheckResult] = field(default_factory=list)


@dataclass
class InstallResult:
    """Outcome of installing one tool."""
    name: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None


class DependencyChecker:
    """Probes external tools plugins depend on.

    Probes never raise: a probe that fails to start, exits non-zero or times
    out marks the tool unavailable.
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        timeout_ms: Optional[int] = None,
        install_timeout_ms: Optional[int] = None,
    ):
        self.runner = runner or CommandRunner()
        self.timeout_ms = timeout_ms or settings.tool_check_timeout_ms
        self.install_timeout_ms = install_timeout_ms or settings.tool_install_timeout_ms
        self.platform = platform_key()

    async def check_tool(self, dependency: ToolDependency) -> ToolCheckResult:
        """Probe a single tool."""
        available = False
        version = None

        try:
            result = await self.runner.run(dependency.probe_command, timeout_ms=self.timeout_ms)
        except (CommandExecutionError, CommandTimeoutError) as e:
            logger.debug("tool_probe_failed", tool=dependency.name, error=str(e))
        else:
            available = result.exit_code == 0
            if available:
                version = parse_version(result.stdout or result.stderr)

        install_command = dependency.install_commands.get(self.platform)
        logger.debug(
            "tool_checked",
            tool=dependency.name,
            available=available,
            version=version,
        )
        return ToolCheckResult(
            name=dependency.name,
            available=available,
            can_install=not available and install_command is not None,
            install_command=install_command,
            version=version,
        )

    async def check_plugin(self, plugin: Plugin) -> PluginDependencyStatus:
        """
        Check every tool a plugin declares.

        A plugin is unavailable when a required tool is missing and has no
        install command for this platform.
        """
        dependencies = plugin.descriptor.tool_dependencies
        if not dependencies:
            return PluginDependencyStatus(plugin_name=plugin.name, available=True)

        checks = await asyncio.gather(*(self.check_tool(dep) for dep in dependencies))

        missing_required: List[str] = []
        to_install: List[ToolDependency] = []
        for dependency, check in zip(dependencies, checks):
            if check.available:
                continue
            if check.can_install:
                to_install.append(dependency)
            elif not dependency.optional:
                missing_required.append(dependency.name)

        disabled_reason = None
        if missing_required:
            disabled_reason = (
                f"Missing: {', '.join(missing_required)} "
                f"(not available on {_OS_NAMES[self.platform]})"
            )
            logger.info("plugin_unavailable", plugin=plugin.name, missing=missing_required)

        return PluginDependencyStatus(
            plugin_name=plugin.name,
            available=not missing_required,
            missing_required=missing_required,
            to_install=to_install,
            disabled_reason=disabled_reason,
            checks=list(checks),
        )

    async def check_all(self, plugins: Iterable[Plugin]) -> Dict[str, PluginDependencyStatus]:
        """Check all plugins concurrently; returns once every probe has finished."""
        plugins = list(plugins)
        statuses = await asyncio.gather(*(self.check_plugin(plugin) for plugin in plugins))
        return {plugin.name: status for plugin, status in zip(plugins, statuses)}

    def get_tools_to_install(
        self,
        plugins: Iterable[Plugin],
        statuses: Mapping[str, PluginDependencyStatus],
    ) -> List[ToolDependency]:
        """Installable tools across plugins, deduplicated by tool name."""
        tools: Dict[str, ToolDependency] = {}
        for plugin in plugins:
            status = statuses.get(plugin.name)
            if status is None:
                continue
            for tool in status.to_install:
                tools.setdefault(tool.name, tool)
        return list(tools.values())

    async def install_tool(self, dependency: ToolDependency) -> InstallResult:
        """
        Install a tool with its install command for this platform.

        The tool is probed before and after the command runs, so a command
        that exits cleanly without providing the tool is a failure.

        Args:
            dependency: Tool to install

        Returns:
            Install result; failures are reported, never raised
        """
        name = dependency.name
        check = await self.check_tool(dependency)
        if check.available:
            return InstallResult(
                name=name,
                success=True,
                output=f"{name} is already installed (version {check.version or 'unknown'})",
            )

        install_command = dependency.install_commands.get(self.platform)
        if install_command is None:
            return InstallResult(
                name=name,
                success=False,
                error=f"No install command available for {name} on {_OS_NAMES[self.platform]}",
            )

        logger.info("tool_install_started", tool=name, command=install_command)
        try:
            result = await self.runner.run(
                install_command,
                env=INSTALL_ENV,
                timeout_ms=self.install_timeout_ms,
                shell=True,
            )
        except (CommandExecutionError, CommandTimeoutError) as e:
            logger.warning("tool_install_failed", tool=name, error=str(e))
            return InstallResult(name=name, success=False, error=str(e))

        if result.exit_code != 0:
            logger.warning("tool_install_failed", tool=name, exit_code=result.exit_code)
            return InstallResult(
                name=name,
                success=False,
                output=result.output,
                error=f"Command failed with code {result.exit_code}",
            )

        verify = await self.check_tool(dependency)
        if not verify.available:
            return InstallResult(
                name=name,
                success=False,
                output=result.output,
                error=f"Installation command completed but {name} is still not available",
            )

        logger.info("tool_installed", tool=name, version=verify.version)
        return InstallResult(name=name, success=True, output=result.output)

    async def install_tools(
        self,
        tools: Iterable[ToolDependency],
        on_progress: Optional[ProgressFn] = None,
    ) -> Dict[str, InstallResult]:
        """Install tools one at a time; package managers do not share locks well."""
        results: Dict[str, InstallResult] = {}
        for tool in tools:
            if on_progress is not None:
                on_progress(tool.name, "installing")
            result = await self.install_tool(tool)
            results[tool.name] = result
            if on_progress is not None:
                on_progress(tool.name, "success" if result.success else "failed")
        return results
