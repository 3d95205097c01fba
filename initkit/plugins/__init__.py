"""initkit plugin system.

Plugins are registered in a PluginRegistry, ordered by the PluginLoader and
driven through the before_init, execute, after_init and cleanup hooks.
"""

from initkit.plugins.base import (
    LIFECYCLE,
    CommandOption,
    FileMergeResult,
    HeavyweightExecutionResult,
    HookName,
    Plugin,
    PluginCommand,
    PluginDescriptor,
)
from initkit.plugins.config import (
    HeavyweightConfig,
    MergeStrategy,
    PluginConfig,
    ProtectedFile,
    ToolDependency,
    VisibilityPolicy,
)
from initkit.plugins.context import (
    PluginContext,
    SharedData,
    SharedKeys,
    create_plugin_context,
)
from initkit.plugins.loader import PluginLoader
from initkit.plugins.registry import PROTECTED_PLUGINS, PluginRegistry
from initkit.plugins.selection import (
    is_heavyweight,
    resolve_conflicts,
    separate_by_weight,
)

__all__ = [
    "LIFECYCLE",
    "CommandOption",
    "FileMergeResult",
    "HeavyweightConfig",
    "HeavyweightExecutionResult",
    "HookName",
    "MergeStrategy",
    "PROTECTED_PLUGINS",
    "Plugin",
    "PluginCommand",
    "PluginConfig",
    "PluginContext",
    "PluginDescriptor",
    "PluginLoader",
    "PluginRegistry",
    "ProtectedFile",
    "SharedData",
    "SharedKeys",
    "ToolDependency",
    "VisibilityPolicy",
    "create_plugin_context",
    "is_heavyweight",
    "resolve_conflicts",
    "separate_by_weight",
]
