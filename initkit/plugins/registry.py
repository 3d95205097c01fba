"""Plugin registry for managing registered plugins."""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from initkit.errors import DuplicateError, NotFoundError, ValidationError
from initkit.logging import get_logger
from initkit.plugins.base import HookName, Plugin, PluginDescriptor
from initkit.plugins.config import PluginConfig, VisibilityPolicy

logger = get_logger(__name__)

# Always visible regardless of the visibility policy
PROTECTED_PLUGINS = ("core",)

_HOOK_NAMES = frozenset(hook.value for hook in HookName)


def _raw_name(plugin: Plugin) -> str:
    meta = plugin.meta
    if isinstance(meta, PluginDescriptor):
        return meta.name
    if isinstance(meta, Mapping) and isinstance(meta.get("name"), str) and meta["name"]:
        return meta["name"]
    return "<unnamed>"


class PluginRegistry:
    """Registry for managing plugins, keyed by name and by command name."""

    def __init__(self):
        """Initialize plugin registry."""
        self._plugins: Dict[str, Plugin] = {}
        self._descriptors: Dict[str, PluginDescriptor] = {}
        self._command_index: Dict[str, str] = {}

    def register(self, plugin: Plugin) -> None:
        """
        Register a plugin.

        The registry is left untouched when validation or the duplicate
        checks fail.

        Args:
            plugin: Plugin instance to register

        Raises:
            ValidationError: If the plugin does not match the plugin schema
            DuplicateError: If the name or command name is already registered
        """
        descriptor = self._validate(plugin)

        if descriptor.name in self._plugins:
            raise DuplicateError("name", descriptor.name, descriptor.name)

        if descriptor.command_name in self._command_index:
            raise DuplicateError(
                "command_name",
                descriptor.command_name,
                self._command_index[descriptor.command_name],
            )

        self._plugins[descriptor.name] = plugin
        self._descriptors[descriptor.name] = descriptor
        self._command_index[descriptor.command_name] = descriptor.name

        logger.info(
            "Registered plugin",
            name=descriptor.name,
            version=descriptor.version,
            heavyweight=descriptor.heavyweight,
        )

    def _validate(self, plugin: Plugin) -> PluginDescriptor:
        if not isinstance(plugin, Plugin):
            raise ValidationError("<unnamed>", "plugin", "must be a Plugin instance")

        try:
            descriptor = plugin.descriptor
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first["loc"] else "meta"
            raise ValidationError(_raw_name(plugin), field, first["msg"]) from e

        name = descriptor.name

        for hook_name, hook in plugin.hooks.items():
            if hook_name not in _HOOK_NAMES:
                raise ValidationError(name, "hooks", f"invalid hook '{hook_name}'")
            if not callable(hook):
                raise ValidationError(name, "hooks", f"hook '{hook_name}' must be callable")

        for hook in HookName:
            if hook.value in plugin.hooks:
                continue
            method = getattr(plugin, hook.value, None)
            if method is not None and not callable(method):
                raise ValidationError(name, hook.value, "hook must be callable")

        for command in plugin.commands:
            self._validate_command(name, command)

        for capability in ("get_heavyweight_config", "merge_file"):
            value = getattr(plugin, capability, None)
            if value is not None and not callable(value):
                raise ValidationError(name, capability, "must be callable")

        return descriptor

    @staticmethod
    def _validate_command(plugin_name: str, command: Any) -> None:
        command_name = getattr(command, "name", None)
        if not isinstance(command_name, str) or not command_name:
            raise ValidationError(plugin_name, "commands", "command must have a valid name")
        description = getattr(command, "description", None)
        if not isinstance(description, str) or not description:
            raise ValidationError(
                plugin_name, "commands", f"command '{command_name}' must have a description"
            )
        if not callable(getattr(command, "action", None)):
            raise ValidationError(
                plugin_name, "commands", f"command '{command_name}' must have an action function"
            )
        for option in getattr(command, "options", None) or []:
            if not isinstance(getattr(option, "flags", None), str) or not option.flags:
                raise ValidationError(
                    plugin_name, "commands", f"command '{command_name}' option must have flags"
                )
            if not isinstance(getattr(option, "description", None), str) or not option.description:
                raise ValidationError(
                    plugin_name,
                    "commands",
                    f"command '{command_name}' option must have a description",
                )

    def unregister(self, plugin_name: str) -> Optional[Plugin]:
        """
        Unregister a plugin.

        Args:
            plugin_name: Name of plugin to unregister

        Returns:
            Unregistered plugin instance or None if not found
        """
        if plugin_name not in self._plugins:
            return None

        plugin = self._plugins.pop(plugin_name)
        descriptor = self._descriptors.pop(plugin_name)
        self._command_index.pop(descriptor.command_name, None)

        logger.info("Unregistered plugin", name=plugin_name)
        return plugin

    def get(self, plugin_name: str) -> Plugin:
        """
        Get a plugin by name.

        Raises:
            NotFoundError: If no plugin has that name
        """
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            raise NotFoundError(plugin_name)
        return plugin

    def get_descriptor(self, plugin_name: str) -> PluginDescriptor:
        descriptor = self._descriptors.get(plugin_name)
        if descriptor is None:
            raise NotFoundError(plugin_name)
        return descriptor

    def get_by_command_name(self, command_name: str) -> Optional[Plugin]:
        """Get a plugin by CLI command name, or None if not found."""
        plugin_name = self._command_index.get(command_name)
        return self._plugins.get(plugin_name) if plugin_name else None

    def get_all(self) -> List[Plugin]:
        """All plugins in registration order."""
        return list(self._plugins.values())

    def list_plugins(self) -> List[str]:
        return list(self._plugins.keys())

    def has(self, plugin_name: str) -> bool:
        return plugin_name in self._plugins

    def count(self) -> int:
        return len(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, plugin_name: object) -> bool:
        return plugin_name in self._plugins

    def clear(self) -> None:
        """Remove every plugin."""
        self._plugins.clear()
        self._descriptors.clear()
        self._command_index.clear()
        logger.info("Cleared plugin registry")

    def get_enabled(self, configs: Optional[Mapping[str, PluginConfig]] = None) -> List[Plugin]:
        """
        Get plugins that are not explicitly disabled.

        Args:
            configs: Per-plugin configuration; plugins without an entry are enabled

        Returns:
            Enabled plugins in registration order
        """
        configs = configs or {}
        return [
            plugin
            for name, plugin in self._plugins.items()
            if name not in configs or configs[name].enabled
        ]

    def get_visible(self, policy: Optional[VisibilityPolicy] = None) -> List[Plugin]:
        """
        Get plugins offered for selection under a visibility policy.

        A non-empty allow-list takes precedence over the deny-list. Protected
        plugins are always visible.

        Args:
            policy: Visibility policy, None shows everything

        Returns:
            Visible plugins in registration order
        """
        if policy is None:
            return self.get_all()

        if policy.enabled:
            allowed = set(policy.enabled) | set(PROTECTED_PLUGINS)
            return [plugin for name, plugin in self._plugins.items() if name in allowed]

        if policy.disabled:
            denied = set(policy.disabled) - set(PROTECTED_PLUGINS)
            return [plugin for name, plugin in self._plugins.items() if name not in denied]

        return self.get_all()
