"""Plugin loader: dependency ordering and lifecycle hook dispatch."""

from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence, Union

from initkit.errors import (DependencyCycleError, HookExecutionError,
                            MissingDependencyError)
from initkit.logging import bind_context, get_logger, unbind_context
from initkit.plugins.base import (LIFECYCLE, HeavyweightExecutionResult,
                                  HookName, Plugin, maybe_await)
from initkit.plugins.config import PluginConfig
from initkit.plugins.context import PluginContext, SharedKeys
from initkit.plugins.registry import PluginRegistry

if TYPE_CHECKING:
    from initkit.heavyweight.manager import HeavyweightPluginManager

logger = get_logger(__name__)

_UNVISITED, _VISITING, _DONE = 0, 1, 2


class PluginLoader:
    """Orders enabled plugins by dependency and runs their lifecycle hooks."""

    def __init__(
        self,
        registry: PluginRegistry,
        heavyweight_manager: Optional["HeavyweightPluginManager"] = None,
    ):
        """
        Initialize plugin loader.

        Args:
            registry: Registry plugins are loaded from
            heavyweight_manager: Manager that runs heavyweight plugins during
                the execute phase; without one their execute hook is called
        """
        self.registry = registry
        self.heavyweight_manager = heavyweight_manager
        self.heavyweight_results: Dict[str, HeavyweightExecutionResult] = {}
        self._loaded: Dict[str, Plugin] = {}

    async def load(
        self,
        configs: Optional[Mapping[str, PluginConfig]],
        context: PluginContext,
    ) -> List[Plugin]:
        """
        Load enabled plugins in dependency order.

        Args:
            configs: Per-plugin configuration
            context: Run context

        Returns:
            Loaded plugins in execution order

        Raises:
            MissingDependencyError: If an enabled plugin depends on a plugin
                that is not enabled
            DependencyCycleError: If the dependency graph has a cycle
        """
        enabled = self.registry.get_enabled(configs)
        ordered = self.sort_by_dependencies(enabled)

        self._loaded.clear()
        for plugin in ordered:
            self._loaded[plugin.name] = plugin
            context.logger.info(f"Loading plugin: {plugin.name}")

        logger.info("Plugins loaded", order=list(self._loaded))
        return ordered

    def sort_by_dependencies(self, plugins: Sequence[Plugin]) -> List[Plugin]:
        """
        Topologically sort plugins so dependencies come first.

        Plugins with no ordering constraint between them keep their input
        order.

        Args:
            plugins: Plugins to sort

        Returns:
            Plugins in execution order

        Raises:
            MissingDependencyError: If a dependency is not among ``plugins``
            DependencyCycleError: If the dependency graph has a cycle
        """
        by_name: Dict[str, Plugin] = {}
        for plugin in plugins:
            by_name.setdefault(plugin.name, plugin)

        for name, plugin in by_name.items():
            for dependency in plugin.descriptor.dependencies:
                if dependency not in by_name:
                    raise MissingDependencyError(name, dependency)

        state: Dict[str, int] = {name: _UNVISITED for name in by_name}
        path: List[str] = []
        ordered: List[Plugin] = []

        def visit(name: str) -> None:
            state[name] = _VISITING
            path.append(name)
            for dependency in by_name[name].descriptor.dependencies:
                if state[dependency] == _VISITING:
                    cycle = path[path.index(dependency):]
                    logger.error("Dependency cycle detected", cycle=cycle)
                    raise DependencyCycleError(cycle)
                if state[dependency] == _UNVISITED:
                    visit(dependency)
            path.pop()
            state[name] = _DONE
            ordered.append(by_name[name])

        for name in by_name:
            if state[name] == _UNVISITED:
                visit(name)

        return ordered

    def set_loaded_plugins(self, plugins: Sequence[Plugin]) -> None:
        """Replace the loaded set without sorting or validation."""
        self._loaded = {plugin.name: plugin for plugin in plugins}

    def get_loaded_plugins(self) -> List[Plugin]:
        return list(self._loaded.values())

    def clear(self) -> None:
        self._loaded.clear()
        self.heavyweight_results.clear()

    async def execute_hook(self, hook: Union[HookName, str], context: PluginContext) -> None:
        """
        Run one lifecycle hook on every loaded plugin, in load order.

        Args:
            hook: Hook to run
            context: Run context

        Raises:
            HookExecutionError: On the first hook that raises; later plugins
                are not run
        """
        hook = HookName(hook)

        for plugin in list(self._loaded.values()):
            if (
                hook is HookName.EXECUTE
                and self.heavyweight_manager is not None
                and plugin.is_heavyweight
            ):
                await self._execute_heavyweight(plugin, context)
                continue

            fn = plugin.get_hook(hook)
            if fn is None:
                continue

            bind_context(plugin=plugin.name, hook=hook.value)
            try:
                await maybe_await(fn(context))
            except Exception as e:
                logger.error(
                    "Plugin hook failed",
                    plugin=plugin.name,
                    hook=hook.value,
                    error=str(e),
                )
                raise HookExecutionError(plugin.name, hook.value, e) from e
            finally:
                unbind_context("plugin", "hook")

    async def _execute_heavyweight(self, plugin: Plugin, context: PluginContext) -> None:
        bind_context(plugin=plugin.name, hook=HookName.EXECUTE.value)
        try:
            result = await self.heavyweight_manager.execute(plugin, context)
        except Exception as e:
            logger.error(
                "Heavyweight plugin failed",
                plugin=plugin.name,
                hook=HookName.EXECUTE.value,
                error=str(e),
            )
            raise HookExecutionError(plugin.name, HookName.EXECUTE.value, e) from e
        finally:
            unbind_context("plugin", "hook")

        self.heavyweight_results[plugin.name] = result
        context.shared.set(SharedKeys.HEAVYWEIGHT_RESULTS, dict(self.heavyweight_results))

        if not result.success:
            context.logger.warning(f"Heavyweight plugin '{plugin.name}' had issues:")
            if result.error:
                context.logger.warning(f"  {result.error}")
            for merge_result in result.failed_merges:
                context.logger.warning(
                    f"  File merge failed: {merge_result.path} - {merge_result.error}"
                )

    async def run_lifecycle(self, context: PluginContext) -> None:
        """Run every lifecycle phase in order, each to completion before the next."""
        for hook in LIFECYCLE:
            logger.debug("Running lifecycle phase", hook=hook.value)
            await self.execute_hook(hook, context)
