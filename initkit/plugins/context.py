"""Shared context handed to every plugin hook during a run."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from initkit.errors import SharedDataTypeError
from initkit.filesystem import FileOperations
from initkit.logging import PluginLogger, get_logger
from initkit.plugins.config import PluginConfig

logger = get_logger(__name__)


class SharedKeys:
    """Shared data keys published by the engine, with their value types.

    ``tool_dependencies`` maps plugin names to their tool availability.
    ``installed_dependencies`` lists tools installed during the run.
    ``heavyweight_results`` maps plugin names to heavyweight results.
    Plugins add contracts for their own keys with ``SharedData.register``.
    """

    TOOL_DEPENDENCIES = "tool_dependencies"
    INSTALLED_DEPENDENCIES = "installed_dependencies"
    HEAVYWEIGHT_RESULTS = "heavyweight_results"

    TYPES: Dict[str, type] = {
        TOOL_DEPENDENCIES: dict,
        INSTALLED_DEPENDENCIES: list,
        HEAVYWEIGHT_RESULTS: dict,
    }


class SharedData:
    """String-keyed store plugins use to pass data to later plugins.

    Known keys carry a type contract checked on ``set``. Unknown keys are
    stored as-is.
    """

    def __init__(self, types: Optional[Mapping[str, type]] = None):
        self._types: Dict[str, type] = dict(SharedKeys.TYPES)
        if types:
            self._types.update(types)
        self._data: Dict[str, Any] = {}

    def register(self, key: str, value_type: type) -> None:
        """Add or replace the type contract for a key."""
        existing = self._data.get(key)
        if key in self._data and not isinstance(existing, value_type):
            raise SharedDataTypeError(key, value_type, type(existing))
        self._types[key] = value_type

    def expected_type(self, key: str) -> Optional[type]:
        return self._types.get(key)

    def set(self, key: str, value: Any) -> None:
        """
        Store a value.

        Raises:
            SharedDataTypeError: If the key is known and the value has the wrong type
        """
        expected = self._types.get(key)
        if expected is not None and not isinstance(value, expected):
            raise SharedDataTypeError(key, expected, type(value))
        self._data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    def keys(self) -> List[str]:
        return list(self._data)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


@dataclass
class PluginContext:
    """Mutable state shared by all plugins for the duration of one run."""

    project_root: Path
    target_dir: Path
    plugin_configs: Dict[str, PluginConfig] = field(default_factory=dict)
    shared: SharedData = field(default_factory=SharedData)
    logger: PluginLogger = field(default_factory=PluginLogger)
    fs: FileOperations = field(default_factory=FileOperations)
    template: Any = None
    ui: Any = None

    def plugin_config(self, plugin_name: str) -> PluginConfig:
        """Return the plugin's config, or a default enabled config."""
        config = self.plugin_configs.get(plugin_name)
        return config if config is not None else PluginConfig()


def create_plugin_context(
    project_root: Union[str, Path],
    target_dir: Optional[Union[str, Path]] = None,
    plugin_configs: Optional[Mapping[str, Union[PluginConfig, Mapping[str, Any]]]] = None,
    logger: Optional[PluginLogger] = None,
    fs: Optional[FileOperations] = None,
    template: Any = None,
    ui: Any = None,
) -> PluginContext:
    """
    Build a context with defaults for everything not supplied.

    Args:
        project_root: Project directory the run operates on
        target_dir: Output directory, defaults to the project root
        plugin_configs: Per-plugin configs, as models or plain mappings
        logger: User-facing logger
        fs: Filesystem helper, defaults to one rooted at the project
        template: Optional template engine handle
        ui: Optional interactive prompt handle

    Returns:
        New plugin context
    """
    root = Path(project_root)
    configs = {
        name: config if isinstance(config, PluginConfig) else PluginConfig.model_validate(config)
        for name, config in (plugin_configs or {}).items()
    }
    return PluginContext(
        project_root=root,
        target_dir=Path(target_dir) if target_dir is not None else root,
        plugin_configs=configs,
        logger=logger or PluginLogger(),
        fs=fs or FileOperations(root),
        template=template,
        ui=ui,
    )
