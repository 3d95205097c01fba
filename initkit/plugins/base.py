"""Base plugin interface and types for the initkit plugin system."""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (TYPE_CHECKING, Any, Awaitable, Callable, Dict, List,
                    Mapping, Optional, Tuple, Union)

from pydantic import (BaseModel, ConfigDict, Field, StrictBool, StrictInt,
                      StrictStr)

from initkit.plugins.config import HeavyweightConfig, ToolDependency

if TYPE_CHECKING:
    from initkit.plugins.context import PluginContext


HookFn = Callable[["PluginContext"], Union[None, Awaitable[None]]]
HeavyweightConfigFn = Callable[
    ["PluginContext"],
    Union[HeavyweightConfig, Mapping[str, Any], Awaitable[Union[HeavyweightConfig, Mapping[str, Any]]]],
]
MergeFileFn = Callable[[str, str, str, "PluginContext"], Union[str, Awaitable[str]]]


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class HookName(str, Enum):
    """Lifecycle hooks, in the order they are dispatched."""
    BEFORE_INIT = "before_init"
    EXECUTE = "execute"
    AFTER_INIT = "after_init"
    CLEANUP = "cleanup"


LIFECYCLE: Tuple[HookName, ...] = (
    HookName.BEFORE_INIT,
    HookName.EXECUTE,
    HookName.AFTER_INIT,
    HookName.CLEANUP,
)


class PluginDescriptor(BaseModel):
    """Plugin metadata, validated once at registration and immutable afterwards."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: StrictStr = Field(..., min_length=1, description="Unique plugin name")
    command_name: StrictStr = Field(..., min_length=1, description="Unique CLI command name")
    version: StrictStr = Field(..., min_length=1)
    description: StrictStr = Field(..., min_length=1)
    author: Optional[StrictStr] = None
    recommended: StrictBool = False
    dependencies: Tuple[StrictStr, ...] = Field(
        default=(), description="Plugins that must run before this one"
    )
    conflicts: Tuple[StrictStr, ...] = Field(
        default=(), description="Plugins disabled when this one is selected"
    )
    heavyweight: StrictBool = Field(
        default=False, description="Initialization delegates to an external command"
    )
    rules_priority: Optional[StrictInt] = Field(
        default=None, ge=0, le=99, description="Rule file prefix, lower loads first"
    )
    tool_dependencies: Tuple[ToolDependency, ...] = Field(
        default=(), description="External CLI tools the plugin needs"
    )


@dataclass
class CommandOption:
    """Option accepted by a plugin command."""
    flags: str
    description: str
    default: Any = None


@dataclass
class PluginCommand:
    """CLI command contributed by a plugin."""
    name: str
    description: str
    action: Callable[..., Any]
    options: List[CommandOption] = field(default_factory=list)


class Plugin:
    """A registered extension module.

    A plugin is a descriptor plus optional capabilities. Capabilities can be
    provided by subclassing and defining the named methods, or by passing
    callables to the constructor::

        plugin = Plugin(
            meta={"name": "git", "command_name": "git", "version": "1.0.0",
                  "description": "Git rules"},
            hooks={"execute": write_git_rules},
        )

    Hooks and capabilities may be plain functions or coroutine functions.
    """

    meta: Union[PluginDescriptor, Mapping[str, Any], None] = None

    # Lifecycle hooks
    before_init: Optional[HookFn] = None
    execute: Optional[HookFn] = None
    after_init: Optional[HookFn] = None
    cleanup: Optional[HookFn] = None

    # Heavyweight capabilities
    get_heavyweight_config: Optional[HeavyweightConfigFn] = None
    merge_file: Optional[MergeFileFn] = None

    def __init__(
        self,
        meta: Union[PluginDescriptor, Mapping[str, Any], None] = None,
        hooks: Optional[Mapping[str, Any]] = None,
        commands: Optional[List[PluginCommand]] = None,
        get_heavyweight_config: Optional[HeavyweightConfigFn] = None,
        merge_file: Optional[MergeFileFn] = None,
    ):
        if meta is not None:
            self.meta = meta
        self.hooks: Dict[str, Any] = dict(hooks or {})
        self.commands: List[PluginCommand] = list(commands or [])
        if get_heavyweight_config is not None:
            self.get_heavyweight_config = get_heavyweight_config
        if merge_file is not None:
            self.merge_file = merge_file
        self._descriptor: Optional[PluginDescriptor] = None

    @property
    def descriptor(self) -> PluginDescriptor:
        """
        Validated plugin descriptor.

        Raises:
            pydantic.ValidationError: If the metadata does not match the schema
        """
        if self._descriptor is None:
            self._descriptor = PluginDescriptor.model_validate(self.meta)
        return self._descriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def is_heavyweight(self) -> bool:
        return self.descriptor.heavyweight

    def get_hook(self, hook: Union[HookName, str]) -> Optional[Any]:
        """Return the hook callable if the plugin defines it."""
        hook_name = HookName(hook).value
        if hook_name in self.hooks:
            return self.hooks[hook_name]
        return getattr(self, hook_name, None)

    def has_hook(self, hook: Union[HookName, str]) -> bool:
        return self.get_hook(hook) is not None

    @property
    def supports_heavyweight(self) -> bool:
        return self.get_heavyweight_config is not None

    @property
    def supports_custom_merge(self) -> bool:
        return self.merge_file is not None

    def __repr__(self) -> str:
        meta = self.meta
        name = meta.name if isinstance(meta, PluginDescriptor) else (meta or {}).get("name")
        return f"<Plugin {name!r}>"


@dataclass
class FileMergeResult:
    """Outcome of merging one protected file."""
    path: str
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None


@dataclass
class HeavyweightExecutionResult:
    """Result of running one heavyweight plugin."""
    plugin_name: str
    success: bool
    command_output: Optional[str] = None
    exit_code: Optional[int] = None
    merge_results: List[FileMergeResult] = field(default_factory=list)
    error: Optional[str] = None
    rolled_back: bool = False
    migrated_rules_file: Optional[Path] = None

    @classmethod
    def failure(cls, plugin_name: str, error: str, **kwargs: Any) -> "HeavyweightExecutionResult":
        """Create a failed result."""
        return cls(plugin_name=plugin_name, success=False, error=error, **kwargs)

    @property
    def failed_merges(self) -> List[FileMergeResult]:
        return [result for result in self.merge_results if not result.success]

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "plugin": self.plugin_name,
            "success": self.success,
            "command_output": self.command_output,
            "exit_code": self.exit_code,
            "merge_results": [
                {
                    "path": r.path,
                    "success": r.success,
                    "error": r.error,
                }
                for r in self.merge_results
            ],
            "error": self.error,
            "rolled_back": self.rolled_back,
            "migrated_rules_file": (
                str(self.migrated_rules_file) if self.migrated_rules_file else None
            ),
        }
