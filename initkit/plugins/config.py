"""Per-run plugin configuration models."""

from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from initkit.config import settings


class PluginConfig(BaseModel):
    """Configuration for a single plugin, supplied per run."""

    model_config = ConfigDict(extra="allow")

    enabled: bool = Field(True, description="Whether plugin is enabled")
    options: Dict[str, Any] = Field(
        default_factory=dict, description="Plugin-specific options"
    )
    scope: Optional[str] = Field(None, description="Output scope (project or user)")


class VisibilityPolicy(BaseModel):
    """Controls which registered plugins are offered for a run.

    ``enabled`` is an allow-list and takes precedence over the ``disabled``
    deny-list when it is non-empty.
    """

    enabled: Optional[List[str]] = Field(None, description="Only these plugins are visible")
    disabled: Optional[List[str]] = Field(None, description="These plugins are hidden")


class MergeStrategy(str, Enum):
    """How pre- and post-command content of a protected file is reconciled."""
    APPEND = "append"
    PREPEND = "prepend"
    CUSTOM = "custom"


class ProtectedFile(BaseModel):
    """A project file preserved across a heavyweight init command."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Path relative to the project root")
    merge_strategy: MergeStrategy = Field(..., description="Merge strategy")

    @field_validator("path")
    @classmethod
    def validate_relative_path(cls, v: str) -> str:
        posix, windows = PurePosixPath(v), PureWindowsPath(v)
        if posix.is_absolute() or windows.is_absolute() or windows.drive:
            raise ValueError(f"Protected file path must be relative: {v}")
        if ".." in posix.parts or ".." in windows.parts:
            raise ValueError(f"Protected file path must stay inside the project: {v}")
        return v


class HeavyweightConfig(BaseModel):
    """Configuration returned by a heavyweight plugin's get_heavyweight_config()."""

    protected_files: List[ProtectedFile] = Field(
        default_factory=list, description="Files to back up and merge"
    )
    init_command: Optional[Union[str, List[str]]] = Field(
        None, description="Initializer command, a string or an argument vector"
    )
    shell: bool = Field(
        False,
        description="Run init_command through the system shell. The command string "
        "is then interpreted by the shell, so it must never contain untrusted input.",
    )
    working_directory: Optional[str] = Field(
        None, description="Working directory relative to the project root"
    )
    timeout: int = Field(
        default_factory=lambda: settings.init_command_timeout_ms,
        gt=0,
        description="Command timeout in milliseconds",
    )
    env: Dict[str, str] = Field(
        default_factory=dict, description="Environment overrides for the command"
    )
    migrate_shared_instructions: bool = Field(
        True, description="Move shared instructions file changes into a rule file"
    )
    rules_file_name: Optional[str] = Field(
        None, description="Base name of the migrated rule file (defaults to plugin name)"
    )

    @field_validator("init_command")
    @classmethod
    def validate_init_command(cls, v):
        if isinstance(v, list) and not v:
            raise ValueError("init_command argument vector must not be empty")
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def command_display(self) -> str:
        if isinstance(self.init_command, list):
            return " ".join(self.init_command)
        return self.init_command or ""


class ToolDependency(BaseModel):
    """External CLI tool a plugin needs."""

    name: str = Field(..., min_length=1, description="Tool name")
    check_command: Optional[str] = Field(
        None, description="Probe command, defaults to '<name> --version'"
    )
    install_commands: Dict[str, str] = Field(
        default_factory=dict,
        description="Install command per platform (darwin, linux, win32)",
    )
    optional: bool = Field(False, description="Missing tool only warns")

    @property
    def probe_command(self) -> str:
        return self.check_command or f"{self.name} --version"
