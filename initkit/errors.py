"""Exception hierarchy for initkit"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union


class InitkitError(Exception):
    """Base exception for all initkit errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Registry

class ValidationError(InitkitError):
    """Raised when a plugin fails schema validation at registration"""

    def __init__(self, plugin_name: str, field: str, reason: str):
        self.plugin_name = plugin_name
        self.field = field
        self.reason = reason
        super().__init__(
            f"Plugin '{plugin_name}' has invalid field '{field}': {reason}",
            {"plugin": plugin_name, "field": field},
        )


class DuplicateError(InitkitError):
    """Raised when a plugin name or command name is already taken"""

    def __init__(self, field: str, value: str, existing_plugin: str):
        self.field = field
        self.value = value
        self.existing_plugin = existing_plugin
        super().__init__(
            f"Plugin {field} '{value}' is already used by plugin '{existing_plugin}'",
            {"field": field, "value": value, "existing_plugin": existing_plugin},
        )


class NotFoundError(InitkitError):
    """Raised when a plugin lookup by name fails"""

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(
            f"Plugin '{plugin_name}' not found in registry", {"plugin": plugin_name}
        )


# Loader

class DependencyError(InitkitError):
    """Base class for dependency resolution errors"""
    pass


class MissingDependencyError(DependencyError):
    """Raised when a plugin depends on a plugin outside the loaded set"""

    def __init__(self, plugin_name: str, dependency: str):
        self.plugin_name = plugin_name
        self.dependency = dependency
        super().__init__(
            f"Plugin '{plugin_name}' depends on '{dependency}', "
            f"but '{dependency}' is not registered or enabled",
            {"plugin": plugin_name, "dependency": dependency},
        )


class DependencyCycleError(DependencyError):
    """Raised when the dependency graph contains a cycle"""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(
            f"Circular dependency detected among plugins: {', '.join(self.cycle)}",
            {"cycle": self.cycle},
        )


class HookExecutionError(InitkitError):
    """Raised when a plugin lifecycle hook fails"""

    def __init__(self, plugin_name: str, hook_name: str, cause: BaseException):
        self.plugin_name = plugin_name
        self.hook_name = hook_name
        self.cause = cause
        super().__init__(
            f"Plugin '{plugin_name}' failed during '{hook_name}' hook: {cause}",
            {"plugin": plugin_name, "hook": hook_name},
        )


class SharedDataTypeError(InitkitError, TypeError):
    """Raised when a shared data key receives a value of the wrong type"""

    def __init__(self, key: str, expected: type, actual: type):
        self.key = key
        super().__init__(
            f"Shared data key '{key}' expects {expected.__name__}, got {actual.__name__}",
            {"key": key, "expected": expected.__name__, "actual": actual.__name__},
        )


class InitializationLockedError(InitkitError):
    """Raised when another initialization run holds the project lock"""

    def __init__(self, lock_path: Union[str, Path]):
        self.lock_path = str(lock_path)
        super().__init__(
            f"Another initialization run is in progress (lock: {lock_path})",
            {"lock_path": self.lock_path},
        )


# Heavyweight plugins

class HeavyweightError(InitkitError):
    """Base class for heavyweight plugin errors"""
    pass


class MissingHeavyweightConfigError(HeavyweightError):
    """Raised when a heavyweight plugin cannot provide its configuration"""

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(
            f"Heavyweight plugin '{plugin_name}' does not implement get_heavyweight_config()",
            {"plugin": plugin_name},
        )


class ConfigRetrievalError(HeavyweightError):
    """Raised when retrieving or validating the heavyweight configuration fails"""

    def __init__(self, plugin_name: str, reason: str):
        self.plugin_name = plugin_name
        super().__init__(
            f"Failed to get heavyweight config for '{plugin_name}': {reason}",
            {"plugin": plugin_name},
        )


class BackupError(HeavyweightError):
    """Raised when protected files cannot be backed up"""
    pass


class CommandTimeoutError(HeavyweightError):
    """Raised when an init command exceeds its timeout"""

    def __init__(self, command: str, timeout_ms: int):
        self.command = command
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Command timed out after {timeout_ms}ms: {command}",
            {"command": command, "timeout_ms": timeout_ms},
        )


class CommandExecutionError(HeavyweightError):
    """Raised when an init command cannot be spawned"""

    def __init__(self, command: str, reason: str):
        self.command = command
        super().__init__(
            f"Failed to execute command '{command}': {reason}", {"command": command}
        )


class MigrationError(HeavyweightError):
    """Raised when shared instructions content cannot be migrated to a rule file"""
    pass


class MergeError(HeavyweightError):
    """Raised when a protected file cannot be merged"""

    def __init__(self, path: str, reason: str, details: Optional[Dict[str, Any]] = None):
        self.path = path
        super().__init__(reason, {"path": path, **(details or {})})


class ConfigurationError(MergeError):
    """Raised when a plugin requests a merge strategy it does not support"""

    def __init__(self, plugin_name: str, path: str):
        self.plugin_name = plugin_name
        super().__init__(
            path,
            f"Plugin '{plugin_name}' specifies 'custom' merge strategy for '{path}' "
            f"but doesn't implement merge_file()",
            {"plugin": plugin_name},
        )


class RestoreError(HeavyweightError):
    """Raised when a backup cannot be restored; logged, never propagated"""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Failed to restore {path}: {reason}", {"path": path})


__all__: List[str] = [
    "InitkitError",
    "ValidationError",
    "DuplicateError",
    "NotFoundError",
    "DependencyError",
    "MissingDependencyError",
    "DependencyCycleError",
    "HookExecutionError",
    "SharedDataTypeError",
    "InitializationLockedError",
    "HeavyweightError",
    "MissingHeavyweightConfigError",
    "ConfigRetrievalError",
    "BackupError",
    "CommandTimeoutError",
    "CommandExecutionError",
    "MigrationError",
    "MergeError",
    "ConfigurationError",
    "RestoreError",
]
