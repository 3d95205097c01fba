"""initkit: plugin lifecycle and heavyweight integration engine for project scaffolding."""

from initkit.initializer import InitializationReport, PluginInitializer
from initkit.logging import PluginLogger, setup_logging
from initkit.plugins import Plugin, PluginLoader, PluginRegistry

__version__ = "0.1.0"

__all__ = [
    "InitializationReport",
    "Plugin",
    "PluginInitializer",
    "PluginLoader",
    "PluginLogger",
    "PluginRegistry",
    "setup_logging",
    "__version__",
]
