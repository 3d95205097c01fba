"""Pytest configuration and fixtures"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional
from unittest.mock import Mock

import pytest

from initkit.logging import PluginLogger
from initkit.plugins.base import Plugin
from initkit.plugins.context import PluginContext, create_plugin_context


@pytest.fixture
def python_command() -> Callable[[str], List[str]]:
    """Build argument vectors that run a snippet with the current interpreter"""

    def build(code: str) -> List[str]:
        return [sys.executable, "-c", code]

    return build


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create an empty project directory"""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def plugin_logger() -> Mock:
    """User-facing logger double that records every call"""
    return Mock(spec=PluginLogger)


@pytest.fixture
def context(project_root: Path, plugin_logger: Mock) -> PluginContext:
    """Create a plugin context rooted at the test project"""
    return create_plugin_context(project_root, logger=plugin_logger)


@pytest.fixture
def make_plugin() -> Callable[..., Plugin]:
    """Factory for plugins with valid metadata"""

    def factory(
        name: str,
        dependencies: Iterable[str] = (),
        conflicts: Iterable[str] = (),
        heavyweight: bool = False,
        hooks: Optional[Dict[str, Any]] = None,
        meta: Optional[Dict[str, Any]] = None,
        **capabilities: Any,
    ) -> Plugin:
        descriptor = {
            "name": name,
            "command_name": name,
            "version": "1.0.0",
            "description": f"{name} plugin",
            "dependencies": list(dependencies),
            "conflicts": list(conflicts),
            "heavyweight": heavyweight,
        }
        descriptor.update(meta or {})
        return Plugin(meta=descriptor, hooks=hooks, **capabilities)

    return factory
