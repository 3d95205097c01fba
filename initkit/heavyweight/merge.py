"""Merge strategies for protected files.

``ours`` is the content before the init command ran, ``theirs`` the content
it left behind.
"""

from typing import TYPE_CHECKING, Optional

from initkit.config import settings
from initkit.errors import ConfigurationError, MergeError
from initkit.plugins.base import Plugin, maybe_await
from initkit.plugins.config import MergeStrategy

if TYPE_CHECKING:
    from initkit.plugins.context import PluginContext


def append_merge(ours: str, theirs: str, separator: Optional[str] = None) -> str:
    """Our content first, then theirs."""
    separator = settings.merge_separator if separator is None else separator
    return f"{ours.rstrip()}{separator}{theirs.lstrip()}"


def prepend_merge(ours: str, theirs: str, separator: Optional[str] = None) -> str:
    """Their content first, then ours."""
    separator = settings.merge_separator if separator is None else separator
    return f"{theirs.rstrip()}{separator}{ours.lstrip()}"


async def merge_content(
    plugin: Plugin,
    path: str,
    strategy: MergeStrategy,
    ours: str,
    theirs: str,
    context: "PluginContext",
    separator: Optional[str] = None,
) -> str:
    """
    Merge two versions of a protected file.

    Args:
        plugin: Plugin that declared the protected file
        path: Path of the file relative to the project root
        strategy: Merge strategy
        ours: Content before the init command
        theirs: Content after the init command
        context: Run context, passed to custom merges
        separator: Separator for append and prepend

    Returns:
        Merged content

    Raises:
        ConfigurationError: If the strategy is custom and the plugin has no merge_file
        MergeError: If the strategy is unknown or the custom merge fails
    """
    strategy = MergeStrategy(strategy)

    if strategy is MergeStrategy.APPEND:
        return append_merge(ours, theirs, separator)

    if strategy is MergeStrategy.PREPEND:
        return prepend_merge(ours, theirs, separator)

    if strategy is MergeStrategy.CUSTOM:
        if not plugin.supports_custom_merge:
            raise ConfigurationError(plugin.name, path)
        try:
            merged = await maybe_await(plugin.merge_file(path, ours, theirs, context))
        except Exception as e:
            raise MergeError(path, f"Custom merge of '{path}' failed: {e}") from e
        if not isinstance(merged, str):
            raise MergeError(
                path, f"Custom merge of '{path}' returned {type(merged).__name__}, expected str"
            )
        return merged

    raise MergeError(path, f"Unknown merge strategy: {strategy}")
