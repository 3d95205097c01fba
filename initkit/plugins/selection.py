"""Helpers for narrowing a plugin selection before a run."""

from typing import Dict, Iterable, List, NamedTuple, Sequence, Tuple

from initkit.logging import get_logger
from initkit.plugins.base import Plugin

logger = get_logger(__name__)


class ConflictResolution(NamedTuple):
    """Selection after conflicting plugins were dropped."""
    resolved: List[str]
    removed: List[Tuple[str, str]]


def resolve_conflicts(selected: Sequence[str], plugins: Iterable[Plugin]) -> ConflictResolution:
    """
    Drop plugins that conflict with an earlier selection.

    The first selected plugin wins. A conflict declared on either side
    removes the later plugin. Names that match no plugin are ignored.

    Args:
        selected: Plugin names in selection order
        plugins: Candidate plugins

    Returns:
        Resolved names, and (removed, conflicting_with) pairs
    """
    by_name: Dict[str, Plugin] = {plugin.name: plugin for plugin in plugins}
    resolved: List[str] = []
    removed: List[Tuple[str, str]] = []

    for name in selected:
        plugin = by_name.get(name)
        if plugin is None or name in resolved:
            continue

        conflicting_with = None
        for resolved_name in resolved:
            if name in by_name[resolved_name].descriptor.conflicts:
                conflicting_with = resolved_name
                break

        if conflicting_with is None:
            for conflict in plugin.descriptor.conflicts:
                if conflict in resolved:
                    conflicting_with = conflict
                    break

        if conflicting_with is None:
            resolved.append(name)
        else:
            removed.append((name, conflicting_with))
            logger.warning(
                "Plugin removed by conflict",
                plugin=name,
                conflicts_with=conflicting_with,
            )

    return ConflictResolution(resolved, removed)


def is_heavyweight(plugin: Plugin) -> bool:
    return plugin.descriptor.heavyweight is True


def separate_by_weight(plugins: Iterable[Plugin]) -> Tuple[List[Plugin], List[Plugin]]:
    """Split plugins into (lightweight, heavyweight), preserving order."""
    lightweight: List[Plugin] = []
    heavyweight: List[Plugin] = []
    for plugin in plugins:
        (heavyweight if is_heavyweight(plugin) else lightweight).append(plugin)
    return lightweight, heavyweight
