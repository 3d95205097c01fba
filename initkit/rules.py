"""Priority-prefixed rule files under the project's rules directory.

Rule files are named ``NN-<base>.md`` where ``NN`` is a two-digit priority;
lower numbers sort, and therefore load, first.
"""

from pathlib import Path
from typing import Optional, Union

from initkit.config import settings
from initkit.filesystem import FileOperations
from initkit.logging import PluginLogger, get_logger

logger = get_logger(__name__)


def format_priority(priority: int) -> str:
    if not 0 <= priority <= 99:
        raise ValueError(f"Rules priority must be between 0 and 99, got {priority}")
    return f"{priority:02d}"


def rules_filename(priority: int, base_name: str) -> str:
    return f"{format_priority(priority)}-{base_name}.md"


def add_paths_frontmatter(content: str, paths: Optional[str] = None) -> str:
    """Scope a rule file to matching paths with a YAML frontmatter block."""
    if not paths:
        return content
    return f"---\npaths: {paths}\n---\n\n{content}"


class RulesWriter:
    """Writes rule files for a project."""

    def __init__(
        self,
        project_root: Union[str, Path],
        fs: Optional[FileOperations] = None,
        plugin_logger: Optional[PluginLogger] = None,
        rules_dir: Optional[Union[str, Path]] = None,
    ):
        self.project_root = Path(project_root)
        self.fs = fs or FileOperations(self.project_root)
        self.plugin_logger = plugin_logger
        self.rules_dir = self.project_root / (rules_dir or settings.rules_dir)

    async def ensure_rules_dir(self) -> None:
        await self.fs.ensure_dir(self.rules_dir)

    async def write_rules(
        self,
        base_name: str,
        content: str,
        priority: int,
        paths: Optional[str] = None,
    ) -> Path:
        """
        Write a rule file.

        Args:
            base_name: File name without priority prefix and extension
            content: Rule text
            priority: Ordering prefix, 0-99
            paths: Optional glob the rules apply to

        Returns:
            Path of the written file
        """
        filename = rules_filename(priority, base_name)
        file_path = self.rules_dir / filename

        await self.fs.write_file(file_path, add_paths_frontmatter(content, paths))

        logger.info("Rules file written", path=str(file_path), priority=priority)
        if self.plugin_logger is not None:
            try:
                display = file_path.relative_to(self.project_root)
            except ValueError:
                display = file_path
            self.plugin_logger.success(f"Generated: {display}")
        return file_path

    async def write_migrated_instructions(self, base_name: str, content: str, priority: int) -> Path:
        """Write shared instructions content verbatim as a rule file."""
        return await self.write_rules(base_name, content, priority)
