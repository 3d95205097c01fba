"""Migration of shared instructions file changes into a rule file"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from initkit.config import settings
from initkit.errors import MigrationError
from initkit.filesystem import FileOperations
from initkit.logging import PluginLogger, get_logger
from initkit.rules import RulesWriter

logger = get_logger(__name__)


def structural_hash(content: str) -> str:
    """Change detector built from length and both ends of the content

    Not collision resistant; an edit confined to the middle of a long file
    with unchanged length goes unnoticed.
    """
    return f"{len(content)}-{content[:50]}-{content[-50:]}"


@dataclass
class SharedInstructionsSnapshot:
    """State of the shared instructions file at one point in time"""
    path: Optional[Path] = None
    existed: bool = False
    content_hash: Optional[str] = None
    content: Optional[str] = None

    def differs_from(self, other: "SharedInstructionsSnapshot") -> bool:
        return self.path != other.path or self.content_hash != other.content_hash


class SharedInstructions:
    """Detects and migrates changes an init command makes to the shared
    instructions file (``CLAUDE.md`` or ``claude.md``)"""

    def __init__(
        self,
        project_root: Union[str, Path],
        fs: Optional[FileOperations] = None,
        file_names: Optional[Sequence[str]] = None,
    ):
        self.project_root = Path(project_root)
        self.fs = fs or FileOperations(self.project_root)
        self.file_names = list(file_names or settings.shared_instructions_files)

    async def capture(self) -> SharedInstructionsSnapshot:
        """Snapshot the first existing shared instructions file"""
        for name in self.file_names:
            path = self.project_root / name
            if await self.fs.file_exists(path):
                content = await self.fs.read_file(path)
                return SharedInstructionsSnapshot(
                    path=path,
                    existed=True,
                    content_hash=structural_hash(content),
                    content=content,
                )
        return SharedInstructionsSnapshot()

    async def migrate(
        self,
        before: SharedInstructionsSnapshot,
        rules_writer: RulesWriter,
        base_name: str,
        priority: int,
        plugin_logger: Optional[PluginLogger] = None,
    ) -> Optional[Path]:
        """
        Move content the command wrote to the shared file into a rule file

        The shared file is then put back to its ``before`` state: restored
        when it existed, deleted when it did not.

        Args:
            before: Snapshot taken before the command ran
            rules_writer: Writer for the rules directory
            base_name: Rule file base name
            priority: Rule file priority prefix
            plugin_logger: Optional user-facing logger

        Returns:
            Path of the written rule file, or None if nothing changed

        Raises:
            MigrationError: If the rule file or the shared file cannot be written
        """
        try:
            after = await self.capture()
        except (OSError, UnicodeDecodeError) as e:
            raise MigrationError(f"Failed to read shared instructions file: {e}") from e

        if not after.existed or not after.differs_from(before):
            return None

        created = not before.existed
        if plugin_logger is not None:
            action = "created" if created else "modified"
            plugin_logger.info(f"  {after.path.name} was {action} by plugin, migrating to rules...")

        try:
            rules_file = await rules_writer.write_migrated_instructions(
                base_name, after.content, priority
            )
        except OSError as e:
            raise MigrationError(f"Failed to write migrated rules file: {e}") from e

        try:
            if created:
                await self.fs.remove(after.path)
            else:
                await self.fs.write_file(before.path, before.content or "")
                if after.path != before.path:
                    await self.fs.remove(after.path)
        except OSError as e:
            await self.fs.remove(rules_file)
            raise MigrationError(f"Failed to restore shared instructions file: {e}") from e

        logger.info(
            "shared_instructions_migrated",
            source=str(after.path),
            rules_file=str(rules_file),
            created=created,
        )
        if plugin_logger is not None:
            if created:
                plugin_logger.info(f"  Removed generated {after.path.name} (migrated to rules)")
            else:
                plugin_logger.info(f"  Restored original {before.path.name}")
        return rules_file
