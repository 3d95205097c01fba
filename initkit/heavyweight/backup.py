"""Per-run backups of protected files"""
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from initkit.config import settings
from initkit.errors import BackupError, RestoreError
from initkit.filesystem import FileOperations
from initkit.logging import get_logger
from initkit.plugins.config import ProtectedFile

logger = get_logger(__name__)


@dataclass
class BackupEntry:
    """Snapshot of one protected file taken before the init command runs"""
    relative_path: str
    original_path: Path
    backup_path: Path
    existed: bool
    content: Optional[str] = None


class BackupStore:
    """Backs up protected files into an isolated directory per run

    A file recorded as absent is deleted on restore, so a restore always
    returns every protected file to its snapshot.
    """

    def __init__(
        self,
        project_root: Union[str, Path],
        fs: Optional[FileOperations] = None,
        backup_root: Optional[Union[str, Path]] = None,
    ):
        self.project_root = Path(project_root)
        self.fs = fs or FileOperations(self.project_root)
        self.backup_root = self.project_root / (backup_root or settings.backup_dir)
        self.run_dir: Optional[Path] = None
        self._entries: Dict[str, BackupEntry] = {}

    @property
    def active(self) -> bool:
        return self.run_dir is not None

    @property
    def entries(self) -> List[BackupEntry]:
        return list(self._entries.values())

    def get(self, relative_path: str) -> Optional[BackupEntry]:
        return self._entries.get(relative_path)

    async def backup(self, files: Sequence[ProtectedFile]) -> List[BackupEntry]:
        """
        Snapshot every protected file

        Raises:
            BackupError: If a file cannot be read or copied
        """
        self._entries.clear()
        self.run_dir = self.backup_root / f"{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"

        try:
            await self.fs.ensure_dir(self.run_dir)

            for file in files:
                original_path = self.project_root / file.path
                entry = BackupEntry(
                    relative_path=file.path,
                    original_path=original_path,
                    backup_path=self.run_dir / file.path,
                    existed=await self.fs.file_exists(original_path),
                )

                if entry.existed:
                    entry.content = await self.fs.read_file(original_path)
                    await self.fs.copy_file(original_path, entry.backup_path)

                self._entries[file.path] = entry
        except (OSError, UnicodeDecodeError) as e:
            logger.error("backup_failed", run_dir=str(self.run_dir), error=str(e))
            raise BackupError(
                f"Failed to back up protected files: {e}", {"run_dir": str(self.run_dir)}
            ) from e

        logger.debug(
            "backup_created",
            run_dir=str(self.run_dir),
            files=len(self._entries),
            existing=sum(1 for entry in self._entries.values() if entry.existed),
        )
        return self.entries

    async def restore(self) -> List[RestoreError]:
        """Return every protected file to its snapshot, then discard the backups

        Failures are logged and returned, never raised.
        """
        errors: List[RestoreError] = []

        for relative_path, entry in self._entries.items():
            try:
                if entry.existed:
                    await self.fs.write_file(entry.original_path, entry.content or "")
                    logger.info("backup_restored", path=relative_path)
                elif await self.fs.remove(entry.original_path):
                    logger.info("created_file_removed", path=relative_path)
            except OSError as e:
                error = RestoreError(relative_path, str(e))
                logger.error("restore_failed", path=relative_path, error=str(e))
                errors.append(error)

        await self.discard()
        return errors

    async def discard(self) -> None:
        """Delete this run's backup directory and forget all entries"""
        run_dir, self.run_dir = self.run_dir, None
        self._entries.clear()

        if run_dir is None:
            return

        try:
            await self.fs.remove_tree(run_dir)
            await self.fs.remove_empty_dir(self.backup_root)
        except OSError as e:
            logger.warning("backup_cleanup_failed", run_dir=str(run_dir), error=str(e))
