"""Heavyweight plugin support: protected files, init commands and rollback."""

from initkit.heavyweight.backup import BackupEntry, BackupStore
from initkit.heavyweight.command import CommandResult, CommandRunner
from initkit.heavyweight.instructions import (SharedInstructions,
                                              SharedInstructionsSnapshot,
                                              structural_hash)
from initkit.heavyweight.manager import HeavyweightPluginManager
from initkit.heavyweight.merge import append_merge, merge_content, prepend_merge

__all__ = [
    "BackupEntry",
    "BackupStore",
    "CommandResult",
    "CommandRunner",
    "HeavyweightPluginManager",
    "SharedInstructions",
    "SharedInstructionsSnapshot",
    "append_merge",
    "merge_content",
    "prepend_merge",
    "structural_hash",
]
