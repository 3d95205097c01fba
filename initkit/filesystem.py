"""Async filesystem primitives shared by plugins and the heavyweight manager."""
import asyncio
import shutil
from pathlib import Path
from typing import Union

import aiofiles
import aiofiles.os

PathLike = Union[str, Path]


class FileOperations:
    """Whole-file UTF-8 text operations.

    Relative paths are resolved against ``base_path`` when one is given.
    """

    def __init__(self, base_path: PathLike = "."):
        self.base_path = Path(base_path)

    def resolve(self, path: PathLike) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.base_path / path

    async def ensure_dir(self, path: PathLike) -> None:
        await aiofiles.os.makedirs(self.resolve(path), exist_ok=True)

    async def file_exists(self, path: PathLike) -> bool:
        return await aiofiles.os.path.isfile(self.resolve(path))

    async def dir_exists(self, path: PathLike) -> bool:
        return await aiofiles.os.path.isdir(self.resolve(path))

    async def read_file(self, path: PathLike) -> str:
        async with aiofiles.open(self.resolve(path), "r", encoding="utf-8", newline="") as f:
            return await f.read()

    async def write_file(self, path: PathLike, content: str) -> None:
        """Write content, creating parent directories as needed."""
        full_path = self.resolve(path)
        await aiofiles.os.makedirs(full_path.parent, exist_ok=True)
        async with aiofiles.open(full_path, "w", encoding="utf-8", newline="") as f:
            await f.write(content)

    async def copy_file(self, src: PathLike, dest: PathLike) -> None:
        dest_path = self.resolve(dest)
        await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
        async with aiofiles.open(self.resolve(src), "rb") as source:
            data = await source.read()
        async with aiofiles.open(dest_path, "wb") as target:
            await target.write(data)

    async def remove(self, path: PathLike) -> bool:
        """Delete a file. Returns False if it did not exist."""
        try:
            await aiofiles.os.remove(self.resolve(path))
            return True
        except FileNotFoundError:
            return False

    async def remove_tree(self, path: PathLike) -> bool:
        """Delete a directory tree. Returns False if it did not exist."""
        full_path = self.resolve(path)
        if not await aiofiles.os.path.isdir(full_path):
            return False
        await asyncio.to_thread(shutil.rmtree, full_path)
        return True

    async def remove_empty_dir(self, path: PathLike) -> bool:
        """Delete a directory only if it is empty."""
        try:
            await aiofiles.os.rmdir(self.resolve(path))
            return True
        except OSError:
            return False
