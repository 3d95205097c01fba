"""Bounded execution of external initializer commands"""
import asyncio
import os
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from initkit.config import settings
from initkit.errors import CommandExecutionError, CommandTimeoutError
from initkit.logging import get_logger

logger = get_logger(__name__)

Command = Union[str, Sequence[str]]


def combine_output(stdout: str, stderr: str) -> str:
    """stdout, followed by a stderr section when stderr is non-empty"""
    return stdout + (f"\n[stderr]\n{stderr}" if stderr else "")


def display_command(command: Command) -> str:
    if isinstance(command, str):
        return command
    return " ".join(command)


@dataclass
class CommandResult:
    """Result of a finished command"""
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: float

    @property
    def output(self) -> str:
        return combine_output(self.stdout, self.stderr)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs one external command with a timeout

    Argument vectors are executed directly. Strings are split with shell-like
    quoting rules and executed directly unless ``shell`` is set.
    """

    def __init__(self, cwd: Optional[Path] = None):
        self.cwd = Path(cwd) if cwd is not None else None

    async def run(
        self,
        command: Command,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None,
        shell: bool = False,
    ) -> CommandResult:
        """
        Execute a command and collect its output

        Args:
            command: Command string or argument vector
            cwd: Working directory, defaults to the runner's
            env: Variables layered over the inherited environment
            timeout_ms: Timeout in milliseconds
            shell: Interpret a command string with the system shell

        Returns:
            CommandResult; a non-zero exit code is not an error

        Raises:
            CommandTimeoutError: If the command exceeds the timeout
            CommandExecutionError: If the command cannot be started
        """
        timeout_ms = timeout_ms or settings.init_command_timeout_ms
        display = display_command(command)
        work_dir = cwd if cwd is not None else self.cwd

        cmd_env: Dict[str, str] = os.environ.copy()
        if env:
            cmd_env.update(env)

        started = time.monotonic()
        process = await self._spawn(command, display, work_dir, cmd_env, shell)

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            logger.warning("command_timeout", command=display, timeout_ms=timeout_ms)
            raise CommandTimeoutError(display, timeout_ms)

        result = CommandResult(
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_ms=(time.monotonic() - started) * 1000,
        )
        logger.debug(
            "command_finished",
            command=display,
            exit_code=result.exit_code,
            duration_ms=round(result.duration_ms, 1),
        )
        return result

    async def _spawn(
        self,
        command: Command,
        display: str,
        cwd: Optional[Path],
        env: Dict[str, str],
        shell: bool,
    ) -> asyncio.subprocess.Process:
        options = dict(
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=env,
            start_new_session=os.name != "nt",  # Own process group, killed as a whole
        )

        try:
            if shell:
                if not isinstance(command, str):
                    command = subprocess.list2cmdline(command) if os.name == "nt" else shlex.join(command)
                return await asyncio.create_subprocess_shell(command, **options)

            argv = self._argv(command)
            if not argv:
                raise CommandExecutionError(display, "empty command")
            return await asyncio.create_subprocess_exec(*argv, **options)
        except (OSError, ValueError) as e:
            logger.error("command_spawn_failed", command=display, error=str(e))
            raise CommandExecutionError(display, str(e)) from e

    @staticmethod
    def _argv(command: Command) -> List[str]:
        if isinstance(command, str):
            return shlex.split(command, posix=os.name != "nt")
        return [str(part) for part in command]

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            if os.name != "nt":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
