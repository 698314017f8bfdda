"""
Host connectors: run commands and manage files on the machine being provisioned.

LocalHost acts on the machine kcdeploy runs on; SSHHost drives a remote machine
through the ssh client in batch mode. Both take commands as argument lists and
never build shell strings from parameter values; SSHHost quotes the list with
shlex.join because ssh hands a single string to the remote shell.
"""

import asyncio
import logging
import os
import shlex
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

PathLike = str | PurePosixPath


@dataclass(frozen=True)
class CommandResult:
    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class HostCommandError(Exception):
    """Exception raised when a command exits with a nonzero status."""

    def __init__(self, host: str, result: CommandResult):
        self.host = host
        self.result = result
        detail = (result.stderr or result.stdout).strip()
        super().__init__(f"[{host}] `{shlex.join(result.args)}` failed with exit code {result.returncode}: {detail}")


class HostConnectionError(Exception):
    """Exception raised when the host cannot be reached."""


class Host(ABC):
    """A machine that provisioning steps are executed on."""

    def __init__(self, name: str, command_timeout: float | None = None):
        self.name = name
        self.command_timeout = command_timeout

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"

    @abstractmethod
    async def _execute(self, args: list[str], input_data: bytes | None) -> CommandResult:
        """Execute the command and return its result without checking the exit code."""

    async def run(
        self, args: Sequence[str], *, check: bool = True, input_data: str | None = None, strip: bool = True
    ) -> CommandResult:
        """
        Run a command on the host.

        Args:
            args: Command and arguments
            check: Raise HostCommandError on a nonzero exit code
            input_data: Optional text passed on stdin
            strip: Strip surrounding whitespace from stdout and stderr

        Returns:
            CommandResult with decoded output
        """
        args = [str(arg) for arg in args]
        logger.debug(f"[{self.name}] Run: {shlex.join(args)}")

        data = input_data.encode("utf-8") if input_data is not None else None
        result = await self._execute(args, data)
        if strip:
            result = replace(result, stdout=result.stdout.strip(), stderr=result.stderr.strip())

        if result.returncode != 0:
            logger.debug(f"[{self.name}] Exit code {result.returncode}: {result.stderr}")
            if check:
                raise HostCommandError(self.name, result)
        return result

    async def _communicate(self, cmd: list[str], input_data: bytes | None) -> tuple[int, str, str]:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if input_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(input_data), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return -1, "", f"timed out after {self.command_timeout} seconds"
        return process.returncode, stdout.decode("utf-8"), stderr.decode("utf-8")

    async def command_exists(self, name: str) -> bool:
        result = await self.run(["sh", "-c", f"command -v {shlex.quote(name)}"], check=False)
        return result.ok

    async def is_root(self) -> bool:
        result = await self.run(["id", "-u"])
        return result.stdout == "0"

    @abstractmethod
    async def exists(self, path: PathLike) -> bool:
        pass

    @abstractmethod
    async def read_text(self, path: PathLike) -> str | None:
        """Return the file content or None when the file does not exist."""

    @abstractmethod
    async def make_dirs(self, path: PathLike, mode: int = 0o755) -> None:
        """Create a directory with parents and set its permission bits."""

    @abstractmethod
    async def write_text(self, path: PathLike, content: str, mode: int = 0o644) -> None:
        """Write a file, creating parent directories, with exactly the given permission bits."""

    @abstractmethod
    async def symlink(self, target: PathLike, link: PathLike) -> None:
        pass


class LocalHost(Host):
    """The machine kcdeploy itself runs on."""

    def __init__(self, command_timeout: float | None = None):
        super().__init__("localhost", command_timeout)

    async def _execute(self, args: list[str], input_data: bytes | None) -> CommandResult:
        try:
            returncode, stdout, stderr = await self._communicate(args, input_data)
        except FileNotFoundError as e:
            return CommandResult(args, 127, "", str(e))
        return CommandResult(args, returncode, stdout, stderr)

    async def is_root(self) -> bool:
        return os.geteuid() == 0

    async def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    async def read_text(self, path: PathLike) -> str | None:
        file_path = Path(path)
        if not file_path.is_file():
            return None
        return file_path.read_text(encoding="utf-8")

    async def make_dirs(self, path: PathLike, mode: int = 0o755) -> None:
        dir_path = Path(path)
        dir_path.mkdir(parents=True, exist_ok=True)
        # mkdir applies the umask, chmod does not
        os.chmod(dir_path, mode)
        logger.debug(f"[{self.name}] Directory {dir_path} ({oct(mode)})")

    async def write_text(self, path: PathLike, content: str, mode: int = 0o644) -> None:
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(file_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(file_path, mode)
        logger.debug(f"[{self.name}] Wrote {file_path} ({oct(mode)})")

    async def symlink(self, target: PathLike, link: PathLike) -> None:
        link_path = Path(link)
        if link_path.is_symlink() or link_path.exists():
            link_path.unlink()
        link_path.symlink_to(target)


class SSHHost(Host):
    """
    A remote machine reached with `ssh` in batch mode.

    With become=True every command runs through `sudo -n`, so an unprivileged
    login user needs passwordless sudo on the host.
    """

    def __init__(
        self,
        name: str,
        user: str | None = None,
        options: Sequence[str] = (),
        command_timeout: float | None = None,
        become: bool = False,
    ):
        super().__init__(name, command_timeout)
        self.user = user
        self.options = list(options)
        self.become = become

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.name}" if self.user else self.name

    def _build(self, args: list[str]) -> list[str]:
        if self.become:
            args = ["sudo", "-n", "--", *args]
        return ["ssh", *self.options, self.destination, shlex.join(args)]

    async def _execute(self, args: list[str], input_data: bytes | None) -> CommandResult:
        returncode, stdout, stderr = await self._communicate(self._build(args), input_data)
        if returncode == 255:
            raise HostConnectionError(f"Cannot connect to {self.destination}: {stderr.strip()}")
        return CommandResult(args, returncode, stdout, stderr)

    async def exists(self, path: PathLike) -> bool:
        result = await self.run(["test", "-e", str(path)], check=False)
        return result.ok

    async def read_text(self, path: PathLike) -> str | None:
        if not await self.exists(path):
            return None
        result = await self.run(["cat", str(path)], strip=False)
        return result.stdout

    async def make_dirs(self, path: PathLike, mode: int = 0o755) -> None:
        await self.run(["install", "-d", "-m", format(mode, "04o"), str(path)])

    async def write_text(self, path: PathLike, content: str, mode: int = 0o644) -> None:
        # install creates the file with the final mode, so secrets are never world-readable
        await self.run(["install", "-D", "-m", format(mode, "04o"), "/dev/stdin", str(path)], input_data=content)

    async def symlink(self, target: PathLike, link: PathLike) -> None:
        await self.run(["ln", "-sfn", str(target), str(link)])
