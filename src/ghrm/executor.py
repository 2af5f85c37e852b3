"""External program invocation.

Everything that talks to `gh`, `git` or a post-clone command goes through a
`CommandExecutor`, so tests can swap in an in-memory stub.
"""

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandHandle(ABC):
    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def wait(self) -> CommandResult: ...

    @abstractmethod
    def kill(self) -> None: ...


class CommandExecutor(ABC):
    @abstractmethod
    def execute(
        self,
        program: str,
        args: Sequence[str],
        *,
        interactive: bool = False,
    ) -> CommandHandle: ...

    @abstractmethod
    def is_available(self, program: str) -> bool: ...


class AsyncProcessHandle(CommandHandle):
    def __init__(self, program: str, args: Sequence[str], interactive: bool):
        self.program = program
        self.args = list(args)
        self.interactive = interactive
        self._process: asyncio.subprocess.Process | None = None

    async def start(self) -> None:
        if self._process is not None:
            raise RuntimeError(f"{self.program} already started")

        logger.debug(f"Running: {self.program} {' '.join(self.args)}")
        if self.interactive:
            # inherit the terminal
            self._process = await asyncio.create_subprocess_exec(
                self.program, *self.args
            )
        else:
            self._process = await asyncio.create_subprocess_exec(
                self.program,
                *self.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )

    async def wait(self) -> CommandResult:
        if self._process is None:
            raise RuntimeError(f"{self.program} not started")

        stdout, stderr = await self._process.communicate()
        return CommandResult(
            returncode=self._process.returncode or 0,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

    def kill(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            # exited between the returncode check and the signal
            return
        logger.debug(f"killed {self.program} (pid {process.pid})")


class AsyncProcessExecutor(CommandExecutor):
    def execute(
        self,
        program: str,
        args: Sequence[str],
        *,
        interactive: bool = False,
    ) -> CommandHandle:
        return AsyncProcessHandle(program, args, interactive)

    def is_available(self, program: str) -> bool:
        return shutil.which(program) is not None


async def run(
    executor: CommandExecutor, program: str, args: Sequence[str]
) -> CommandResult:
    handle = executor.execute(program, args)
    await handle.start()
    return await handle.wait()


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")
