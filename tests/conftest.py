"""Shared fixtures: an in-memory command executor and a sandboxed config."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Sequence, Tuple

import orjson
import pytest

from ghrm.config import CacheConfig, Config, ReposConfig
from ghrm.executor import CommandExecutor, CommandHandle, CommandResult

SAMPLE_REPOS = [
    {
        "name": "repo1",
        "description": "The first one",
        "url": "https://github.com/octo/repo1",
        "stargazerCount": 42,
        "forkCount": 7,
        "watchers": {"totalCount": 5},
        "issues": {"totalCount": 3},
        "owner": {"id": "MDQ6VXNlcjE=", "login": "octo"},
        "createdAt": "2023-01-15T10:00:00Z",
        "updatedAt": "2024-03-01T08:30:00Z",
        "diskUsage": 2048,
        "homepageUrl": "https://octo.dev",
        "isFork": False,
        "isArchived": False,
        "isPrivate": False,
        "isTemplate": False,
        "repositoryTopics": [{"name": "cli"}, {"name": "github"}],
        "primaryLanguage": {"name": "Go"},
    },
    {
        "name": "repo2",
        "description": "",
        "url": "https://github.com/octo/repo2",
        "stargazerCount": 3,
        "forkCount": 0,
        "watchers": {"totalCount": 1},
        "issues": {"totalCount": 0},
        "owner": {"id": "MDQ6VXNlcjE=", "login": "octo"},
        "createdAt": "2022-06-01T00:00:00Z",
        "updatedAt": "2022-07-01T00:00:00Z",
        "diskUsage": 12,
        "homepageUrl": "",
        "isFork": True,
        "isArchived": True,
        "isPrivate": False,
        "isTemplate": False,
        "repositoryTopics": None,
        "primaryLanguage": {"name": "Python"},
    },
]


@dataclass
class Behavior:
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    delay: float = 0.0
    # run until killed
    hang: bool = False
    start_error: OSError | None = None


class FakeHandle(CommandHandle):
    def __init__(self, executor, program, args, interactive, behavior):
        self.executor = executor
        self.program = program
        self.args = list(args)
        self.interactive = interactive
        self.behavior = behavior
        self.started = False
        self.killed = False
        self._kill_event = asyncio.Event()

    async def start(self) -> None:
        if self.behavior.start_error is not None:
            raise self.behavior.start_error
        self.started = True
        self.executor.started.append(self)
        self.executor.running += 1
        self.executor.max_running = max(self.executor.max_running, self.executor.running)

    async def wait(self) -> CommandResult:
        behavior = self.behavior
        try:
            if behavior.hang:
                await self._kill_event.wait()
            elif behavior.delay:
                try:
                    await asyncio.wait_for(self._kill_event.wait(), behavior.delay)
                except TimeoutError:
                    pass
        finally:
            self.executor.running -= 1

        if self.killed:
            return CommandResult(-9, "", "signal: killed")
        return CommandResult(behavior.returncode, behavior.stdout, behavior.stderr)

    def kill(self) -> None:
        if not self.started:
            return
        self.killed = True
        self._kill_event.set()


class FakeExecutor(CommandExecutor):
    def __init__(self, default: Behavior | None = None):
        self.default = default or Behavior()
        self.rules: List[Tuple[Callable[[str, List[str]], bool], Behavior]] = []
        self.calls: List[Tuple[str, List[str]]] = []
        self.handles: List[FakeHandle] = []
        self.started: List[FakeHandle] = []
        self.unavailable: set[str] = set()
        self.running = 0
        self.max_running = 0

    def on(self, predicate: Callable[[str, List[str]], bool], behavior: Behavior):
        self.rules.append((predicate, behavior))

    def on_arg(self, arg: str, behavior: Behavior):
        self.on(lambda program, args: arg in args, behavior)

    def execute(
        self, program: str, args: Sequence[str], *, interactive: bool = False
    ) -> CommandHandle:
        args = list(args)
        self.calls.append((program, args))
        behavior = next(
            (b for predicate, b in self.rules if predicate(program, args)),
            self.default,
        )
        handle = FakeHandle(self, program, args, interactive, behavior)
        self.handles.append(handle)
        return handle

    def is_available(self, program: str) -> bool:
        return program not in self.unavailable

    def calls_to(self, program: str, subcommand: str | None = None):
        return [
            args
            for prog, args in self.calls
            if prog == program and (subcommand is None or args[:1] == [subcommand])
        ]


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    return tmp_path / "Projects"


@pytest.fixture
def config(tmp_path: Path, projects_dir: Path) -> Config:
    return Config(
        cache=CacheConfig(dir=str(tmp_path / "cache")),
        repos=ReposConfig(projects_dir=str(projects_dir), per_user_dir=True),
    )


@pytest.fixture
def sample_listing() -> str:
    return orjson.dumps(SAMPLE_REPOS).decode()
