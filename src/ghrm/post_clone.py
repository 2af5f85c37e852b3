import logging
import os
from typing import Sequence

from .config import Config
from .errors import CommandNotAvailableError
from .executor import CommandExecutor
from .repository import Repository

logger = logging.getLogger(__name__)


class PostCloneRunner:
    """Open each freshly cloned repository with the configured command.

    Runs one repository at a time since the command is usually interactive
    (an editor or a session manager). A failing command is reported and the
    next repository is opened anyway.
    """

    def __init__(self, executor: CommandExecutor, config: Config):
        self._executor = executor
        self._config = config

    async def run(self, repos: Sequence[Repository]) -> None:
        hook = self._config.post_clone
        if not hook.enabled or len(repos) == 0:
            return

        command = os.path.expandvars(hook.command)
        if not command or not self._executor.is_available(command):
            raise CommandNotAvailableError(command)

        logger.info(f"Opening selected repos in {command}")
        for repo in repos:
            repo_path = self._config.target_path(repo.owner_login, repo.name)
            args = [*hook.args, str(repo_path)]

            handle = self._executor.execute(command, args, interactive=True)
            try:
                await handle.start()
                result = await handle.wait()
            except OSError as e:
                logger.error(f"Failed to open {repo.name} with {command}: {e}")
                continue

            if not result.ok:
                logger.error(
                    f"Failed to open {repo.name} with {command}: "
                    f"exit status {result.returncode}"
                )
