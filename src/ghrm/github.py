"""Repository listings, READMEs and the current login, fetched through `gh`
and kept in the local cache."""

import asyncio
import logging
import re
from typing import List, Sequence, Tuple

import orjson

from .cache import Cache, CacheKind
from .errors import (
    CacheError,
    CommandFailedError,
    InvalidUsernameError,
    OperationCancelledError,
    ResponseParseError,
    ValidationError,
)
from .executor import CommandExecutor, CommandResult
from .repository import JSON_FIELDS, Repository

logger = logging.getLogger(__name__)

DEFAULT_REPO_LIMIT = 1000
DEFAULT_FETCH_TIMEOUT = 300.0

MIN_USERNAME_LENGTH = 1
MAX_USERNAME_LENGTH = 39
_UNSAFE_CHARS = frozenset(";|&$`(){}[]<>\"'\\")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9\-_]*[A-Za-z0-9])?$")
_REPO_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def validate_username(username: str) -> None:
    """Reject anything that is not a plausible GitHub login.

    The login ends up on a `gh` command line, so shell metacharacters are
    refused outright. An empty string stands for the authenticated user.
    """

    if username == "":
        return

    if any(char in _UNSAFE_CHARS for char in username):
        raise InvalidUsernameError(
            "username contains invalid characters that could be unsafe"
        )
    if len(username) > MAX_USERNAME_LENGTH:
        raise InvalidUsernameError(
            f"username too long: maximum {MAX_USERNAME_LENGTH} characters allowed"
        )
    if len(username) < MIN_USERNAME_LENGTH:
        raise InvalidUsernameError(
            f"username too short: minimum {MIN_USERNAME_LENGTH} character required"
        )
    if not _USERNAME_RE.fullmatch(username):
        raise InvalidUsernameError(
            "username format is invalid: must start and end with alphanumeric "
            "character, may contain hyphens and underscores"
        )


def parse_full_name(full_name: str) -> Tuple[str, str]:
    parts = full_name.split("/")
    if len(parts) != 2 or not all(parts):
        raise ValidationError(f"invalid repository name format: {full_name}")

    owner, name = parts
    try:
        validate_username(owner)
    except InvalidUsernameError as e:
        raise ValidationError(f"invalid repository name format: {full_name}: {e}") from e
    if name in (".", "..") or not _REPO_NAME_RE.fullmatch(name):
        raise ValidationError(f"invalid repository name format: {full_name}")

    return owner, name


def build_repo_list_args(user: str, limit: int = DEFAULT_REPO_LIMIT) -> List[str]:
    args = ["repo", "list", "--limit", str(limit), "--json", JSON_FIELDS]
    if user:
        args.append(user)
    return args


def _user_context(user: str) -> str:
    return f"user '{user}'" if user else "current user"


def _is_not_found(result: CommandResult) -> bool:
    return result.returncode == 1 and (
        "Not Found" in result.stderr or "404" in result.stderr
    )


class GitHubFetcher:
    def __init__(
        self,
        executor: CommandExecutor,
        cache: Cache,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        program: str = "gh",
    ):
        self._executor = executor
        self._cache = cache
        self._timeout = timeout
        self._program = program

    async def fetch_repositories(self, user: str = "") -> List[Repository]:
        try:
            validate_username(user)
        except InvalidUsernameError as e:
            raise InvalidUsernameError(f"invalid username: {e}") from e

        cached = await self._cache.lookup(CacheKind.REPOS, user)
        if cached is not None:
            logger.debug(f"use cached repositories of {_user_context(user)}")
            return cached

        logger.info(f"fetching repositories of {_user_context(user)}")
        result = await self._run(build_repo_list_args(user))
        if not result.ok:
            raise CommandFailedError(
                f"failed to fetch repositories for {_user_context(user)}: {result.stderr}",
                result.stderr,
                result.returncode,
            )

        try:
            data = orjson.loads(result.stdout)
            repos = list(map(Repository.from_dict, data))
        except (ValueError, TypeError, LookupError, AttributeError) as e:
            raise ResponseParseError(f"failed to parse GitHub API response: {e}") from e

        await self._save(CacheKind.REPOS, user, repos)
        return repos

    async def fetch_readme(self, full_name: str) -> str:
        """README text of `owner/name`; a repository without one gives ''."""

        owner, name = parse_full_name(full_name)
        key = f"{owner}/{name}"

        cached = await self._cache.lookup(CacheKind.README, key)
        if cached is not None:
            return cached

        result = await self._run(
            [
                "api",
                f"repos/{key}/readme",
                "-H",
                "Accept: application/vnd.github.v3.raw",
            ]
        )
        if _is_not_found(result):
            logger.debug(f"{key} has no README")
            await self._save(CacheKind.README, key, "")
            return ""
        if not result.ok:
            raise CommandFailedError(
                f"gh api failed: {result.stderr}", result.stderr, result.returncode
            )

        await self._save(CacheKind.README, key, result.stdout)
        return result.stdout

    async def fetch_current_username(self) -> str:
        cached = await self._cache.lookup(CacheKind.USERNAME)
        if cached:
            return cached

        result = await self._run(["api", "user"])
        if not result.ok:
            raise CommandFailedError(
                f"gh api user failed: {result.stderr}", result.stderr, result.returncode
            )

        try:
            login = orjson.loads(result.stdout)["login"]
        except (ValueError, TypeError, LookupError) as e:
            raise ResponseParseError(f"failed to parse user API response: {e}") from e
        if not isinstance(login, str) or not login.strip():
            raise ResponseParseError("user API response has no login")

        login = login.strip()
        await self._save(CacheKind.USERNAME, "", login)
        return login

    async def _run(self, args: Sequence[str]) -> CommandResult:
        handle = self._executor.execute(self._program, args)
        try:
            await handle.start()
        except OSError as e:
            raise CommandFailedError(f"failed to execute {self._program}: {e}") from e

        try:
            async with asyncio.timeout(self._timeout):
                return await handle.wait()
        except TimeoutError as e:
            handle.kill()
            raise OperationCancelledError(
                f"operation cancelled: {self._program} did not finish "
                f"within {self._timeout:g}s"
            ) from e
        except asyncio.CancelledError:
            handle.kill()
            raise

    async def _save(self, kind: CacheKind, key: str, payload) -> None:
        try:
            await self._cache.save(kind, key, payload)
        except CacheError as e:
            logger.warning(f"failed to update cache: {e}")
