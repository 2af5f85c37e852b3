"""Flat-file cache with a freshness window per artifact kind.

Layout under the cache directory:

    <account>_repos.json        JSON array of repositories (`current_user` for
                                the authenticated account)
    readmes/<owner>_<repo>.md   raw README text, possibly empty
    current_username.txt        login of the authenticated account

A file is trusted only while `now - mtime < ttl`. Anything missing, expired
or unreadable is a cache miss.
"""

import enum
import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Tuple

import aiofiles
import aiofiles.os
import orjson

from .errors import CacheError, TTLParseError
from .repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)
CURRENT_USER_KEY = "current_user"

_TTL_UNITS = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}
_TTL_VALUE = re.compile(r"\d+")


def parse_ttl(value: str) -> timedelta:
    """Parse `30m`, `12h` or `7d`. An empty string means the 24h default."""

    if value == "":
        return DEFAULT_TTL

    value = value.strip()
    if len(value) < 2:
        raise TTLParseError(f"invalid duration format: {value!r}")

    number, unit = value[:-1], value[-1]
    if not _TTL_VALUE.fullmatch(number):
        raise TTLParseError(f"invalid duration value: {number!r}")
    if unit not in _TTL_UNITS:
        raise TTLParseError(f"invalid duration unit: {unit!r} (supported: m, h, d)")

    return int(number) * _TTL_UNITS[unit]


def ttl_or_default(value: str) -> timedelta:
    try:
        return parse_ttl(value)
    except TTLParseError as e:
        logger.warning(f"{e}, falling back to {DEFAULT_TTL}")
        return DEFAULT_TTL


def is_fresh(path: Path, ttl: timedelta) -> bool:
    try:
        mtime = path.stat().st_mtime
    except OSError:
        return False
    return time.time() - mtime < ttl.total_seconds()


class CacheKind(enum.Enum):
    REPOS = "repos"
    README = "readme"
    USERNAME = "username"


@dataclass(frozen=True)
class CacheEntry:
    kind: CacheKind
    key: str
    path: Path
    ttl: timedelta

    def is_fresh(self) -> bool:
        return is_fresh(self.path, self.ttl)


def _encode_repos(repos: List[Repository]) -> bytes:
    return orjson.dumps([repo.to_dict() for repo in repos], option=orjson.OPT_INDENT_2)


def _decode_repos(data: bytes) -> List[Repository]:
    items = orjson.loads(data)
    if not isinstance(items, list):
        raise ValueError(f"expected a JSON array, got {type(items).__name__}")
    return list(map(Repository.from_dict, items))


def _encode_text(text: str) -> bytes:
    return text.encode("utf-8")


def _decode_text(data: bytes) -> str:
    return data.decode("utf-8")


def _encode_line(text: str) -> bytes:
    return text.strip().encode("utf-8")


def _decode_line(data: bytes) -> str:
    return data.decode("utf-8").strip()


_CODECS: Dict[CacheKind, Tuple[Callable[[Any], bytes], Callable[[bytes], Any]]] = {
    CacheKind.REPOS: (_encode_repos, _decode_repos),
    CacheKind.README: (_encode_text, _decode_text),
    CacheKind.USERNAME: (_encode_line, _decode_line),
}


class Cache:
    def __init__(self, cache_dir: Path, ttls: Mapping[CacheKind, timedelta]):
        self.cache_dir = cache_dir
        self._ttls = dict(ttls)

    def ttl(self, kind: CacheKind) -> timedelta:
        return self._ttls.get(kind, DEFAULT_TTL)

    def path_for(self, kind: CacheKind, key: str = "") -> Path:
        match kind:
            case CacheKind.REPOS:
                return self.cache_dir / f"{key or CURRENT_USER_KEY}_repos.json"
            case CacheKind.README:
                owner, _, repo = key.partition("/")
                return self.cache_dir / "readmes" / f"{owner}_{repo}.md"
            case CacheKind.USERNAME:
                return self.cache_dir / "current_username.txt"
        raise ValueError(f"unknown cache kind: {kind}")

    def entry(self, kind: CacheKind, key: str = "") -> CacheEntry:
        return CacheEntry(kind, key, self.path_for(kind, key), self.ttl(kind))

    async def load(self, kind: CacheKind, key: str = "") -> Any:
        path = self.path_for(kind, key)
        _, decode = _CODECS[kind]
        try:
            async with aiofiles.open(path, "rb") as fp:
                data = await fp.read()
        except OSError as e:
            raise CacheError(f"failed to read cache {path}: {e}") from e

        try:
            return decode(data)
        except (ValueError, TypeError, LookupError, AttributeError) as e:
            # orjson decode errors, mashumaro MissingField / InvalidFieldValue
            raise CacheError(f"failed to parse cache {path}: {e}") from e

    async def save(self, kind: CacheKind, key: str, payload: Any) -> None:
        path = self.path_for(kind, key)
        encode, _ = _CODECS[kind]
        try:
            data = encode(payload)
        except (TypeError, ValueError) as e:
            raise CacheError(f"failed to serialize {kind.value} cache: {e}") from e

        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as fp:
                await fp.write(data)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            try:
                await aiofiles.os.remove(tmp_path)
            except OSError:
                pass
            raise CacheError(f"failed to write cache {path}: {e}") from e

        logger.debug(f"cached {kind.value} at {path}")

    async def lookup(self, kind: CacheKind, key: str = "") -> Any | None:
        """Return the cached payload, or None when it is stale or unusable."""

        entry = self.entry(kind, key)
        if not entry.is_fresh():
            return None
        try:
            return await self.load(kind, key)
        except CacheError as e:
            logger.debug(f"ignoring cache entry: {e}")
            return None
