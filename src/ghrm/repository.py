from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

# fields requested from `gh repo list --json`
JSON_FIELDS = ",".join(
    [
        "name",
        "description",
        "url",
        "stargazerCount",
        "forkCount",
        "watchers",
        "issues",
        "owner",
        "createdAt",
        "updatedAt",
        "diskUsage",
        "homepageUrl",
        "isFork",
        "isArchived",
        "isPrivate",
        "isTemplate",
        "repositoryTopics",
        "primaryLanguage",
    ]
)


@dataclass(frozen=True)
class Owner:
    login: str = ""


@dataclass(frozen=True)
class Count(DataClassDictMixin):
    total_count: int = field(default=0, metadata=field_options(alias="totalCount"))

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass(frozen=True)
class Topic:
    name: str


@dataclass(frozen=True)
class Language:
    name: str = ""


@dataclass(frozen=True)
class Repository(DataClassORJSONMixin):
    """One remote repository, as reported by `gh repo list`.

    The serialized form keeps gh's camelCase field names so the cache file
    and the live response share one format.
    """

    name: str
    description: str = ""
    url: str = ""
    stargazer_count: int = field(
        default=0, metadata=field_options(alias="stargazerCount")
    )
    fork_count: int = field(default=0, metadata=field_options(alias="forkCount"))
    watchers: Count = field(default_factory=Count)
    issues: Count = field(default_factory=Count)
    owner: Owner = field(default_factory=Owner)
    created_at: Optional[datetime] = field(
        default=None, metadata=field_options(alias="createdAt")
    )
    updated_at: Optional[datetime] = field(
        default=None, metadata=field_options(alias="updatedAt")
    )
    disk_usage: int = field(default=0, metadata=field_options(alias="diskUsage"))
    homepage_url: str = field(default="", metadata=field_options(alias="homepageUrl"))
    is_fork: bool = field(default=False, metadata=field_options(alias="isFork"))
    is_archived: bool = field(default=False, metadata=field_options(alias="isArchived"))
    is_private: bool = field(default=False, metadata=field_options(alias="isPrivate"))
    is_template: bool = field(default=False, metadata=field_options(alias="isTemplate"))
    topics: Optional[List[Topic]] = field(
        default=None, metadata=field_options(alias="repositoryTopics")
    )
    primary_language: Optional[Language] = field(
        default=None, metadata=field_options(alias="primaryLanguage")
    )

    class Config(BaseConfig):
        serialize_by_alias = True

    @property
    def owner_login(self) -> str:
        return self.owner.login

    @property
    def full_name(self) -> str:
        return f"{self.owner.login}/{self.name}"

    @property
    def language(self) -> str:
        if self.primary_language is None:
            return ""
        return self.primary_language.name

    @property
    def topic_names(self) -> List[str]:
        return [topic.name for topic in self.topics or ()]

    def __str__(self) -> str:
        return self.name


def build_repo_map(repos: Sequence[Repository]) -> Dict[str, Repository]:
    return {repo.name: repo for repo in repos}


def select_repos_by_names(
    repo_map: Dict[str, Repository], names: Sequence[str]
) -> List[Repository]:
    # walk the requested names so the output follows the caller's order
    return [repo_map[name] for name in names if name and name in repo_map]


_TYPE_FLAGS = {
    "archived": "is_archived",
    "forked": "is_fork",
    "private": "is_private",
    "template": "is_template",
}


def filter_repositories(
    repos: Sequence[Repository], repo_type: str = "", language: str = ""
) -> List[Repository]:
    """Keep repositories matching a type (archived, forked, private, template)
    and a primary language. Unknown types do not filter anything."""

    flag = _TYPE_FLAGS.get(repo_type.lower())
    language = language.lower()

    filtered = []
    for repo in repos:
        if flag is not None and not getattr(repo, flag):
            continue
        if language and repo.language.lower() != language:
            continue
        filtered.append(repo)
    return filtered


def _by_datetime(attr: str):
    def key(repo: Repository) -> float:
        value = getattr(repo, attr)
        return value.timestamp() if value is not None else float("-inf")

    return key


# (key, reverse); newest and biggest first
_SORT_KEYS = {
    "created": (_by_datetime("created_at"), True),
    "forks": (lambda r: r.fork_count, True),
    "issues": (lambda r: r.issues.total_count, True),
    "language": (lambda r: r.language.lower(), False),
    "name": (lambda r: r.name.lower(), False),
    "pushed": (_by_datetime("updated_at"), True),
    "updated": (_by_datetime("updated_at"), True),
    "size": (lambda r: r.disk_usage, True),
    "stars": (lambda r: r.stargazer_count, True),
}

SORT_CHOICES = sorted(_SORT_KEYS)
TYPE_CHOICES = sorted(_TYPE_FLAGS)


def sort_repositories(repos: Sequence[Repository], sort_by: str = "") -> List[Repository]:
    sort_key = _SORT_KEYS.get(sort_by.lower())
    if sort_key is None:
        return list(repos)
    key, reverse = sort_key
    return sorted(repos, key=key, reverse=reverse)
