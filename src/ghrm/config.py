import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Sequence

from mashumaro.mixins.toml import DataClassTOMLMixin

from .cache import CacheKind, parse_ttl, ttl_or_default
from .errors import TTLParseError

logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    dir: str = field(default="~/.cache/ghrm")
    repos_ttl: str = field(default="24h")
    readme_ttl: str = field(default="24h")
    username_ttl: str = field(default="90d")

    @property
    def path(self) -> Path:
        return Path(self.dir).expanduser()

    def ttls(self) -> Mapping[CacheKind, timedelta]:
        return {
            CacheKind.REPOS: ttl_or_default(self.repos_ttl),
            CacheKind.README: ttl_or_default(self.readme_ttl),
            CacheKind.USERNAME: ttl_or_default(self.username_ttl),
        }


@dataclass
class ReposConfig:
    projects_dir: str = field(default="~/Projects")
    # clone into <projects_dir>/<owner>/<name> instead of <projects_dir>/<name>
    per_user_dir: bool = field(default=False)
    sort_by: str = field(default="")
    repo_type: str = field(default="")
    language: str = field(default="")


@dataclass
class GitConfig:
    clone_depth: int = field(default=0)
    clone_args: Sequence[str] = field(default_factory=list)
    use_ssh: bool = field(default=True)


@dataclass
class PostCloneConfig:
    enabled: bool = field(default=False)
    command: str = field(default="")
    args: Sequence[str] = field(default_factory=list)


@dataclass
class PerformanceConfig:
    max_concurrent_clones: int = field(default=3)
    clone_timeout_minutes: int = field(default=10)
    fetch_timeout_seconds: int = field(default=300)


@dataclass
class UIConfig:
    show_readme_in_preview: bool = field(default=False)


@dataclass
class Config(DataClassTOMLMixin):
    cache: CacheConfig = field(default_factory=CacheConfig)
    repos: ReposConfig = field(default_factory=ReposConfig)
    git: GitConfig = field(default_factory=GitConfig)
    post_clone: PostCloneConfig = field(default_factory=PostCloneConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    def projects_dir_for(self, owner: str) -> Path:
        projects_dir = Path(self.repos.projects_dir).expanduser()
        if self.repos.per_user_dir and owner:
            return projects_dir / owner
        return projects_dir

    def target_path(self, owner: str, name: str) -> Path:
        return self.projects_dir_for(owner) / name


CONFIG_FILE_PATH = Path("~/.config/ghrm.toml")


def validate_config(config: Config) -> None:
    for name in ("repos_ttl", "readme_ttl", "username_ttl"):
        try:
            parse_ttl(getattr(config.cache, name))
        except TTLParseError as e:
            raise ValueError(f"invalid cache.{name}: {e}") from e

    if not config.repos.projects_dir:
        raise ValueError("repos.projects_dir must not be empty")
    if config.performance.max_concurrent_clones < 1:
        raise ValueError("performance.max_concurrent_clones must be at least 1")
    if config.git.clone_depth < 0:
        raise ValueError("git.clone_depth must not be negative")


def load_config(path: Path | None = None) -> Config:
    cfg_path = (path or CONFIG_FILE_PATH).expanduser()

    if not cfg_path.exists():
        logger.info(f"not found {cfg_path}, use default config")
        return Config()

    try:
        content = cfg_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"cannot read {cfg_path}: {e}, use default config")
        return Config()

    try:
        config = Config.from_toml(content)
        validate_config(config)
    except ValueError as e:
        # tomllib.TOMLDecodeError and mashumaro field errors are ValueErrors too
        logger.warning(f"invalid config in {cfg_path}: {e}, use default config")
        return Config()

    logger.info(f"use config from {cfg_path}")
    logger.debug(f"{config=}")
    return config
