import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.progress import Progress

from .cache import Cache
from .clone import CloneOrchestrator
from .config import Config, load_config
from .errors import GhrmError
from .executor import AsyncProcessExecutor, CommandExecutor
from .github import GitHubFetcher
from .logging_config import setup_logging
from .post_clone import PostCloneRunner
from .preview import render_preview
from .repository import (
    SORT_CHOICES,
    TYPE_CHOICES,
    Repository,
    build_repo_map,
    filter_repositories,
    select_repos_by_names,
    sort_repositories,
)
from .survey import survey_repos

logger = logging.getLogger(__name__)


def make_fetcher(executor: CommandExecutor, config: Config) -> GitHubFetcher:
    cache = Cache(config.cache.path, config.cache.ttls())
    return GitHubFetcher(
        executor, cache, timeout=config.performance.fetch_timeout_seconds
    )


async def _load_repos(
    fetcher: GitHubFetcher,
    user: str,
    repo_type: str,
    language: str,
    sort_by: str,
) -> List[Repository]:
    repos = await fetcher.fetch_repositories(user)
    filtered = filter_repositories(repos, repo_type, language)
    return sort_repositories(filtered, sort_by)


async def _clone_selected(
    executor: CommandExecutor, config: Config, repos: Sequence[Repository]
) -> None:
    with Progress(transient=True) as progress:
        orchestrator = CloneOrchestrator(executor, config, progress=progress)
        result = await orchestrator.clone_all(repos)

    if result.first_error is not None:
        raise GhrmError(f"error during cloning: {result.first_error}")

    try:
        await PostCloneRunner(executor, config).run(repos)
    except GhrmError as e:
        raise GhrmError(f"error during post-clone handling: {e}") from e


def repo_man(args) -> None:
    """List, select and clone GitHub repositories"""

    config = load_config(args.config)
    executor = AsyncProcessExecutor()
    fetcher = make_fetcher(executor, config)

    repos = asyncio.run(
        _load_repos(
            fetcher,
            args.user,
            args.type or config.repos.repo_type,
            args.language or config.repos.language,
            args.sort or config.repos.sort_by,
        )
    )
    if len(repos) == 0:
        logger.info("no repository found")
        return

    selected_names = survey_repos([repo.name for repo in repos])
    selected = select_repos_by_names(build_repo_map(repos), selected_names)
    if len(selected) == 0:
        logger.info("No repositories selected.")
        return

    asyncio.run(_clone_selected(executor, config, selected))


async def _preview(fetcher: GitHubFetcher, config: Config, user: str, name: str) -> str:
    repos = await fetcher.fetch_repositories(user)
    repo = build_repo_map(repos).get(name)
    if repo is None:
        return f"Repository {name} not found.\n"

    readme = None
    if config.ui.show_readme_in_preview:
        try:
            readme = await fetcher.fetch_readme(repo.full_name)
        except GhrmError as e:
            readme = f"Error fetching README: {e}"
    return render_preview(repo, readme)


def preview(args) -> None:
    """Show details of one repository"""

    config = load_config(args.config)
    fetcher = make_fetcher(AsyncProcessExecutor(), config)
    card = asyncio.run(_preview(fetcher, config, args.user, args.name))
    Console().print(Markdown(card))


def _base_parser(fn):
    import argparse

    parser = argparse.ArgumentParser(
        description=fn.__doc__, formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument(
        "-u", "--user", default="", help="The user to fetch repositories for"
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="Path to configuration file"
    )
    parser.add_argument("--debug", action="store_true", help="Set log level as DEBUG")
    return parser


def gen_main(fn, configure):
    def main(argv: Sequence[str] | None = None) -> int:
        parser = _base_parser(fn)
        configure(parser)
        args = parser.parse_args(argv)

        setup_logging(args.debug)
        logger.debug(f"{args=}")

        try:
            fn(args)
        except KeyboardInterrupt:
            logger.error("aborted")
            return 130
        except GhrmError as e:
            logger.error(f"Error: {e}")
            return 1
        return 0

    return main


def _repo_man_args(parser) -> None:
    parser.add_argument(
        "-t",
        "--type",
        default="",
        help=f"Filter by repository type ({', '.join(TYPE_CHOICES)})",
    )
    parser.add_argument(
        "-l", "--language", default="", help="Filter by primary language"
    )
    parser.add_argument(
        "-s",
        "--sort",
        default="",
        help=f"Sort repositories by ({', '.join(SORT_CHOICES)})",
    )


def _preview_args(parser) -> None:
    parser.add_argument("name", help="Repository name")


_main = gen_main(repo_man, _repo_man_args)
_main_preview = gen_main(preview, _preview_args)


def main() -> None:
    sys.exit(_main())


def main_preview() -> None:
    sys.exit(_main_preview())
