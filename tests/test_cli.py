import sys

import orjson
import pytest

from conftest import Behavior
from ghrm.cli import _clone_selected, _load_repos, _preview, make_fetcher
from ghrm.errors import GhrmError
from ghrm.repository import Owner, Repository


@pytest.fixture
def gh(executor, sample_listing):
    executor.on(
        lambda program, args: args[:2] == ["api", "user"],
        Behavior(stdout=orjson.dumps({"login": "octo"}).decode()),
    )
    executor.on(lambda program, args: args[:2] == ["repo", "list"], Behavior(stdout=sample_listing))
    executor.on(
        lambda program, args: args[:1] == ["api"] and args[1].endswith("/readme"),
        Behavior(stdout="# readme body"),
    )
    return executor


@pytest.mark.asyncio
async def test_load_repos_filters_and_sorts(gh, config):
    fetcher = make_fetcher(gh, config)

    repos = await _load_repos(fetcher, "", "", "", "stars")
    assert [r.name for r in repos] == ["repo1", "repo2"]

    archived = await _load_repos(fetcher, "", "archived", "", "")
    assert [r.name for r in archived] == ["repo2"]

    # the second listing comes from cache
    assert len(gh.calls_to("gh")) == 1


@pytest.mark.asyncio
async def test_load_repos_does_not_resolve_login(gh, config):
    await _load_repos(make_fetcher(gh, config), "", "", "", "")

    assert gh.calls_to("gh", "api") == []


def test_cli_import_leaves_prompt_library_unloaded():
    import ghrm.cli  # noqa: F401

    assert "survey" not in sys.modules


@pytest.mark.asyncio
async def test_preview_with_readme(gh, config):
    config.ui.show_readme_in_preview = True

    card = await _preview(make_fetcher(gh, config), config, "", "repo1")

    assert card.startswith("# repo1")
    assert "# readme body" in card


@pytest.mark.asyncio
async def test_preview_unknown_repo(gh, config):
    card = await _preview(make_fetcher(gh, config), config, "", "nope")

    assert card == "Repository nope not found.\n"


@pytest.mark.asyncio
async def test_clone_selected_then_runs_hook(executor, config):
    config.post_clone.enabled = True
    config.post_clone.command = "tea"
    repos = [Repository(name="repo1", url="https://github.com/octo/repo1", owner=Owner("octo"))]

    await _clone_selected(executor, config, repos)

    assert [program for program, _ in executor.calls] == ["git", "tea"]


@pytest.mark.asyncio
async def test_clone_failure_skips_hook(executor, config):
    config.post_clone.enabled = True
    config.post_clone.command = "tea"
    executor.default = Behavior(returncode=128, stderr="fatal: nope")
    repos = [Repository(name="repo1", url="https://github.com/octo/repo1", owner=Owner("octo"))]

    with pytest.raises(GhrmError, match="error during cloning: .*fatal: nope"):
        await _clone_selected(executor, config, repos)

    assert [program for program, _ in executor.calls] == ["git"]
