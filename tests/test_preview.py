from conftest import SAMPLE_REPOS
from ghrm.preview import format_disk_usage, render_preview
from ghrm.repository import Repository


def test_format_disk_usage():
    assert format_disk_usage(0) == "0 KB"
    assert format_disk_usage(512) == "512 KB"
    assert format_disk_usage(1536) == "1.50 MB"
    assert format_disk_usage(3 * 1024 * 1024) == "3.00 GB"


def test_render_preview():
    card = render_preview(Repository.from_dict(SAMPLE_REPOS[0]))

    assert card.startswith("# repo1\n")
    assert "Language: Go" in card
    assert "Stars: 42  Forks: 7  Watchers: 5  Issues: 3" in card
    assert "Created At: 2023-01-15 10:00:00" in card
    assert "Disk Usage: 2.00 MB" in card
    assert "[Homepage](https://octo.dev)" in card
    assert "Topics: cli, github" in card
    assert "---" not in card


def test_render_flags_and_readme():
    repo = Repository.from_dict(SAMPLE_REPOS[1])

    assert "Forked | Archived" in render_preview(repo)
    assert render_preview(repo, "").endswith("No README found.\n")
    assert render_preview(repo, "# hi").endswith("---\n\n# hi\n")
