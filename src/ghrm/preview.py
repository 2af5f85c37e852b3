from datetime import datetime
from typing import List, Optional

from .repository import Repository

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_disk_usage(kilobytes: int) -> str:
    """gh reports `diskUsage` in kilobytes."""

    if kilobytes < 1024:
        return f"{kilobytes} KB"
    megabytes = kilobytes / 1024
    if megabytes < 1024:
        return f"{megabytes:.2f} MB"
    return f"{megabytes / 1024:.2f} GB"


def _date(value: Optional[datetime]) -> str:
    return value.strftime(DATE_FORMAT) if value is not None else "-"


def render_preview(repo: Repository, readme: Optional[str] = None) -> str:
    """Markdown card for one repository.

    `readme` is appended below a rule when given; an empty string renders as
    "No README found.".
    """

    lines: List[str] = [f"# {repo.name}", "", f"Language: {repo.language or '-'}"]
    if repo.description:
        lines.append(repo.description)
    lines += [
        f"[Link]({repo.url})",
        "",
        f"Stars: {repo.stargazer_count}  Forks: {repo.fork_count}  "
        f"Watchers: {repo.watchers.total_count}  Issues: {repo.issues.total_count}",
        "",
        f"- Owner: {repo.owner_login}",
        f"- Created At: {_date(repo.created_at)}",
        f"- Last Updated: {_date(repo.updated_at)}",
        f"- Disk Usage: {format_disk_usage(repo.disk_usage)}",
    ]
    if repo.homepage_url:
        lines.append(f"- [Homepage]({repo.homepage_url})")

    flags = [
        label
        for label, on in (
            ("Forked", repo.is_fork),
            ("Archived", repo.is_archived),
            ("Private", repo.is_private),
            ("Template", repo.is_template),
        )
        if on
    ]
    if flags:
        lines += ["", " | ".join(flags)]
    if repo.topic_names:
        lines += ["", f"Topics: {', '.join(repo.topic_names)}"]

    if readme is not None:
        lines += ["", "---", ""]
        lines.append(readme if readme else "No README found.")

    return "\n".join(lines) + "\n"
